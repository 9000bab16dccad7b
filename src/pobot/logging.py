import logging
from pathlib import Path
import sys

FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_LEVELS = {0: logging.ERROR, 1: logging.INFO, 2: logging.INFO, 3: logging.DEBUG}


def configure_logging(verbose_level: int = 1, stream=None) -> None:
    logging.basicConfig(
        level=_LEVELS.get(verbose_level, logging.INFO),
        format=FORMAT,
        stream=stream or sys.stdout,
        force=True,
    )


def attach_file_logging(path: str) -> logging.Handler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FORMAT))
    logging.getLogger().addHandler(handler)
    return handler
