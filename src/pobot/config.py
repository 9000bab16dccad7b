from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass
from typing import Any

from .languages import LOCALE_FORMATS


@dataclass(frozen=True)
class Config:
    pot_file_path: str
    target_languages: tuple[str, ...]

    api_key: str | None = None
    api_base: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"

    source_language: str = "en"
    output_dir: str = "."
    po_file_prefix: str = ""
    input_po_path: str | None = None
    po_header_template: dict[str, str] | None = None
    locale_format: str = "target_lang"

    batch_size: int = 20
    concurrent_jobs: int = 2
    temperature: float = 0.7
    timeout: float = 60.0
    max_tokens: int | None = None
    max_retries: int = 3
    retry_delay_ms: int = 2000
    abort_on_failure: bool = False
    skip_language_on_failure: bool = False

    max_cost: float | None = None
    max_strings_per_job: int | None = None
    max_total_strings: int | None = None

    dry_run: bool = False
    force_translate: bool = False
    use_dictionary: bool = False
    dictionary_path: str = "config/dictionaries"
    prompt_path: str | None = None
    pricing_path: str | None = None
    save_debug_info: bool = False

    output_format: str = "console"
    output_file: str | None = None
    verbose_level: int = 1
    report_dir: str | None = None

    test_retry_failure_rate: float = 0.0
    test_allow_complete_failure: bool = False

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default) not in ("0", "false", "False", "")


def _int(name: str, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer") from exc


def _float(name: str, default: float | None = None) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number") from exc


def _clamp(value: int | float, low: int | float, high: int | float):
    return max(low, min(high, value))


def load_header_template(path: str | None) -> dict[str, str] | None:
    if not path:
        return None
    try:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
    except OSError as exc:
        raise RuntimeError(f"PO_HEADER_TEMPLATE not readable: {path}") from exc
    except json.JSONDecodeError as exc:
        raise RuntimeError("PO_HEADER_TEMPLATE must be valid JSON") from exc
    if not isinstance(data, dict):
        raise RuntimeError("PO_HEADER_TEMPLATE must be a JSON object")
    return {str(k): str(v) for k, v in data.items()}


def parse_languages(raw: str | None) -> tuple[str, ...]:
    return tuple(lang.strip() for lang in (raw or "").split(",") if lang.strip())


def validate_config(cfg: Config) -> Config:
    if not cfg.pot_file_path:
        raise RuntimeError("Missing required env var: POT_FILE_PATH")
    if not cfg.target_languages:
        raise RuntimeError("Missing required env var: TARGET_LANGUAGES")
    if not cfg.dry_run and not cfg.api_key:
        raise RuntimeError("Missing required env var: API_KEY (or use --dry-run)")
    if cfg.locale_format not in LOCALE_FORMATS:
        raise RuntimeError(f"LOCALE_FORMAT must be one of: {', '.join(LOCALE_FORMATS)}")
    if cfg.output_format not in ("console", "json"):
        raise RuntimeError("OUTPUT_FORMAT must be 'console' or 'json'")
    if not 0.0 <= cfg.temperature <= 2.0:
        raise RuntimeError("TEMPERATURE must be between 0.0 and 2.0")
    if cfg.max_cost is not None and cfg.max_cost <= 0:
        raise RuntimeError("MAX_COST must be greater than 0")
    return dataclasses.replace(
        cfg,
        batch_size=_clamp(cfg.batch_size, 1, 100),
        concurrent_jobs=_clamp(cfg.concurrent_jobs, 1, 10),
        max_retries=_clamp(cfg.max_retries, 0, 10),
        retry_delay_ms=_clamp(cfg.retry_delay_ms, 500, 30000),
        timeout=_clamp(cfg.timeout, 10, 300),
        verbose_level=_clamp(cfg.verbose_level, 0, 3),
    )


def load_config(overrides: dict[str, Any] | None = None) -> Config:
    cfg = Config(
        pot_file_path=os.getenv("POT_FILE_PATH", ""),
        target_languages=parse_languages(os.getenv("TARGET_LANGUAGES")),
        api_key=os.getenv("API_KEY") or None,
        api_base=os.getenv("API_BASE", "https://api.openai.com/v1"),
        model=os.getenv("MODEL", "gpt-4o-mini"),
        source_language=os.getenv("SOURCE_LANGUAGE", "en"),
        output_dir=os.getenv("OUTPUT_DIR", "."),
        po_file_prefix=os.getenv("PO_FILE_PREFIX", ""),
        input_po_path=os.getenv("INPUT_PO_PATH") or None,
        po_header_template=load_header_template(os.getenv("PO_HEADER_TEMPLATE")),
        locale_format=os.getenv("LOCALE_FORMAT", "target_lang"),
        batch_size=_int("BATCH_SIZE", 20),
        concurrent_jobs=_int("CONCURRENT_JOBS", 2),
        temperature=_float("TEMPERATURE", 0.7),
        timeout=_float("TIMEOUT", 60.0),
        max_tokens=_int("MAX_TOKENS"),
        max_retries=_int("MAX_RETRIES", 3),
        retry_delay_ms=_int("RETRY_DELAY", 2000),
        abort_on_failure=_flag("ABORT_ON_FAILURE"),
        skip_language_on_failure=_flag("SKIP_LANGUAGE_ON_FAILURE"),
        max_cost=_float("MAX_COST"),
        max_strings_per_job=_int("MAX_STRINGS_PER_JOB"),
        max_total_strings=_int("MAX_TOTAL_STRINGS"),
        dry_run=_flag("DRY_RUN"),
        force_translate=_flag("FORCE_TRANSLATE"),
        use_dictionary=_flag("USE_DICTIONARY"),
        dictionary_path=os.getenv("DICTIONARY_PATH", "config/dictionaries"),
        prompt_path=os.getenv("PROMPT_PATH") or None,
        pricing_path=os.getenv("PRICING_PATH") or None,
        save_debug_info=_flag("SAVE_DEBUG_INFO"),
        output_format=os.getenv("OUTPUT_FORMAT", "console"),
        output_file=os.getenv("OUTPUT_FILE") or None,
        verbose_level=_int("VERBOSE_LEVEL", 1),
        report_dir=os.getenv("REPORT_DIR") or None,
        test_retry_failure_rate=_float("TEST_RETRY_FAILURE_RATE", 0.0),
        test_allow_complete_failure=_flag("TEST_ALLOW_COMPLETE_FAILURE"),
    )
    if overrides:
        cfg = dataclasses.replace(cfg, **overrides)
    return validate_config(cfg)
