from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Sequence

from .planner import BatchItem
from .prompts import DictionaryMatch

log = logging.getLogger("pobot.dictionary")


def dictionary_candidates(directory: str | Path, language: str) -> list[Path]:
    code = language.lower().replace("_", "-")
    base = code.split("-")[0]
    names = [f"dictionary-{code}.json", f"dictionary-{base}.json", "dictionary.json"]
    unique: list[str] = []
    for name in names:
        if name not in unique:
            unique.append(name)
    return [Path(directory) / name for name in unique]


def load_dictionary(directory: str | Path | None, language: str) -> dict[str, str] | None:
    """Load the most specific glossary file for ``language``.

    Keys are lowercased so matching is case-insensitive. Returns None when
    no usable file exists.
    """
    if not directory or not Path(directory).is_dir():
        log.debug("dictionary directory not found: %s", directory)
        return None

    for path in dictionary_candidates(directory, language):
        if not path.exists():
            continue
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            log.warning("failed to load dictionary %s: %s", path, exc)
            continue
        if not isinstance(data, dict):
            log.warning("invalid dictionary format in %s: expected an object", path)
            continue
        normalized: dict[str, str] = {}
        for source, target in data.items():
            if not isinstance(source, str) or not isinstance(target, str):
                continue
            key = source.lower()
            if key in normalized and normalized[key] != target:
                log.warning("dictionary key conflict for %r in %s; using %r", key, path, target)
            normalized[key] = target
        log.debug("loaded dictionary %s with %s entries", path, len(normalized))
        return normalized
    return None


def find_dictionary_matches(
    items: Sequence[BatchItem], dictionary: dict[str, str] | None
) -> list[DictionaryMatch]:
    if not dictionary or not items:
        return []
    text = " ".join(item.msgid for item in items if item.msgid).lower()
    if not text:
        return []
    matches = []
    for source, target in dictionary.items():
        if not source or not target:
            continue
        if re.search(rf"\b{re.escape(source)}\b", text):
            matches.append(DictionaryMatch(source=source, target=target))
    return matches
