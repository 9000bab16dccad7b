from __future__ import annotations

import copy
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import polib

from .errors import ParseError, WriteError
from .languages import header_locale

log = logging.getLogger("pobot.catalog")

DRY_RUN_PREFIX = "[DRY RUN]"

# Headers the base catalog owns; the existing file only fills gaps.
DYNAMIC_HEADERS = (
    "Language",
    "PO-Revision-Date",
    "Plural-Forms",
    "Content-Type",
    "Last-Translator",
    "MIME-Version",
    "Content-Transfer-Encoding",
)

CONTENT_TYPE = "text/plain; charset=UTF-8"


class Catalog:
    """A gettext catalog keyed by (context, msgid).

    Wraps a ``polib.POFile``; the header record lives in ``headers`` and is
    never returned by ``entries()``.
    """

    def __init__(self, po: polib.POFile) -> None:
        self.po = po

    @property
    def headers(self) -> dict[str, str]:
        return self.po.metadata

    @property
    def header_comment(self) -> str:
        return self.po.header

    def entries(self) -> Iterator[polib.POEntry]:
        for entry in self.po:
            if entry.obsolete or entry.msgid == "":
                continue
            yield entry

    def find(self, msgctxt: str | None, msgid: str) -> polib.POEntry | None:
        for entry in self.entries():
            if entry.msgid == msgid and (entry.msgctxt or "") == (msgctxt or ""):
                return entry
        return None

    def index(self) -> dict[tuple[str, str], polib.POEntry]:
        return {entry_key(entry): entry for entry in self.entries()}

    def copy(self) -> "Catalog":
        return Catalog(copy.deepcopy(self.po))

    def __len__(self) -> int:
        return sum(1 for _ in self.entries())


def entry_key(entry: polib.POEntry) -> tuple[str, str]:
    return (entry.msgctxt or "", entry.msgid)


def get_forms(entry: polib.POEntry) -> list[str]:
    if entry.msgid_plural:
        plural = entry.msgstr_plural or {}
        return [plural[k] for k in sorted(plural, key=int)]
    return [entry.msgstr]


def set_forms(entry: polib.POEntry, forms: list[str]) -> None:
    if entry.msgid_plural:
        entry.msgstr_plural = {i: form for i, form in enumerate(forms)}
    else:
        entry.msgstr = forms[0] if forms else ""


def is_placeholder(text: str) -> bool:
    return text.startswith(DRY_RUN_PREFIX)


def is_untranslated(entry: polib.POEntry) -> bool:
    forms = get_forms(entry)
    if not forms:
        return True
    return all(not form.strip() or is_placeholder(form) for form in forms)


def has_real_translation(entry: polib.POEntry) -> bool:
    return any(form.strip() and not is_placeholder(form) for form in get_forms(entry))


def parse(raw: str | bytes) -> Catalog:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(f"Catalog is not valid UTF-8: {exc}") from exc
    # polib.pofile accepts a path or content; single-line content could name a file
    if "\n" not in raw:
        raw = raw + "\n"
    try:
        po = polib.pofile(raw)
    except (OSError, ValueError) as exc:
        raise ParseError(f"Malformed catalog: {exc}") from exc
    return Catalog(po)


def load(path: str | Path) -> Catalog:
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise ParseError(f"Cannot read catalog {path}: {exc}") from exc
    try:
        return parse(data)
    except ParseError as exc:
        raise ParseError(f"{path}: {exc}") from exc


def count_untranslated(catalog: Catalog) -> int:
    return sum(1 for entry in catalog.entries() if is_untranslated(entry))


def count_real_translations(catalog: Catalog) -> int:
    return sum(1 for entry in catalog.entries() if has_real_translation(entry))


def _set_fuzzy(entry: polib.POEntry, fuzzy: bool) -> None:
    if fuzzy and "fuzzy" not in entry.flags:
        entry.flags.append("fuzzy")
    elif not fuzzy and "fuzzy" in entry.flags:
        entry.flags.remove("fuzzy")


def merge_into(
    base: Catalog, existing: Catalog, target_plural_count: int
) -> tuple[Catalog, int]:
    merged = base.copy()
    existing_index = existing.index()
    merged_count = 0

    for entry in merged.entries():
        previous = existing_index.get(entry_key(entry))
        if previous is None:
            continue
        if not has_real_translation(previous):
            continue
        forms = get_forms(previous)

        if entry.msgid_plural:
            padded = [""] * target_plural_count
            for i, form in enumerate(forms[:target_plural_count]):
                padded[i] = form if form.strip() else ""
            if not any(form.strip() and not is_placeholder(form) for form in padded):
                continue
            set_forms(entry, padded)
        else:
            set_forms(entry, [forms[0]])

        _set_fuzzy(entry, "fuzzy" in previous.flags)
        merged_count += 1

    for key, value in existing.headers.items():
        if key in DYNAMIC_HEADERS:
            if key not in merged.headers:
                merged.headers[key] = value
            continue
        merged.headers[key] = value

    log.debug("merged %s existing translations", merged_count)
    return merged, merged_count


def initialize_plural_forms(catalog: Catalog, plural_rule: str, plural_count: int) -> Catalog:
    initialized = catalog.copy()
    initialized.headers["Plural-Forms"] = plural_rule
    for entry in initialized.entries():
        if entry.msgid_plural:
            set_forms(entry, [""] * plural_count)
    return initialized


def _revision_date(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%d %H:%M") + "+0000"


def _is_placeholder_rule(rule: str | None) -> bool:
    return not rule or "INTEGER" in rule or "EXPRESSION" in rule


def header_overrides_for(
    catalog: Catalog,
    language: str,
    plural_rule: str,
    template: dict[str, str] | None = None,
    now: datetime | None = None,
) -> dict[str, str]:
    headers = {**catalog.headers, **(template or {})}
    headers = {
        key: value.replace("{{LANGUAGE}}", language) if isinstance(value, str) else value
        for key, value in headers.items()
    }
    headers["Language"] = header_locale(language)
    headers["PO-Revision-Date"] = _revision_date(now)
    if _is_placeholder_rule(headers.get("Plural-Forms")):
        headers["Plural-Forms"] = plural_rule
    headers["Content-Type"] = CONTENT_TYPE
    return headers


def compile(catalog: Catalog, header_overrides: dict[str, str] | None = None) -> bytes:
    if header_overrides:
        catalog.po.metadata = {**catalog.headers, **header_overrides}
    catalog.headers["Content-Type"] = CONTENT_TYPE
    catalog.po.encoding = "utf-8"
    return str(catalog.po).encode("utf-8")


def write(path: str | Path, data: bytes) -> Path:
    target = Path(path)
    tmp = target.with_name(target.name + ".tmp")
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_bytes(data)
        os.replace(tmp, target)
    except OSError as exc:
        raise WriteError(f"Cannot write catalog {target}: {exc}") from exc
    return target
