from __future__ import annotations

from dataclasses import dataclass

from .catalog import Catalog, is_untranslated


@dataclass(frozen=True)
class BatchItem:
    msgctxt: str
    msgid: str
    msgid_plural: str | None = None
    comments: str = ""
    references: tuple[str, ...] = ()

    @property
    def key(self) -> tuple[str, str]:
        return (self.msgctxt, self.msgid)


@dataclass(frozen=True)
class TranslationBatch:
    number: int
    items: tuple[BatchItem, ...]

    def __len__(self) -> int:
        return len(self.items)


def extract_untranslated(catalog: Catalog) -> list[BatchItem]:
    items: list[BatchItem] = []
    for entry in catalog.entries():
        if not is_untranslated(entry):
            continue
        items.append(
            BatchItem(
                msgctxt=entry.msgctxt or "",
                msgid=entry.msgid,
                msgid_plural=entry.msgid_plural or None,
                comments=entry.comment or "",
                references=tuple(
                    f"{path}:{line}" if line else path for path, line in entry.occurrences
                ),
            )
        )
    return items


def plan(
    catalog: Catalog, batch_size: int, max_strings: int | None = None
) -> list[TranslationBatch]:
    """Split the untranslated entries of ``catalog`` into ordered batches.

    ``max_strings`` of None or a negative value means no limit and 0 means
    nothing is planned.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    items = extract_untranslated(catalog)
    if max_strings is not None and max_strings >= 0:
        items = items[:max_strings]
    return [
        TranslationBatch(number=i // batch_size + 1, items=tuple(items[i : i + batch_size]))
        for i in range(0, len(items), batch_size)
    ]
