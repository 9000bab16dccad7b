import pytest

from pobot import catalog as po
from pobot.errors import ParseError, WriteError

POT = """msgid ""
msgstr ""
"Project-Id-Version: demo 1.0\\n"
"Content-Type: text/plain; charset=CHARSET\\n"
"Plural-Forms: nplurals=INTEGER; plural=EXPRESSION;\\n"

#. Button label
#: src/app.py:10
msgid "Save"
msgstr ""

msgctxt "menu"
msgid "Open"
msgstr ""

msgid "Close"
msgstr ""

msgid "One file"
msgid_plural "%d files"
msgstr[0] ""
msgstr[1] ""

msgid "Quit"
msgstr ""
"""

EXISTING = """msgid ""
msgstr ""
"Language: ru\\n"
"Last-Translator: Ann <ann@example.org>\\n"
"X-Generator: Poedit\\n"

msgid "Save"
msgstr "Сохранить"

#, fuzzy
msgctxt "menu"
msgid "Open"
msgstr "Открыть"

msgid "Close"
msgstr ""

msgid "One file"
msgid_plural "%d files"
msgstr[0] "%d файл"
msgstr[1] "%d файла"
"""


def _forms(catalog, msgid, msgctxt=None):
    return po.get_forms(catalog.find(msgctxt, msgid))


def test_parse_counts_untranslated_and_skips_header():
    catalog = po.parse(POT)
    assert len(catalog) == 5
    assert po.count_untranslated(catalog) == 5
    assert po.count_real_translations(catalog) == 0
    assert catalog.headers["Project-Id-Version"] == "demo 1.0"


def test_parse_accepts_bytes():
    catalog = po.parse(POT.encode("utf-8"))
    assert catalog.find("menu", "Open") is not None
    assert catalog.find(None, "Open") is None


def test_parse_rejects_malformed_input():
    with pytest.raises(ParseError):
        po.parse('msgid "a"\nmsgstr "b"\nthis is not a po line\n')


def test_load_missing_file_raises_parse_error(tmp_path):
    with pytest.raises(ParseError):
        po.load(tmp_path / "missing.pot")


def test_dry_run_placeholders_count_as_untranslated():
    catalog = po.parse(POT)
    po.set_forms(catalog.find(None, "Save"), ["[DRY RUN] Save"])
    po.set_forms(catalog.find(None, "Close"), ["Fermer"])

    assert po.count_untranslated(catalog) == 4
    assert po.count_real_translations(catalog) == 1


def test_merge_copies_non_empty_translations_and_fuzzy_flag():
    base = po.initialize_plural_forms(po.parse(POT), "nplurals=3; plural=0;", 3)
    existing = po.parse(EXISTING)

    merged, count = po.merge_into(base, existing, 3)

    assert count == 3
    assert _forms(merged, "Save") == ["Сохранить"]
    assert "fuzzy" in merged.find("menu", "Open").flags
    assert "fuzzy" not in merged.find(None, "Save").flags
    assert _forms(merged, "Close") == [""]
    assert _forms(merged, "One file") == ["%d файл", "%d файла", ""]
    # base catalog is untouched
    assert _forms(base, "Save") == [""]


def test_merge_truncates_plural_forms_to_target_count():
    base = po.initialize_plural_forms(po.parse(POT), "nplurals=1; plural=0;", 1)
    merged, _ = po.merge_into(base, po.parse(EXISTING), 1)
    assert _forms(merged, "One file") == ["%d файл"]


def test_merge_is_idempotent():
    base = po.initialize_plural_forms(po.parse(POT), "nplurals=3; plural=0;", 3)
    existing = po.parse(EXISTING)

    once, first = po.merge_into(base, existing, 3)
    twice, second = po.merge_into(once, existing, 3)

    assert first == second
    for entry in once.entries():
        assert po.get_forms(entry) == po.get_forms(twice.find(entry.msgctxt, entry.msgid))


def test_merge_with_itself_counts_only_real_translations():
    catalog = po.parse(EXISTING)
    po.set_forms(catalog.find(None, "Close"), ["[DRY RUN] Close"])
    po.set_forms(catalog.find(None, "One file"), ["[DRY RUN] One file", "[DRY RUN] One file"])

    merged, count = po.merge_into(catalog, catalog, 2)

    assert count == po.count_real_translations(catalog) == 2
    assert po.count_untranslated(merged) == po.count_untranslated(catalog)


def test_merge_keeps_base_plural_rule_and_encoding():
    base = po.initialize_plural_forms(po.parse(POT), "nplurals=3; plural=0;", 3)
    existing = po.parse(EXISTING)
    existing.headers["Plural-Forms"] = "nplurals=2; plural=(n != 1);"
    existing.headers["Content-Type"] = "text/plain; charset=ISO-8859-5"

    merged, _ = po.merge_into(base, existing, 3)

    assert merged.headers["Plural-Forms"] == "nplurals=3; plural=0;"
    assert merged.headers["Content-Type"] == base.headers["Content-Type"]


def test_merge_keeps_existing_headers_unless_base_has_dynamic_value():
    base = po.parse(POT)
    base.headers["Language"] = "ru_RU"
    merged, _ = po.merge_into(base, po.parse(EXISTING), 2)

    assert merged.headers["Language"] == "ru_RU"
    assert merged.headers["Last-Translator"] == "Ann <ann@example.org>"
    assert merged.headers["X-Generator"] == "Poedit"


def test_initialize_plural_forms_sets_header_and_slots():
    catalog = po.initialize_plural_forms(po.parse(POT), "nplurals=3; plural=(n>1);", 3)
    assert catalog.headers["Plural-Forms"] == "nplurals=3; plural=(n>1);"
    assert _forms(catalog, "One file") == ["", "", ""]
    assert _forms(catalog, "Save") == [""]


def test_compile_replaces_placeholder_headers():
    catalog = po.parse(POT)
    headers = po.header_overrides_for(
        catalog,
        "pt_BR",
        "nplurals=2; plural=(n > 1);",
        template={"Project-Id-Version": "demo {{LANGUAGE}}", "X-Domain": "demo"},
    )

    data = po.compile(catalog, headers)
    reparsed = po.parse(data)

    assert reparsed.headers["Language"] == "pt-BR"
    assert reparsed.headers["Plural-Forms"] == "nplurals=2; plural=(n > 1);"
    assert reparsed.headers["Content-Type"] == "text/plain; charset=UTF-8"
    assert reparsed.headers["Project-Id-Version"] == "demo pt_BR"
    assert reparsed.headers["X-Domain"] == "demo"
    assert reparsed.headers["PO-Revision-Date"].endswith("+0000")
    assert len(reparsed) == 5


def test_compile_keeps_real_plural_rule():
    catalog = po.parse(POT)
    catalog.headers["Plural-Forms"] = "nplurals=3; plural=(n%10==1 ? 0 : 1);"
    headers = po.header_overrides_for(catalog, "ru", "nplurals=2; plural=(n != 1);")
    assert headers["Plural-Forms"] == "nplurals=3; plural=(n%10==1 ? 0 : 1);"


def test_write_creates_parent_directories(tmp_path):
    target = tmp_path / "out" / "fr.po"
    po.write(target, po.compile(po.parse(POT)))
    assert target.exists()
    assert not (tmp_path / "out" / "fr.po.tmp").exists()


def test_write_failure_raises_write_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    with pytest.raises(WriteError):
        po.write(blocker / "fr.po", b"")
