from pobot.costs import load_pricing
from pobot.planner import BatchItem
from pobot.prompts import (
    DictionaryMatch,
    build_messages,
    build_system_prompt,
    build_xml_prompt,
    count_tokens,
    estimate_batch_cost,
    parse_xml_response,
)

ITEMS = (
    BatchItem("", "Save", comments="Button label"),
    BatchItem("", "One file", msgid_plural="%d files"),
    BatchItem("", "Fish & <chips>"),
)


def test_xml_prompt_numbers_sources_and_escapes_text():
    prompt = build_xml_prompt(ITEMS, "fr_FR", 2)
    assert prompt.text.startswith("Translate to French (France):")
    assert '<source i="1" c="Button label">Save</source>' in prompt.text
    assert '<source i="2">One file|%d files</source>' in prompt.text
    assert '<source i="3">Fish &amp; &lt;chips&gt;</source>' in prompt.text
    assert '<f0>form0</f0><f1>form1</f1>' in prompt.text
    assert prompt.dictionary_count == 0


def test_xml_prompt_without_plurals_uses_simple_format():
    prompt = build_xml_prompt(ITEMS[:1], "de", 2)
    assert 'Format: <t i="N">translation</t>' in prompt.text


def test_dictionary_examples_shift_batch_indices():
    matches = [DictionaryMatch("save", "Enregistrer")]
    prompt = build_xml_prompt(ITEMS, "fr", 2, matches)
    assert '<source i="1">save</source>' in prompt.text
    assert '<source i="2" c="Button label">Save</source>' in prompt.text
    assert prompt.dictionary_count == 1

    messages, _ = build_messages("system", ITEMS, "fr", 2, matches)
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[2]["content"] == '<t i="1">Enregistrer</t>'
    assert '"save" MUST be translated as "Enregistrer"' in messages[3]["content"]


def test_parse_response_maps_indices_and_forms():
    response = (
        '<t i="1">Enregistrer</t>\n'
        '<t i="2">Enregistrer</t>\n'
        '<t i="3"><f0>%d fichier</f0><f1>%d fichiers</f1></t>\n'
        '<t i="4">Poisson &amp; &lt;frites&gt;</t>'
    )
    result = parse_xml_response(response, ITEMS, 2, dictionary_count=1)
    assert result == [
        ["Enregistrer"],
        ["%d fichier", "%d fichiers"],
        ["Poisson & <frites>"],
    ]


def test_parse_response_leaves_missing_entries_empty():
    result = parse_xml_response('<t i="2"><f0>x</f0></t><t i="9">y</t>', ITEMS, 3)
    assert result[0] == [""]
    assert result[1] == ["x", "", ""]
    assert result[2] == [""]


def test_parse_empty_response():
    assert parse_xml_response("", ITEMS[:1], 2) == [[""]]


def test_system_prompt_fills_placeholders():
    prompt = build_system_prompt("ru_RU", "en")
    assert "English" in prompt
    assert "Russian" in prompt
    assert "ru_RU" in prompt
    assert "exactly 3 forms" in prompt
    assert "{{" not in prompt


def test_count_tokens_is_positive():
    assert count_tokens("Translate these strings please") > 0
    assert count_tokens("") == 0


def test_estimate_covers_input_and_output():
    record = estimate_batch_cost(ITEMS, "fr", "system prompt", 2, "gpt-4o-mini", load_pricing())
    assert record.prompt_tokens > 0
    assert record.completion_tokens > 0
    assert record.total_cost > 0
    assert record.is_dry_run
