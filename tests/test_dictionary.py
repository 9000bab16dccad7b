import json

from pobot.dictionary import dictionary_candidates, find_dictionary_matches, load_dictionary
from pobot.planner import BatchItem


def test_candidates_go_from_specific_to_generic(tmp_path):
    names = [p.name for p in dictionary_candidates(tmp_path, "fr_FR")]
    assert names == ["dictionary-fr-fr.json", "dictionary-fr.json", "dictionary.json"]
    assert [p.name for p in dictionary_candidates(tmp_path, "de")] == [
        "dictionary-de.json",
        "dictionary.json",
    ]


def test_load_prefers_base_language_over_default(tmp_path):
    (tmp_path / "dictionary.json").write_text(json.dumps({"Cart": "Basket"}), encoding="utf-8")
    (tmp_path / "dictionary-fr.json").write_text(
        json.dumps({"Cart": "Panier", "Checkout": "Commande", "bad": 3}), encoding="utf-8"
    )

    dictionary = load_dictionary(tmp_path, "fr_FR")

    assert dictionary == {"cart": "Panier", "checkout": "Commande"}


def test_load_skips_invalid_file(tmp_path):
    (tmp_path / "dictionary-fr.json").write_text("[1, 2]", encoding="utf-8")
    (tmp_path / "dictionary.json").write_text(json.dumps({"Cart": "Basket"}), encoding="utf-8")
    assert load_dictionary(tmp_path, "fr") == {"cart": "Basket"}


def test_load_without_directory_returns_none(tmp_path):
    assert load_dictionary(tmp_path / "missing", "fr") is None
    assert load_dictionary(None, "fr") is None


def test_matches_whole_words_only():
    dictionary = {"cart": "Panier", "art": "Art", "checkout": "Commande"}
    items = [BatchItem("", "Add to Cart"), BatchItem("", "Go to checkout now")]

    matches = find_dictionary_matches(items, dictionary)

    assert [(m.source, m.target) for m in matches] == [
        ("cart", "Panier"),
        ("checkout", "Commande"),
    ]


def test_no_matches_for_empty_input():
    assert find_dictionary_matches([], {"cart": "Panier"}) == []
    assert find_dictionary_matches([BatchItem("", "Cart")], None) == []
