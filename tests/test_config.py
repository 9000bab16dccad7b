import json

import pytest

from pobot.config import load_config

_ENV = (
    "POT_FILE_PATH",
    "TARGET_LANGUAGES",
    "API_KEY",
    "DRY_RUN",
    "BATCH_SIZE",
    "CONCURRENT_JOBS",
    "MAX_RETRIES",
    "RETRY_DELAY",
    "TIMEOUT",
    "TEMPERATURE",
    "MAX_COST",
    "LOCALE_FORMAT",
    "PO_HEADER_TEMPLATE",
    "VERBOSE_LEVEL",
    "OUTPUT_FORMAT",
)


def _clean(monkeypatch):
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)


def _required(monkeypatch):
    _clean(monkeypatch)
    monkeypatch.setenv("POT_FILE_PATH", "languages/app.pot")
    monkeypatch.setenv("TARGET_LANGUAGES", "fr_FR, de,sr")
    monkeypatch.setenv("API_KEY", "sk-test")


def test_load_config_requires_env(monkeypatch):
    _clean(monkeypatch)

    with pytest.raises(RuntimeError, match="POT_FILE_PATH"):
        load_config()


def test_load_config_requires_api_key_unless_dry_run(monkeypatch):
    _required(monkeypatch)
    monkeypatch.delenv("API_KEY")

    with pytest.raises(RuntimeError, match="API_KEY"):
        load_config()

    monkeypatch.setenv("DRY_RUN", "1")
    assert load_config().dry_run is True


def test_load_config_reads_values(monkeypatch):
    _required(monkeypatch)
    monkeypatch.setenv("BATCH_SIZE", "5")
    monkeypatch.setenv("MAX_COST", "0.25")
    monkeypatch.setenv("LOCALE_FORMAT", "wp_locale")

    cfg = load_config()
    assert cfg.pot_file_path.endswith("app.pot")
    assert cfg.target_languages == ("fr_FR", "de", "sr")
    assert cfg.batch_size == 5
    assert cfg.max_cost == 0.25
    assert cfg.locale_format == "wp_locale"
    assert cfg.model == "gpt-4o-mini"
    assert cfg.retry_delay_seconds == 2.0


def test_load_config_clamps_ranges(monkeypatch):
    _required(monkeypatch)
    monkeypatch.setenv("BATCH_SIZE", "500")
    monkeypatch.setenv("CONCURRENT_JOBS", "0")
    monkeypatch.setenv("MAX_RETRIES", "99")
    monkeypatch.setenv("RETRY_DELAY", "10")
    monkeypatch.setenv("TIMEOUT", "1")

    cfg = load_config()
    assert cfg.batch_size == 100
    assert cfg.concurrent_jobs == 1
    assert cfg.max_retries == 10
    assert cfg.retry_delay_ms == 500
    assert cfg.timeout == 10


def test_overrides_win_over_env(monkeypatch):
    _required(monkeypatch)
    cfg = load_config({"batch_size": 7, "target_languages": ("it",)})
    assert cfg.batch_size == 7
    assert cfg.target_languages == ("it",)


@pytest.mark.parametrize(
    "name, value",
    [
        ("BATCH_SIZE", "many"),
        ("MAX_COST", "-1"),
        ("TEMPERATURE", "3"),
        ("LOCALE_FORMAT", "klingon"),
        ("OUTPUT_FORMAT", "xml"),
    ],
)
def test_load_config_rejects_bad_values(monkeypatch, name, value):
    _required(monkeypatch)
    monkeypatch.setenv(name, value)
    with pytest.raises(RuntimeError):
        load_config()


def test_header_template_is_loaded(monkeypatch, tmp_path):
    _required(monkeypatch)
    template = tmp_path / "headers.json"
    template.write_text(json.dumps({"Language-Team": "{{LANGUAGE}} team"}), encoding="utf-8")
    monkeypatch.setenv("PO_HEADER_TEMPLATE", str(template))

    assert load_config().po_header_template == {"Language-Team": "{{LANGUAGE}} team"}


def test_bad_header_template_is_rejected(monkeypatch, tmp_path):
    _required(monkeypatch)
    template = tmp_path / "headers.json"
    template.write_text("[1, 2]", encoding="utf-8")
    monkeypatch.setenv("PO_HEADER_TEMPLATE", str(template))

    with pytest.raises(RuntimeError, match="JSON object"):
        load_config()
