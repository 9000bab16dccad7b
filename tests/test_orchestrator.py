import asyncio

import pytest

from pobot.config import Config
from pobot.costs import CostRecord
from pobot.engines.base import BatchResult, RetryPolicy
from pobot.errors import ParseError
from pobot.language_run import METHOD_API, METHOD_COST_LIMITED, LanguageStats
from pobot.orchestrator import (
    BudgetState,
    RunOrchestrator,
    determine_exit_code,
    target_languages,
)

POT = """msgid ""
msgstr ""
"Content-Type: text/plain; charset=UTF-8\\n"

msgid "Save"
msgstr ""

msgid "Open"
msgstr ""

msgid "Close"
msgstr ""
"""


class FakeEngine:
    name = "fake"

    def __init__(self, cost=0.0, estimate=0.0, broken=(), crash=()):
        self.cost = cost
        self.estimate = estimate
        self.broken = set(broken)
        self.crash = set(crash)
        self.languages = []

    def estimate_batch_cost(self, request):
        return CostRecord(prompt_cost=self.estimate, model=request.model, is_dry_run=True)

    async def translate_batch(self, request):
        self.languages.append(request.language)
        if request.language in self.crash:
            raise KeyError("engine exploded")
        if request.language in self.broken:
            return BatchResult(success=False, error="Failed after 1 attempts. Last error: boom", attempts=1)
        return BatchResult(
            success=True,
            translations=[[f"{request.language}:{item.msgid}"] for item in request.items],
            cost=CostRecord(prompt_cost=self.cost, model=request.model),
            attempts=1,
        )


async def _no_sleep(seconds):
    return None


def _config(tmp_path, **kwargs):
    pot = tmp_path / "messages.pot"
    pot.write_text(POT, encoding="utf-8")
    defaults = dict(
        pot_file_path=str(pot),
        target_languages=("fr", "de", "es"),
        output_dir=str(tmp_path / "out"),
        batch_size=2,
        api_key="sk-test",
    )
    defaults.update(kwargs)
    return Config(**defaults)


def _run(cfg, engine):
    orchestrator = RunOrchestrator(cfg, engine, retry=RetryPolicy(max_retries=0, sleep=_no_sleep))
    return asyncio.run(orchestrator.run())


def test_exit_code_rules():
    ok = LanguageStats("fr", translated_in_run=3)
    partial = LanguageStats("de", translated_in_run=2, failed_in_run=1)
    failed = LanguageStats("es", failed_in_run=3)
    errored = LanguageStats("it", translated_in_run=3, error="Cannot write catalog")
    nothing = LanguageStats("pt")

    assert determine_exit_code([]) == 1
    assert determine_exit_code([ok, partial]) == 0
    assert determine_exit_code([ok, failed]) == 1
    assert determine_exit_code([ok, errored]) == 1
    assert determine_exit_code([nothing]) == 0


def test_target_languages_are_normalized_and_deduplicated(tmp_path):
    cfg = _config(tmp_path, target_languages=("fr", " French ", "fr-fr", "fr_FR"))
    assert target_languages(cfg) == ["fr", "fr_FR"]


def test_budget_state_tracks_consumption():
    budget = BudgetState(max_cost=1.0, max_total_strings=10)
    budget.record(LanguageStats("fr", translated_in_run=4, total_cost=0.5))
    assert budget.remaining_strings() == 6
    assert budget.remaining_cost() == pytest.approx(0.5)
    assert not budget.cost_exhausted()
    budget.record(LanguageStats("de", translated_in_run=1, total_cost=0.49995))
    assert budget.cost_exhausted()
    assert BudgetState().remaining_cost() is None


def test_parallel_run_keeps_language_order(tmp_path):
    cfg = _config(tmp_path, concurrent_jobs=3)
    engine = FakeEngine()

    result = _run(cfg, engine)

    assert [s.language for s in result.stats] == ["fr", "de", "es"]
    assert [s.translated_in_run for s in result.stats] == [3, 3, 3]
    assert result.exit_code == 0
    assert (tmp_path / "out" / "es.po").exists()


def test_string_ceiling_spans_languages(tmp_path):
    cfg = _config(tmp_path, max_total_strings=4)
    engine = FakeEngine()

    result = _run(cfg, engine)

    fr, de, es = result.stats
    assert fr.translated_in_run == 3
    assert de.translated_in_run == 1
    assert de.skipped_for_limit == 2
    assert es.method == METHOD_COST_LIMITED
    assert es.translated_in_run == 0
    assert "es" not in engine.languages
    assert result.exit_code == 0


def test_cost_ceiling_skips_later_languages(tmp_path):
    cfg = _config(tmp_path, max_cost=1.0, batch_size=3)
    engine = FakeEngine(cost=0.5, estimate=0.1)

    result = _run(cfg, engine)

    fr, de, es = result.stats
    assert fr.method == METHOD_API
    assert de.method == METHOD_API
    assert fr.total_cost == pytest.approx(0.5)
    assert de.total_cost == pytest.approx(0.5)
    assert es.method == METHOD_COST_LIMITED
    assert engine.languages == ["fr", "de"]
    assert sum(s.total_cost for s in result.stats) <= 1.0


def test_failing_language_does_not_stop_others(tmp_path):
    cfg = _config(tmp_path, abort_on_failure=True)
    engine = FakeEngine(broken={"de"}, crash={"es"})

    result = _run(cfg, engine)

    fr, de, es = result.stats
    assert fr.translated_in_run == 3 and fr.error is None
    assert de.error.startswith("Translation stopped: Batch 1 for de")
    assert de.failed_in_run == 2
    assert "engine exploded" in es.error
    assert es.output_file.endswith("es.po")
    assert result.exit_code == 1


def test_all_failed_run_exits_nonzero(tmp_path):
    cfg = _config(tmp_path, target_languages=("fr",))
    result = _run(cfg, FakeEngine(broken={"fr"}))
    assert result.stats[0].failed_in_run == 3
    assert result.exit_code == 1


def test_broken_source_stops_the_run(tmp_path):
    cfg = _config(tmp_path)
    (tmp_path / "messages.pot").write_text(
        'msgid "a"\nmsgstr "b"\nthis is not a po line\n', encoding="utf-8"
    )
    engine = FakeEngine()

    with pytest.raises(ParseError):
        _run(cfg, engine)
    assert engine.languages == []
