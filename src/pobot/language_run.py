from __future__ import annotations

import logging
import time
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from . import catalog as po
from .batch_engine import BatchExecutionEngine, FailurePolicy, ProgressUpdate
from .catalog import Catalog
from .config import Config
from .costs import CostLedger, CostTotals
from .engines.base import RetryPolicy, TranslationEngine
from .errors import MergeWarning, ParseError, PobotError
from .languages import file_locale, plural_count, plural_forms_for, same_base_language
from .planner import plan
from .prompts import build_system_prompt

log = logging.getLogger("pobot.language_run")

METHOD_API = "api_translation"
METHOD_SOURCE_COPY = "source_copy"
METHOD_COST_LIMITED = "cost_limited"


@dataclass
class LanguageStats:
    language: str
    total_strings_in_catalog: int = 0
    merged_from_existing: int = 0
    translated_in_run: int = 0
    failed_in_run: int = 0
    skipped_for_budget: int = 0
    skipped_for_limit: int = 0
    already_translated: int = 0
    method: str = METHOD_API
    output_file: str | None = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    request_count: int = 0
    models: tuple[str, ...] = ()
    is_dry_run: bool = False
    error: str | None = None
    elapsed_seconds: float = 0.0

    @classmethod
    def skipped(cls, language: str, output_file: str | None = None) -> "LanguageStats":
        return cls(language=language, method=METHOD_COST_LIMITED, output_file=output_file)

    def apply_costs(self, totals: CostTotals) -> None:
        self.prompt_tokens = totals.prompt_tokens
        self.completion_tokens = totals.completion_tokens
        self.total_tokens = totals.total_tokens
        self.total_cost = totals.total_cost
        self.request_count = totals.request_count
        self.models = totals.models
        self.is_dry_run = totals.is_dry_run

    def record_error(self, error: BaseException | str) -> None:
        self.error = str(error)


class LanguageRunError(PobotError):
    """A language run ended on a fatal error; ``stats`` holds the partial counts."""

    def __init__(self, stats: LanguageStats) -> None:
        super().__init__(stats.error or "language run failed")
        self.stats = stats


def output_path_for(cfg: Config, language: str) -> Path:
    locale = file_locale(language, cfg.locale_format)
    return Path(cfg.output_dir) / f"{cfg.po_file_prefix}{locale}.po"


def copy_source_strings(catalog: Catalog, plurals: int) -> int:
    copied = 0
    for entry in catalog.entries():
        if entry.msgid_plural:
            po.set_forms(entry, [entry.msgid] + [entry.msgid_plural] * max(plurals - 1, 0))
        else:
            po.set_forms(entry, [entry.msgid])
        copied += 1
    return copied


@dataclass
class LanguageRunCoordinator:
    cfg: Config
    engine: TranslationEngine
    source: Catalog | None = None
    retry: RetryPolicy | None = None
    system_prompts: dict[str, str] = field(default_factory=dict)

    def _load_source(self) -> Catalog:
        if self.source is None:
            self.source = po.load(self.cfg.pot_file_path)
        return self.source

    def _existing_path(self, output: Path) -> Path | None:
        if self.cfg.input_po_path and Path(self.cfg.input_po_path).exists():
            return Path(self.cfg.input_po_path)
        if output.exists():
            return output
        return None

    def _merge_existing(
        self, working: Catalog, output: Path, plurals: int, language: str
    ) -> tuple[Catalog, int]:
        existing_path = self._existing_path(output)
        if existing_path is None:
            return working, 0
        try:
            existing = po.load(existing_path)
        except ParseError as exc:
            warnings.warn(f"{language}: ignoring unreadable {existing_path}: {exc}", MergeWarning)
            log.warning("%s: existing file %s unreadable, starting fresh: %s", language, existing_path, exc)
            return working, 0
        merged, count = po.merge_into(working, existing, plurals)
        log.info("%s: merged %s existing translations from %s", language, count, existing_path)
        return merged, count

    def _system_prompt(self, language: str) -> str:
        if language not in self.system_prompts:
            self.system_prompts[language] = build_system_prompt(
                language, self.cfg.source_language, self.cfg.prompt_path
            )
        return self.system_prompts[language]

    async def run(
        self,
        language: str,
        progress: Callable[[ProgressUpdate], None] | None = None,
        max_strings: int | None = None,
        max_cost: float | None = None,
    ) -> LanguageStats:
        started = time.monotonic()
        output = output_path_for(self.cfg, language)
        stats = LanguageStats(language=language, output_file=str(output))
        plural_rule = plural_forms_for(language)
        plurals = plural_count(plural_rule)
        if max_strings is None:
            max_strings = self.cfg.max_strings_per_job

        def persist(catalog: Catalog) -> None:
            headers = po.header_overrides_for(
                catalog, language, plural_rule, self.cfg.po_header_template
            )
            po.write(output, po.compile(catalog, headers))

        try:
            source = self._load_source()
            stats.total_strings_in_catalog = len(source)

            if same_base_language(language, self.cfg.source_language):
                log.info(
                    "%s matches source language %s; copying source strings",
                    language,
                    self.cfg.source_language,
                )
                working = po.initialize_plural_forms(source, plural_rule, plurals)
                stats.translated_in_run = copy_source_strings(working, plurals)
                stats.method = METHOD_SOURCE_COPY
                persist(working)
                return stats

            working = po.initialize_plural_forms(source, plural_rule, plurals)
            if not self.cfg.force_translate:
                working, stats.merged_from_existing = self._merge_existing(
                    working, output, plurals, language
                )
            stats.already_translated = po.count_real_translations(working)

            batches = plan(working, self.cfg.batch_size, max_strings)
            planned = sum(len(b) for b in batches)
            stats.skipped_for_limit = po.count_untranslated(working) - planned

            if not batches:
                log.info("%s: nothing to translate", language)
                persist(working)
                return stats

            ledger = CostLedger()
            runner = BatchExecutionEngine(
                engine=self.engine,
                catalog=working,
                persist=persist,
                language=language,
                model=self.cfg.model,
                system_prompt=self._system_prompt(language),
                plural_count=plurals,
                ledger=ledger,
                retry=self.retry
                or RetryPolicy(self.cfg.max_retries, self.cfg.retry_delay_seconds),
                failure_policy=FailurePolicy.from_flags(
                    self.cfg.abort_on_failure, self.cfg.skip_language_on_failure
                ),
                max_cost=max_cost,
                dry_run=self.cfg.dry_run,
                timeout=self.cfg.timeout,
                progress=progress,
            )
            try:
                await runner.run(batches)
            finally:
                stats.apply_costs(ledger.totals())
                stats.translated_in_run = runner.summary.succeeded
                stats.failed_in_run = runner.summary.failed
                stats.skipped_for_budget = runner.summary.skipped_for_budget
            log.info(
                "%s: translated %s, failed %s, budget-skipped %s, cost $%.6f",
                language,
                stats.translated_in_run,
                stats.failed_in_run,
                stats.skipped_for_budget,
                stats.total_cost,
            )
            return stats
        except PobotError as exc:
            stats.record_error(exc)
            log.error("%s: %s", language, exc)
            raise LanguageRunError(stats) from exc
        finally:
            stats.elapsed_seconds = time.monotonic() - started
