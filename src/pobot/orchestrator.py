from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from . import catalog as po
from .batch_engine import ProgressUpdate
from .config import Config
from .costs import ceiling_reached, language_skip_threshold
from .engines.base import RetryPolicy, TranslationEngine
from .language_run import (
    LanguageRunCoordinator,
    LanguageRunError,
    LanguageStats,
    output_path_for,
)
from .languages import normalize_language

log = logging.getLogger("pobot.orchestrator")


@dataclass
class BudgetState:
    """Cross-language ceilings for a sequential run."""

    max_cost: float | None = None
    max_total_strings: int | None = None
    strings_consumed: int = 0
    cost_spent: float = 0.0

    def remaining_strings(self) -> int | None:
        if self.max_total_strings is None:
            return None
        return self.max_total_strings - self.strings_consumed

    def remaining_cost(self) -> float | None:
        if self.max_cost is None:
            return None
        return self.max_cost - self.cost_spent

    def cost_exhausted(self) -> bool:
        remaining = self.remaining_cost()
        if remaining is None:
            return False
        return remaining <= language_skip_threshold(self.max_cost)

    def record(self, stats: LanguageStats) -> None:
        self.strings_consumed += stats.translated_in_run
        self.cost_spent += stats.total_cost


@dataclass
class RunResult:
    stats: list[LanguageStats] = field(default_factory=list)
    exit_code: int = 0


def determine_exit_code(stats: Sequence[LanguageStats]) -> int:
    if not stats:
        return 1
    if any(s.error for s in stats):
        return 1
    if any(s.failed_in_run > 0 and s.translated_in_run == 0 for s in stats):
        return 1
    translated = sum(s.translated_in_run for s in stats)
    failed = sum(s.failed_in_run for s in stats)
    if translated == 0 and failed > 0:
        return 1
    return 0


def target_languages(cfg: Config) -> list[str]:
    languages: list[str] = []
    for raw in cfg.target_languages:
        language = normalize_language(raw)
        if language and language not in languages:
            languages.append(language)
    return languages


@dataclass
class RunOrchestrator:
    cfg: Config
    engine: TranslationEngine
    retry: RetryPolicy | None = None
    progress: Callable[[ProgressUpdate], None] | None = None

    async def run(self) -> RunResult:
        # A broken source catalog stops the whole run before any language starts.
        source = po.load(self.cfg.pot_file_path)
        languages = target_languages(self.cfg)
        coordinator = LanguageRunCoordinator(
            self.cfg, self.engine, source=source, retry=self.retry
        )
        log.info(
            "translating %s strings into %s languages: %s",
            po.count_untranslated(source),
            len(languages),
            ", ".join(languages),
        )

        if self.cfg.max_total_strings is not None or self.cfg.max_cost is not None:
            stats = await self._run_sequential(coordinator, languages)
        else:
            stats = await self._run_parallel(coordinator, languages)
        return RunResult(stats=stats, exit_code=determine_exit_code(stats))

    async def _run_one(
        self,
        coordinator: LanguageRunCoordinator,
        language: str,
        max_strings: int | None = None,
        max_cost: float | None = None,
    ) -> LanguageStats:
        try:
            return await coordinator.run(
                language, self.progress, max_strings=max_strings, max_cost=max_cost
            )
        except LanguageRunError as exc:
            return exc.stats
        except Exception as exc:
            log.exception("%s: language run crashed", language)
            stats = LanguageStats(
                language=language, output_file=str(output_path_for(self.cfg, language))
            )
            stats.record_error(exc)
            return stats

    async def _run_parallel(
        self, coordinator: LanguageRunCoordinator, languages: list[str]
    ) -> list[LanguageStats]:
        semaphore = asyncio.Semaphore(self.cfg.concurrent_jobs)

        async def guarded(language: str) -> LanguageStats:
            async with semaphore:
                return await self._run_one(coordinator, language)

        results = await asyncio.gather(*(guarded(language) for language in languages))
        by_language = {s.language: s for s in results}
        return [by_language[language] for language in languages]

    def _skipped(self, language: str) -> LanguageStats:
        return LanguageStats.skipped(language, str(output_path_for(self.cfg, language)))

    async def _run_sequential(
        self, coordinator: LanguageRunCoordinator, languages: list[str]
    ) -> list[LanguageStats]:
        budget = BudgetState(
            max_cost=self.cfg.max_cost, max_total_strings=self.cfg.max_total_strings
        )
        per_job = self.cfg.max_strings_per_job
        if per_job is not None and per_job < 0:
            per_job = None
        results: list[LanguageStats] = []

        for position, language in enumerate(languages):
            if budget.cost_exhausted():
                log.info(
                    "cost budget $%.6f exhausted (spent $%.6f); skipping %s",
                    budget.max_cost,
                    budget.cost_spent,
                    ", ".join(languages[position:]),
                )
                results.extend(self._skipped(lang) for lang in languages[position:])
                break

            max_strings = per_job
            remaining_strings = budget.remaining_strings()
            if remaining_strings is not None:
                if remaining_strings <= 0:
                    log.info("string budget used up; skipping %s", language)
                    results.append(self._skipped(language))
                    continue
                max_strings = (
                    remaining_strings if per_job is None else min(per_job, remaining_strings)
                )

            stats = await self._run_one(
                coordinator,
                language,
                max_strings=max_strings,
                max_cost=budget.remaining_cost(),
            )
            budget.record(stats)
            results.append(stats)

            if budget.max_cost is not None and ceiling_reached(budget.cost_spent, budget.max_cost):
                rest = languages[position + 1 :]
                if rest:
                    log.info(
                        "spent $%.6f of $%.6f; skipping %s",
                        budget.cost_spent,
                        budget.max_cost,
                        ", ".join(rest),
                    )
                    results.extend(self._skipped(lang) for lang in rest)
                break
        return results
