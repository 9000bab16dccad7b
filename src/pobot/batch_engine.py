from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from .catalog import Catalog, is_placeholder, set_forms
from .costs import CostLedger, would_exceed_budget
from .engines.base import BatchRequest, BatchResult, RetryPolicy, RetryProgress, TranslationEngine
from .errors import BatchFailure
from .planner import TranslationBatch

log = logging.getLogger("pobot.batch_engine")


class BatchState(enum.Enum):
    PLANNED = "planned"
    SKIPPED_BUDGET = "skipped_budget"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"
    RECONCILED = "reconciled"


class FailurePolicy(enum.Enum):
    CONTINUE = "continue"
    SKIP_LANGUAGE = "skip_language"
    ABORT = "abort"

    @classmethod
    def from_flags(cls, abort_on_failure: bool, skip_language_on_failure: bool) -> "FailurePolicy":
        if abort_on_failure:
            return cls.ABORT
        if skip_language_on_failure:
            return cls.SKIP_LANGUAGE
        return cls.CONTINUE


@dataclass(frozen=True)
class ProgressUpdate:
    language: str
    batch_number: int
    batch_total: int
    processed: int
    total: int
    cost: float
    retry: RetryProgress | None = None


@dataclass
class BatchOutcome:
    number: int
    size: int
    state: BatchState = BatchState.PLANNED
    result: BatchState | None = None
    succeeded: int = 0
    failed: int = 0
    attempts: int = 0
    cost: float = 0.0
    error: str | None = None


@dataclass
class BatchRunSummary:
    succeeded: int = 0
    failed: int = 0
    skipped_for_budget: int = 0
    outcomes: list[BatchOutcome] = field(default_factory=list)

    @property
    def attempts(self) -> int:
        return sum(o.attempts for o in self.outcomes)


@dataclass
class BatchExecutionEngine:
    """Run planned batches for one language in order.

    Each batch is budget-checked, sent through the engine, reconciled into
    ``catalog`` and persisted before the next one starts, so an interrupted
    run keeps every finished batch on disk.
    """

    engine: TranslationEngine
    catalog: Catalog
    persist: Callable[[Catalog], None]
    language: str
    model: str
    system_prompt: str
    plural_count: int
    ledger: CostLedger = field(default_factory=CostLedger)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    failure_policy: FailurePolicy = FailurePolicy.CONTINUE
    max_cost: float | None = None
    dry_run: bool = False
    timeout: float = 60.0
    progress: Callable[[ProgressUpdate], None] | None = None
    summary: BatchRunSummary = field(default_factory=BatchRunSummary)

    def _request(self, batch: TranslationBatch, batch_total: int, processed: int, total: int) -> BatchRequest:
        def on_retry(info: RetryProgress) -> None:
            self._report(batch.number, batch_total, processed, total, info)

        return BatchRequest(
            language=self.language,
            items=batch.items,
            model=self.model,
            system_prompt=self.system_prompt,
            plural_count=self.plural_count,
            retry=self.retry,
            timeout=self.timeout,
            dry_run=self.dry_run,
            batch_number=batch.number,
            on_retry=on_retry,
        )

    def _report(
        self,
        batch_number: int,
        batch_total: int,
        processed: int,
        total: int,
        retry: RetryProgress | None = None,
    ) -> None:
        if self.progress is None:
            return
        self.progress(
            ProgressUpdate(
                language=self.language,
                batch_number=batch_number,
                batch_total=batch_total,
                processed=processed,
                total=total,
                cost=self.ledger.total_cost,
                retry=retry,
            )
        )

    def _skip_for_budget(
        self, batches: Sequence[TranslationBatch], summary: BatchRunSummary
    ) -> None:
        for batch in batches:
            summary.outcomes.append(
                BatchOutcome(number=batch.number, size=len(batch), state=BatchState.SKIPPED_BUDGET)
            )
            summary.skipped_for_budget += len(batch)

    def _reconcile(self, batch: TranslationBatch, result: BatchResult, outcome: BatchOutcome) -> None:
        index = self.catalog.index()
        for position, item in enumerate(batch.items):
            forms = result.translations[position] if position < len(result.translations) else []
            first = forms[0] if forms else ""
            ok = bool(first.strip()) and (result.is_dry_run or not is_placeholder(first))
            entry = index.get(item.key)
            if not ok or entry is None:
                outcome.failed += 1
                continue
            if entry.msgid_plural:
                padded = list(forms[: self.plural_count])
                padded += [""] * (self.plural_count - len(padded))
                set_forms(entry, padded)
            else:
                set_forms(entry, [first])
            outcome.succeeded += 1

    async def run(self, batches: Sequence[TranslationBatch]) -> BatchRunSummary:
        summary = self.summary = BatchRunSummary()
        total = sum(len(b) for b in batches)
        processed = 0

        for position, batch in enumerate(batches):
            request = self._request(batch, len(batches), processed, total)

            if self.max_cost is not None:
                estimate = self.engine.estimate_batch_cost(request)
                spent = self.ledger.total_cost
                if would_exceed_budget(spent, estimate.total_cost, self.max_cost):
                    log.info(
                        "%s: budget $%.6f reached (spent $%.6f, next batch ~$%.6f); skipping %s strings",
                        self.language,
                        self.max_cost,
                        spent,
                        estimate.total_cost,
                        total - processed,
                    )
                    self._skip_for_budget(batches[position:], summary)
                    break

            outcome = BatchOutcome(number=batch.number, size=len(batch), state=BatchState.RUNNING)
            summary.outcomes.append(outcome)
            log.info(
                "%s: batch %s/%s (%s strings)", self.language, batch.number, len(batches), len(batch)
            )
            result = await self.engine.translate_batch(request)
            outcome.attempts = result.attempts

            if not result.success:
                outcome.state = outcome.result = BatchState.FAILED
                outcome.failed = len(batch)
                outcome.error = result.error
                summary.failed += len(batch)
                processed += len(batch)
                log.error("%s: batch %s failed: %s", self.language, batch.number, result.error)

                if self.failure_policy is FailurePolicy.ABORT:
                    self.persist(self.catalog)
                    outcome.state = BatchState.RECONCILED
                    raise BatchFailure(
                        f"Translation stopped: Batch {batch.number} for {self.language} "
                        f"failed after {self.retry.max_retries} retries",
                        language=self.language,
                        batch_number=batch.number,
                    )
                if self.failure_policy is FailurePolicy.SKIP_LANGUAGE:
                    remaining = sum(len(b) for b in batches[position + 1 :])
                    summary.failed += remaining
                    self.persist(self.catalog)
                    outcome.state = BatchState.RECONCILED
                    log.warning(
                        "%s: skipping language after batch %s failure; %s more strings marked failed",
                        self.language,
                        batch.number,
                        remaining,
                    )
                    break
                self._report(batch.number, len(batches), processed, total)
                continue

            self.ledger.add_cost(result.cost)
            outcome.cost = result.cost.total_cost
            self._reconcile(batch, result, outcome)
            if outcome.failed == 0:
                outcome.result = BatchState.SUCCEEDED
            elif outcome.succeeded == 0:
                outcome.result = BatchState.FAILED
            else:
                outcome.result = BatchState.PARTIALLY_FAILED
            summary.succeeded += outcome.succeeded
            summary.failed += outcome.failed
            processed += len(batch)

            self.persist(self.catalog)
            outcome.state = BatchState.RECONCILED
            self._report(batch.number, len(batches), processed, total)

            rest = batches[position + 1 :]
            if rest and self.max_cost is not None and self.ledger.total_cost >= self.max_cost:
                log.info(
                    "%s: spent $%.6f of $%.6f; skipping remaining %s batches",
                    self.language,
                    self.ledger.total_cost,
                    self.max_cost,
                    len(rest),
                )
                self._skip_for_budget(rest, summary)
                break

        return summary
