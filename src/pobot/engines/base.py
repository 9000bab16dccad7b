from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Protocol

from ..costs import CostRecord
from ..errors import AuthFailure
from ..planner import BatchItem


@dataclass(frozen=True)
class RetryProgress:
    attempt: int
    max_retries: int
    is_retrying: bool


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    delay_seconds: float = 2.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def is_retryable(self, exc: BaseException) -> bool:
        return not isinstance(exc, AuthFailure)


@dataclass(frozen=True)
class BatchRequest:
    language: str
    items: tuple[BatchItem, ...]
    model: str
    system_prompt: str
    plural_count: int
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    timeout: float = 60.0
    dry_run: bool = False
    batch_number: int = 1
    on_retry: Callable[[RetryProgress], None] | None = None


@dataclass(frozen=True)
class BatchResult:
    success: bool
    translations: list[list[str]] = field(default_factory=list)
    cost: CostRecord = field(default_factory=CostRecord)
    error: str | None = None
    is_dry_run: bool = False
    attempts: int = 0


class TranslationEngine(Protocol):
    name: str

    async def translate_batch(self, request: BatchRequest) -> BatchResult:
        ...

    def estimate_batch_cost(self, request: BatchRequest) -> CostRecord:
        ...
