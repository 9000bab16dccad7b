from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

log = logging.getLogger("pobot.costs")

DEFAULT_PRICING_PATH = Path(__file__).parent / "data" / "pricing.json"

_BUILTIN_PRICING = {
    "models": {
        "gpt-3.5-turbo": {"prompt": 0.0005, "completion": 0.0015},
        "gpt-4": {"prompt": 0.03, "completion": 0.06},
        "gpt-4o": {"prompt": 0.0025, "completion": 0.01},
        "gpt-4o-mini": {"prompt": 0.00015, "completion": 0.0006},
    },
    "fallback": {"prompt": 0.0005, "completion": 0.0015},
}

SMALL_BUDGET = 0.001
# No batch is sent against a ceiling below this, whatever the model costs.
MIN_BATCH_BUDGET = 0.0001


@dataclass(frozen=True)
class ModelPrice:
    prompt: float
    completion: float


@dataclass(frozen=True)
class Pricing:
    models: dict[str, ModelPrice]
    fallback: ModelPrice

    def for_model(self, model: str) -> ModelPrice:
        return self.models.get(model, self.fallback)


def _pricing_from_dict(data: dict) -> Pricing:
    if not isinstance(data, dict) or "models" not in data or "fallback" not in data:
        raise ValueError("pricing data must contain 'models' and 'fallback'")
    models = {
        str(name): ModelPrice(float(p["prompt"]), float(p["completion"]))
        for name, p in data["models"].items()
    }
    fallback = ModelPrice(float(data["fallback"]["prompt"]), float(data["fallback"]["completion"]))
    return Pricing(models=models, fallback=fallback)


@lru_cache(maxsize=None)
def load_pricing(path: str | None = None) -> Pricing:
    """Load per-1K-token prices once per path; the result is shared read-only."""
    source = Path(path) if path else DEFAULT_PRICING_PATH
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        log.warning("pricing file %s unusable (%s); using built-in prices", source, exc)
        return _pricing_from_dict(_BUILTIN_PRICING)
    return _pricing_from_dict(data)


@dataclass(frozen=True)
class CostRecord:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    prompt_cost: float = 0.0
    completion_cost: float = 0.0
    model: str = ""
    is_dry_run: bool = False

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    @property
    def total_cost(self) -> float:
        return self.prompt_cost + self.completion_cost


def calculate_cost(
    prompt_tokens: int,
    completion_tokens: int,
    model: str,
    pricing: Pricing,
    is_dry_run: bool = False,
) -> CostRecord:
    price = pricing.for_model(model)
    return CostRecord(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        prompt_cost=prompt_tokens / 1000 * price.prompt,
        completion_cost=completion_tokens / 1000 * price.completion,
        model=model,
        is_dry_run=is_dry_run,
    )


@dataclass(frozen=True)
class CostTotals:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    prompt_cost: float = 0.0
    completion_cost: float = 0.0
    total_cost: float = 0.0
    request_count: int = 0
    models: tuple[str, ...] = ()
    is_dry_run: bool = False


@dataclass
class CostLedger:
    records: list[CostRecord] = field(default_factory=list)

    def add_cost(self, record: CostRecord) -> None:
        self.records.append(record)

    def totals(self) -> CostTotals:
        models: list[str] = []
        for record in self.records:
            if record.model and record.model not in models:
                models.append(record.model)
        return CostTotals(
            prompt_tokens=sum(r.prompt_tokens for r in self.records),
            completion_tokens=sum(r.completion_tokens for r in self.records),
            total_tokens=sum(r.total_tokens for r in self.records),
            prompt_cost=sum(r.prompt_cost for r in self.records),
            completion_cost=sum(r.completion_cost for r in self.records),
            total_cost=sum(r.total_cost for r in self.records),
            request_count=len(self.records),
            models=tuple(models),
            is_dry_run=any(r.is_dry_run for r in self.records),
        )

    @property
    def total_cost(self) -> float:
        return sum(r.total_cost for r in self.records)


def batch_safety_threshold(limit: float) -> float:
    if limit < SMALL_BUDGET:
        return max(limit - 0.00005, limit * 0.9)
    return limit * 0.95


def would_exceed_budget(current: float, estimate: float, limit: float) -> bool:
    if limit < MIN_BATCH_BUDGET or current >= limit:
        return True
    return current + estimate > batch_safety_threshold(limit)


def language_skip_threshold(ceiling: float) -> float:
    return 0.00002 if ceiling < SMALL_BUDGET else 0.0001


def ceiling_reached(spent: float, ceiling: float) -> bool:
    return spent >= ceiling * 0.95
