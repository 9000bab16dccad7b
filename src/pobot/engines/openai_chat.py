from __future__ import annotations

import asyncio
import json
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import requests
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_fixed

from ..catalog import DRY_RUN_PREFIX
from ..costs import CostRecord, Pricing, calculate_cost
from ..dictionary import find_dictionary_matches, load_dictionary
from ..errors import AuthFailure, EngineError
from ..prompts import DictionaryMatch, build_messages, estimate_batch_cost, parse_xml_response
from .base import BatchRequest, BatchResult, RetryProgress

log = logging.getLogger("pobot.engines.openai")

DEFAULT_API_BASE = "https://api.openai.com/v1"

_SIMULATED_ERRORS = (
    (429, "Rate limit exceeded. Please retry after 60 seconds."),
    (500, "Internal server error"),
    (502, "Bad gateway"),
    (503, "Service temporarily unavailable"),
    (504, "Gateway timeout"),
    (None, "Network connection failed"),
)


def max_tokens_for(batch_len: int, configured: int | None = None) -> int:
    if configured:
        return configured
    return max(100, min(32768, round(batch_len * 120 * 1.3)))


@dataclass
class FailureInjector:
    """Raise simulated transient errors so retry handling can be exercised live."""

    rate: float
    allow_complete_failure: bool = False
    rng: Callable[[], float] = random.random

    def maybe_fail(self, attempt: int, max_retries: int) -> None:
        if self.rate <= 0 or self.rng() >= self.rate:
            return
        if attempt == max_retries and not self.allow_complete_failure:
            log.info("test mode: final attempt protected from simulated failure")
            return
        pick = min(int(self.rng() * len(_SIMULATED_ERRORS)), len(_SIMULATED_ERRORS) - 1)
        status, message = _SIMULATED_ERRORS[pick]
        log.warning(
            "test mode: simulating %s (attempt %s/%s)",
            f"HTTP {status}" if status else "network error",
            attempt + 1,
            max_retries + 1,
        )
        raise EngineError(message, status=status)


@dataclass
class OpenAIChatEngine:
    session: requests.Session
    pricing: Pricing
    api_key: str | None = None
    api_base: str = DEFAULT_API_BASE
    temperature: float | None = None
    max_tokens: int | None = None
    use_dictionary: bool = False
    dictionary_dir: str | None = None
    debug_dir: str | None = None
    failure_injector: FailureInjector | None = None

    name: str = "openai"
    _dictionaries: dict[str, dict[str, str] | None] = field(default_factory=dict, repr=False)

    def _dictionary_matches(self, request: BatchRequest) -> list[DictionaryMatch]:
        if not self.use_dictionary:
            return []
        if request.language not in self._dictionaries:
            self._dictionaries[request.language] = load_dictionary(
                self.dictionary_dir, request.language
            )
        matches = find_dictionary_matches(request.items, self._dictionaries[request.language])
        if matches:
            log.info(
                "dictionary terms for %s: %s",
                request.language,
                ", ".join(m.source for m in matches),
            )
        return matches

    def estimate_batch_cost(self, request: BatchRequest) -> CostRecord:
        return estimate_batch_cost(
            request.items,
            request.language,
            request.system_prompt,
            request.plural_count,
            request.model,
            self.pricing,
            self._dictionary_matches(request),
        )

    async def translate_batch(self, request: BatchRequest) -> BatchResult:
        matches = self._dictionary_matches(request)
        messages, prompt = build_messages(
            request.system_prompt,
            request.items,
            request.language,
            request.plural_count,
            matches,
        )

        if request.dry_run:
            cost = estimate_batch_cost(
                request.items,
                request.language,
                request.system_prompt,
                request.plural_count,
                request.model,
                self.pricing,
                matches,
            )
            translations = [
                [f"{DRY_RUN_PREFIX} {item.msgid}"]
                * (request.plural_count if item.msgid_plural else 1)
                for item in request.items
            ]
            return BatchResult(
                success=True,
                translations=translations,
                cost=cost,
                is_dry_run=True,
                attempts=0,
            )

        policy = request.retry
        max_tokens = max_tokens_for(len(request.items), self.max_tokens)
        attempts = 0

        def before_sleep(retry_state) -> None:
            exc = retry_state.outcome.exception()
            log.warning(
                "batch %s for %s attempt %s failed: %s; retrying in %.1fs",
                request.batch_number,
                request.language,
                retry_state.attempt_number,
                exc,
                policy.delay_seconds,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_fixed(policy.delay_seconds),
            retry=retry_if_exception(policy.is_retryable),
            sleep=policy.sleep,
            before_sleep=before_sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    self._notify(request, attempts - 1, is_retrying=attempts > 1)
                    if self.failure_injector is not None:
                        self.failure_injector.maybe_fail(attempts - 1, policy.max_retries)
                    data = await asyncio.to_thread(
                        self._post, messages, request.model, max_tokens, request.timeout
                    )
        except EngineError as exc:
            self._notify(request, policy.max_retries, is_retrying=False)
            if isinstance(exc, AuthFailure):
                log.error("authentication rejected for %s: %s", request.language, exc)
            return BatchResult(
                success=False,
                error=f"Failed after {attempts} attempts. Last error: {exc}",
                cost=CostRecord(model=request.model),
                attempts=attempts,
            )

        content = data["choices"][0]["message"]["content"]
        log.debug("raw response for %s batch %s:\n%s", request.language, request.batch_number, content)
        if self.debug_dir:
            self._save_debug(request, messages, data)

        translations = parse_xml_response(
            content, request.items, request.plural_count, prompt.dictionary_count
        )
        usage = data.get("usage") or {}
        cost = calculate_cost(
            int(usage.get("prompt_tokens") or 0),
            int(usage.get("completion_tokens") or 0),
            request.model,
            self.pricing,
        )
        self._notify(request, attempts - 1, is_retrying=False)
        return BatchResult(
            success=True,
            translations=translations,
            cost=cost,
            attempts=attempts,
        )

    def _post(
        self, messages: list[dict[str, str]], model: str, max_tokens: int, timeout: float
    ) -> dict[str, Any]:
        payload = {
            "model": model,
            "messages": messages,
            "temperature": self.temperature if self.temperature is not None else 0.1,
            "max_tokens": max_tokens,
        }
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        url = f"{self.api_base.rstrip('/')}/chat/completions"
        try:
            resp = self.session.post(url, json=payload, headers=headers, timeout=timeout)
        except requests.RequestException as exc:
            raise EngineError(f"request failed: {exc}") from exc

        if resp.status_code in (401, 403):
            raise AuthFailure(f"HTTP {resp.status_code}: {resp.text[:200]}", status=resp.status_code)
        if resp.status_code >= 400:
            raise EngineError(f"HTTP {resp.status_code}: {resp.text[:200]}", status=resp.status_code)
        try:
            data = resp.json()
            data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise EngineError(f"malformed response: {exc}") from exc
        return data

    def _notify(self, request: BatchRequest, attempt: int, is_retrying: bool) -> None:
        if request.on_retry is None:
            return
        request.on_retry(
            RetryProgress(
                attempt=attempt,
                max_retries=request.retry.max_retries,
                is_retrying=is_retrying,
            )
        )

    def _save_debug(
        self, request: BatchRequest, messages: list[dict[str, str]], response: dict[str, Any]
    ) -> None:
        directory = Path(self.debug_dir)
        directory.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        path = directory / f"{request.language}-batch{request.batch_number}-{stamp}.json"
        payload = {
            "language": request.language,
            "batch": request.batch_number,
            "model": request.model,
            "messages": messages,
            "response": response,
        }
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        log.debug("saved debug info to %s", path)
