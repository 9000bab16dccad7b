from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from .language_run import LanguageStats


@dataclass(frozen=True)
class RunTotals:
    languages_successful: int
    languages_failed: int
    translated: int
    failed: int
    already_translated: int
    skipped_for_budget: int
    skipped_for_limit: int
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    total_cost: float
    methods: tuple[str, ...]
    models: tuple[str, ...]
    is_dry_run: bool


def _unique(values) -> tuple[str, ...]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return tuple(seen)


def aggregate_totals(stats: Sequence[LanguageStats]) -> RunTotals:
    return RunTotals(
        languages_successful=sum(1 for s in stats if not s.error),
        languages_failed=sum(1 for s in stats if s.error),
        translated=sum(s.translated_in_run for s in stats),
        failed=sum(s.failed_in_run for s in stats),
        already_translated=sum(s.already_translated for s in stats),
        skipped_for_budget=sum(s.skipped_for_budget for s in stats),
        skipped_for_limit=sum(s.skipped_for_limit for s in stats),
        prompt_tokens=sum(s.prompt_tokens for s in stats),
        completion_tokens=sum(s.completion_tokens for s in stats),
        total_tokens=sum(s.total_tokens for s in stats),
        total_cost=sum(s.total_cost for s in stats),
        methods=_unique(s.method for s in stats),
        models=_unique(model for s in stats for model in s.models),
        is_dry_run=any(s.is_dry_run for s in stats),
    )


def language_payload(stat: LanguageStats) -> dict[str, Any]:
    return {
        "language": stat.language,
        "status": "error" if stat.error else "success",
        "strings": {
            "total": stat.total_strings_in_catalog,
            "translated": stat.translated_in_run,
            "already_translated": stat.already_translated,
            "skipped_due_to_budget": stat.skipped_for_budget,
            "skipped_due_to_limits": stat.skipped_for_limit,
            "failed": stat.failed_in_run,
            "merged": stat.merged_from_existing,
        },
        "cost": {
            "amount": stat.total_cost,
            "input_tokens": stat.prompt_tokens,
            "output_tokens": stat.completion_tokens,
            "total_tokens": stat.total_tokens,
        },
        "output_file": stat.output_file,
        "method": stat.method,
        "duration_seconds": round(stat.elapsed_seconds, 3),
        "errors": [stat.error] if stat.error else [],
    }


def build_summary(stats: Sequence[LanguageStats]) -> dict[str, Any]:
    totals = aggregate_totals(stats)
    summary: dict[str, Any] = {
        "status": "error" if totals.languages_failed else "success",
        "languages_processed": len(stats),
        "languages_successful": totals.languages_successful,
        "languages_failed": totals.languages_failed,
        "total_cost": totals.total_cost,
        "total_tokens": totals.total_tokens,
        "total_prompt_tokens": totals.prompt_tokens,
        "total_completion_tokens": totals.completion_tokens,
        "total_strings": {
            "processed": totals.translated + totals.failed,
            "successful": totals.translated,
            "already_translated": totals.already_translated,
            "skipped_due_to_budget": totals.skipped_for_budget,
            "skipped_due_to_limits": totals.skipped_for_limit,
            "failed": totals.failed,
        },
        "methods_used": list(totals.methods),
        "models_used": list(totals.models),
        "is_dry_run": totals.is_dry_run,
    }
    errors = [{"language": s.language, "error": s.error} for s in stats if s.error]
    if errors:
        summary["errors"] = errors
    return summary


def report_json(stats: Sequence[LanguageStats], exit_code: int) -> str:
    payload = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "exit_code": exit_code,
        "summary": build_summary(stats),
        "jobs": [language_payload(s) for s in stats],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def console_lines(stats: Sequence[LanguageStats]) -> list[str]:
    totals = aggregate_totals(stats)
    cost_label = "Estimated cost" if totals.is_dry_run else "Total cost"
    lines: list[str] = []
    for s in stats:
        state = f"ERROR: {s.error}" if s.error else s.method
        lines.append(
            f"{s.language}: translated={s.translated_in_run} failed={s.failed_in_run} "
            f"merged={s.merged_from_existing} budget_skipped={s.skipped_for_budget} "
            f"limit_skipped={s.skipped_for_limit} cost=${s.total_cost:.4f} "
            f"[{state}] -> {s.output_file}"
        )
    lines.append(
        f"Languages: {totals.languages_successful} ok, {totals.languages_failed} failed; "
        f"strings translated: {totals.translated}, failed: {totals.failed}; "
        f"{cost_label}: ${totals.total_cost:.4f} ({totals.total_tokens} tokens)"
    )
    return lines


def write_report_file(
    stats: Sequence[LanguageStats], exit_code: int, directory: str = "docs/runs"
) -> Path:
    summary = build_summary(stats)
    Path(directory).mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    path = Path(directory) / f"run-{timestamp}.md"

    lines: list[str] = []
    lines.append(f"# Translation Run {timestamp}")
    lines.append("")
    lines.append(f"- status: {summary['status']}")
    lines.append(f"- exit_code: {exit_code}")
    lines.append(f"- dry_run: {summary['is_dry_run']}")
    lines.append(f"- models: {', '.join(summary['models_used']) or 'none'}")
    lines.append(f"- total_cost: ${summary['total_cost']:.6f}")
    lines.append(f"- total_tokens: {summary['total_tokens']}")
    lines.append("")

    lines.append("## Totals")
    for key in sorted(summary["total_strings"].keys()):
        lines.append(f"- {key}: {summary['total_strings'][key]}")
    lines.append("")

    lines.append("## Languages")
    for s in stats:
        lines.append(
            f"- {s.language} ({s.method}): translated {s.translated_in_run}, "
            f"failed {s.failed_in_run}, cost ${s.total_cost:.6f}, file {s.output_file}"
        )
    lines.append("")

    lines.append("## Errors")
    errors = summary.get("errors") or []
    if not errors:
        lines.append("- none")
    else:
        for err in errors:
            lines.append(f"- {err['language']}: {err['error']}")
    lines.append("")

    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path
