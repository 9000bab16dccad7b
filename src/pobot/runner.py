from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import requests

from .config import Config, load_config, load_header_template, parse_languages
from .costs import load_pricing
from .engines.openai_chat import FailureInjector, OpenAIChatEngine
from .errors import ParseError
from .logging import attach_file_logging, configure_logging
from .orchestrator import RunOrchestrator
from .run_report import console_lines, report_json, write_report_file

log = logging.getLogger("pobot.runner")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pobot", description="Translate gettext catalogs with an AI chat model"
    )
    parser.add_argument("--pot-file", help="source .pot/.po file")
    parser.add_argument("--target-languages", help="comma separated, e.g. fr_FR,de,sr")
    parser.add_argument("--source-language")
    parser.add_argument("--output-dir")
    parser.add_argument("--po-file-prefix")
    parser.add_argument("--input-po", help="existing .po to merge instead of the output file")
    parser.add_argument("--po-header-template", help="JSON file with header overrides")
    parser.add_argument(
        "--locale-format", choices=["target_lang", "wp_locale", "iso_639_1", "iso_639_2"]
    )
    parser.add_argument("--api-key")
    parser.add_argument("--api-base")
    parser.add_argument("--model")
    parser.add_argument("--batch-size", type=int)
    parser.add_argument("--jobs", type=int, help="languages translated concurrently")
    parser.add_argument("--temperature", type=float)
    parser.add_argument("--timeout", type=float, help="request timeout in seconds")
    parser.add_argument("--max-tokens", type=int)
    parser.add_argument("--max-retries", type=int)
    parser.add_argument("--retry-delay", type=int, help="delay between retries in ms")
    parser.add_argument("--abort-on-failure", action="store_true")
    parser.add_argument("--skip-language-on-failure", action="store_true")
    parser.add_argument("--max-cost", type=float, help="USD ceiling for the whole run")
    parser.add_argument("--max-strings-per-job", type=int)
    parser.add_argument("--max-total-strings", type=int)
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--force-translate", action="store_true")
    parser.add_argument("--use-dictionary", action="store_true")
    parser.add_argument("--dictionary-path")
    parser.add_argument("--prompt", help="system prompt template file")
    parser.add_argument("--pricing", help="pricing JSON file")
    parser.add_argument("--save-debug-info", action="store_true")
    parser.add_argument("--output-format", choices=["console", "json"])
    parser.add_argument("--output-file", help="write the JSON report here")
    parser.add_argument("--verbose-level", type=int, choices=[0, 1, 2, 3])
    parser.add_argument("--report-dir", help="also write a markdown run report here")
    parser.add_argument("--log-file")
    return parser


_OVERRIDES = {
    "pot_file": "pot_file_path",
    "source_language": "source_language",
    "output_dir": "output_dir",
    "po_file_prefix": "po_file_prefix",
    "input_po": "input_po_path",
    "locale_format": "locale_format",
    "api_key": "api_key",
    "api_base": "api_base",
    "model": "model",
    "batch_size": "batch_size",
    "jobs": "concurrent_jobs",
    "temperature": "temperature",
    "timeout": "timeout",
    "max_tokens": "max_tokens",
    "max_retries": "max_retries",
    "retry_delay": "retry_delay_ms",
    "max_cost": "max_cost",
    "max_strings_per_job": "max_strings_per_job",
    "max_total_strings": "max_total_strings",
    "dictionary_path": "dictionary_path",
    "prompt": "prompt_path",
    "pricing": "pricing_path",
    "output_format": "output_format",
    "output_file": "output_file",
    "verbose_level": "verbose_level",
    "report_dir": "report_dir",
}

_SWITCHES = (
    "abort_on_failure",
    "skip_language_on_failure",
    "dry_run",
    "force_translate",
    "use_dictionary",
    "save_debug_info",
)


def overrides_from_args(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for arg, field_name in _OVERRIDES.items():
        value = getattr(args, arg)
        if value is not None:
            overrides[field_name] = value
    for name in _SWITCHES:
        if getattr(args, name):
            overrides[name] = True
    if args.target_languages:
        overrides["target_languages"] = parse_languages(args.target_languages)
    if args.po_header_template:
        overrides["po_header_template"] = load_header_template(args.po_header_template)
    return overrides


def build_engine(cfg: Config) -> OpenAIChatEngine:
    injector = None
    if cfg.test_retry_failure_rate > 0:
        injector = FailureInjector(
            rate=cfg.test_retry_failure_rate,
            allow_complete_failure=cfg.test_allow_complete_failure,
        )
    return OpenAIChatEngine(
        session=requests.Session(),
        pricing=load_pricing(cfg.pricing_path),
        api_key=cfg.api_key,
        api_base=cfg.api_base,
        temperature=cfg.temperature,
        max_tokens=cfg.max_tokens,
        use_dictionary=cfg.use_dictionary,
        dictionary_dir=cfg.dictionary_path,
        debug_dir=str(Path(cfg.output_dir) / "debug") if cfg.save_debug_info else None,
        failure_injector=injector,
    )


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        cfg = load_config(overrides_from_args(args))
    except RuntimeError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    json_to_stdout = cfg.output_format == "json" and not cfg.output_file
    configure_logging(cfg.verbose_level, stream=sys.stderr if json_to_stdout else sys.stdout)
    if args.log_file:
        attach_file_logging(args.log_file)
    if cfg.dry_run:
        log.info("dry run: no API requests will be made; costs are estimates")

    orchestrator = RunOrchestrator(cfg, build_engine(cfg))
    try:
        result = asyncio.run(orchestrator.run())
    except ParseError as exc:
        raise SystemExit(f"Cannot read source catalog: {exc}") from exc

    if cfg.output_format == "json":
        payload = report_json(result.stats, result.exit_code)
        if cfg.output_file:
            Path(cfg.output_file).parent.mkdir(parents=True, exist_ok=True)
            Path(cfg.output_file).write_text(payload + "\n", encoding="utf-8")
            log.info("report written to %s", cfg.output_file)
        else:
            print(payload)
    else:
        for line in console_lines(result.stats):
            print(line)

    if cfg.report_dir:
        path = write_report_file(result.stats, result.exit_code, directory=cfg.report_dir)
        log.info("run report written to %s", path)

    raise SystemExit(result.exit_code)


if __name__ == "__main__":
    main()
