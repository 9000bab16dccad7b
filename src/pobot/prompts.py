from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Sequence

import tiktoken

from .costs import CostRecord, Pricing, calculate_cost
from .languages import language_name, plural_count, plural_forms_for
from .planner import BatchItem

log = logging.getLogger("pobot.prompts")

DEFAULT_PROMPT_PATH = Path(__file__).parent / "data" / "prompt.md"

OUTPUT_TOKEN_RATIO = 1.4

_BLOCK_RE = re.compile(r"<t[^>]*>[\s\S]*?</t>")
_INDEX_RE = re.compile(r'i="(\d+)"')
_CONTENT_RE = re.compile(r"<t[^>]*>(.*?)</t>", re.S)


@dataclass(frozen=True)
class DictionaryMatch:
    source: str
    target: str


@dataclass(frozen=True)
class XmlPrompt:
    text: str
    dictionary_count: int


def load_prompt_template(path: str | Path | None = None) -> str:
    source = Path(path) if path else DEFAULT_PROMPT_PATH
    try:
        template = source.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise RuntimeError(f"Failed to load prompt from {source}: {exc}") from exc
    if not template:
        raise RuntimeError(f"Failed to load prompt from {source}: prompt file is empty")
    return template


def build_system_prompt(
    target_language: str, source_language: str = "en", prompt_path: str | Path | None = None
) -> str:
    template = load_prompt_template(prompt_path)
    count = plural_count(plural_forms_for(target_language))
    return (
        template.replace("{{SOURCE_LANGUAGE}}", language_name(source_language))
        .replace("{{TARGET_LANGUAGE}}", language_name(target_language))
        .replace("{{TARGET_LANGUAGE_CODE}}", target_language)
        .replace("{{PLURAL_COUNT}}", str(count))
    )


def escape_xml(text: str | None) -> str:
    if not text:
        return ""
    return (
        text.replace("&", "&amp;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
    )


def decode_xml(text: str | None) -> str:
    if not text:
        return ""
    return (
        text.replace("&lt;", "<")
        .replace("&gt;", ">")
        .replace("&quot;", '"')
        .replace("&apos;", "'")
        .replace("&amp;", "&")
    )


def build_xml_prompt(
    items: Sequence[BatchItem],
    target_language: str,
    plurals: int,
    dictionary_matches: Sequence[DictionaryMatch] = (),
) -> XmlPrompt:
    lines = [f"Translate to {language_name(target_language)}:", ""]
    start = 1
    if dictionary_matches:
        lines.append("<!-- Dictionary Examples for Consistency -->")
        for i, match in enumerate(dictionary_matches, start=1):
            lines.append(f'<source i="{i}">{escape_xml(match.source)}</source>')
        lines.append("<!-- End Dictionary Examples -->")
        lines.append("")
        start = len(dictionary_matches) + 1

    for offset, item in enumerate(items):
        attrs = f'i="{start + offset}"'
        if item.comments:
            attrs += f' c="{escape_xml(item.comments)}"'
        body = escape_xml(item.msgid)
        if item.msgid_plural:
            body += "|" + escape_xml(item.msgid_plural)
        lines.append(f"<source {attrs}>{body}</source>")

    lines.append("")
    lines.append("Respond:")
    if any(item.msgid_plural for item in items):
        lines.append(f'Items with "|" need {plurals} forms:')
        lines.append("")
        forms = "".join(f"<f{i}>form{i}</f{i}>" for i in range(plurals))
        lines.append(f'Format: <t i="N">{forms}</t>')
    else:
        lines.append('Format: <t i="N">translation</t>')
    return XmlPrompt(text="\n".join(lines) + "\n", dictionary_count=len(dictionary_matches))


def build_dictionary_response(matches: Sequence[DictionaryMatch]) -> str:
    return "\n".join(
        f'<t i="{i}">{escape_xml(m.target)}</t>' for i, m in enumerate(matches, start=1)
    )


def dictionary_instruction(matches: Sequence[DictionaryMatch]) -> str:
    examples = " and ".join(
        f'"{m.source}" MUST be translated as "{m.target}"' for m in matches[:2]
    )
    return (
        "IMPORTANT: When translating the following strings, you MUST use the exact "
        "dictionary translations shown above for any terms that appear in the "
        f"dictionary. For example, {examples}. Use these exact translations, not "
        "alternatives. Now translate the actual strings:"
    )


def build_messages(
    system_prompt: str,
    items: Sequence[BatchItem],
    target_language: str,
    plurals: int,
    dictionary_matches: Sequence[DictionaryMatch] = (),
) -> tuple[list[dict[str, str]], XmlPrompt]:
    prompt = build_xml_prompt(items, target_language, plurals, dictionary_matches)
    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": prompt.text},
    ]
    if dictionary_matches:
        messages.append({"role": "assistant", "content": build_dictionary_response(dictionary_matches)})
        messages.append({"role": "user", "content": dictionary_instruction(dictionary_matches)})
    return messages, prompt


def parse_xml_response(
    response: str | None,
    items: Sequence[BatchItem],
    plurals: int,
    dictionary_count: int = 0,
) -> list[list[str]]:
    """Map ``<t i="N">`` blocks back onto ``items``.

    Each result row has ``plurals`` forms for plural items and one form
    otherwise; anything the model left out stays empty.
    """
    results = [[""] * (plurals if item.msgid_plural else 1) for item in items]
    if not response or not response.strip():
        log.warning("empty response from model")
        return results

    blocks = _BLOCK_RE.findall(response)
    if not blocks:
        log.warning("no translation blocks in response")
        return results

    for block in blocks:
        index_match = _INDEX_RE.search(block)
        if not index_match:
            log.warning("translation block without index: %s", block[:80])
            continue
        response_index = int(index_match.group(1))
        if response_index <= dictionary_count:
            continue
        position = response_index - dictionary_count - 1
        if position >= len(items):
            log.warning("response index %s outside batch of %s", response_index, len(items))
            continue

        if "<f0>" in block:
            forms = []
            for i in range(plurals):
                form_match = re.search(rf"<f{i}>(.*?)</f{i}>", block, re.S)
                if form_match:
                    forms.append(decode_xml(form_match.group(1)))
                else:
                    log.warning("missing f%s form for index %s", i, response_index)
                    forms.append("")
            results[position] = forms
            continue

        content = _CONTENT_RE.search(block)
        if content:
            text = decode_xml(content.group(1))
            if items[position].msgid_plural:
                results[position] = [text] + [""] * (plurals - 1)
            else:
                results[position] = [text]
    return results


@lru_cache(maxsize=8)
def _encoding_for(model: str):
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str, model: str = "gpt-3.5-turbo") -> int:
    if not text:
        return 0
    try:
        return len(_encoding_for(model).encode(text))
    except Exception as exc:
        log.debug("exact token count unavailable (%s); estimating", exc)
        return math.ceil(len(text) / 4)


def estimate_batch_cost(
    items: Sequence[BatchItem],
    target_language: str,
    system_prompt: str,
    plurals: int,
    model: str,
    pricing: Pricing,
    dictionary_matches: Sequence[DictionaryMatch] = (),
) -> CostRecord:
    """Estimate the cost of one batch request before sending it.

    Input tokens cover every message; output is sized from the user prompt.
    Budget checks and dry runs both use this figure.
    """
    messages, prompt = build_messages(
        system_prompt, items, target_language, plurals, dictionary_matches
    )
    input_tokens = count_tokens("\n".join(m["content"] for m in messages), model)
    output_tokens = round(count_tokens(prompt.text, model) * OUTPUT_TOKEN_RATIO)
    return calculate_cost(input_tokens, output_tokens, model, pricing, is_dry_run=True)
