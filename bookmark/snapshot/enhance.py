"""
Optional LLM enhancement of the heuristic extraction.

The enhancer may override the narrative fields (status, intent,
progress, decisions, open items, unknowns) with a model-written
summary. File activity, errors, tool counts and sentiment always come
from the heuristic pass. Any failure returns the heuristic result.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Protocol, Sequence

from pydantic import ValidationError

from ..llm_client import DEFAULT_MODEL, LLMClient, LLMError
from ..schema import Decision, OpenItem
from ..transcript.extractor import ExtractionResult
from ..transcript.parser import Event, EventKind

if TYPE_CHECKING:
    from ..config import BookmarkConfig

logger = logging.getLogger(__name__)

EXCERPT_EVENTS = 50
EXCERPT_EVENT_CHARS = 200
EXCERPT_MAX_CHARS = 4000

ENHANCE_PROMPT = """Analyze this coding session transcript and extract:
1. Key decisions made (with brief rationale)
2. Current status (1-2 sentences)
3. What the user is trying to achieve, and how far along the work is
4. Open items/TODOs (with priority: high/medium/low)
5. Unknowns or blockers

Transcript excerpt:
{transcript}

Respond in JSON format only:
{{
  "current_status": "...",
  "intent": "...",
  "progress": "...",
  "decisions": [{{"description": "...", "rationale": "..."}}],
  "open_items": [{{"description": "...", "priority": "high|medium|low"}}],
  "unknowns": ["..."]
}}"""


class SupportsCall(Protocol):
    def call(self, query: str, model: str | None = None, max_tokens: int = 1024,
             system: str | None = None) -> str: ...


class Enhancer:
    """Strategy that may refine an extraction. The base class is a no-op."""

    def enhance(self, extraction: ExtractionResult, events: Sequence[Event]) -> ExtractionResult:
        return extraction


class NullEnhancer(Enhancer):
    pass


def build_excerpt(events: Sequence[Event]) -> str:
    """Short plain-text excerpt of the recent conversation."""
    lines = [
        f"[{e.kind.value}]: {e.text[:EXCERPT_EVENT_CHARS]}"
        for e in events[-EXCERPT_EVENTS:]
        if e.kind in (EventKind.USER, EventKind.ASSISTANT) and e.text
    ]
    return "\n".join(lines)[-EXCERPT_MAX_CHARS:]


def parse_enhancement(text: str) -> dict[str, Any] | None:
    """Pull the JSON object out of a model response, tolerating code fences."""
    match = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", text, re.DOTALL)
    if not match:
        match = re.search(r"(\{.*\})", text, re.DOTALL)
    if not match:
        return None
    try:
        data = json.loads(match.group(1))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _text_field(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if isinstance(value, str) and value.strip():
        return " ".join(value.split())[:300]
    return None


def _list_field(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    return value if isinstance(value, list) else []


def _decisions(data: dict[str, Any]) -> list[Decision]:
    decisions = []
    for raw in _list_field(data, "decisions"):
        if not isinstance(raw, dict) or not isinstance(raw.get("description"), str):
            continue
        rationale = raw.get("rationale")
        decisions.append(Decision(
            description=raw["description"][:200],
            rationale=rationale if isinstance(rationale, str) and rationale else None,
        ))
    return decisions


def _open_items(data: dict[str, Any]) -> list[OpenItem]:
    items = []
    for raw in _list_field(data, "open_items"):
        if not isinstance(raw, dict) or not isinstance(raw.get("description"), str):
            continue
        try:
            items.append(OpenItem(
                description=raw["description"][:200],
                priority=str(raw.get("priority", "low")).lower(),
            ))
        except ValidationError:
            items.append(OpenItem(description=raw["description"][:200]))
    return items


def merge_enhancement(
    extraction: ExtractionResult,
    data: dict[str, Any],
    config: "BookmarkConfig | None" = None,
) -> ExtractionResult:
    """Non-empty fields from ``data`` override the heuristic ones."""
    max_decisions = config.max_decisions if config else 15
    max_open_items = config.max_open_items if config else 10
    max_unknowns = config.max_unknowns if config else 3

    decisions = _decisions(data)[:max_decisions]
    open_items = _open_items(data)[:max_open_items]
    unknowns = [u[:200] for u in _list_field(data, "unknowns") if isinstance(u, str) and u.strip()]

    return replace(
        extraction,
        current_status=_text_field(data, "current_status") or extraction.current_status,
        intent=_text_field(data, "intent") or extraction.intent,
        progress=_text_field(data, "progress") or extraction.progress,
        decisions=decisions or extraction.decisions,
        open_items=open_items or extraction.open_items,
        unknowns=unknowns[:max_unknowns] or extraction.unknowns,
    )


class LLMEnhancer(Enhancer):
    """
    Summarize the recent transcript with a small model.

    Missing credentials, timeouts, API errors and unparseable responses
    all fall back to the heuristic extraction.
    """

    def __init__(
        self,
        client: SupportsCall | None = None,
        config: "BookmarkConfig | None" = None,
    ):
        self.config = config
        if client is None:
            client = LLMClient(
                default_model=config.enhancement_model if config else DEFAULT_MODEL,
                timeout=config.enhancement_timeout_seconds if config else 10.0,
            )
        self.client = client

    def enhance(self, extraction: ExtractionResult, events: Sequence[Event]) -> ExtractionResult:
        excerpt = build_excerpt(events)
        if not excerpt:
            return extraction

        try:
            response = self.client.call(ENHANCE_PROMPT.format(transcript=excerpt), max_tokens=1000)
        except (LLMError, ValueError) as e:
            logger.debug(f"Enhancement skipped: {e}")
            return extraction

        data = parse_enhancement(response)
        if data is None:
            logger.debug("Enhancement response had no usable JSON")
            return extraction

        try:
            return merge_enhancement(extraction, data, self.config)
        except (ValidationError, TypeError, ValueError, AttributeError) as e:
            logger.debug(f"Enhancement response rejected: {e}")
            return extraction


def select_enhancer(config: "BookmarkConfig", smart: bool | None = None) -> Enhancer:
    """LLMEnhancer when enabled (explicitly or via config), else NullEnhancer."""
    enabled = config.smart_default if smart is None else smart
    if not enabled:
        return NullEnhancer()
    return LLMEnhancer(config=config)


__all__ = [
    "Enhancer",
    "NullEnhancer",
    "LLMEnhancer",
    "select_enhancer",
    "build_excerpt",
    "parse_enhancement",
    "merge_enhancement",
]
