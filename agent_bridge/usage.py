"""Token / cost accounting for agent-engine result messages.

The engine reports ``total_cost_usd`` **cumulatively** across a
conversation, while token counts are per message.  A
``UsageSessionContext`` remembers the last observed total so each new
observation can be turned into a per-turn delta.

Messages come in two shapes: plain dicts (persisted log records, raw
stream events) and ``claude_agent_sdk`` ``ResultMessage`` dataclasses.
Both are normalised to a dict before extraction.  Field names differ
between producers, so every metric is looked up under each known
spelling and the first numeric value wins.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass, field
from typing import Any

from agent_bridge.types import UsageUpdate

logger = logging.getLogger(__name__)

_INPUT_KEYS = ("inputTokens", "input_tokens")
_OUTPUT_KEYS = ("outputTokens", "output_tokens")
_CACHE_READ_KEYS = ("cacheReadInputTokens", "cache_read_input_tokens", "cache_read_tokens")
_CACHE_WRITE_KEYS = ("cacheCreationInputTokens", "cache_creation_input_tokens", "cache_write_tokens")
_TOTAL_COST_KEYS = ("total_cost_usd", "totalCostUsd")
_MODEL_USAGE_KEYS = ("modelUsage", "model_usage")
_CONTEXT_WINDOW_KEYS = ("contextWindow", "context_window")
_MAX_OUTPUT_KEYS = ("maxOutputTokens", "max_output_tokens")


# ---------------------------------------------------------------------------
# Running totals
# ---------------------------------------------------------------------------

@dataclass
class UsageTotals:
    """Cumulative token / cost accounting for one session.

    Supports ``+`` and ``+=`` so callers can fold per-turn deltas into
    lifetime totals.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0
    cost_usd: float = 0.0

    def __add__(self, other: UsageTotals) -> UsageTotals:
        return UsageTotals(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_read_tokens=self.cache_read_tokens + other.cache_read_tokens,
            cache_write_tokens=self.cache_write_tokens + other.cache_write_tokens,
            cost_usd=self.cost_usd + other.cost_usd,
        )

    def __iadd__(self, other: UsageTotals) -> UsageTotals:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cache_read_tokens += other.cache_read_tokens
        self.cache_write_tokens += other.cache_write_tokens
        self.cost_usd += other.cost_usd
        return self

    @classmethod
    def from_update(cls, update: UsageUpdate) -> UsageTotals:
        """Per-turn delta carried by a usage update.

        Cost uses ``turn_cost_usd``; the cumulative total is not additive.
        """
        return cls(
            input_tokens=int(update.input_tokens or 0),
            output_tokens=int(update.output_tokens or 0),
            cache_read_tokens=int(update.cache_read_tokens or 0),
            cache_write_tokens=int(update.cache_write_tokens or 0),
            cost_usd=float(update.turn_cost_usd or 0.0),
        )


@dataclass
class UsageSessionContext:
    """Running usage state for one live session.

    Owned by whatever drives that session's turns; only mutated by
    sequential calls to ``build_usage_update_for_session``.
    """

    model: str | None = None
    last_total_cost_usd: float | None = None
    totals: UsageTotals = field(default_factory=UsageTotals)


# ---------------------------------------------------------------------------
# Extraction helpers
# ---------------------------------------------------------------------------

def _as_record(value: Any) -> dict[str, Any] | None:
    """Return *value* as a dict, converting SDK dataclasses; else None."""
    if isinstance(value, dict):
        return value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return None


def _number_field(record: dict[str, Any], keys: tuple[str, ...]) -> int | float | None:
    for key in keys:
        value = record.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)) and math.isfinite(value):
            return value
    return None


def _first_record(record: dict[str, Any], keys: tuple[str, ...]) -> dict[str, Any] | None:
    for key in keys:
        value = record.get(key)
        if isinstance(value, dict):
            return value
    return None


def _select_model_usage(
    session: UsageSessionContext | None,
    message: dict[str, Any],
) -> dict[str, Any] | None:
    """Pick the per-model usage record.

    Preference: the session's remembered model, then the message's own
    ``model``, then the lexicographically smallest key.
    """
    model_usage = _first_record(message, _MODEL_USAGE_KEYS)
    if not model_usage:
        return None

    preferred: list[str] = []
    if session is not None and session.model:
        preferred.append(session.model)
    if isinstance(message.get("model"), str) and message["model"] not in preferred:
        preferred.append(message["model"])

    for key in preferred:
        value = model_usage.get(key)
        if isinstance(value, dict):
            return value
    for key in sorted(model_usage):
        value = model_usage[key]
        if isinstance(value, dict):
            return value
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_usage_update_for_session(
    session: UsageSessionContext | None,
    message: Any,
) -> UsageUpdate | None:
    """Turn a result message into a ``UsageUpdate``.

    When *session* is given and the message carries a total cost, the
    turn cost is the total on first observation and
    ``max(0, total - last_total)`` afterwards; the session's last total
    is then overwritten.  The session's running ``totals`` absorb the
    resulting delta.

    Returns ``None`` when no metric at all could be extracted.
    """
    record = _as_record(message)
    if record is None:
        logger.debug("Ignoring non-record usage message of type %s", type(message).__name__)
        return None

    usage = _first_record(record, ("usage",))
    input_tokens = _number_field(usage, _INPUT_KEYS) if usage else None
    output_tokens = _number_field(usage, _OUTPUT_KEYS) if usage else None
    cache_read_tokens = _number_field(usage, _CACHE_READ_KEYS) if usage else None
    cache_write_tokens = _number_field(usage, _CACHE_WRITE_KEYS) if usage else None

    total_cost_usd = _number_field(record, _TOTAL_COST_KEYS)
    turn_cost_usd: float | None = None
    if total_cost_usd is not None and session is not None:
        if session.last_total_cost_usd is None:
            turn_cost_usd = total_cost_usd
        else:
            turn_cost_usd = max(0.0, total_cost_usd - session.last_total_cost_usd)
        session.last_total_cost_usd = total_cost_usd

    model_usage = _select_model_usage(session, record)
    context_window = _number_field(model_usage, _CONTEXT_WINDOW_KEYS) if model_usage else None
    max_output_tokens = _number_field(model_usage, _MAX_OUTPUT_KEYS) if model_usage else None

    update = UsageUpdate(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cache_read_tokens=cache_read_tokens,
        cache_write_tokens=cache_write_tokens,
        total_cost_usd=total_cost_usd,
        turn_cost_usd=turn_cost_usd,
        context_window=context_window,
        max_output_tokens=max_output_tokens,
    )
    if not update.to_dict()["usage"]:
        return None

    if session is not None:
        session.totals += UsageTotals.from_update(update)
    return update


def build_usage_update(message: Any) -> UsageUpdate | None:
    """Session-less variant: no turn cost, no running totals."""
    return build_usage_update_for_session(None, message)
