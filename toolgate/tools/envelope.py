"""Shared helpers for building tool response envelopes."""

from __future__ import annotations

from dataclasses import dataclass

from toolgate.config.settings import DEFAULT_TEXT_RESPONSE_LIMIT


@dataclass(frozen=True)
class ClampResult:
    text: str
    clamped: bool
    omitted: int


def truncation_suffix(omitted: int) -> str:
    plural = "" if omitted == 1 else "s"
    return f"\n… (truncated {omitted} character{plural})"


def clamp_text(raw: object, limit: int = DEFAULT_TEXT_RESPONSE_LIMIT) -> ClampResult:
    """Cut ``raw`` to ``limit`` characters and append an explicit marker.

    A clamped text is always ``limit + len(suffix)`` long and ``omitted > 0``.
    """
    text = raw if isinstance(raw, str) else ("" if raw is None else str(raw))
    if len(text) <= limit:
        return ClampResult(text=text, clamped=False, omitted=0)
    omitted = len(text) - limit
    return ClampResult(text=text[:limit] + truncation_suffix(omitted), clamped=True, omitted=omitted)


def failure(message: str, error_code: str, **extra: object) -> dict:
    return {"ok": False, "error": message, "error_code": error_code, **extra}
