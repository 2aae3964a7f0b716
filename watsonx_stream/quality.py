"""Cheap heuristic score for short generated answers."""

from __future__ import annotations

COMMON_WORDS = ("the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by")
ERROR_INDICATORS = ("error", "failed", "invalid", "unknown", "not found")


def assess_quality(text: str, prompt: str = "") -> float:
    """Score ``text`` between 0.0 and 1.0.

    Rewards a reasonable length, ordinary English words, at least one
    sentence and a moderate word count; penalizes text that reads like an
    error message. ``prompt`` is accepted for call-site symmetry and unused.
    """
    score = 0.0
    trimmed = text.strip()
    lowered = text.lower()

    if trimmed and 8 < len(trimmed) < 200:
        score += 0.3
    if any(word in lowered for word in COMMON_WORDS):
        score += 0.2
    if not any(marker in lowered for marker in ERROR_INDICATORS):
        score += 0.2
    if any(part.strip() for part in text.split(".")):
        score += 0.15
    if 3 < len(text.split()) < 100:
        score += 0.15

    return round(score, 4)
