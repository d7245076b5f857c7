# src/context/tokens.py - v1
"""Token estimation.

A fixed characters-per-token ratio keeps estimates deterministic and
provider-independent; budgets are set with that slack in mind.
"""

from __future__ import annotations

import math

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimate tokens in text (ceil of chars / CHARS_PER_TOKEN)."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def chars_for_tokens(tokens: int) -> int:
    """Character allowance for a token count."""
    return max(0, tokens) * CHARS_PER_TOKEN
