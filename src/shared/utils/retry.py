# /src/shared/utils/retry.py
"""
Exponential backoff with jitter for provider send retries.
"""

from __future__ import annotations

import random


def backoff_delay(attempt: int, *, base_ms: int, max_ms: int, jitter_ms: int = 0) -> float:
    """Delay in seconds before retry number ``attempt`` (1-based), capped at ``max_ms``."""
    delay = base_ms * (2 ** max(attempt - 1, 0))
    jitter = random.randint(0, jitter_ms) if jitter_ms > 0 else 0
    return min(delay + jitter, max_ms) / 1000.0
