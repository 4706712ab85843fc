"""Backoff helpers for the credential refresh loop.

``retry_until`` runs a thunk returning ``True`` on success up to
``RetryConfig.attempts`` times, sleeping ``2**attempt`` milliseconds plus a
random 0-999 ms jitter between failed attempts.

Environment overrides:
  ISSUEBOT_AUTH_RETRY_ATTEMPTS (default 4)
  ISSUEBOT_RETRY_MAX_SLEEP (seconds cap per sleep, unset = no cap)
"""

from __future__ import annotations

import os
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field

_JITTER = random.SystemRandom()


def _default_attempts() -> int:
    return int(os.environ.get("ISSUEBOT_AUTH_RETRY_ATTEMPTS", "4"))


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=_default_attempts)
    jitter_ms: int = 1000


def compute_backoff(attempt: int, cfg: RetryConfig | None = None) -> float:
    """Seconds to wait after failed ``attempt`` (0-based)."""
    cfg = cfg or RetryConfig()
    jitter = _JITTER.randrange(cfg.jitter_ms) if cfg.jitter_ms > 0 else 0
    sleep_for = (2**attempt + jitter) / 1000.0
    max_cap_env = os.environ.get("ISSUEBOT_RETRY_MAX_SLEEP")
    if max_cap_env:
        try:
            cap = float(max_cap_env)
        except ValueError:
            return sleep_for
        if cap >= 0:
            sleep_for = min(sleep_for, cap)
    return sleep_for


def retry_until(fn: Callable[[], bool], *, cfg: RetryConfig | None = None) -> bool:
    cfg = cfg or RetryConfig()
    attempts = max(1, cfg.attempts)
    for attempt in range(attempts):
        if fn():
            return True
        if attempt + 1 < attempts:
            time.sleep(compute_backoff(attempt, cfg))
    return False


__all__ = ["RetryConfig", "compute_backoff", "retry_until"]
