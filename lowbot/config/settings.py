from __future__ import annotations

import os

DEFAULT_MIN_SCORE = 0.75
DEFAULT_MAX_CONCURRENCY = 32
DEFAULT_DISPATCH_TIMEOUT_SEC = 30.0
DEFAULT_ADAPTER = "terminal"
DEFAULT_LOCALE = "en-US"
DEFAULT_LOG_LEVEL = "INFO"


def get_min_score() -> float:
    configured = os.getenv("LOWBOT_MIN_SCORE")
    if configured is None:
        return DEFAULT_MIN_SCORE
    try:
        value = float(configured)
    except (TypeError, ValueError):
        return DEFAULT_MIN_SCORE
    return min(max(value, 0.0), 1.0)


def get_max_concurrency() -> int:
    configured = os.getenv("LOWBOT_MAX_CONCURRENCY")
    if configured is None:
        return DEFAULT_MAX_CONCURRENCY
    try:
        value = int(configured)
    except (TypeError, ValueError):
        return DEFAULT_MAX_CONCURRENCY
    return max(value, 1)


def get_dispatch_timeout_sec() -> float | None:
    """Per-stage deadline; zero or negative disables it."""
    configured = os.getenv("LOWBOT_DISPATCH_TIMEOUT_SEC")
    if configured is None:
        return DEFAULT_DISPATCH_TIMEOUT_SEC
    try:
        value = float(configured)
    except (TypeError, ValueError):
        return DEFAULT_DISPATCH_TIMEOUT_SEC
    if value <= 0:
        return None
    return value


def get_default_adapter() -> str:
    configured = os.getenv("LOWBOT_DEFAULT_ADAPTER")
    if isinstance(configured, str) and configured.strip():
        return configured.strip()
    return DEFAULT_ADAPTER


def get_default_locale() -> str:
    configured = os.getenv("LOWBOT_LOCALE")
    if isinstance(configured, str) and configured.strip():
        return configured.strip()
    return DEFAULT_LOCALE


def get_log_level() -> str:
    configured = str(os.getenv("LOWBOT_LOG_LEVEL") or "").strip().upper()
    return configured or DEFAULT_LOG_LEVEL
