# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Configuration helpers for rpcprobe."""

import os
from dataclasses import dataclass

from .version import __version__

DEFAULT_USER_AGENT = f"rpcprobe/{__version__}"
BACKOFF_POLICIES = ("fixed", "exponential")


def _float_env(name: str, default: float) -> float:
    try:
        value = os.getenv(name)
        return float(value) if value is not None else default
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        value = os.getenv(name)
        return int(value) if value is not None else default
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _choice_env(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip().lower()
    return value if value in choices else default


@dataclass
class ProbeSettings:
    """Prober and session defaults."""

    timeout: float = 8.0
    max_retries: int = 5
    retry_delay: float = 2.0
    backoff_policy: str = "fixed"
    backoff_factor: float = 2.0
    max_retry_delay: float = 60.0
    max_workers: int = 32
    aggregate_errors: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    verify_ssl: bool = True
    max_body_bytes: int = 16 * 1024 * 1024

    @classmethod
    def from_env(cls) -> "ProbeSettings":
        """Create settings from environment variables (evaluated at call time)."""
        max_body_bytes = _int_env("RPCPROBE_HTTP_MAX_BODY_BYTES", cls.max_body_bytes)
        if max_body_bytes <= 0:
            max_body_bytes = cls.max_body_bytes
        max_workers = _int_env("RPCPROBE_MAX_WORKERS", cls.max_workers)
        if max_workers <= 0:
            max_workers = cls.max_workers
        return cls(
            timeout=_float_env("RPCPROBE_HTTP_TIMEOUT", cls.timeout),
            max_retries=_int_env("RPCPROBE_MAX_RETRIES", cls.max_retries),
            retry_delay=_float_env("RPCPROBE_RETRY_DELAY", cls.retry_delay),
            backoff_policy=_choice_env("RPCPROBE_BACKOFF_POLICY", cls.backoff_policy, BACKOFF_POLICIES),
            backoff_factor=_float_env("RPCPROBE_BACKOFF_FACTOR", cls.backoff_factor),
            max_retry_delay=_float_env("RPCPROBE_MAX_RETRY_DELAY", cls.max_retry_delay),
            max_workers=max_workers,
            aggregate_errors=_bool_env("RPCPROBE_AGGREGATE_ERRORS", cls.aggregate_errors),
            user_agent=os.getenv("RPCPROBE_USER_AGENT", cls.user_agent),
            verify_ssl=_bool_env("RPCPROBE_HTTP_VERIFY_SSL", cls.verify_ssl),
            max_body_bytes=max_body_bytes,
        )


def load_probe_settings() -> ProbeSettings:
    """Load probe settings from environment with sensible defaults."""
    return ProbeSettings.from_env()
