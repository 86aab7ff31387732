"""Runtime settings for the inventory ledger, read from the environment."""

import os
from dataclasses import dataclass

DEFAULT_REMOTE_TIMEOUT = 10.0
DEFAULT_REMOTE_WORKERS = 4


def _float_from_env(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = raw.strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    # Zero disables the bound
    return value or None


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {raw!r}")
    return value


@dataclass(frozen=True)
class InventorySettings:
    """Settings shared by every tenant session.

    remote_timeout:  bounded wait for a sync gateway call, in seconds.
                     None waits indefinitely.
    gateway_adapter: which sync gateway adapter build_gateway() returns.
    remote_workers:  threads available for remote calls per session.
    """

    remote_timeout: float | None = DEFAULT_REMOTE_TIMEOUT
    gateway_adapter: str = "fake"
    remote_workers: int = DEFAULT_REMOTE_WORKERS

    @classmethod
    def from_env(cls) -> "InventorySettings":
        return cls(
            remote_timeout=_float_from_env("INVENTORY_REMOTE_TIMEOUT", DEFAULT_REMOTE_TIMEOUT),
            gateway_adapter=os.getenv("SYNC_GATEWAY_ADAPTER", "fake").strip().lower() or "fake",
            remote_workers=_int_from_env("INVENTORY_REMOTE_WORKERS", DEFAULT_REMOTE_WORKERS),
        )
