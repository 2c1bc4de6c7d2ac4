from __future__ import annotations

import os
from dataclasses import dataclass


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


@dataclass(frozen=True)
class EngineConfig:
    CONSULTNOTE_MAX_EDITOR_HISTORY: int
    CONSULTNOTE_SESSION_TTL_SECONDS: int
    CONSULTNOTE_RECENT_INSERTS_MAX: int
    CONSULTNOTE_LOG_LEVEL: str
    CONSULTNOTE_AUDIT_ENABLED: bool


def load_config() -> EngineConfig:
    return EngineConfig(
        CONSULTNOTE_MAX_EDITOR_HISTORY=max(1, _getenv_int("CONSULTNOTE_MAX_EDITOR_HISTORY", 50)),
        CONSULTNOTE_SESSION_TTL_SECONDS=_getenv_int("CONSULTNOTE_SESSION_TTL_SECONDS", 14400),
        CONSULTNOTE_RECENT_INSERTS_MAX=max(1, _getenv_int("CONSULTNOTE_RECENT_INSERTS_MAX", 10)),
        CONSULTNOTE_LOG_LEVEL=_getenv_str("CONSULTNOTE_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        CONSULTNOTE_AUDIT_ENABLED=_getenv_bool("CONSULTNOTE_AUDIT_ENABLED", True),
    )
