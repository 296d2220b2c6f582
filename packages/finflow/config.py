"""Runtime settings read from the process environment.

Entrypoints load ``.env`` (python-dotenv) before calling :func:`load_settings`;
library code receives a :class:`Settings` instance and never reads the
environment itself.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

DEFAULT_TOPIC = "transactions.created"
DEFAULT_CLASSIFIER_MODEL = "gpt-4o-mini"

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str
    storage_dir: Path
    events_topic: str = DEFAULT_TOPIC
    ingest_workers: int = 2
    skip_duplicates: bool = True
    classifier_enabled: bool = False
    classifier_model: str = DEFAULT_CLASSIFIER_MODEL
    classifier_base_url: str | None = None
    classifier_timeout_sec: float = 10.0
    classifier_concurrency: int = 4
    openai_api_key: str | None = None


def _flag(raw: str | None, default: bool, name: str) -> bool:
    if raw is None or not raw.strip():
        return default
    val = raw.strip().lower()
    if val in _TRUTHY:
        return True
    if val in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


def _positive_int(raw: str | None, default: int, name: str) -> int:
    if raw is None or not raw.strip():
        return default
    try:
        val = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if val < 1:
        raise ValueError(f"{name} must be >= 1, got {val}")
    return val


def _positive_float(raw: str | None, default: float, name: str) -> float:
    if raw is None or not raw.strip():
        return default
    try:
        val = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if val <= 0:
        raise ValueError(f"{name} must be > 0, got {val}")
    return val


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from ``env`` (defaults to ``os.environ``).

    Raises
    ------
    RuntimeError
        When ``DATABASE_URL`` is missing.
    ValueError
        When a numeric or boolean variable cannot be parsed.
    """

    src = os.environ if env is None else env
    database_url = src.get("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set")

    return Settings(
        database_url=database_url,
        storage_dir=Path(src.get("FINFLOW_STORAGE_DIR") or "./.finflow/objects"),
        events_topic=src.get("FINFLOW_EVENTS_TOPIC") or DEFAULT_TOPIC,
        ingest_workers=_positive_int(
            src.get("FINFLOW_INGEST_WORKERS"), 2, "FINFLOW_INGEST_WORKERS"
        ),
        skip_duplicates=_flag(src.get("FINFLOW_SKIP_DUPLICATES"), True, "FINFLOW_SKIP_DUPLICATES"),
        classifier_enabled=_flag(
            src.get("FINFLOW_CLASSIFIER_ENABLED"), False, "FINFLOW_CLASSIFIER_ENABLED"
        ),
        classifier_model=src.get("FINFLOW_CLASSIFIER_MODEL") or DEFAULT_CLASSIFIER_MODEL,
        classifier_base_url=src.get("FINFLOW_CLASSIFIER_BASE_URL") or None,
        classifier_timeout_sec=_positive_float(
            src.get("FINFLOW_CLASSIFIER_TIMEOUT_SEC"), 10.0, "FINFLOW_CLASSIFIER_TIMEOUT_SEC"
        ),
        classifier_concurrency=_positive_int(
            src.get("FINFLOW_CLASSIFIER_CONCURRENCY"), 4, "FINFLOW_CLASSIFIER_CONCURRENCY"
        ),
        openai_api_key=src.get("OPENAI_API_KEY") or None,
    )


__all__ = ["DEFAULT_TOPIC", "Settings", "load_settings"]
