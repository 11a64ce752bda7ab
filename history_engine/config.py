"""Runtime configuration helpers for history_engine."""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel

from history_engine.core.models import UndoResolutionPolicy

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 100
DEFAULT_RESOLUTION_POLICY = UndoResolutionPolicy.OPERATION_LOG


class HistoryConfig(BaseModel):
    max_depth: int = DEFAULT_MAX_DEPTH
    resolution_policy: UndoResolutionPolicy = DEFAULT_RESOLUTION_POLICY


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(name, default)


def get_max_depth() -> int:
    raw = _get_env("HISTORY_MAX_DEPTH")
    if raw is None or raw.strip() == "":
        return DEFAULT_MAX_DEPTH
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid HISTORY_MAX_DEPTH %r, using %d", raw, DEFAULT_MAX_DEPTH)
        return DEFAULT_MAX_DEPTH
    # 0 means unlimited
    return max(value, 0)


def get_resolution_policy() -> UndoResolutionPolicy:
    raw = (_get_env("HISTORY_RESOLUTION_POLICY") or "").strip().lower()
    if not raw:
        return DEFAULT_RESOLUTION_POLICY
    try:
        return UndoResolutionPolicy(raw)
    except ValueError:
        logger.warning(
            "Unsupported HISTORY_RESOLUTION_POLICY %r, using %s",
            raw,
            DEFAULT_RESOLUTION_POLICY.value,
        )
        return DEFAULT_RESOLUTION_POLICY


@lru_cache(maxsize=1)
def get_history_config() -> HistoryConfig:
    return HistoryConfig(max_depth=get_max_depth(), resolution_policy=get_resolution_policy())


def reset_history_config_cache() -> None:
    get_history_config.cache_clear()
