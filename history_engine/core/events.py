"""Undo notifications and the per-node subscriber list."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from history_engine.core.models import UndoOperationInfo

logger = logging.getLogger(__name__)


class UndoEventKind(str, Enum):
    OPERATION_RECORDED = "operation_recorded"
    UNDO_PERFORMED = "undo_performed"
    REDO_PERFORMED = "redo_performed"
    FOCUS_CHANGED = "focus_changed"
    QUEUE_PROCESSED = "queue_processed"


class UndoEvent(BaseModel):
    kind: UndoEventKind
    source_id: str
    operation: Optional[UndoOperationInfo] = None
    focused_child_id: Optional[str] = None
    processed_count: int = 0


UndoEventHandler = Callable[[UndoEvent], None]


class EventHub:
    """
    Explicit subscriber list owned by a single node.

    Handlers are called in subscription order. A failing handler is logged
    and the remaining handlers still receive the event.
    """

    def __init__(self) -> None:
        self._subscribers: List[Tuple[UndoEventHandler, Optional[FrozenSet[UndoEventKind]]]] = []

    def subscribe(
        self,
        handler: UndoEventHandler,
        kinds: Optional[Iterable[UndoEventKind]] = None,
    ) -> Callable[[], None]:
        """Registers `handler`; returns a callable that removes it again."""
        entry = (handler, frozenset(kinds) if kinds is not None else None)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, event: UndoEvent) -> None:
        # Copy so handlers may unsubscribe while being notified.
        for handler, kinds in list(self._subscribers):
            if kinds is not None and event.kind not in kinds:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("Undo event handler failed for %s from %s", event.kind.value, event.source_id)

    def __len__(self) -> int:
        return len(self._subscribers)
