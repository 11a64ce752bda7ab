"""Batching buffer that sits in front of an UndoStack."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Tuple

from history_engine.core.records import UndoRecord, merge_records

if TYPE_CHECKING:
    from history_engine.core.stack import UndoStack

logger = logging.getLogger(__name__)


class PendingQueue:
    """
    Absorbs bursts of candidate records from high-frequency producers
    (one edit per input event during a drag) and commits each burst as a
    single history record.

    Nothing reaches the owning stack until `process_pending_queue` runs.
    """

    def __init__(self, owner: UndoStack):
        self._owner = owner
        self._items: List[Tuple[UndoRecord, int]] = []

    @property
    def pending_count(self) -> int:
        return len(self._items)

    @property
    def has_pending_records(self) -> bool:
        return bool(self._items)

    def _resolve_group_id(self, group_id: Optional[int]) -> int:
        if group_id is not None:
            return group_id
        if self._owner.current_group_id is not None:
            return self._owner.current_group_id
        if self._items:
            return self._items[-1][1]
        return self._owner.next_group_id()

    def enqueue(self, candidate: UndoRecord, group_id: Optional[int] = None) -> Optional[int]:
        """Buffers `candidate`; returns the group id it was filed under."""
        if self._owner.is_dispatching:
            logger.warning(
                "Dropping %s enqueued on stack '%s' during undo/redo dispatch",
                candidate.description,
                self._owner.id,
            )
            return None
        resolved = self._resolve_group_id(group_id)
        self._items.append((candidate, resolved))
        return resolved

    def process_pending_queue(self) -> int:
        """Commits the buffered runs; returns how many candidates were flushed."""
        if not self._items:
            return 0

        items, self._items = self._items, []
        runs: List[Tuple[int, List[UndoRecord]]] = []
        for record, group_id in items:
            if runs and runs[-1][0] == group_id:
                runs[-1][1].append(record)
            else:
                runs.append((group_id, [record]))

        for group_id, records in runs:
            merged = merge_records(records)
            self._owner.record(merged, group_id=group_id, coalesce=True)

        logger.debug(
            "Flushed %d pending record(s) in %d run(s) on stack '%s'",
            len(items),
            len(runs),
            self._owner.id,
        )
        return len(items)

    def clear(self) -> int:
        dropped = len(self._items)
        self._items.clear()
        return dropped
