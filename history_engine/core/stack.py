"""Linear undo/redo history for one editor subsystem."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional

from history_engine.core.events import UndoEvent, UndoEventKind
from history_engine.core.models import UndoOperationInfo
from history_engine.core.node import UndoNode
from history_engine.core.pending import PendingQueue
from history_engine.core.records import UndoRecord

logger = logging.getLogger(__name__)


@dataclass
class HistoryStep:
    """Records undone and redone together. All of them share `info`."""

    info: UndoOperationInfo
    records: List[UndoRecord] = field(default_factory=list)

    @property
    def description(self) -> str:
        return self.info.description


class UndoStack(UndoNode):
    """
    Two-pile history: `available` steps can be undone, `undone` steps can be
    redone. A step lives in exactly one pile. Committing a new record
    discards this stack's redo pile.

    A record joins the tail step when it carries the same group id and no
    other stack in the tree has committed since that step was last extended.
    Otherwise it opens a new step with its own `UndoOperationInfo`.
    """

    def __init__(
        self,
        node_id: str,
        context: Any = None,
        display_name: Optional[str] = None,
        max_depth: int = 100,
    ):
        super().__init__(node_id, display_name)
        self.context = context
        # 0 keeps every step.
        self.max_depth = max_depth
        self._available: List[HistoryStep] = []
        self._undone: List[HistoryStep] = []
        self._pending = PendingQueue(self)
        self._last_group_id = 0
        self._sequence = 0
        self._open_group_id: Optional[int] = None
        self._dispatching = False

    # --- Introspection ---

    @property
    def can_undo(self) -> bool:
        return bool(self._available)

    @property
    def can_redo(self) -> bool:
        return bool(self._undone)

    @property
    def undo_count(self) -> int:
        return len(self._available)

    @property
    def redo_count(self) -> int:
        return len(self._undone)

    @property
    def latest_operation(self) -> Optional[UndoOperationInfo]:
        return self._available[-1].info if self._available else None

    @property
    def next_redo_operation(self) -> Optional[UndoOperationInfo]:
        return self._undone[-1].info if self._undone else None

    @property
    def is_dispatching(self) -> bool:
        """True while this stack or any ancestor group runs an undo/redo."""
        if self._dispatching:
            return True
        parent = self.parent
        while parent is not None:
            if parent.dispatching:
                return True
            parent = parent.parent
        return False

    # --- Groups ---

    @property
    def current_group_id(self) -> Optional[int]:
        return self._open_group_id

    def next_group_id(self) -> int:
        self._last_group_id += 1
        return self._last_group_id

    def begin_group(self) -> int:
        """Opens a logical edit; records without an explicit group id join it."""
        self._open_group_id = self.next_group_id()
        return self._open_group_id

    def end_group(self) -> None:
        self._open_group_id = None

    @contextmanager
    def grouped(self) -> Iterator[int]:
        group_id = self.begin_group()
        try:
            yield group_id
        finally:
            self.end_group()

    # --- Recording ---

    def _joinable_tail(self, group_id: int) -> Optional[HistoryStep]:
        if not self._available:
            return None
        tail = self._available[-1]
        if tail.info.group_id != group_id:
            return None
        root = self._root_group()
        if root is not None and not _same_step(root.last_recorded, tail.info):
            # Another stack committed after this step.
            return None
        return tail

    def record(
        self,
        record: UndoRecord,
        group_id: Optional[int] = None,
        coalesce: bool = False,
    ) -> Optional[UndoOperationInfo]:
        """
        Commits an already applied change.

        With `coalesce`, the last record of a joinable tail step absorbs
        `record` through `merge_with`; otherwise (or when it refuses) `record`
        is added to the step. Returns None only when recording is suppressed
        during an undo/redo dispatch.
        """
        if self.is_dispatching:
            logger.warning(
                "Ignoring %s recorded on stack '%s' during undo/redo dispatch",
                record.description,
                self.id,
            )
            return None

        if group_id is None:
            group_id = self._open_group_id if self._open_group_id is not None else self.next_group_id()
        else:
            self._last_group_id = max(self._last_group_id, group_id)

        step = self._joinable_tail(group_id)
        if step is not None:
            if not (coalesce and step.records[-1].merge_with(record)):
                record.info = step.info
                step.records.append(record)
        else:
            self._sequence += 1
            info = UndoOperationInfo(
                stack_id=self.id,
                group_id=group_id,
                description=record.description,
                sequence=self._sequence,
            )
            record.info = info
            step = HistoryStep(info=info, records=[record])
            self._available.append(step)
            self._trim()

        self._undone.clear()
        self._emit(UndoEvent(kind=UndoEventKind.OPERATION_RECORDED, source_id=self.id, operation=step.info))
        return step.info

    def execute(
        self,
        record: UndoRecord,
        group_id: Optional[int] = None,
        coalesce: bool = False,
    ) -> Optional[UndoOperationInfo]:
        """Applies `record` to the context, then commits it."""
        if self.is_dispatching:
            logger.warning(
                "Ignoring %s executed on stack '%s' during undo/redo dispatch",
                record.description,
                self.id,
            )
            return None
        record.redo(self.context)
        return self.record(record, group_id=group_id, coalesce=coalesce)

    def _trim(self) -> None:
        if self.max_depth <= 0:
            return
        while len(self._available) > self.max_depth:
            dropped = self._available.pop(0)
            logger.debug("Stack '%s' dropped oldest step %s", self.id, dropped.description)

    # --- Pending queue ---

    @property
    def pending_count(self) -> int:
        return self._pending.pending_count

    @property
    def has_pending_records(self) -> bool:
        return self._pending.has_pending_records

    def enqueue(self, candidate: UndoRecord, group_id: Optional[int] = None) -> Optional[int]:
        return self._pending.enqueue(candidate, group_id)

    def process_pending_queue(self) -> int:
        processed = self._pending.process_pending_queue()
        if processed > 0:
            self._emit(
                UndoEvent(
                    kind=UndoEventKind.QUEUE_PROCESSED,
                    source_id=self.id,
                    processed_count=processed,
                )
            )
        return processed

    # --- Undo / Redo ---

    @contextmanager
    def _dispatch_scope(self) -> Iterator[None]:
        """Blocks recording anywhere in the tree until the step's event is out."""
        root = self._root_group()
        self._dispatching = True
        if root is not None:
            root._dispatch_depth += 1
        try:
            yield
        finally:
            self._dispatching = False
            if root is not None:
                root._dispatch_depth -= 1

    def _apply(self, step: HistoryStep, undo: bool) -> bool:
        """Applies a whole step, or none of it."""
        records = list(reversed(step.records)) if undo else list(step.records)
        applied: List[UndoRecord] = []
        try:
            for record in records:
                if undo:
                    record.undo(self.context)
                else:
                    record.redo(self.context)
                applied.append(record)
        except Exception:
            logger.exception(
                "%s failed on stack '%s' for %s", "Undo" if undo else "Redo", self.id, step.description
            )
            self._roll_back(applied, undo)
            return False
        return True

    def _roll_back(self, applied: List[UndoRecord], undo: bool) -> None:
        for record in reversed(applied):
            try:
                if undo:
                    record.redo(self.context)
                else:
                    record.undo(self.context)
            except Exception:
                logger.exception("Rollback of %s failed on stack '%s'", record.description, self.id)

    def perform_undo(self) -> bool:
        if not self._available:
            return False

        step = self._available.pop()
        with self._dispatch_scope():
            if not self._apply(step, undo=True):
                self._available.append(step)
                return False
            self._undone.append(step)
            self._emit(UndoEvent(kind=UndoEventKind.UNDO_PERFORMED, source_id=self.id, operation=step.info))
        return True

    def perform_redo(self) -> bool:
        if not self._undone:
            return False

        step = self._undone.pop()
        with self._dispatch_scope():
            if not self._apply(step, undo=False):
                self._undone.append(step)
                return False
            self._available.append(step)
            self._emit(UndoEvent(kind=UndoEventKind.REDO_PERFORMED, source_id=self.id, operation=step.info))
        return True

    def clear(self) -> None:
        self._available.clear()
        self._undone.clear()
        dropped = self._pending.clear()
        if dropped:
            logger.debug("Stack '%s' discarded %d pending record(s) on clear", self.id, dropped)


def _same_step(a: Optional[UndoOperationInfo], b: Optional[UndoOperationInfo]) -> bool:
    return a is not None and b is not None and a.stack_id == b.stack_id and a.sequence == b.sequence
