"""History records: reversible units of change owned by one stack."""
from __future__ import annotations

import abc
from typing import Any, Callable, List, Optional, Sequence

from history_engine.core.models import UndoOperationInfo


class UndoRecord(abc.ABC):
    """
    Abstract base class for a reversible change.

    A record describes a change that has already been applied. `undo` puts the
    context back into its previous state and `redo` re-applies the change.
    The owning stack stamps `info` when the record is committed.
    """

    info: Optional[UndoOperationInfo] = None

    @property
    def description(self) -> str:
        return type(self).__name__

    @abc.abstractmethod
    def undo(self, context: Any) -> None:
        """Reverts the change."""
        pass

    @abc.abstractmethod
    def redo(self, context: Any) -> None:
        """Re-applies the change."""
        pass

    def merge_with(self, other: UndoRecord) -> bool:
        """
        Absorbs `other`, which happened right after this record.

        Returns True when this record now covers both changes. Records do not
        merge by default.
        """
        return False


class CallbackRecord(UndoRecord):
    """Record built from a do/undo pair of callables; the context is ignored."""

    def __init__(self, do_fn: Callable[[], None], undo_fn: Callable[[], None], desc: str = ""):
        self.do_fn = do_fn
        self.undo_fn = undo_fn
        self.desc = desc

    @property
    def description(self) -> str:
        return self.desc or super().description

    def undo(self, context: Any) -> None:
        self.undo_fn()

    def redo(self, context: Any) -> None:
        self.do_fn()


class SnapshotRecord(UndoRecord):
    """
    Before/after snapshot record.

    `apply_fn(context, state)` writes a snapshot back into the context.
    Merging keeps the earliest `before` and takes the latest `after`, so a
    burst of updates to the same target collapses into one step.
    """

    def __init__(
        self,
        before: Any,
        after: Any,
        apply_fn: Callable[[Any, Any], None],
        desc: str = "",
        target: Optional[str] = None,
    ):
        self.before = before
        self.after = after
        self.apply_fn = apply_fn
        self.desc = desc
        self.target = target

    @property
    def description(self) -> str:
        return self.desc or super().description

    def undo(self, context: Any) -> None:
        self.apply_fn(context, self.before)

    def redo(self, context: Any) -> None:
        self.apply_fn(context, self.after)

    def merge_with(self, other: UndoRecord) -> bool:
        if not isinstance(other, SnapshotRecord):
            return False
        if other.apply_fn is not self.apply_fn or other.target != self.target:
            return False
        self.after = other.after
        return True


class CompositeRecord(UndoRecord):
    """Several records treated as one step: undone in reverse, redone in order."""

    def __init__(self, records: Sequence[UndoRecord], desc: str = ""):
        self.records: List[UndoRecord] = list(records)
        self.desc = desc

    @property
    def description(self) -> str:
        if self.desc:
            return self.desc
        if self.records:
            return self.records[-1].description
        return super().description

    def undo(self, context: Any) -> None:
        for record in reversed(self.records):
            record.undo(context)

    def redo(self, context: Any) -> None:
        for record in self.records:
            record.redo(context)

    def merge_with(self, other: UndoRecord) -> bool:
        if self.records and self.records[-1].merge_with(other):
            return True
        self.records.append(other)
        return True


def merge_records(records: Sequence[UndoRecord], desc: str = "") -> UndoRecord:
    """
    Collapses a run of consecutive records into a single record.

    Adjacent records are merged pairwise through `merge_with`; when a record
    refuses, the run is wrapped in a CompositeRecord so nothing is lost.
    """
    if not records:
        raise ValueError("at least one record is required")

    merged: List[UndoRecord] = [records[0]]
    for record in records[1:]:
        if not merged[-1].merge_with(record):
            merged.append(record)

    if len(merged) == 1:
        return merged[0]
    return CompositeRecord(merged, desc=desc)
