"""Undo history models."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UndoResolutionPolicy(str, Enum):
    """How a group picks the child that serves an Undo/Redo call.

    Ordering by wall-clock timestamps is deliberately absent: two stacks
    recording inside one clock tick compare equal and the resulting order is
    undefined, which corrupts cross-stack undo.
    """

    OPERATION_LOG = "operation_log"
    # Valid only while at most one child can record at a time.
    FOCUS_PRIORITY = "focus_priority"


class UndoOperationInfo(BaseModel):
    """Describes one committed record. `recorded_at` is for display only."""

    stack_id: str
    group_id: int
    description: str = ""
    sequence: int = 0
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class OperationLogEntry(BaseModel):
    """
    Non-owning reference to the stack/group that produced a change.

    `sequence` is the step number inside the stack, so two steps of the same
    group split by another stack's commit stay distinct entries.
    """

    model_config = ConfigDict(frozen=True)

    stack_id: str
    group_id: int
    sequence: int = 0

    @classmethod
    def from_operation(cls, info: UndoOperationInfo) -> OperationLogEntry:
        return cls(stack_id=info.stack_id, group_id=info.group_id, sequence=info.sequence)

    def matches(self, info: Optional[UndoOperationInfo]) -> bool:
        return (
            info is not None
            and info.stack_id == self.stack_id
            and info.group_id == self.group_id
            and info.sequence == self.sequence
        )
