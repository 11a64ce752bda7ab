"""Errors raised by the undo tree."""
from __future__ import annotations


class UndoTreeError(ValueError):
    """Raised when the undo tree is assembled incorrectly (caller fault)."""


class DuplicateChildError(UndoTreeError):
    def __init__(self, group_id: str, child_id: str):
        super().__init__(f"child with id '{child_id}' already exists in group '{group_id}'")
        self.group_id = group_id
        self.child_id = child_id
