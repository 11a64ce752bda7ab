"""Common base for the two undo tree node kinds (stack and group)."""
from __future__ import annotations

import abc
import weakref
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from history_engine.core.events import EventHub, UndoEvent, UndoEventHandler, UndoEventKind
from history_engine.core.models import UndoOperationInfo

if TYPE_CHECKING:
    from history_engine.core.group import UndoGroup


class UndoNode(abc.ABC):
    """
    A node of the undo tree.

    Ownership flows from the root down. The parent link is weak and is used
    only to bubble events upwards and to purge log entries on detach.
    """

    def __init__(self, node_id: str, display_name: Optional[str] = None):
        if not node_id:
            raise ValueError("node id must be a non-empty string")
        self.id = node_id
        self.display_name = display_name or node_id
        self.events = EventHub()
        self._parent_ref: Optional[weakref.ReferenceType] = None

    @property
    def parent(self) -> Optional[UndoGroup]:
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    def _set_parent(self, parent: Optional[UndoGroup]) -> None:
        self._parent_ref = weakref.ref(parent) if parent is not None else None

    def _root_group(self) -> Optional[UndoGroup]:
        """Topmost ancestor, or None for a detached node."""
        root = None
        parent = self.parent
        while parent is not None:
            root = parent
            parent = parent.parent
        return root

    def subscribe(
        self,
        handler: UndoEventHandler,
        kinds: Optional[Iterable[UndoEventKind]] = None,
    ) -> Callable[[], None]:
        return self.events.subscribe(handler, kinds)

    def _emit(self, event: UndoEvent) -> None:
        """Notifies local subscribers, then hands the event to the parent."""
        self.events.publish(event)
        parent = self.parent
        if parent is not None:
            parent._on_child_event(self, event)

    # --- Undo surface ---

    @property
    @abc.abstractmethod
    def can_undo(self) -> bool:
        pass

    @property
    @abc.abstractmethod
    def can_redo(self) -> bool:
        pass

    @property
    @abc.abstractmethod
    def latest_operation(self) -> Optional[UndoOperationInfo]:
        pass

    @property
    @abc.abstractmethod
    def next_redo_operation(self) -> Optional[UndoOperationInfo]:
        pass

    @abc.abstractmethod
    def perform_undo(self) -> bool:
        pass

    @abc.abstractmethod
    def perform_redo(self) -> bool:
        pass

    @abc.abstractmethod
    def clear(self) -> None:
        pass

    # --- Pending queue surface ---

    @property
    @abc.abstractmethod
    def pending_count(self) -> int:
        pass

    @property
    def has_pending_records(self) -> bool:
        return self.pending_count > 0

    @abc.abstractmethod
    def process_pending_queue(self) -> int:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"
