"""
Undo group: a composite node that arbitrates Undo/Redo across child stacks.

Ordering uses an operation log. Every commit notification that reaches the
group appends `(stack_id, group_id)` to the undo log, so the log order is the
order in which the group observed the commits. Undo/Redo always act on the
log tail. Wall-clock timestamps are never compared: two stacks recording in
the same tick would tie and the undo order would become undefined.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Set, Tuple, Type, TypeVar, Union

from history_engine.core.errors import DuplicateChildError, UndoTreeError
from history_engine.core.events import UndoEvent, UndoEventKind
from history_engine.core.models import OperationLogEntry, UndoOperationInfo, UndoResolutionPolicy
from history_engine.core.node import UndoNode
from history_engine.core.stack import UndoStack

logger = logging.getLogger(__name__)

NodeT = TypeVar("NodeT", bound=UndoNode)


class UndoGroup(UndoNode):
    """Owns child stacks and nested groups in a strict tree."""

    def __init__(
        self,
        node_id: str,
        display_name: Optional[str] = None,
        resolution_policy: UndoResolutionPolicy = UndoResolutionPolicy.OPERATION_LOG,
    ):
        super().__init__(node_id, display_name)
        self._children: List[UndoNode] = []
        self._focused_child_id: Optional[str] = None
        self._undo_log: List[OperationLogEntry] = []
        self._redo_log: List[OperationLogEntry] = []
        self._dispatch_depth = 0
        self._log_moved = False
        self._last_recorded: Optional[UndoOperationInfo] = None
        self.resolution_policy = resolution_policy

    # --- Tree maintenance ---

    @property
    def children(self) -> Tuple[UndoNode, ...]:
        return tuple(self._children)

    @property
    def dispatching(self) -> bool:
        return self._dispatch_depth > 0

    @property
    def last_recorded(self) -> Optional[UndoOperationInfo]:
        """The newest commit that bubbled through this group."""
        return self._last_recorded

    def add_child(self, child: UndoNode) -> None:
        if child is None:
            raise UndoTreeError(f"cannot add a null child to group '{self.id}'")
        if not isinstance(child, UndoNode):
            raise UndoTreeError(f"group '{self.id}' only accepts undo stacks and groups, got {type(child).__name__}")
        if any(c.id == child.id for c in self._children):
            raise DuplicateChildError(self.id, child.id)
        if child.parent is not None:
            raise UndoTreeError(f"node '{child.id}' already belongs to group '{child.parent.id}'")

        ancestor: Optional[UndoNode] = self
        while ancestor is not None:
            if ancestor is child:
                raise UndoTreeError(f"adding '{child.id}' to '{self.id}' would create a cycle")
            ancestor = ancestor.parent

        child._set_parent(self)
        self._children.append(child)

    def remove_child(self, child: Union[UndoNode, str, None]) -> bool:
        if child is None:
            return False
        child_id = child if isinstance(child, str) else child.id
        node = next((c for c in self._children if c.id == child_id), None)
        if node is None or (not isinstance(child, str) and node is not child):
            return False

        self._children.remove(node)
        node._set_parent(None)
        if self._focused_child_id == node.id:
            self._focused_child_id = None

        removed_ids = {node.id}
        if isinstance(node, UndoGroup):
            removed_ids.update(node._descendant_ids())

        group: Optional[UndoGroup] = self
        while group is not None:
            group._purge(removed_ids)
            group = group.parent
        return True

    def _descendant_ids(self) -> Set[str]:
        ids: Set[str] = set()
        for child in self._children:
            ids.add(child.id)
            if isinstance(child, UndoGroup):
                ids.update(child._descendant_ids())
        return ids

    def _purge(self, ids: Set[str]) -> None:
        before = len(self._undo_log) + len(self._redo_log)
        self._undo_log = [e for e in self._undo_log if e.stack_id not in ids]
        self._redo_log = [e for e in self._redo_log if e.stack_id not in ids]
        purged = before - len(self._undo_log) - len(self._redo_log)
        if purged:
            logger.debug("Group '%s' purged %d log entries for %s", self.id, purged, sorted(ids))

    def find_by_id(self, node_id: Optional[str]) -> Optional[UndoNode]:
        """Depth-first search; the first match wins."""
        if not node_id:
            return None
        for child in self._children:
            if child.id == node_id:
                return child
            if isinstance(child, UndoGroup):
                found = child.find_by_id(node_id)
                if found is not None:
                    return found
        return None

    def get_child(self, node_id: str, kind: Optional[Type[NodeT]] = None) -> Optional[NodeT]:
        node = self.find_by_id(node_id)
        if kind is not None and not isinstance(node, kind):
            return None
        return node

    # --- Focus ---

    @property
    def focused_child_id(self) -> Optional[str]:
        return self._focused_child_id

    @focused_child_id.setter
    def focused_child_id(self, value: Optional[str]) -> None:
        if value == self._focused_child_id:
            return
        self._focused_child_id = value
        self._emit(UndoEvent(kind=UndoEventKind.FOCUS_CHANGED, source_id=self.id, focused_child_id=value))

    # --- Operation log ---

    @property
    def undo_log(self) -> Tuple[OperationLogEntry, ...]:
        return tuple(self._undo_log)

    @property
    def redo_log(self) -> Tuple[OperationLogEntry, ...]:
        return tuple(self._redo_log)

    def _append_to_undo_log(self, info: UndoOperationInfo) -> None:
        if self.resolution_policy != UndoResolutionPolicy.OPERATION_LOG:
            return
        entry = OperationLogEntry.from_operation(info)
        if not self._undo_log or self._undo_log[-1] != entry:
            self._undo_log.append(entry)
        # A commit anywhere below invalidates the redo horizon.
        self._redo_log.clear()

    def _sync_log(self, event: UndoEvent) -> None:
        """Keeps this log in step with an undo/redo dispatched by someone else."""
        if self.resolution_policy != UndoResolutionPolicy.OPERATION_LOG:
            return
        if event.kind == UndoEventKind.UNDO_PERFORMED:
            source, target = self._undo_log, self._redo_log
        else:
            source, target = self._redo_log, self._undo_log
        for index in range(len(source) - 1, -1, -1):
            if source[index].matches(event.operation):
                target.append(source.pop(index))
                return

    def _on_child_event(self, child: UndoNode, event: UndoEvent) -> None:
        if event.kind == UndoEventKind.OPERATION_RECORDED and event.operation is not None:
            self._last_recorded = event.operation
            self._append_to_undo_log(event.operation)
        elif event.kind in (UndoEventKind.UNDO_PERFORMED, UndoEventKind.REDO_PERFORMED):
            if not self._log_moved:
                self._sync_log(event)
        self._emit(event)

    # --- Pending queues ---

    @property
    def pending_count(self) -> int:
        return sum(child.pending_count for child in self._children)

    @property
    def has_pending_records(self) -> bool:
        return any(child.has_pending_records for child in self._children)

    def process_pending_queue(self) -> int:
        """Flushes every descendant queue; returns the number of records flushed."""
        total = 0
        for child in list(self._children):
            total += child.process_pending_queue()
        if total > 0:
            self._emit(UndoEvent(kind=UndoEventKind.QUEUE_PROCESSED, source_id=self.id, processed_count=total))
        return total

    # --- Queries ---

    def _resolve(self, entry: OperationLogEntry, for_undo: bool) -> Optional[UndoStack]:
        """The stack whose tail step is exactly `entry`, if it still exists."""
        node = self.find_by_id(entry.stack_id)
        if not isinstance(node, UndoStack):
            return None
        return node if entry.matches(node.latest_operation if for_undo else node.next_redo_operation) else None

    def _first_resolvable(self, log: List[OperationLogEntry], for_undo: bool) -> Optional[UndoStack]:
        for entry in reversed(log):
            node = self._resolve(entry, for_undo)
            if node is not None:
                return node
        return None

    def _focused_node(self) -> Optional[UndoNode]:
        return self.find_by_id(self._focused_child_id)

    @property
    def can_undo(self) -> bool:
        if self.resolution_policy == UndoResolutionPolicy.FOCUS_PRIORITY:
            focused = self._focused_node()
            return focused is not None and (focused.can_undo or focused.has_pending_records)
        return self.has_pending_records or self._first_resolvable(self._undo_log, for_undo=True) is not None

    @property
    def can_redo(self) -> bool:
        if self.resolution_policy == UndoResolutionPolicy.FOCUS_PRIORITY:
            focused = self._focused_node()
            return focused is not None and focused.can_redo
        return self._first_resolvable(self._redo_log, for_undo=False) is not None

    @property
    def latest_operation(self) -> Optional[UndoOperationInfo]:
        self.process_pending_queue()
        if self.resolution_policy == UndoResolutionPolicy.FOCUS_PRIORITY:
            focused = self._focused_node()
            return focused.latest_operation if focused is not None else None
        node = self._first_resolvable(self._undo_log, for_undo=True)
        return node.latest_operation if node is not None else None

    @property
    def next_redo_operation(self) -> Optional[UndoOperationInfo]:
        self.process_pending_queue()
        if self.resolution_policy == UndoResolutionPolicy.FOCUS_PRIORITY:
            focused = self._focused_node()
            return focused.next_redo_operation if focused is not None else None
        node = self._first_resolvable(self._redo_log, for_undo=False)
        return node.next_redo_operation if node is not None else None

    # --- Undo / Redo ---

    def perform_undo(self) -> bool:
        self.process_pending_queue()
        if self.resolution_policy == UndoResolutionPolicy.FOCUS_PRIORITY:
            return self._perform_focused(for_undo=True)
        return self._perform_from_log(for_undo=True)

    def perform_redo(self) -> bool:
        self.process_pending_queue()
        if self.resolution_policy == UndoResolutionPolicy.FOCUS_PRIORITY:
            return self._perform_focused(for_undo=False)
        return self._perform_from_log(for_undo=False)

    def _perform_from_log(self, for_undo: bool) -> bool:
        source, target_log = (self._undo_log, self._redo_log) if for_undo else (self._redo_log, self._undo_log)
        while source:
            entry = source.pop()
            node = self._resolve(entry, for_undo)
            if node is None:
                # Stack removed, cleared or trimmed since the entry was logged.
                logger.debug(
                    "Group '%s' discarded stale %s entry %s/%s",
                    self.id,
                    "undo" if for_undo else "redo",
                    entry.stack_id,
                    entry.group_id,
                )
                continue
            target_log.append(entry)
            return self._dispatch(node, for_undo, log_moved=True)
        return False

    def _perform_focused(self, for_undo: bool) -> bool:
        focused = self._focused_node()
        if focused is None or not (focused.can_undo if for_undo else focused.can_redo):
            return False
        return self._dispatch(focused, for_undo)

    def _dispatch(self, node: UndoNode, for_undo: bool, log_moved: bool = False) -> bool:
        self._dispatch_depth += 1
        self._log_moved = log_moved
        try:
            return node.perform_undo() if for_undo else node.perform_redo()
        except Exception:
            logger.exception("Group '%s' failed to dispatch %s to '%s'", self.id, "undo" if for_undo else "redo", node.id)
            return False
        finally:
            self._dispatch_depth -= 1
            self._log_moved = False

    def perform_undo_on(self, node_id: str) -> bool:
        node = self.find_by_id(node_id)
        return self._dispatch(node, for_undo=True) if node is not None else False

    def perform_redo_on(self, node_id: str) -> bool:
        node = self.find_by_id(node_id)
        return self._dispatch(node, for_undo=False) if node is not None else False

    def clear(self) -> None:
        for child in self._children:
            child.clear()
        self._undo_log.clear()
        self._redo_log.clear()
        self._last_recorded = None

    # --- Diagnostics ---

    def get_tree_info(self, indent: int = 0) -> str:
        prefix = "  " * indent
        focus = f" (focus: {self._focused_child_id})" if self._focused_child_id else ""
        pending = f" [pending: {self.pending_count}]" if self.pending_count else ""
        lines = [
            f"{prefix}[group] {self.id} policy={self.resolution_policy.value}{focus}{pending}"
            f" [undo_log: {len(self._undo_log)}, redo_log: {len(self._redo_log)}]"
        ]
        for child in self._children:
            if isinstance(child, UndoGroup):
                lines.append(child.get_tree_info(indent + 1))
                continue
            flags = ("U" if child.can_undo else "-") + ("R" if child.can_redo else "-")
            child_pending = f" [pending: {child.pending_count}]" if child.pending_count else ""
            lines.append(f"{prefix}  [{flags}] {child.id}: {child.display_name}{child_pending}")
        return "\n".join(lines)

    def get_operation_log_info(self) -> str:
        lines = [f"undo_log ({len(self._undo_log)}):"]
        lines.extend(f"  [{i}] stack={e.stack_id} group={e.group_id} step={e.sequence}" for i, e in enumerate(self._undo_log))
        lines.append(f"redo_log ({len(self._redo_log)}):")
        lines.extend(f"  [{i}] stack={e.stack_id} group={e.group_id} step={e.sequence}" for i, e in enumerate(self._redo_log))
        return "\n".join(lines)
