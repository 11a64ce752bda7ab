"""Multi-stack undo/redo coordination for the scene editor."""
from history_engine.config import HistoryConfig, get_history_config
from history_engine.core.errors import DuplicateChildError, UndoTreeError
from history_engine.core.events import EventHub, UndoEvent, UndoEventKind
from history_engine.core.group import UndoGroup
from history_engine.core.models import OperationLogEntry, UndoOperationInfo, UndoResolutionPolicy
from history_engine.core.node import UndoNode
from history_engine.core.pending import PendingQueue
from history_engine.core.records import (
    CallbackRecord,
    CompositeRecord,
    SnapshotRecord,
    UndoRecord,
    merge_records,
)
from history_engine.core.stack import HistoryStep, UndoStack

__all__ = [
    "CallbackRecord",
    "CompositeRecord",
    "DuplicateChildError",
    "EventHub",
    "HistoryConfig",
    "HistoryStep",
    "OperationLogEntry",
    "PendingQueue",
    "SnapshotRecord",
    "UndoEvent",
    "UndoEventKind",
    "UndoGroup",
    "UndoNode",
    "UndoOperationInfo",
    "UndoRecord",
    "UndoResolutionPolicy",
    "UndoStack",
    "UndoTreeError",
    "get_history_config",
    "merge_records",
]
