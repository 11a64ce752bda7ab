"""Tests for the UndoGroup coordinator and its operation log."""
import random

import pytest

from history_engine.core.errors import DuplicateChildError, UndoTreeError
from history_engine.core.events import UndoEventKind
from history_engine.core.group import UndoGroup
from history_engine.core.models import OperationLogEntry, UndoResolutionPolicy
from history_engine.core.records import UndoRecord
from history_engine.core.stack import UndoStack


class Push(UndoRecord):
    """Appends a label to the stack's context list."""

    def __init__(self, label):
        self.label = label

    @property
    def description(self):
        return self.label

    def undo(self, context):
        assert context[-1] == self.label
        context.pop()

    def redo(self, context):
        context.append(self.label)


def make_tree(*stack_ids, policy=UndoResolutionPolicy.OPERATION_LOG):
    root = UndoGroup("root", resolution_policy=policy)
    stacks = {}
    for stack_id in stack_ids:
        stacks[stack_id] = UndoStack(stack_id, context=[], max_depth=0)
        root.add_child(stacks[stack_id])
    return root, stacks


def test_scenario_cross_stack_order():
    root, stacks = make_tree("A", "B")
    a, b = stacks["A"], stacks["B"]

    a1 = a.execute(Push("a1"))
    b1 = b.execute(Push("b1"))
    a2 = a.execute(Push("a2"))
    assert root.undo_log == (
        OperationLogEntry.from_operation(a1),
        OperationLogEntry.from_operation(b1),
        OperationLogEntry.from_operation(a2),
    )

    assert root.perform_undo() is True
    assert a.context == ["a1"]
    assert root.perform_undo() is True
    assert b.context == []
    assert root.perform_undo() is True
    assert a.context == []
    assert root.perform_undo() is False


def test_order_fidelity_random_interleaving():
    rng = random.Random(1234)
    root, stacks = make_tree("A", "B", "C", "D")
    committed = []
    for i in range(40):
        stack_id = rng.choice(sorted(stacks))
        label = f"{stack_id}{i}"
        stacks[stack_id].execute(Push(label))
        committed.append(label)

    undone = []
    while root.can_undo:
        label = root.latest_operation.description
        assert root.perform_undo() is True
        undone.append(label)

    assert undone == list(reversed(committed))
    assert all(s.context == [] for s in stacks.values())


def test_undo_redo_round_trip():
    root, stacks = make_tree("A", "B")
    stacks["A"].execute(Push("a1"))
    stacks["B"].execute(Push("b1"))
    stacks["A"].execute(Push("a2"))
    snapshot = {k: list(s.context) for k, s in stacks.items()}

    assert root.perform_undo()
    assert root.perform_redo()
    assert {k: list(s.context) for k, s in stacks.items()} == snapshot

    # Redo walks forward in commit order.
    root.perform_undo()
    root.perform_undo()
    root.perform_undo()
    assert root.perform_redo() and stacks["A"].context == ["a1"]
    assert root.perform_redo() and stacks["B"].context == ["b1"]
    assert root.perform_redo() and stacks["A"].context == ["a1", "a2"]
    assert root.perform_redo() is False


def test_undo_moves_one_entry_between_logs():
    root, stacks = make_tree("A", "B")
    stacks["A"].execute(Push("a1"))
    stacks["B"].execute(Push("b1"))

    root.perform_undo()
    assert len(root.undo_log) == 1
    assert len(root.redo_log) == 1
    assert root.redo_log[0].stack_id == "B"

    root.perform_redo()
    assert len(root.undo_log) == 2
    assert root.redo_log == ()


def test_record_anywhere_clears_redo():
    root, stacks = make_tree("A", "B")
    stacks["A"].execute(Push("a1"))
    stacks["B"].execute(Push("b1"))
    root.perform_undo()
    root.perform_undo()
    assert root.can_redo

    stacks["B"].execute(Push("b2"))
    assert root.can_redo is False
    assert root.perform_redo() is False
    # A's own redo pile is untouched, only the global horizon moved.
    assert stacks["A"].can_redo


def test_consecutive_same_group_coalesces_log_entry():
    root, stacks = make_tree("A", "B")
    stacks["A"].execute(Push("x"), group_id=5)
    stacks["A"].execute(Push("y"), group_id=5)
    assert [(e.stack_id, e.group_id) for e in root.undo_log] == [("A", 5)]
    assert stacks["A"].undo_count == 1

    stacks["B"].execute(Push("z"), group_id=5)
    stacks["A"].execute(Push("w"), group_id=5)
    assert len(root.undo_log) == 3


def test_same_group_after_other_commit_opens_new_step():
    root, stacks = make_tree("A", "B")
    stacks["A"].execute(Push("a1"), group_id=1)
    stacks["B"].execute(Push("b1"))
    root.perform_undo()
    assert root.can_redo

    stacks["A"].execute(Push("a2"), group_id=1)
    assert root.redo_log == ()
    assert [e.stack_id for e in root.undo_log] == ["A", "A"]
    assert stacks["A"].undo_count == 2

    assert root.perform_undo() is True
    assert stacks["A"].context == ["a1"]
    assert root.perform_undo() is True
    assert stacks["A"].context == []


def test_reused_group_id_split_by_other_stack_undoes_in_commit_order():
    root, stacks = make_tree("A", "B")
    a, b = stacks["A"], stacks["B"]
    a.execute(Push("a0"))
    b.execute(Push("b0"))
    a.execute(Push("a1"), group_id=5)
    b.execute(Push("b1"))
    a.execute(Push("a2"), group_id=5)
    assert [(e.stack_id, e.group_id) for e in root.undo_log] == [
        ("A", 1),
        ("B", 1),
        ("A", 5),
        ("B", 2),
        ("A", 5),
    ]

    undone = []
    while root.can_undo:
        undone.append(root.latest_operation.description)
        assert root.perform_undo() is True
    assert undone == ["a2", "b1", "a1", "b0", "a0"]
    assert a.context == [] and b.context == []

    while root.can_redo:
        assert root.perform_redo() is True
    assert a.context == ["a0", "a1", "a2"]
    assert b.context == ["b0", "b1"]



def test_remove_child_purges_log_and_never_resolves_removed():
    root, stacks = make_tree("A", "X")
    stacks["A"].execute(Push("a1"))
    stacks["X"].execute(Push("x1"))
    stacks["X"].execute(Push("x2"))

    assert root.remove_child(stacks["X"]) is True
    assert stacks["X"].parent is None
    assert all(e.stack_id != "X" for e in root.undo_log + root.redo_log)

    assert root.perform_undo() is True
    assert stacks["A"].context == []
    assert stacks["X"].context == ["x1", "x2"]
    assert root.perform_undo() is False


def test_stale_entry_for_cleared_stack_is_skipped():
    root, stacks = make_tree("A", "B")
    stacks["A"].execute(Push("a1"))
    stacks["B"].execute(Push("b1"))
    stacks["B"].clear()
    stacks["B"].context.clear()

    assert len(root.undo_log) == 2
    assert root.perform_undo() is True
    assert stacks["A"].context == []
    assert root.undo_log == ()
    assert root.perform_undo() is False


def test_stale_entry_for_detached_nested_stack_is_skipped():
    root = UndoGroup("root")
    inner = UndoGroup("inner")
    a = UndoStack("A", context=[], max_depth=0)
    x = UndoStack("X", context=[], max_depth=0)
    root.add_child(a)
    root.add_child(inner)
    inner.add_child(x)

    a.execute(Push("a1"))
    x.execute(Push("x1"))
    assert inner.remove_child("X") is True
    # Purge walks up to every ancestor log.
    assert [e.stack_id for e in root.undo_log] == ["A"]

    assert root.perform_undo() is True
    assert x.context == ["x1"]
    assert a.context == []


def test_removing_group_purges_descendant_entries():
    root = UndoGroup("root")
    inner = UndoGroup("inner")
    a = UndoStack("A", context=[], max_depth=0)
    x = UndoStack("X", context=[], max_depth=0)
    root.add_child(a)
    root.add_child(inner)
    inner.add_child(x)
    a.execute(Push("a1"))
    x.execute(Push("x1"))

    assert root.remove_child(inner) is True
    assert [e.stack_id for e in root.undo_log] == ["A"]


def test_remove_unknown_child_returns_false():
    root, stacks = make_tree("A")
    assert root.remove_child(None) is False
    assert root.remove_child("missing") is False
    assert root.remove_child(UndoStack("A", max_depth=0)) is False
    assert root.find_by_id("A") is stacks["A"]


def test_add_child_errors():
    root, stacks = make_tree("A")
    with pytest.raises(UndoTreeError):
        root.add_child(None)
    with pytest.raises(DuplicateChildError):
        root.add_child(UndoStack("A", max_depth=0))

    other = UndoGroup("other")
    with pytest.raises(UndoTreeError):
        other.add_child(stacks["A"])


def test_add_child_rejects_cycles():
    root = UndoGroup("root")
    inner = UndoGroup("inner")
    root.add_child(inner)
    with pytest.raises(UndoTreeError):
        inner.add_child(root)
    with pytest.raises(UndoTreeError):
        root.add_child(root)


def test_find_by_id_depth_first():
    root = UndoGroup("root")
    inner = UndoGroup("inner")
    deep = UndoStack("deep", max_depth=0)
    root.add_child(inner)
    inner.add_child(deep)

    assert root.find_by_id("deep") is deep
    assert root.find_by_id("inner") is inner
    assert root.find_by_id("") is None
    assert root.find_by_id(None) is None
    assert root.get_child("deep", UndoStack) is deep
    assert root.get_child("deep", UndoGroup) is None
    assert deep.parent is inner
    assert inner.parent is root


def test_nested_groups_share_global_order():
    root = UndoGroup("root")
    mesh = UndoGroup("mesh")
    a = UndoStack("A", context=[], max_depth=0)
    b = UndoStack("B", context=[], max_depth=0)
    c = UndoStack("C", context=[], max_depth=0)
    root.add_child(mesh)
    mesh.add_child(a)
    mesh.add_child(b)
    root.add_child(c)

    a.execute(Push("a1"))
    c.execute(Push("c1"))
    b.execute(Push("b1"))
    assert [e.stack_id for e in mesh.undo_log] == ["A", "B"]
    assert [e.stack_id for e in root.undo_log] == ["A", "C", "B"]

    root.perform_undo()
    assert b.context == []
    # The nested log follows undos dispatched from the root.
    assert [e.stack_id for e in mesh.undo_log] == ["A"]
    assert [e.stack_id for e in mesh.redo_log] == ["B"]

    root.perform_undo()
    root.perform_undo()
    assert a.context == [] and c.context == []
    assert root.perform_redo() and a.context == ["a1"]


def test_direct_stack_undo_keeps_logs_in_step():
    root, stacks = make_tree("A", "B")
    stacks["A"].execute(Push("a1"))
    stacks["B"].execute(Push("b1"))

    assert root.perform_undo_on("B") is True
    assert [e.stack_id for e in root.undo_log] == ["A"]
    assert [e.stack_id for e in root.redo_log] == ["B"]
    assert root.perform_redo_on("B") is True
    assert [e.stack_id for e in root.undo_log] == ["A", "B"]
    assert root.perform_undo_on("missing") is False


def test_direct_undo_below_log_tail_moves_matching_entry():
    root, stacks = make_tree("A", "B")
    stacks["A"].execute(Push("a1"))
    stacks["B"].execute(Push("b1"))

    assert root.perform_undo_on("A") is True
    assert [e.stack_id for e in root.undo_log] == ["B"]
    assert [e.stack_id for e in root.redo_log] == ["A"]

    assert root.perform_undo() is True
    assert stacks["B"].context == []
    assert root.perform_redo() is True
    assert stacks["B"].context == ["b1"]
    assert root.perform_redo() is True
    assert stacks["A"].context == ["a1"]


def test_record_from_undo_on_target_is_suppressed():
    root, stacks = make_tree("A", "B")
    a, b = stacks["A"], stacks["B"]

    class SideEffect(Push):
        def undo(self, context):
            super().undo(context)
            assert b.record(Push("side")) is None

    a.execute(SideEffect("a1"))
    assert root.perform_undo_on("A") is True
    assert b.undo_count == 0
    assert [e.stack_id for e in root.redo_log] == ["A"]
    assert not root.dispatching


def test_subscriber_on_directly_undone_stack_cannot_record_elsewhere():
    root, stacks = make_tree("A", "B")
    a, b = stacks["A"], stacks["B"]
    a.execute(Push("a1"))
    a.subscribe(lambda event: b.execute(Push("echo")), kinds=[UndoEventKind.UNDO_PERFORMED])

    assert a.perform_undo() is True
    assert b.context == []
    assert b.undo_count == 0
    assert [e.stack_id for e in root.redo_log] == ["A"]
    assert not root.dispatching


def test_latest_and_next_redo_operation():
    root, stacks = make_tree("A", "B")
    assert root.latest_operation is None
    stacks["A"].execute(Push("a1"))
    stacks["B"].execute(Push("b1"))
    assert root.latest_operation.description == "b1"

    root.perform_undo()
    assert root.latest_operation.description == "a1"
    assert root.next_redo_operation.description == "b1"


def test_clear_resets_everything():
    root, stacks = make_tree("A", "B")
    stacks["A"].execute(Push("a1"))
    stacks["B"].execute(Push("b1"))
    root.perform_undo()

    root.clear()
    assert root.undo_log == () and root.redo_log == ()
    assert not root.can_undo and not root.can_redo
    assert root.perform_undo() is False


def test_failing_target_does_not_raise():
    class Broken(UndoRecord):
        def undo(self, context):
            raise RuntimeError("broken")

        def redo(self, context):
            pass

    root, stacks = make_tree("A")
    stacks["A"].record(Broken())
    assert root.perform_undo() is False


def test_subscriber_recording_during_dispatch_is_suppressed():
    root, stacks = make_tree("A", "B")
    stacks["A"].execute(Push("a1"))
    stacks["B"].execute(Push("b1"))

    def echo(event):
        stacks["A"].execute(Push("echo"))

    stacks["B"].subscribe(echo)
    assert root.perform_undo() is True
    assert stacks["A"].context == ["a1"]
    assert [e.stack_id for e in root.redo_log] == ["B"]
    assert root.can_redo


def test_focus_priority_targets_focused_child():
    root, stacks = make_tree("A", "B", policy=UndoResolutionPolicy.FOCUS_PRIORITY)
    stacks["A"].execute(Push("a1"))
    stacks["B"].execute(Push("b1"))
    assert root.undo_log == ()
    assert root.can_undo is False

    root.focused_child_id = "A"
    assert root.can_undo
    assert root.perform_undo() is True
    assert stacks["A"].context == []
    assert stacks["B"].context == ["b1"]
    assert root.perform_undo() is False
    assert root.can_redo
    assert root.perform_redo() is True


def test_removing_focused_child_clears_focus():
    root, stacks = make_tree("A")
    root.focused_child_id = "A"
    root.remove_child("A")
    assert root.focused_child_id is None


def test_diagnostics():
    root, stacks = make_tree("A", "B")
    stacks["A"].execute(Push("a1"))
    stacks["B"].enqueue(Push("b1"))

    info = root.get_tree_info()
    assert "[group] root policy=operation_log" in info
    assert "[U-] A: A" in info
    assert "[pending: 1]" in info

    log_info = root.get_operation_log_info()
    assert "undo_log (1):" in log_info
    assert "stack=A" in log_info
    assert "redo_log (0):" in log_info
