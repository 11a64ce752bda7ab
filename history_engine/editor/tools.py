"""Editor history wiring and tools."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, Optional

from history_engine.config import get_history_config
from history_engine.core.group import UndoGroup
from history_engine.core.stack import UndoStack
from history_engine.editor.models import CameraState, MeshState, SelectionState, Vector3
from history_engine.editor.records import (
    CameraChangeRecord,
    MaterialAssignRecord,
    SelectionChangeRecord,
    VertexMoveRecord,
)

logger = logging.getLogger(__name__)

MESH_STACK = "mesh"
SELECTION_STACK = "selection"
CAMERA_STACK = "camera"
MATERIAL_STACK = "material"


class EditorHistory:
    """
    One undo stack per editor subsystem under a single root group.

    The root group orders Undo/Redo across the subsystems by commit order.
    Depth and resolution policy default to the environment configuration.
    """

    def __init__(
        self,
        mesh: MeshState,
        camera: CameraState,
        selection: Optional[SelectionState] = None,
        max_depth: Optional[int] = None,
    ):
        self.mesh = mesh
        self.camera = camera
        self.selection = selection or SelectionState()
        config = get_history_config()
        if max_depth is None:
            max_depth = config.max_depth
        self.root = UndoGroup("editor", display_name="Editor", resolution_policy=config.resolution_policy)
        self.mesh_stack = UndoStack(MESH_STACK, context=mesh, display_name="Mesh", max_depth=max_depth)
        self.selection_stack = UndoStack(
            SELECTION_STACK, context=self.selection, display_name="Selection", max_depth=max_depth
        )
        self.camera_stack = UndoStack(CAMERA_STACK, context=camera, display_name="Camera", max_depth=max_depth)
        self.material_stack = UndoStack(MATERIAL_STACK, context=mesh, display_name="Material", max_depth=max_depth)
        for stack in (self.mesh_stack, self.selection_stack, self.camera_stack, self.material_stack):
            self.root.add_child(stack)

    # --- Edits ---

    def move_vertices(self, indices: Iterable[int], delta: Vector3) -> bool:
        indices = [i for i in indices if 0 <= i < self.mesh.vertex_count]
        if not indices:
            return False
        old = [self.mesh.vertices[i] for i in indices]
        new = [p.add(delta) for p in old]
        return self.mesh_stack.execute(VertexMoveRecord(indices, old, new)) is not None

    def set_selection(self, vertices: Iterable[int]) -> bool:
        new_selection = set(vertices)
        if new_selection == self.selection.vertices:
            return False
        record = SelectionChangeRecord(self.selection.vertices, new_selection)
        return self.selection_stack.execute(record) is not None

    def set_camera(
        self,
        position: Optional[Vector3] = None,
        target: Optional[Vector3] = None,
        fov_deg: Optional[float] = None,
        group_id: Optional[int] = None,
    ) -> bool:
        """Changes the camera; calls sharing `group_id` collapse into one step."""
        before = self.camera.model_copy(deep=True)
        after = before.model_copy(deep=True)
        if position is not None:
            after.position = position
        if target is not None:
            after.target = target
        if fov_deg is not None:
            after.fov_deg = fov_deg
        if after == before:
            return False
        record = CameraChangeRecord(before, after)
        return self.camera_stack.execute(record, group_id=group_id, coalesce=group_id is not None) is not None

    def assign_material(self, face_indices: Iterable[int], material_id: Optional[str]) -> bool:
        faces = [f for f in face_indices if 0 <= f < len(self.mesh.face_materials)]
        if not faces:
            return False
        old_ids = [self.mesh.face_materials[f] for f in faces]
        return self.material_stack.execute(MaterialAssignRecord(faces, old_ids, material_id)) is not None

    # --- Undo surface ---

    @property
    def can_undo(self) -> bool:
        return self.root.can_undo

    @property
    def can_redo(self) -> bool:
        return self.root.can_redo

    def undo(self) -> bool:
        return self.root.perform_undo()

    def redo(self) -> bool:
        return self.root.perform_redo()

    def undo_label(self) -> Optional[str]:
        op = self.root.latest_operation
        return f"Undo {op.description}" if op is not None else None

    def redo_label(self) -> Optional[str]:
        op = self.root.next_redo_operation
        return f"Redo {op.description}" if op is not None else None

    def reset(self, mesh: Optional[MeshState] = None, camera: Optional[CameraState] = None) -> None:
        """Starts a new document: swaps in fresh state and drops all history."""
        if mesh is not None:
            self.mesh = mesh
            self.mesh_stack.context = mesh
            self.material_stack.context = mesh
        if camera is not None:
            self.camera = camera
            self.camera_stack.context = camera
        self.selection.vertices = set()
        self.root.clear()


# --- Tools ---

class ToolKind(str, Enum):
    SELECT = "select"
    MOVE = "move"


class EditorTool:
    def __init__(self, kind: ToolKind):
        self.kind = kind

    def on_begin(self, history: EditorHistory):
        pass

    def on_drag(self, history: EditorHistory, delta: Vector3):
        pass

    def on_end(self, history: EditorHistory):
        pass


class MoveTool(EditorTool):
    """
    Moves the selected vertices while dragging.

    Each drag event is applied right away and queued on the mesh stack; the
    whole drag is committed as one undo step when it ends.
    """

    def __init__(self):
        super().__init__(ToolKind.MOVE)
        self.group_id: Optional[int] = None
        self.drag_events = 0

    def on_begin(self, history: EditorHistory):
        self.group_id = history.mesh_stack.begin_group()
        self.drag_events = 0

    def on_drag(self, history: EditorHistory, delta: Vector3):
        indices = sorted(i for i in history.selection.vertices if 0 <= i < history.mesh.vertex_count)
        if not indices:
            return
        old = [history.mesh.vertices[i] for i in indices]
        new = [p.add(delta) for p in old]
        for index, position in zip(indices, new):
            history.mesh.set_vertex_position(index, position)
        history.mesh_stack.enqueue(VertexMoveRecord(indices, old, new), group_id=self.group_id)
        self.drag_events += 1

    def on_end(self, history: EditorHistory) -> int:
        flushed = history.mesh_stack.process_pending_queue()
        history.mesh_stack.end_group()
        logger.debug("Move drag committed %d event(s) as group %s", flushed, self.group_id)
        self.group_id = None
        return flushed


class SelectTool(EditorTool):
    """Box/rubber-band selection; intermediate selections collapse into one step."""

    def __init__(self):
        super().__init__(ToolKind.SELECT)

    def on_begin(self, history: EditorHistory):
        history.selection_stack.begin_group()

    def update(self, history: EditorHistory, vertices: Iterable[int]):
        new_selection = set(vertices)
        old_selection = set(history.selection.vertices)
        history.selection.vertices = new_selection
        history.selection_stack.enqueue(SelectionChangeRecord(old_selection, new_selection))

    def on_end(self, history: EditorHistory) -> int:
        flushed = history.selection_stack.process_pending_queue()
        history.selection_stack.end_group()
        return flushed
