"""Undo records for mesh, selection, camera and material edits."""
from __future__ import annotations

from typing import List, Optional, Sequence, Set

from history_engine.core.records import SnapshotRecord, UndoRecord
from history_engine.editor.models import CameraState, MeshState, SelectionState, Vector3


class VertexMoveRecord(UndoRecord):
    """Stores vertex indices with their old and new positions."""

    def __init__(self, indices: Sequence[int], old_positions: Sequence[Vector3], new_positions: Sequence[Vector3]):
        if not (len(indices) == len(old_positions) == len(new_positions)):
            raise ValueError("indices and positions must have the same length")
        self.indices: List[int] = list(indices)
        self.old_positions = [p.model_copy() for p in old_positions]
        self.new_positions = [p.model_copy() for p in new_positions]

    @property
    def description(self) -> str:
        return "Move Vertex" if len(self.indices) == 1 else "Move Vertices"

    def undo(self, context: MeshState) -> None:
        for index, position in zip(self.indices, self.old_positions):
            context.set_vertex_position(index, position)

    def redo(self, context: MeshState) -> None:
        for index, position in zip(self.indices, self.new_positions):
            context.set_vertex_position(index, position)

    def merge_with(self, other: UndoRecord) -> bool:
        # Drag updates on the same vertex set collapse into one move.
        if not isinstance(other, VertexMoveRecord) or other.indices != self.indices:
            return False
        self.new_positions = [p.model_copy() for p in other.new_positions]
        return True


class SelectionChangeRecord(UndoRecord):
    def __init__(self, old_selection: Set[int], new_selection: Set[int]):
        self.old_selection = set(old_selection)
        self.new_selection = set(new_selection)

    @property
    def description(self) -> str:
        return "Change Selection"

    def undo(self, context: SelectionState) -> None:
        context.vertices = set(self.old_selection)

    def redo(self, context: SelectionState) -> None:
        context.vertices = set(self.new_selection)

    def merge_with(self, other: UndoRecord) -> bool:
        if not isinstance(other, SelectionChangeRecord):
            return False
        self.new_selection = set(other.new_selection)
        return True


def _apply_camera(context: CameraState, state: CameraState) -> None:
    context.position = state.position.model_copy()
    context.target = state.target.model_copy()
    context.fov_deg = state.fov_deg


class CameraChangeRecord(SnapshotRecord):
    """Before/after camera snapshot; consecutive camera edits merge."""

    def __init__(self, before: CameraState, after: CameraState, desc: str = "Change Camera"):
        super().__init__(
            before.model_copy(deep=True),
            after.model_copy(deep=True),
            _apply_camera,
            desc=desc,
            target="camera",
        )


class MaterialAssignRecord(UndoRecord):
    def __init__(self, face_indices: Sequence[int], old_material_ids: Sequence[Optional[str]], new_material_id: Optional[str]):
        if len(face_indices) != len(old_material_ids):
            raise ValueError("face_indices and old_material_ids must have the same length")
        self.face_indices = list(face_indices)
        self.old_material_ids = list(old_material_ids)
        self.new_material_id = new_material_id

    @property
    def description(self) -> str:
        return "Assign Material"

    def undo(self, context: MeshState) -> None:
        for face, material_id in zip(self.face_indices, self.old_material_ids):
            if 0 <= face < len(context.face_materials):
                context.face_materials[face] = material_id

    def redo(self, context: MeshState) -> None:
        for face in self.face_indices:
            if 0 <= face < len(context.face_materials):
                context.face_materials[face] = self.new_material_id
