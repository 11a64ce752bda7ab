"""Editor state touched by undoable edits."""
from __future__ import annotations

from typing import List, Optional, Set

from pydantic import BaseModel, Field


class Vector3(BaseModel):
    x: float
    y: float
    z: float

    def add(self, other: Vector3) -> Vector3:
        return Vector3(x=self.x + other.x, y=self.y + other.y, z=self.z + other.z)

    def sub(self, other: Vector3) -> Vector3:
        return Vector3(x=self.x - other.x, y=self.y - other.y, z=self.z - other.z)

    def mul(self, scalar: float) -> Vector3:
        return Vector3(x=self.x * scalar, y=self.y * scalar, z=self.z * scalar)


class MeshState(BaseModel):
    id: str
    vertices: List[Vector3] = Field(default_factory=list)
    # Material id per face, None when unassigned.
    face_materials: List[Optional[str]] = Field(default_factory=list)

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    def set_vertex_position(self, index: int, position: Vector3) -> None:
        if 0 <= index < len(self.vertices):
            self.vertices[index] = position.model_copy()


class SelectionState(BaseModel):
    vertices: Set[int] = Field(default_factory=set)


class CameraState(BaseModel):
    position: Vector3
    target: Vector3
    fov_deg: float = 50.0
