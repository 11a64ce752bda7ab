"""Scene editor integration: per-subsystem stacks under one root group."""
from .models import CameraState, MeshState, SelectionState, Vector3
from .records import CameraChangeRecord, MaterialAssignRecord, SelectionChangeRecord, VertexMoveRecord
from .tools import EditorHistory, MoveTool, SelectTool, ToolKind

__all__ = [
    "CameraState", "MeshState", "SelectionState", "Vector3",
    "CameraChangeRecord", "MaterialAssignRecord", "SelectionChangeRecord", "VertexMoveRecord",
    "EditorHistory", "MoveTool", "SelectTool", "ToolKind",
]
