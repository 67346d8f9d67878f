"""Loading raw meshes from capture dumps and mesh files."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import trimesh

from meshsnap.core.exceptions import MeshLoadError
from meshsnap.core.records import ClipBox, RawMesh

logger = logging.getLogger(__name__)

# (x, y, z) Y-up -> (x, -z, y) Z-up, the inverse of the export remap
Y_UP_TO_Z_UP = np.array(
    [
        [1.0, 0.0, 0.0, 0.0],
        [0.0, 0.0, -1.0, 0.0],
        [0.0, 1.0, 0.0, 0.0],
        [0.0, 0.0, 0.0, 1.0],
    ]
)


@dataclass
class CaptureData:
    """Raw meshes of one capture plus the viewport bounds, if recorded."""

    meshes: List[RawMesh] = field(default_factory=list)
    bounds: Optional[ClipBox] = None


class MeshLoader:
    """Reads raw meshes for the export pipeline.

    Two kinds of input are understood: JSON capture dumps, either a list of
    mesh objects or ``{"meshes": [...], "bounds": {...}}``, and any mesh
    file ``trimesh`` can read. glTF input is Y-up and is rotated back into
    the Z-up engine convention.
    """

    MAX_FILE_SIZE = 1_000_000_000
    CAPTURE_EXTENSIONS = (".json",)
    MESH_EXTENSIONS = (".stl", ".obj", ".ply", ".off", ".glb", ".gltf")
    Y_UP_EXTENSIONS = (".glb", ".gltf")

    def load(self, file_path: Union[str, Path]) -> CaptureData:
        """Load raw meshes from a file.

        Args:
            file_path: Capture dump or mesh file

        Returns:
            CaptureData with the raw meshes in file order

        Raises:
            MeshLoadError: If the file cannot be read
        """
        file_path = Path(file_path)
        self._validate_file(file_path)

        try:
            if file_path.suffix.lower() in self.CAPTURE_EXTENSIONS:
                capture = self._load_capture(file_path)
            else:
                capture = self._load_mesh_file(file_path)
        except MeshLoadError:
            raise
        except Exception as e:
            raise MeshLoadError(file_path, str(e)) from e

        logger.info(f"Loaded {len(capture.meshes)} meshes from {file_path.name}")
        return capture

    def _validate_file(self, file_path: Path) -> None:
        if not file_path.exists():
            raise MeshLoadError(file_path, "File does not exist")
        if not file_path.is_file():
            raise MeshLoadError(file_path, "Path is not a file")

        file_size = file_path.stat().st_size
        if file_size == 0:
            raise MeshLoadError(file_path, "File is empty")
        if file_size > self.MAX_FILE_SIZE:
            raise MeshLoadError(
                file_path,
                f"File too large ({file_size / 1e9:.1f}GB > 1GB limit)",
            )

        suffix = file_path.suffix.lower()
        if suffix not in self.CAPTURE_EXTENSIONS + self.MESH_EXTENSIONS:
            raise MeshLoadError(file_path, f"Unsupported file extension: {file_path.suffix}")

    def _load_capture(self, file_path: Path) -> CaptureData:
        with open(file_path, encoding="utf-8") as f:
            data = json.load(f)

        bounds = None
        if isinstance(data, dict):
            if data.get("bounds") is not None:
                bounds = _bounds_from_json(data["bounds"])
            entries = data.get("meshes", [])
        else:
            entries = data
        if not isinstance(entries, list):
            raise MeshLoadError(file_path, "Expected a list of meshes")

        return CaptureData(meshes=[RawMesh.from_dict(e) for e in entries], bounds=bounds)

    def _load_mesh_file(self, file_path: Path) -> CaptureData:
        scene = trimesh.load(file_path, force="scene", process=False)
        y_up = file_path.suffix.lower() in self.Y_UP_EXTENSIONS

        meshes = []
        for node in scene.graph.nodes_geometry:
            transform, geometry_name = scene.graph[node]
            geometry = scene.geometry[geometry_name]
            if not isinstance(geometry, trimesh.Trimesh) or len(geometry.faces) == 0:
                logger.debug(f"Skipping non-triangle geometry {geometry_name}")
                continue

            matrix = np.asarray(transform, dtype=np.float64)
            if y_up:
                matrix = Y_UP_TO_Z_UP @ matrix

            meshes.append(
                RawMesh(
                    position=np.asarray(geometry.vertices, dtype=np.float32),
                    normal=np.asarray(geometry.vertex_normals, dtype=np.float32),
                    indices=np.asarray(geometry.faces, dtype=np.uint32),
                    color=_main_color(geometry),
                    model_matrix=None if np.allclose(matrix, np.eye(4)) else matrix.T.reshape(-1),
                    group_key=geometry_name,
                )
            )
        return CaptureData(meshes=meshes)


def _main_color(geometry: trimesh.Trimesh) -> Optional[List[float]]:
    visual = geometry.visual
    color = getattr(visual, "main_color", None)
    if color is None and getattr(visual, "material", None) is not None:
        color = getattr(visual.material, "main_color", None)
    if color is None:
        return None
    return (np.asarray(color, dtype=np.float64)[:4] / 255.0).tolist()


def _bounds_from_json(bounds: Union[dict, list]) -> ClipBox:
    if isinstance(bounds, dict):
        return ClipBox(**{k: float(bounds[k]) for k in ("xmin", "xmax", "ymin", "ymax", "zmin", "zmax")})
    return ClipBox.from_sequence(bounds)


def load_capture(file_path: Union[str, Path]) -> CaptureData:
    """Convenience function to load one input file.

    Raises:
        MeshLoadError: If the file cannot be read
    """
    return MeshLoader().load(file_path)
