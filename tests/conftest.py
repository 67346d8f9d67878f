"""Shared test fixtures and configuration."""

import json
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import numpy as np
import pytest
import trimesh

from meshsnap.core import Config, MeshRecord, RawMesh


def translation(x: float, y: float, z: float) -> list[float]:
    """Column-major 4x4 translation, flattened."""
    matrix = np.eye(4)
    matrix[:3, 3] = [x, y, z]
    return matrix.T.reshape(-1).tolist()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path)


@pytest.fixture
def test_config() -> Config:
    """Create a test configuration."""
    return Config(
        logging={"level": "WARNING", "colorize": False},
    )


@pytest.fixture
def triangle_raw() -> RawMesh:
    """Unit right triangle in the z=0 plane facing +z."""
    return RawMesh(
        position=[0, 0, 0, 1, 0, 0, 0, 1, 0],
        normal=[0, 0, 1, 0, 0, 1, 0, 0, 1],
        indices=[0, 1, 2],
        color=[1.0, 0.0, 0.0],
        metalness=0.1,
        roughness=0.8,
    )


@pytest.fixture
def triangle_record() -> MeshRecord:
    """Validated form of the unit triangle."""
    return MeshRecord(
        positions=[0, 0, 0, 1, 0, 0, 0, 1, 0],
        normals=[0, 0, 1, 0, 0, 1, 0, 0, 1],
        indices=[0, 1, 2],
    )


@pytest.fixture
def cube_mesh() -> trimesh.Trimesh:
    """Create a unit cube centered at the origin."""
    return trimesh.creation.box(extents=[1, 1, 1])


@pytest.fixture
def cube_record(cube_mesh: trimesh.Trimesh) -> MeshRecord:
    """Cube as a mesh record."""
    return MeshRecord(
        positions=cube_mesh.vertices,
        normals=cube_mesh.vertex_normals,
        indices=cube_mesh.faces,
    )


@pytest.fixture
def cube_raw(cube_mesh: trimesh.Trimesh) -> RawMesh:
    """Cube as a raw captured mesh."""
    return RawMesh(
        position=cube_mesh.vertices.reshape(-1).tolist(),
        normal=cube_mesh.vertex_normals.reshape(-1).tolist(),
        indices=cube_mesh.faces.reshape(-1).tolist(),
        color=[0.2, 0.4, 0.6, 1.0],
        group_key="cube",
    )


@pytest.fixture
def instanced_raw(triangle_raw: RawMesh) -> RawMesh:
    """The unit triangle drawn three times along x with different colors."""
    triangle_raw.instance_matrices = (
        translation(0, 0, 0) + translation(2, 0, 0) + translation(4, 0, 0)
    )
    triangle_raw.instance_colors = [1, 0, 0, 0, 1, 0, 0, 0, 1]
    triangle_raw.group_key = "glyph"
    return triangle_raw


@pytest.fixture
def capture_path(temp_dir: Path, triangle_raw: RawMesh, cube_raw: RawMesh) -> Path:
    """Capture dump holding a triangle, a cube and one malformed mesh."""
    meshes = [
        {
            "position": triangle_raw.position,
            "normal": triangle_raw.normal,
            "indices": triangle_raw.indices,
            "color": triangle_raw.color,
        },
        {
            "positions": cube_raw.position,
            "normals": cube_raw.normal,
            "indices": cube_raw.indices,
            "groupKey": "cube",
        },
        {"position": [0, 0, 0], "normal": [0, 0, 1], "indices": [0, 1, 2]},
    ]
    path = temp_dir / "capture.json"
    path.write_text(
        json.dumps(
            {
                "meshes": meshes,
                "bounds": {"xmin": -1, "xmax": 2, "ymin": -1, "ymax": 2, "zmin": -1, "zmax": 2},
            }
        )
    )
    return path


# Markers for different test categories
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test multiple components"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 1 second"
    )
