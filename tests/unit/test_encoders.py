"""Unit tests for the STL, OBJ and GLB encoders."""

import json
import struct

import numpy as np
import pytest

from meshsnap.core.exceptions import UnsupportedComponentType
from meshsnap.core.records import Material, MeshRecord
from meshsnap.encoders import (
    EncoderFactory,
    ExportFormat,
    GLBEncoder,
    OBJEncoder,
    STLEncoder,
    pack_components,
    pad_to_alignment,
    to_y_up,
)
from meshsnap.encoders.gltf import CHUNK_BIN, CHUNK_JSON


@pytest.fixture
def square_record() -> MeshRecord:
    return MeshRecord(
        positions=[0, 0, 0, 1, 0, 0, 1, 1, 0, 0, 1, 0],
        normals=[0, 0, 1] * 4,
        indices=[0, 1, 2, 0, 2, 3],
        material=Material(color=(0.5, 0.5, 0.5, 1.0), metalness=0.3, roughness=0.6),
    )


def parse_glb(data: bytes):
    """Split a GLB file into header fields, JSON document and binary chunk."""
    magic, version, length = struct.unpack_from("<4sII", data, 0)
    json_length, json_type = struct.unpack_from("<II", data, 12)
    document = json.loads(data[20 : 20 + json_length].decode("utf-8"))
    binary = b""
    offset = 20 + json_length
    if offset < len(data):
        bin_length, bin_type = struct.unpack_from("<II", data, offset)
        assert bin_type == CHUNK_BIN
        binary = data[offset + 8 : offset + 8 + bin_length]
    assert json_type == CHUNK_JSON
    return (magic, version, length, json_length), document, binary


class TestPacking:
    """Test byte packing helpers."""

    def test_pack_mixed_components(self):
        data = pack_components(["ab", 1, b"\x00\x01", np.array([2], dtype="<u2")])

        assert data == b"ab" + b"\x01\x00\x00\x00" + b"\x00\x01" + b"\x02\x00"

    @pytest.mark.parametrize("component", [1.5, True, None, [1, 2]])
    def test_unsupported_component(self, component):
        """Test that anything but text, integers and buffers is fatal."""
        with pytest.raises(UnsupportedComponentType):
            pack_components(["glTF", component])

    def test_pad_to_alignment(self):
        assert pad_to_alignment(b"abc") == b"abc\x00"
        assert pad_to_alignment(b"abcd") == b"abcd"
        assert pad_to_alignment(b"{}", 4, b" ") == b"{}  "

    def test_to_y_up(self):
        result = to_y_up(np.array([1.0, 2.0, 3.0, 0.0, 0.0, 0.0]))

        np.testing.assert_array_equal(result, [1, 3, -2, 0, 0, 0])
        assert result.dtype == np.float32
        assert not np.any(np.signbit(result[3:]))


class TestSTLEncoder:
    """Test binary STL output."""

    def test_size(self, triangle_record: MeshRecord, square_record: MeshRecord):
        """Test the 84 + 50 * N layout."""
        data = STLEncoder().encode([triangle_record, square_record])

        assert len(data) == 84 + 50 * 3
        assert struct.unpack_from("<I", data, 80)[0] == 3

    def test_empty(self):
        data = STLEncoder().encode([])

        assert len(data) == 84
        assert data[:80] == bytes(80)

    def test_facet_contents(self, triangle_record: MeshRecord):
        """Test the recomputed normal and unchanged vertex order."""
        data = STLEncoder().encode([triangle_record])
        values = struct.unpack_from("<12f", data, 84)

        assert values[:3] == (0.0, 0.0, 1.0)
        assert values[3:] == (0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0, 0.0)
        assert data[-2:] == b"\x00\x00"

    def test_normal_ignores_stored_normals(self, triangle_record: MeshRecord):
        flipped = triangle_record.with_geometry(
            triangle_record.positions,
            np.tile([0.0, 0.0, -1.0], 3),
            triangle_record.indices,
        )
        data = STLEncoder().encode([flipped])

        assert struct.unpack_from("<3f", data, 84) == (0.0, 0.0, 1.0)


class TestOBJEncoder:
    """Test OBJ text output."""

    def test_layout(self, triangle_record: MeshRecord, square_record: MeshRecord):
        text = OBJEncoder().encode([triangle_record, square_record]).decode("utf-8")
        lines = text.splitlines()

        assert lines[0] == "o meshsnap"
        tags = [line.split()[0] for line in lines[1:]]
        assert tags == ["v"] * 7 + ["vn"] * 7 + ["f"] * 3

    def test_index_continuity(self, triangle_record: MeshRecord, square_record: MeshRecord):
        """Test that the second record's faces start at v1 + 1."""
        text = OBJEncoder().encode_text([triangle_record, square_record])
        faces = [line for line in text.splitlines() if line.startswith("f ")]

        assert faces == [
            "f 1//1 2//2 3//3",
            "f 4//4 5//5 6//6",
            "f 4//4 6//6 7//7",
        ]

    def test_axis_remap(self, triangle_record: MeshRecord):
        lines = OBJEncoder().encode_text([triangle_record]).splitlines()

        assert lines[1:4] == ["v 0 0 0", "v 1 0 0", "v 0 0 -1"]
        assert lines[4] == "vn 0 1 0"

    def test_object_name(self, triangle_record: MeshRecord):
        text = OBJEncoder(object_name="scene").encode_text([triangle_record])

        assert text.startswith("o scene\n")


class TestGLBEncoder:
    """Test binary glTF output."""

    def test_length_consistency(self, triangle_record: MeshRecord, square_record: MeshRecord):
        """Test that the header length matches the chunk sizes."""
        data = GLBEncoder().encode([triangle_record, square_record])
        (magic, version, length, json_length), document, binary = parse_glb(data)

        assert magic == b"glTF"
        assert version == 2
        assert length == len(data)
        assert json_length % 4 == 0
        assert length == 12 + 8 + json_length + 8 + len(binary)
        assert document["buffers"][0]["byteLength"] == len(binary)

    def test_document(self, triangle_record: MeshRecord, square_record: MeshRecord):
        data = GLBEncoder().encode([triangle_record, square_record])
        _, document, _ = parse_glb(data)

        assert document["asset"]["version"] == "2.0"
        assert document["scene"] == 0
        assert document["scenes"][0]["nodes"] == [0, 1]
        assert len(document["meshes"]) == 2
        assert len(document["accessors"]) == 6

        primitive = document["meshes"][1]["primitives"][0]
        assert primitive["mode"] == 4
        assert set(primitive["attributes"]) == {"POSITION", "NORMAL"}

        indices = document["accessors"][primitive["indices"]]
        assert indices["componentType"] == 5125
        assert indices["count"] == 6
        assert indices["min"] == [0]
        assert indices["max"] == [3]

        material = document["materials"][1]
        assert material["doubleSided"] is True
        assert material["pbrMetallicRoughness"]["metallicFactor"] == pytest.approx(0.3)
        assert material["pbrMetallicRoughness"]["baseColorFactor"] == [0.5, 0.5, 0.5, 1.0]

    def test_buffer_views(self, triangle_record: MeshRecord):
        _, document, binary = parse_glb(GLBEncoder().encode([triangle_record]))

        targets = [view["target"] for view in document["bufferViews"]]
        assert targets == [34962, 34962, 34963]
        offsets = [view["byteOffset"] for view in document["bufferViews"]]
        assert offsets == [0, 36, 72]
        assert all(offset % 4 == 0 for offset in offsets)

        positions = np.frombuffer(binary[:36], dtype="<f4").reshape(-1, 3)
        np.testing.assert_array_equal(positions, [[0, 0, 0], [1, 0, 0], [0, 0, -1]])

    def test_position_bounds(self, triangle_record: MeshRecord):
        _, document, _ = parse_glb(GLBEncoder().encode([triangle_record]))
        position = document["accessors"][0]

        assert position["min"] == [0.0, 0.0, -1.0]
        assert position["max"] == [1.0, 0.0, 0.0]

    def test_vertex_colors(self, triangle_record: MeshRecord):
        colored = triangle_record.with_geometry(
            triangle_record.positions,
            triangle_record.normals,
            triangle_record.indices,
            [1, 0, 0, 0, 1, 0, 0, 0, 2],
        )
        _, document, binary = parse_glb(GLBEncoder().encode([colored]))

        attributes = document["meshes"][0]["primitives"][0]["attributes"]
        assert "COLOR_0" in attributes
        color = document["accessors"][attributes["COLOR_0"]]
        assert color["type"] == "VEC3"
        assert color["max"] == [1.0, 1.0, 1.0]

    def test_empty_records_skipped(self, triangle_record: MeshRecord):
        empty = triangle_record.with_geometry(np.empty(0), np.empty(0), np.empty(0))
        _, document, _ = parse_glb(GLBEncoder().encode([empty, triangle_record]))

        assert len(document["meshes"]) == 1

    def test_no_records(self):
        data = GLBEncoder().encode([])
        (_, _, length, json_length), document, binary = parse_glb(data)

        assert length == len(data) == 12 + 8 + json_length + 8
        assert binary == b""
        assert "meshes" not in document
        assert "buffers" not in document


class TestEncoderFactory:
    """Test encoder lookup."""

    @pytest.mark.parametrize(
        "name,encoder_class",
        [("stl", STLEncoder), ("OBJ", OBJEncoder), (ExportFormat.GLB, GLBEncoder)],
    )
    def test_create(self, name, encoder_class):
        assert isinstance(EncoderFactory.create(name), encoder_class)

    def test_unknown_format(self):
        with pytest.raises(ValueError) as exc_info:
            EncoderFactory.create("fbx")

        assert "Available" in str(exc_info.value)

    def test_available_formats(self):
        assert EncoderFactory.available_formats() == ["stl", "obj", "glb"]

    def test_register(self, monkeypatch):
        monkeypatch.setattr(EncoderFactory, "_encoders", dict(EncoderFactory._encoders))

        class NullEncoder(STLEncoder):
            def encode(self, records):
                return b""

        EncoderFactory.register("null", NullEncoder)

        assert isinstance(EncoderFactory.create("null"), NullEncoder)
        assert "null" in EncoderFactory.available_formats()

    @pytest.mark.parametrize(
        "fmt,filename,mime_type",
        [
            (ExportFormat.STL, "model.stl", "model/stl"),
            (ExportFormat.OBJ, "model.obj", "model/obj"),
            (ExportFormat.GLB, "model.glb", "model/gltf-binary"),
        ],
    )
    def test_export_format(self, fmt, filename, mime_type):
        assert fmt.filename == filename
        assert fmt.mime_type == mime_type


class TestGLBNonFinite:
    """Test that non-finite data never leaks into the JSON chunk."""

    @staticmethod
    def strict_json(data: bytes):
        json_length = struct.unpack_from("<I", data, 12)[0]

        def reject(constant):
            raise ValueError(f"non-standard JSON constant {constant}")

        return json.loads(data[20 : 20 + json_length], parse_constant=reject)

    def test_nan_vertex_bounds(self):
        record = MeshRecord(
            positions=[0, 0, 0, 1, 0, 0, 0, 1, np.nan],
            normals=[0, 0, 1] * 3,
            indices=[0, 1, 2],
        )

        document = self.strict_json(GLBEncoder().encode([record]))
        position = document["accessors"][0]

        assert position["min"] == [0.0, 0.0, 0.0]
        assert position["max"] == [1.0, 0.0, 0.0]

    def test_no_finite_vertex(self):
        record = MeshRecord(
            positions=[np.inf] * 9,
            normals=[0, 0, 1] * 3,
            indices=[0, 1, 2],
        )

        document = self.strict_json(GLBEncoder().encode([record]))

        assert document["accessors"][0]["min"] == [0.0, 0.0, 0.0]

    def test_nan_vertex_colors(self, triangle_record: MeshRecord):
        colored = triangle_record.with_geometry(
            triangle_record.positions,
            triangle_record.normals,
            triangle_record.indices,
            [np.nan, 0, 0, 0, 1, 0, 0, 0, 1],
        )

        document = self.strict_json(GLBEncoder().encode([colored]))
        attributes = document["meshes"][0]["primitives"][0]["attributes"]

        assert document["accessors"][attributes["COLOR_0"]]["min"] == [0.0, 0.0, 0.0]
