"""Unit tests for the export pipeline."""

import struct

import numpy as np
import pytest

from meshsnap import ExportFormat, ExportPipeline, export_meshes
from meshsnap.core import Config, ConfigurationError, RawMesh
from meshsnap.core.pipeline import ExportBatch
from meshsnap.core.records import ClipBox, MeshRecord
from meshsnap.processing import Deduplicator, fingerprint, format_fingerprint


def broken_raw() -> RawMesh:
    return RawMesh(position=[0, 0, 0], normal=[0, 0, 1], indices=[0, 1, 2])


class TestExportBatch:
    """Test batch bookkeeping."""

    def test_add_deduplicates(self, triangle_record: MeshRecord):
        batch = ExportBatch(Deduplicator())

        assert batch.add(triangle_record)
        assert not batch.add(triangle_record)
        assert len(batch) == 1
        assert batch.records[0] is triangle_record

    def test_append_skips_check(self, triangle_record: MeshRecord):
        batch = ExportBatch(Deduplicator())
        batch.append(triangle_record)
        batch.append(triangle_record)

        assert len(list(batch)) == 2


class TestExportPipeline:
    """Test collection, processing and encoding."""

    def test_dedup_idempotence(self, test_config: Config, triangle_raw: RawMesh):
        """Test that the same geometry submitted twice is kept once."""
        pipeline = ExportPipeline(test_config)
        stats = pipeline.collect([triangle_raw, triangle_raw])

        assert len(pipeline.batch) == 1
        assert stats.received == 2
        assert stats.collected == 1
        assert stats.duplicates == 1

    def test_dedup_disabled(self, triangle_raw: RawMesh):
        pipeline = ExportPipeline(Config(dedup={"enabled": False}))
        pipeline.collect([triangle_raw, triangle_raw])

        assert len(pipeline.batch) == 2

    def test_rejection_does_not_abort(self, test_config: Config, triangle_raw: RawMesh):
        """Test that invalid meshes are dropped and the rest still exported."""
        pipeline = ExportPipeline(test_config)
        stats = pipeline.collect([broken_raw(), triangle_raw])

        assert stats.rejected == 1
        assert stats.rejections == {"INDEX_OUT_OF_RANGE": 1}
        assert len(pipeline.batch) == 1

    def test_uncoercible_mesh_does_not_abort(self, test_config: Config, triangle_raw: RawMesh):
        """Test that a ragged buffer is rejected without stopping the batch."""
        ragged = RawMesh(position=[[0, 0, 0], [1, 0]], normal=[0, 0, 1] * 2, indices=[0, 1, 1])
        pipeline = ExportPipeline(test_config)

        stats = pipeline.collect([ragged, triangle_raw])

        assert stats.rejected == 1
        assert stats.rejections == {"NON_NUMERIC_BUFFER": 1}
        assert len(pipeline.batch) == 1

    def test_accepts_dicts(self, test_config: Config):
        pipeline = ExportPipeline(test_config)
        pipeline.collect(
            [{"position": [0, 0, 0, 1, 0, 0, 0, 1, 0], "normal": [0, 0, 1] * 3, "indices": [0, 1, 2]}]
        )

        assert len(pipeline.batch) == 1

    def test_decorations_skipped(self, triangle_raw: RawMesh):
        """Test that fingerprints in the skip set never reach the batch."""
        key = format_fingerprint(fingerprint(MeshRecord(
            positions=triangle_raw.position,
            normals=triangle_raw.normal,
            indices=triangle_raw.indices,
        )))
        pipeline = ExportPipeline(Config(dedup={"skip_fingerprints": [key]}))
        stats = pipeline.collect([triangle_raw])

        assert stats.decorations == 1
        assert len(pipeline.batch) == 0

    def test_decorations_skipped_without_dedup(self, triangle_raw: RawMesh):
        key = format_fingerprint(fingerprint(MeshRecord(
            positions=triangle_raw.position,
            normals=triangle_raw.normal,
            indices=triangle_raw.indices,
        )))
        config = Config(dedup={"enabled": False, "skip_fingerprints": [key]})
        pipeline = ExportPipeline(config)
        pipeline.collect([triangle_raw])

        assert len(pipeline.batch) == 0

    def test_instances_merged(self, test_config: Config, instanced_raw: RawMesh):
        """Test that instances are expanded and merged back into one record."""
        pipeline = ExportPipeline(test_config)
        pipeline.collect([instanced_raw])

        assert len(pipeline.batch) == 3
        records = pipeline.process()
        assert len(records) == 1
        assert records[0].vertex_count == 9
        assert records[0].vertex_colors is not None
        assert pipeline.stats.merged == 2

    def test_merge_disabled(self, test_config: Config, instanced_raw: RawMesh):
        pipeline = ExportPipeline(test_config)
        pipeline.collect([instanced_raw])

        assert len(pipeline.process(merge=False)) == 3

    def test_clip_drops_empty_records(self, test_config: Config, instanced_raw: RawMesh):
        """Test that fully clipped instances leave the output."""
        pipeline = ExportPipeline(test_config)
        pipeline.collect([instanced_raw])

        records = pipeline.process(clip_box=ClipBox(-1, 1.5, -1, 2, -1, 1), merge=False)

        assert len(records) == 1
        assert pipeline.stats.clipped_away == 2

    def test_configured_clip_box(self, triangle_raw: RawMesh):
        config = Config(
            clip={
                "enabled": True,
                "box": {"xmin": -1, "xmax": 0.5, "ymin": -1, "ymax": 2, "zmin": -1, "zmax": 2},
            }
        )
        pipeline = ExportPipeline(config)
        pipeline.collect([triangle_raw])

        (record,) = pipeline.process()
        assert record.triangle_count == 2

    def test_clip_enabled_without_box(self, triangle_raw: RawMesh):
        pipeline = ExportPipeline(Config(clip={"enabled": True}))
        pipeline.collect([triangle_raw])

        with pytest.raises(ConfigurationError):
            pipeline.process()

    def test_export_resets_session(self, test_config: Config, triangle_raw: RawMesh):
        """Test that the batch is discarded after encoding."""
        pipeline = ExportPipeline(test_config)
        pipeline.collect([triangle_raw])

        result = pipeline.export("stl")

        assert len(result.data) == 84 + 50
        assert result.stats.exported == 1
        assert result.stats.triangles == 1
        assert result.filename == "model.stl"
        assert result.mime_type == "model/stl"
        assert "encode_time" in result.metrics
        assert len(pipeline.batch) == 0
        assert pipeline.stats.received == 0

        # a new session accepts the same geometry again
        pipeline.collect([triangle_raw])
        assert len(pipeline.batch) == 1

    def test_export_format_member(self, test_config: Config, triangle_raw: RawMesh):
        pipeline = ExportPipeline(test_config)
        pipeline.collect([triangle_raw])

        result = pipeline.export(ExportFormat.OBJ)

        assert result.format is ExportFormat.OBJ
        assert result.data.startswith(b"o meshsnap\n")

    def test_default_format_from_config(self, triangle_raw: RawMesh):
        pipeline = ExportPipeline(Config(export={"format": "stl"}))
        pipeline.collect([triangle_raw])

        assert pipeline.export().format is ExportFormat.STL

    def test_unknown_format(self, test_config: Config):
        with pytest.raises(ValueError):
            ExportPipeline(test_config).export("fbx")

    def test_export_meshes(self, triangle_raw: RawMesh):
        """Test the one-shot convenience function with the clip scenario."""
        result = export_meshes(
            [triangle_raw],
            "stl",
            clip_box=ClipBox(-1, 2, -1, 2, -1, 2),
        )

        assert struct.unpack_from("<I", result.data, 80)[0] == 1
        normal = struct.unpack_from("<3f", result.data, 84)
        vertices = struct.unpack_from("<9f", result.data, 96)
        assert normal == (0.0, 0.0, 1.0)
        np.testing.assert_array_equal(vertices, triangle_raw.position)

    def test_export_meshes_glb(self, cube_raw: RawMesh):
        result = export_meshes([cube_raw])

        assert result.format is ExportFormat.GLB
        assert result.data[:4] == b"glTF"
        assert struct.unpack_from("<I", result.data, 8)[0] == len(result.data)
