"""Export pipeline: validate, collect, clip, merge and encode captured meshes."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from meshsnap.core.config import Config
from meshsnap.core.exceptions import ConfigurationError
from meshsnap.core.records import ClipBox, MeshRecord, RawMesh
from meshsnap.encoders import EncoderFactory, ExportFormat
from meshsnap.processing.clipper import BoxClipper
from meshsnap.processing.dedup import Deduplicator, format_fingerprint
from meshsnap.processing.merger import MeshMerger
from meshsnap.processing.transforms import expand_instances
from meshsnap.processing.validator import MeshValidator
from meshsnap.utils.logging import StageTimer, get_logger, log_export_result

logger = get_logger(__name__)


@dataclass
class ExportStats:
    """Counters describing what happened to the meshes of one session."""

    received: int = 0
    rejected: int = 0
    duplicates: int = 0
    decorations: int = 0
    collected: int = 0
    clipped_away: int = 0
    merged: int = 0
    exported: int = 0
    triangles: int = 0
    rejections: Dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ExportBatch:
    """Ordered, deduplicated collection of records for one export session.

    Only ``add`` and ``append`` mutate the batch. Encoders read ``records`` once the
    session is done; the pipeline then throws the batch away.
    """

    def __init__(self, dedup: Deduplicator):
        self.dedup = dedup
        self._records: List[MeshRecord] = []

    def add(self, record: MeshRecord, key: Optional[int] = None) -> bool:
        """Append a record unless its geometry was already collected.

        Args:
            record: Validated record
            key: Precomputed fingerprint of the record

        Returns:
            True if the record was added
        """
        if key is None:
            key = self.dedup.fingerprint(record)
        if self.dedup.seen(key):
            return False
        self.dedup.record(key)
        self._records.append(record)
        return True

    def append(self, record: MeshRecord) -> None:
        """Append a record without any duplicate check."""
        self._records.append(record)

    @property
    def records(self) -> tuple[MeshRecord, ...]:
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[MeshRecord]:
        return iter(self._records)


@dataclass
class ExportResult:
    """Encoded file contents plus what it took to produce them."""

    data: bytes
    format: ExportFormat
    stats: ExportStats
    metrics: Dict[str, float] = field(default_factory=dict)

    @property
    def mime_type(self) -> str:
        return self.format.mime_type

    @property
    def filename(self) -> str:
        return self.format.filename


class ExportPipeline:
    """Turns raw captured meshes into one encoded 3D model file."""

    def __init__(self, config: Optional[Config] = None):
        """Initialize pipeline.

        Args:
            config: Configuration object
        """
        self.config = config or Config()
        self.validator = MeshValidator(
            min_used_fraction=self.config.validation.min_used_fraction
        )
        self.merger = MeshMerger(key_separator=self.config.merge.key_separator)
        self.batch = self.new_batch()
        self.stats = ExportStats()

    def new_batch(self) -> ExportBatch:
        """Create an empty batch with a fresh deduplicator."""
        return ExportBatch(Deduplicator(skip=self.config.dedup.skip_fingerprints))

    def reset(self) -> None:
        """Discard the current session."""
        self.batch = self.new_batch()
        self.stats = ExportStats()

    def collect(self, raw_meshes: Iterable[Union[RawMesh, dict]]) -> ExportStats:
        """Validate raw meshes and add the usable ones to the batch.

        Invalid meshes are dropped and counted; the rest of the input is
        still processed.

        Args:
            raw_meshes: Raw meshes or capture dump dictionaries

        Returns:
            Running statistics of the session
        """
        stats = self.stats
        for raw in raw_meshes:
            if isinstance(raw, dict):
                raw = RawMesh.from_dict(raw)
            stats.received += 1

            report = self.validator.validate(raw)
            if not report.is_valid:
                stats.rejected += 1
                reason = report.reason.name
                stats.rejections[reason] = stats.rejections.get(reason, 0) + 1
                logger.warning("mesh_rejected", reason=report.reason.value, **report.details)
                continue
            for warning in report.warnings:
                logger.warning("mesh_sparse", detail=warning)

            # Decorations are recognised by their untransformed buffers
            base_key = self.batch.dedup.fingerprint(report.record)
            if self.batch.dedup.is_skipped(base_key):
                stats.decorations += 1
                logger.debug("decoration_skipped", fingerprint=format_fingerprint(base_key))
                continue

            for record in expand_instances(report.record, raw, self.config.merge.key_separator):
                self._add(record)
        return stats

    def _add(self, record: MeshRecord) -> None:
        stats = self.stats
        key = self.batch.dedup.fingerprint(record)
        if self.batch.dedup.is_skipped(key):
            stats.decorations += 1
            logger.debug("decoration_skipped", fingerprint=format_fingerprint(key))
        elif not self.config.dedup.enabled:
            self.batch.append(record)
            stats.collected += 1
        elif self.batch.add(record, key):
            stats.collected += 1
            logger.debug("mesh_collected", fingerprint=format_fingerprint(key), **record.summary())
        else:
            stats.duplicates += 1
            logger.debug("duplicate_skipped", fingerprint=format_fingerprint(key))

    def resolve_clip_box(self, clip_box: Optional[ClipBox] = None) -> Optional[ClipBox]:
        """Pick the clip box: an explicit one wins over the configured one."""
        if clip_box is not None:
            return clip_box
        if not self.config.clip.enabled:
            return None
        if self.config.clip.box is None:
            raise ConfigurationError("Clipping is enabled but no clip box is configured")
        return self.config.clip.box.to_clip_box()

    def process(
        self,
        clip_box: Optional[ClipBox] = None,
        merge: Optional[bool] = None,
    ) -> List[MeshRecord]:
        """Run the optional clip and merge stages over the collected records.

        The batch itself is left untouched.

        Args:
            clip_box: Clip bounds overriding the configured box
            merge: Override for ``config.merge.enabled``

        Returns:
            Records ready for encoding
        """
        records = list(self.batch)

        box = self.resolve_clip_box(clip_box)
        if box is not None:
            clipper = BoxClipper(
                box,
                mode=self.config.clip.mode,
                epsilon_scale=self.config.clip.epsilon_scale,
            )
            with StageTimer(logger, "clip", meshes=len(records)) as timer:
                clipped = [clipper.clip(r) for r in records]
                records = [r for r in clipped if not r.is_empty]
                self.stats.clipped_away += len(clipped) - len(records)
                timer.update_context(dropped=len(clipped) - len(records))

        if self.config.merge.enabled if merge is None else merge:
            with StageTimer(logger, "merge", meshes=len(records)) as timer:
                before = len(records)
                records = self.merger.merge(records)
                self.stats.merged += before - len(records)
                timer.update_context(remaining=len(records))

        return records

    def export(
        self,
        format_name: Optional[Union[str, ExportFormat]] = None,
        clip_box: Optional[ClipBox] = None,
        merge: Optional[bool] = None,
    ) -> ExportResult:
        """Encode the collected meshes and close the session.

        Args:
            format_name: Output format (defaults to ``config.export.format``)
            clip_box: Clip bounds overriding the configured box
            merge: Override for ``config.merge.enabled``

        Returns:
            ExportResult holding the file bytes

        Raises:
            EncodingError: If the encoder fails; the session is kept
        """
        format_name = format_name or self.config.export.format
        if isinstance(format_name, ExportFormat):
            export_format = format_name
        else:
            export_format = ExportFormat(format_name.lower())
        metrics: Dict[str, float] = {}

        with StageTimer(logger, "process") as timer:
            records = self.process(clip_box=clip_box, merge=merge)
        metrics["process_time"] = timer.duration

        encoder = EncoderFactory.create(export_format, object_name=self.config.export.object_name)
        with StageTimer(logger, "encode", format=export_format.value) as timer:
            data = encoder.encode(records)
        metrics["encode_time"] = timer.duration

        stats = self.stats
        stats.exported = len(records)
        stats.triangles = sum(r.triangle_count for r in records)

        result = ExportResult(data=data, format=export_format, stats=stats, metrics=metrics)
        log_export_result(logger, result)
        self.reset()
        return result


def export_meshes(
    raw_meshes: Iterable[Union[RawMesh, dict]],
    format_name: Union[str, ExportFormat] = "glb",
    clip_box: Optional[ClipBox] = None,
    config: Optional[Config] = None,
) -> ExportResult:
    """Convenience function running one complete export session.

    Args:
        raw_meshes: Raw meshes from the session data source
        format_name: Output format
        clip_box: Optional clip bounds (viewport box)
        config: Optional configuration

    Returns:
        ExportResult holding the file bytes
    """
    pipeline = ExportPipeline(config)
    pipeline.collect(raw_meshes)
    return pipeline.export(format_name, clip_box=clip_box)
