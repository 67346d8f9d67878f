"""Structured logging configuration using structlog."""

import logging
import sys
import time
from pathlib import Path
from typing import Any, Optional

import structlog
from structlog.processors import CallsiteParameter

from meshsnap.core.config import LoggingConfig

LOG_FILE_NAME = "meshsnap.log"


def _shared_processors(config: LoggingConfig) -> list:
    processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=config.timestamp_format),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if config.add_caller_info:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    CallsiteParameter.FILENAME,
                    CallsiteParameter.LINENO,
                    CallsiteParameter.FUNC_NAME,
                ],
            )
        )
    return processors


def _renderer(config: LoggingConfig):
    if config.format == "json":
        return structlog.processors.JSONRenderer()
    if config.format == "console":
        return structlog.dev.ConsoleRenderer(
            colors=config.colorize and sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )
    return structlog.processors.KeyValueRenderer(
        key_order=["timestamp", "level", "logger", "event"],
        drop_missing=True,
    )


def _formatter(shared: list, renderer) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def setup_logging(
    config: Optional[LoggingConfig] = None,
    log_file: Optional[Path] = None,
) -> structlog.stdlib.BoundLogger:
    """Route structlog and stdlib logging through one set of handlers.

    Module loggers created with ``logging.getLogger`` and structlog loggers
    end up rendered the same way. Files always receive JSON lines.

    Args:
        config: Logging configuration
        log_file: Explicit log file; otherwise ``log_dir/meshsnap.log`` is
            used when ``log_to_file`` is set

    Returns:
        Logger for the ``meshsnap`` namespace
    """
    config = config or LoggingConfig()
    shared = _shared_processors(config)

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_formatter(shared, _renderer(config)))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, config.level))

    if log_file is None and config.log_to_file and config.log_dir:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = config.log_dir / LOG_FILE_NAME

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(_formatter(shared, structlog.processors.JSONRenderer()))
        root_logger.addHandler(file_handler)

    logging.getLogger("trimesh").setLevel(logging.WARNING)

    return structlog.get_logger("meshsnap")


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)


def log_export_result(
    logger: structlog.stdlib.BoundLogger,
    result: Any,  # ExportResult
) -> None:
    """Log the outcome of one export.

    Args:
        logger: Logger instance
        result: Export result object
    """
    logger.info(
        "export_complete",
        format=result.format.value,
        filename=result.filename,
        size_bytes=len(result.data),
        **result.stats.as_dict(),
    )


class StageTimer:
    """Context manager that logs start, end and duration of a pipeline stage.

    Emits ``<stage>_started`` on entry and ``<stage>_completed`` or
    ``<stage>_failed`` on exit, the latter two with ``duration_ms``.
    Exceptions are never suppressed.
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        stage: str,
        **context: Any,
    ):
        self.logger = logger
        self.stage = stage
        self.context = context
        self.duration: float = 0.0
        self._start: Optional[float] = None

    def __enter__(self) -> "StageTimer":
        self._start = time.perf_counter()
        self.logger.debug(f"{self.stage}_started", **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration = time.perf_counter() - self._start
        duration_ms = round(self.duration * 1000, 2)
        if exc_type is None:
            self.logger.info(f"{self.stage}_completed", duration_ms=duration_ms, **self.context)
        else:
            self.logger.error(
                f"{self.stage}_failed",
                duration_ms=duration_ms,
                error=str(exc_val),
                error_type=exc_type.__name__,
                **self.context,
            )

    def update_context(self, **kwargs: Any) -> None:
        """Attach more fields to the completion event."""
        self.context.update(kwargs)
