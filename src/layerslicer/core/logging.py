"""
Structured logging for LayerSlicer.

Events are structlog key-value records (``logger.warning("cross_section_failed",
z=4.2, layer=13)``) rendered through the standard library handlers, so plain
``logging`` records from pyclipper helpers and trimesh share the same output.

While a layer is processed, :func:`layer_context` binds ``layer`` and ``z``
into the context, and every event logged inside the block carries them.

Usage::

    from layerslicer.core.logging import configure_logging, get_logger, layer_context

    configure_logging(level="INFO")
    logger = get_logger(__name__)
    with layer_context(12, 3.81):
        logger.info("shells_built", rings=3)
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog

# Mesh loading libraries that log per-file chatter at INFO/DEBUG
_NOISY_LIBRARIES = ("trimesh",)


def configure_logging(
    level: str = "WARNING",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure logging for a slicing run.

    Args:
        level: Minimum level for LayerSlicer events.
        json_output: Emit one JSON object per line instead of console text.
        log_file: Also write every record to this file.
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(format="%(message)s", level=log_level, handlers=handlers, force=True)
    for name in _NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )
    for handler in logging.root.handlers:
        handler.setFormatter(formatter)


@contextmanager
def layer_context(layer_no: int, z: float) -> Iterator[None]:
    """Bind ``layer`` and ``z`` to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(layer=layer_no, z=round(z, 4)):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
