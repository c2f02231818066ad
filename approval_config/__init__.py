"""
approval_config -- single public entrypoint for approval engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files directly.

Architecture position:
    Configuration.  This package sits above ``approval_kernel`` and below
    ``approval_services``.  The kernel MUST NEVER import from
    ``approval_config``; ``approval_config.bridges`` translates the parsed
    configuration into kernel domain objects.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ValueError`` / ``KeyError`` -- schema or structural validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``APPROVAL_CONFIG_TRACE`` log entry with the source path, checksum,
    and section sizes, tying engine behavior to an exact configuration.
"""

from __future__ import annotations

from pathlib import Path

from approval_config.loader import load_config
from approval_config.schema import ApprovalEngineConfig
from approval_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "approval_engine.yaml"


def get_active_config(path: Path | str | None = None) -> ApprovalEngineConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Override path to a configuration file.  Defaults to
            approval_config/defaults/approval_engine.yaml.

    Returns:
        ApprovalEngineConfig -- frozen, validated configuration.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_config(config_path)

    _logger.info(
        "APPROVAL_CONFIG_TRACE",
        extra={
            "trace_type": "APPROVAL_CONFIG_TRACE",
            "source": config.source,
            "checksum": config.checksum,
            "workflow_count": len(config.workflows),
            "document_mapping_count": len(config.document_status),
            "sweep_interval_seconds": config.engine.sweep_interval_seconds,
        },
    )
    return config


__all__ = ["ApprovalEngineConfig", "DEFAULT_CONFIG_PATH", "get_active_config"]
