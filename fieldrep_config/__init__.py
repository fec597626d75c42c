"""
fieldrep_config -- single public entrypoint for approval workflow configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``WorkflowConfig``: the
    submission rules, review figures, capability matrix and user-type
    mapping.

Architecture position:
    Configuration -- YAML-driven rules.  This package sits above
    ``fieldrep_kernel``; the kernel MUST NEVER import from
    ``fieldrep_config``.  Services receive the compiled pieces through
    their constructors.

Failure modes:
    - ``FileNotFoundError`` -- configuration file not found.
    - ``ValueError`` / ``KeyError`` -- schema failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``FIELDREP_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

from pathlib import Path

from fieldrep_config.loader import load_workflow_config
from fieldrep_config.schema import WorkflowConfig
from fieldrep_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration file
DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> WorkflowConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a configuration file.  Defaults to
            fieldrep_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_workflow_config(path)

    _logger.info(
        "FIELDREP_CONFIG_TRACE",
        extra={
            "trace_type": "FIELDREP_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "operation_count": len(config.capabilities),
            "user_type_count": len(config.user_types),
        },
    )
    return config


__all__ = ["WorkflowConfig", "get_active_config"]
