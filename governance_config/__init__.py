"""
governance_config -- single public entrypoint for workflow configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration at
    runtime.  It loads the YAML configuration set, validates it, and returns
    a frozen ``GovernanceConfig``.

Architecture position:
    Configuration -- sits above ``governance_kernel`` and below
    ``governance_services`` / ``governance_batch``.  The kernel MUST NEVER
    import from this package.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - Load-time validation: a configuration with structural errors is never
      returned.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``InvalidWorkflowConfigError`` -- validation failed.
    - ``KeyError`` / ``ValueError`` -- required key missing or unknown enum
      value in the YAML.
"""

from __future__ import annotations

import logging
from pathlib import Path

from governance_config.loader import load_config
from governance_config.schema import (
    DeadlinePolicy,
    GovernanceConfig,
    NotificationPolicy,
    VotingPolicy,
)
from governance_config.validator import validate_configuration
from governance_kernel.exceptions import InvalidWorkflowConfigError

_logger = logging.getLogger("governance_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> GovernanceConfig:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned config has passed ``validate_configuration``.
        - A ``GOVERNANCE_CONFIG_TRACE`` log entry is emitted on every
          successful call.

    Non-goals:
        - No caching; callers hold the returned config.

    Args:
        config_path: Override path to a YAML configuration set.  Defaults
            to governance_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        InvalidWorkflowConfigError: If validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_config(path)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise InvalidWorkflowConfigError(validation.errors)
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"warning": warning})

    _logger.info(
        "GOVERNANCE_CONFIG_TRACE",
        extra={
            "trace_type": "GOVERNANCE_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "workflow_versions": sorted(config.workflows),
            "revote_policy": config.voting.revote_policy.value,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DeadlinePolicy",
    "GovernanceConfig",
    "NotificationPolicy",
    "VotingPolicy",
    "get_active_config",
]
