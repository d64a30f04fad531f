"""
mo_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the only way to obtain configuration at runtime through
    ``get_active_config()``.  Services never read YAML files or
    environment variables themselves; they receive a ``ProductionConfig``
    (or one of its sections) through their constructor.

Architecture position:
    Configuration.  Sits beside ``mo_kernel`` and below ``mo_services``.
    The kernel never imports from ``mo_config``; the facade translates
    config values into kernel constructor arguments.

Failure modes:
    - ``FileNotFoundError`` -- configuration file missing.
    - ``KeyError`` / ``ValueError`` -- schema violations.

Audit relevance:
    Every successful ``get_active_config()`` call logs ``mo_config_loaded``
    with config_id, version and checksum, tying closure decisions to the
    exact thresholds that governed them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from mo_config.loader import load_production_config
from mo_config.schema import (
    AlertThresholds,
    ClosureRules,
    PalletSettings,
    ProductionConfig,
    ProgressSettings,
)

_logger = logging.getLogger("mo_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "production.yaml"


def get_active_config(config_path: Path | None = None) -> ProductionConfig:
    """The only public configuration entrypoint.

    Args:
        config_path: Override path to a production YAML file.  Defaults to
            ``mo_config/defaults/production.yaml``.

    Returns:
        A frozen ``ProductionConfig``.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_production_config(path)

    _logger.info(
        "mo_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "path": str(path),
        },
    )
    return config


__all__ = [
    "AlertThresholds",
    "ClosureRules",
    "DEFAULT_CONFIG_PATH",
    "PalletSettings",
    "ProductionConfig",
    "ProgressSettings",
    "get_active_config",
]
