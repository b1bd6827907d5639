"""
rental_config -- single public entrypoint for engine settings.

Responsibility:
    ``get_active_settings()`` returns the ``EngineSettings`` the CLI and
    the hosting application run with.  Services never read files or
    environment variables themselves; they receive the values they need
    through their constructors.

Resolution order:
    1. The YAML file named by ``RENTAL_ENGINE_CONFIG``, if set; otherwise
       the packaged ``defaults.yaml``.
    2. ``DATABASE_URL``, if set, replaces ``database_url``.

Architecture position:
    Configuration layer.  ``rental_kernel`` MUST NEVER import from
    ``rental_config``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from rental_config.loader import compute_checksum, load_settings, load_yaml_file, parse_settings
from rental_config.settings import EngineSettings

_logger = logging.getLogger("rental_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_ENV_VAR = "RENTAL_ENGINE_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"


def get_active_settings(config_path: Path | str | None = None) -> EngineSettings:
    """
    The settings to run with.

    Args:
        config_path: Explicit YAML file; takes precedence over
            ``RENTAL_ENGINE_CONFIG``.

    Raises:
        FileNotFoundError: the configured file does not exist.
        ValueError: the file holds unknown keys or invalid values.
    """
    path = Path(config_path or os.environ.get(CONFIG_ENV_VAR) or DEFAULTS_PATH)
    data = load_yaml_file(path)
    settings = parse_settings(data)

    database_url = os.environ.get(DATABASE_URL_ENV_VAR)
    if database_url:
        settings = settings.with_database_url(database_url)

    _logger.info(
        "engine_settings_loaded",
        extra={
            "config_path": str(path),
            "checksum": compute_checksum(data),
            "database_url_from_env": bool(database_url),
            "currency": settings.currency,
        },
    )
    return settings


__all__ = [
    "DEFAULTS_PATH",
    "EngineSettings",
    "get_active_settings",
    "load_settings",
]
