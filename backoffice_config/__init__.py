"""
backoffice_config -- single public entrypoint for back office settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_config()``.  No other component reads settings files or
    environment variables.

Architecture position:
    Configuration.  Sits above ``backoffice_kernel`` and below
    ``backoffice_services``.  The kernel MUST NEVER import from
    ``backoffice_config``; services receive a ``CompanySettings`` by
    injection.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``KeyError`` / ``ValueError`` -- missing or invalid settings.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``BACKOFFICE_CONFIG_TRACE`` log entry with the source path and checksum,
    tying postings back to the settings that governed them.
"""

from __future__ import annotations

import os
from pathlib import Path

from backoffice_config.loader import load_settings
from backoffice_config.schema import AgingBucketDef, CompanySettings, SeriesDef
from backoffice_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_ENV_VAR = "BACKOFFICE_CONFIG"

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> CompanySettings:
    """The ONLY public settings entrypoint.

    Resolution order: explicit ``path``, then the ``BACKOFFICE_CONFIG``
    environment variable, then the packaged ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        KeyError: If a required key is missing.
        ValueError: If a value is invalid.
    """
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        source = Path(env_path) if env_path else _DEFAULT_CONFIG_PATH
    else:
        source = Path(path)

    settings = load_settings(source)

    _logger.info(
        "BACKOFFICE_CONFIG_TRACE",
        extra={
            "trace_type": "BACKOFFICE_CONFIG_TRACE",
            "config_path": str(source),
            "checksum": settings.checksum,
            "home_state_code": settings.home_state_code,
            "series_count": len(settings.series),
        },
    )
    return settings


__all__ = [
    "AgingBucketDef",
    "CompanySettings",
    "SeriesDef",
    "get_active_config",
]
