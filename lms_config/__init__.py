"""
lms_config -- single public entrypoint for LMS configuration.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_config()``.  No other component reads the settings file
    or ``LMS_`` environment variables directly.

Architecture position:
    Sits above ``lms_kernel`` and below ``lms_api``.  The kernel never
    imports from ``lms_config``; the API passes individual values to the
    kernel services as constructor arguments.

Failure modes:
    - ``FileNotFoundError`` -- ``LMS_CONFIG_FILE`` points at a missing file.
    - ``ConfigurationError`` -- unknown key, wrong type or out-of-range value.

Audit relevance:
    Every successful call emits a ``config_loaded`` log entry with the
    source file, the checksum of the effective settings and the
    environment overrides applied.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from lms_config.loader import ConfigurationError, compute_checksum, load_settings
from lms_config.schema import (
    ApiSettings,
    DatabaseSettings,
    LedgerSettings,
    LmsSettings,
    LoggingSettings,
    ReferenceSettings,
    WorkflowSettings,
)

_logger = logging.getLogger("lms_kernel.config")

DEFAULT_SETTINGS_FILE = Path(__file__).parent / "settings.yaml"


def get_active_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LmsSettings:
    """The ONLY public configuration entrypoint.

    Args:
        path: Settings file.  Defaults to ``LMS_CONFIG_FILE`` if set, else
            the packaged ``settings.yaml``.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        Frozen, validated ``LmsSettings`` with a deterministic checksum.

    Raises:
        FileNotFoundError: settings file missing.
        ConfigurationError: settings invalid.
    """
    env = os.environ if environ is None else environ
    if path is None:
        path = env.get("LMS_CONFIG_FILE") or DEFAULT_SETTINGS_FILE
    return load_settings(Path(path), env, _logger)


__all__ = [
    "ApiSettings",
    "ConfigurationError",
    "DatabaseSettings",
    "LedgerSettings",
    "LmsSettings",
    "LoggingSettings",
    "ReferenceSettings",
    "WorkflowSettings",
    "compute_checksum",
    "get_active_config",
]
