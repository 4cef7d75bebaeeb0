"""
Settings loader (``lms_config.loader``).

Responsibility
--------------
Reads the YAML settings file, applies ``LMS_``-prefixed environment
overrides, validates every value, and parses the result into the frozen
``lms_config.schema`` dataclasses.  Runtime callers use
``lms_config.get_active_config()``, never this module directly.

Failure modes
-------------
* Missing settings file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, wrong type, out-of-range value
  -> ``ConfigurationError`` (a ``ValueError``).

``compute_checksum`` gives a deterministic SHA-256 of the effective
settings so a log line can tie behaviour to an exact configuration.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import fields, is_dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from lms_config.schema import (
    ApiSettings,
    DatabaseSettings,
    LedgerSettings,
    LmsSettings,
    LoggingSettings,
    ReferenceSettings,
    WorkflowSettings,
)

ENV_PREFIX = "LMS_"

SECTIONS: dict[str, type] = {
    "database": DatabaseSettings,
    "workflow": WorkflowSettings,
    "ledger": LedgerSettings,
    "references": ReferenceSettings,
    "logging": LoggingSettings,
    "api": ApiSettings,
}

# environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "LMS_DATABASE_URL": ("database", "url"),
    "LMS_DATABASE_ECHO": ("database", "echo"),
    "LMS_LOG_LEVEL": ("logging", "level"),
    "LMS_ALLOW_CREATOR_DELETE_DRAFT": ("workflow", "allow_creator_delete_draft"),
}

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class ConfigurationError(ValueError):
    """Settings file or override is invalid."""

    code: str = "CONFIGURATION_INVALID"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {path} must contain a mapping")
    return data


def _coerce(section: str, key: str, value: Any, expected: Any) -> Any:
    where = f"{section}.{key}"
    if isinstance(expected, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("1", "true", "yes", "on"):
            return True
        if isinstance(value, str) and value.strip().lower() in ("0", "false", "no", "off"):
            return False
        raise ConfigurationError(f"{where} must be a boolean, got {value!r}")
    if isinstance(expected, int):
        if isinstance(value, bool):
            raise ConfigurationError(f"{where} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{where} must be an integer, got {value!r}") from None
    if isinstance(expected, str):
        if not isinstance(value, str) or not value.strip():
            raise ConfigurationError(f"{where} must be a non-empty string")
        return value.strip()
    return value


def parse_section(section: str, data: Mapping[str, Any] | None) -> Any:
    """Parse one section mapping into its dataclass, defaults filling gaps."""
    cls = SECTIONS[section]
    defaults = cls()
    data = data or {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Section {section!r} must be a mapping")

    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown key(s) in section {section!r}: {', '.join(unknown)}"
        )
    values = {
        name: _coerce(section, name, data[name], getattr(defaults, name))
        for name in data
    }
    return cls(**values)


def validate_settings(settings: LmsSettings) -> None:
    """Range checks that span a single value or a pair of values."""
    errors: list[str] = []
    wf, ledger, refs, api, db = (
        settings.workflow,
        settings.ledger,
        settings.references,
        settings.api,
        settings.database,
    )

    if wf.min_feedback_length < 1:
        errors.append("workflow.min_feedback_length must be >= 1")
    if wf.feedback_preview_length < 4:
        errors.append("workflow.feedback_preview_length must be >= 4")
    if wf.pending_warning_days < 0 or wf.pending_critical_days < wf.pending_warning_days:
        errors.append("workflow pending thresholds must satisfy 0 <= warning <= critical")
    if wf.secondary_effect_attempts < 1:
        errors.append("workflow.secondary_effect_attempts must be >= 1")
    if not 0 <= ledger.money_decimal_places <= 2:
        errors.append("ledger.money_decimal_places must be between 0 and 2")
    if ledger.receipt_generation_attempts < 1:
        errors.append("ledger.receipt_generation_attempts must be >= 1")
    for name, width in (
        ("ledger.assessment_number_width", ledger.assessment_number_width),
        ("ledger.receipt_number_width", ledger.receipt_number_width),
        ("references.customer_number_width", refs.customer_number_width),
        ("references.property_number_width", refs.property_number_width),
    ):
        if not 1 <= width <= 12:
            errors.append(f"{name} must be between 1 and 12")
    if settings.logging.level.upper() not in _LOG_LEVELS:
        errors.append(f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))}")
    if not 1 <= api.default_page_size <= api.max_page_size:
        errors.append("api page sizes must satisfy 1 <= default_page_size <= max_page_size")
    if db.pool_size < 1 or db.max_overflow < 0 or db.pool_timeout < 1:
        errors.append("database pool settings must be positive")

    if errors:
        raise ConfigurationError(
            "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )


def apply_env_overrides(
    raw: dict[str, Any], environ: Mapping[str, str]
) -> tuple[dict[str, Any], list[str]]:
    """Copy of ``raw`` with environment overrides applied, plus the names used."""
    merged = {section: dict(raw.get(section) or {}) for section in SECTIONS}
    used = []
    for env_name, (section, key) in ENV_OVERRIDES.items():
        if env_name in environ:
            merged[section][key] = environ[env_name]
            used.append(env_name)
    return merged, used


def _to_plain(obj: Any) -> Any:
    if is_dataclass(obj):
        return {f.name: _to_plain(getattr(obj, f.name)) for f in fields(obj)}
    return obj


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization.  Deterministic."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_settings(
    path: Path | None,
    environ: Mapping[str, str],
    logger: logging.Logger | None = None,
) -> LmsSettings:
    """
    Build validated settings from an optional YAML file plus the environment.

    Raises:
        FileNotFoundError: ``path`` given but missing.
        ConfigurationError: invalid settings.
    """
    raw: dict[str, Any] = load_yaml_file(path) if path is not None else {}
    unknown = sorted(set(raw) - set(SECTIONS))
    if unknown:
        raise ConfigurationError(f"Unknown settings section(s): {', '.join(unknown)}")

    merged, overrides = apply_env_overrides(raw, environ)
    sections = {name: parse_section(name, merged[name]) for name in SECTIONS}
    sections["logging"] = LoggingSettings(level=sections["logging"].level.upper())

    provisional = LmsSettings(**sections)
    validate_settings(provisional)

    plain = {name: _to_plain(value) for name, value in sections.items()}
    source = str(path) if path is not None else "<defaults>"
    settings = LmsSettings(**sections, source=source, checksum=compute_checksum(plain))

    if logger is not None:
        logger.info(
            "config_loaded",
            extra={
                "source": source,
                "checksum": settings.checksum,
                "env_overrides": overrides,
            },
        )
    return settings
