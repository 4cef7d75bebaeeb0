"""
LmsSettings schema.

Frozen dataclasses for every configurable knob.  The loader parses the YAML
settings file (plus environment overrides) into these types; nothing else
constructs them from raw input.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///./lms.db"
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    echo: bool = False


@dataclass(frozen=True)
class WorkflowSettings:
    """Rejection feedback rules, delete policy and review-queue thresholds."""

    min_feedback_length: int = 10
    feedback_preview_length: int = 50
    allow_creator_delete_draft: bool = False
    # Presentation-only; never enforced.
    pending_warning_days: int = 2
    pending_critical_days: int = 4
    secondary_effect_attempts: int = 2


@dataclass(frozen=True)
class LedgerSettings:
    money_decimal_places: int = 2
    assessment_prefix: str = "TAX"
    assessment_number_width: int = 6
    receipt_prefix: str = "RCP"
    receipt_number_width: int = 5
    receipt_generation_attempts: int = 5


@dataclass(frozen=True)
class ReferenceSettings:
    customer_prefix: str = "CUS"
    customer_number_width: int = 5
    property_number_width: int = 5


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class ApiSettings:
    default_page_size: int = 50
    max_page_size: int = 200


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LmsSettings:
    """The runtime configuration artifact returned by ``get_active_config()``."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    workflow: WorkflowSettings = field(default_factory=WorkflowSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    references: ReferenceSettings = field(default_factory=ReferenceSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    api: ApiSettings = field(default_factory=ApiSettings)
    source: str = "<defaults>"
    checksum: str = ""
