"""
Request and response bodies of the HTTP surface.

JSON keys are camelCase; Python attributes stay snake_case.  Response
models are built from the kernel's frozen DTOs (``from_attributes``).
Money is serialized as a decimal string.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Generic, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from lms_kernel.domain.values import (
    CustomerType,
    EntityKind,
    EntityStatus,
    PaymentMethod,
    PendingLevel,
    TaxStatus,
)

T = TypeVar("T")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])|(?<=[A-Za-z])(?=[0-9])")


def to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def camel_key(name: str) -> str:
    """snake_case -> camelCase; already-camel names are returned unchanged."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def camelize_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {camel_key(str(k)): camelize_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [camelize_keys(v) for v in value]
    return value


def snake_keys(value: dict[str, Any]) -> dict[str, Any]:
    return {to_snake(k): v for k, v in value.items()}


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class RejectRequest(ApiModel):
    feedback: str = ""


class CreateCustomerRequest(ApiModel):
    customer_type: CustomerType
    details: dict[str, Any]

    @field_validator("details")
    @classmethod
    def snake_case_details(cls, value: dict[str, Any]) -> dict[str, Any]:
        return snake_keys(value)


class CreatePropertyRequest(ApiModel):
    parcel_number: str
    district_code: str
    size: Decimal
    property_location: Optional[str] = None
    road_name: Optional[str] = None
    door_number: Optional[str] = None
    is_building: bool = False
    number_of_floors: Optional[int] = None
    owner_ids: list[UUID] = Field(default_factory=list)
    primary_owner_id: Optional[UUID] = None


class UpdateRecordRequest(ApiModel):
    """Only the keys present in the request body are applied."""

    details: Optional[dict[str, Any]] = None
    parcel_number: Optional[str] = None
    size: Optional[Decimal] = None
    property_location: Optional[str] = None
    road_name: Optional[str] = None
    door_number: Optional[str] = None
    is_building: Optional[bool] = None
    number_of_floors: Optional[int] = None
    expected_version: Optional[int] = None

    def changes(self) -> dict[str, Any]:
        values = self.model_dump(exclude_unset=True, exclude={"expected_version"})
        if isinstance(values.get("details"), dict):
            values["details"] = snake_keys(values["details"])
        return values


class AddPhotoRequest(ApiModel):
    url: str
    caption: Optional[str] = None


class CreateAssessmentRequest(ApiModel):
    property_id: UUID
    tax_year: int
    base_assessment: Decimal
    exemption_amount: Decimal = Decimal("0")
    due_date: date
    assessment_date: date
    notes: Optional[str] = None


class ApplyPaymentRequest(ApiModel):
    amount_paid: Decimal
    payment_date: date
    payment_method: str
    receipt_number: Optional[str] = None
    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class EntityOut(ApiModel):
    kind: EntityKind
    id: UUID
    reference_id: str
    status: EntityStatus
    display_name: str
    created_by: UUID
    created_at: datetime
    updated_at: datetime
    version: int
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    rejection_feedback: Optional[str] = None
    attributes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("attributes")
    @classmethod
    def camel_case_attributes(cls, value: dict[str, Any]) -> dict[str, Any]:
        return camelize_keys(value)


class AssessmentOut(ApiModel):
    id: UUID
    reference_id: str
    property_id: UUID
    tax_year: int
    base_assessment: Decimal
    exemption_amount: Decimal
    assessed_amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    due_date: date
    assessment_date: date
    status: TaxStatus
    is_archived: bool
    created_by: UUID
    created_at: datetime
    updated_at: datetime
    version: int
    notes: Optional[str] = None


class PaymentOut(ApiModel):
    id: UUID
    assessment_id: UUID
    amount_paid: Decimal
    payment_date: date
    payment_method: PaymentMethod
    receipt_number: str
    collected_by: UUID
    created_at: datetime
    notes: Optional[str] = None


class PaymentResultOut(ApiModel):
    payment: PaymentOut
    assessment: AssessmentOut
    is_fully_paid: bool


class AssessmentDetailOut(ApiModel):
    assessment: AssessmentOut
    payments: list[PaymentOut]


class AuditEntryOut(ApiModel):
    id: UUID
    entity_type: str
    entity_id: UUID
    action: str
    field: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_by: UUID
    timestamp: datetime


class ActivityEntryOut(ApiModel):
    id: UUID
    entity_type: str
    entity_id: UUID
    action: str
    performed_by: UUID
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class NotificationOut(ApiModel):
    id: UUID
    user_id: UUID
    title: str
    message: str
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime] = None


class ReviewQueueItemOut(ApiModel):
    kind: EntityKind
    entity_id: UUID
    reference_id: str
    display_name: str
    created_by: UUID
    submitted_at: datetime
    days_pending: int
    pending_level: PendingLevel


class TaxStatsOut(ApiModel):
    tax_year: Optional[int] = None
    assessment_count: int
    total_assessed: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    collection_rate: Decimal
    status_counts: dict[str, int]


class PageOut(ApiModel, Generic[T]):
    items: list[T]
    total: int
    limit: int
    offset: int
    has_more: bool


class MarkAllReadOut(ApiModel):
    updated: int


def page_out(page: Any, item_model: type[BaseModel]) -> dict[str, Any]:
    """Kernel ``Page`` -> PageOut-compatible dict."""
    return {
        "items": [item_model.model_validate(item) for item in page.items],
        "total": page.total,
        "limit": page.limit,
        "offset": page.offset,
        "has_more": page.has_more,
    }
