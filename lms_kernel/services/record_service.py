"""
RecordService -- creation and draft editing of customers and properties.

Responsibility:
    ``create_customer`` / ``create_property`` insert a new DRAFT record with
    a sequence-allocated reference id.  ``update_draft`` edits a record
    while it is DRAFT or REJECTED, as a conditional write on ``version``.
    ``add_property_photo`` attaches a photo location to a property.

    Customer details are a tagged union keyed by ``customer_type``: the
    variant in ``domain.customer_variants`` validates the fields and the
    matching detail model in ``models.customer`` stores them.

Architecture position:
    Kernel > Services.  Workflow-owned fields (status, approved_by,
    submitted_at, rejection_feedback, version, ids) are never writable
    here; only WorkflowEngine moves a record through its lifecycle.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from lms_kernel.domain.clock import Clock, SystemClock
from lms_kernel.domain.customer_variants import variant_for
from lms_kernel.domain.dtos import EntitySnapshot, FieldChange
from lms_kernel.domain.ledger import parse_money
from lms_kernel.domain.values import (
    Actor,
    CustomerType,
    EntityKind,
    EntityStatus,
    LogAction,
    Operation,
)
from lms_kernel.domain.workflow import (
    EDITABLE_STATUSES,
    require_authorized,
    transition_error_message,
)
from lms_kernel.exceptions import (
    ConflictError,
    EntityNotFoundError,
    InvalidTransitionError,
    ValidationError,
)
from lms_kernel.logging_config import get_logger
from lms_kernel.models.customer import DETAIL_MODELS, Customer
from lms_kernel.models.property import Property, PropertyOwner, PropertyPhoto
from lms_kernel.selectors.entity_selector import ENTITY_MODELS, EntitySelector
from lms_kernel.services.activity_log_service import ActivityLog
from lms_kernel.services.audit_trail import AuditTrail, diff_fields
from lms_kernel.services.base import BaseService, operation_scope
from lms_kernel.services.conditional_write import conditional_update
from lms_kernel.services.secondary_effects import DEFAULT_ATTEMPTS, SecondaryEffects
from lms_kernel.services.sequence_service import SequenceService

logger = get_logger("services.records")

_DISTRICT_RE = re.compile(r"^[A-Z0-9]{1,10}$")

# Property columns editable through update_draft.
PROPERTY_EDITABLE_FIELDS = (
    "parcel_number",
    "size",
    "property_location",
    "road_name",
    "door_number",
    "is_building",
    "number_of_floors",
)


def _clean_text(field: str, value: Any, *, required: bool = False) -> str | None:
    if value is None:
        text = None
    elif isinstance(value, str):
        text = value.strip() or None
    else:
        raise ValidationError(f"{field} must be text", field=field)
    if required and text is None:
        raise ValidationError(f"{field} is required", field=field)
    return text


def _clean_floors(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(
            "number_of_floors must be a positive integer", field="number_of_floors"
        )
    return value


def _clean_size(value: Any):
    return parse_money("size", value, positive=True)


class RecordService(BaseService):
    """Creates and edits workflow records."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        auto_commit: bool = True,
        customer_prefix: str = "CUS",
        customer_number_width: int = 5,
        property_number_width: int = 5,
        secondary_effect_attempts: int = DEFAULT_ATTEMPTS,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._customer_prefix = customer_prefix
        self._customer_width = customer_number_width
        self._property_width = property_number_width
        self._effect_attempts = secondary_effect_attempts
        self._sequences = SequenceService(session)
        self._selector = EntitySelector(session)

    # =========================================================================
    # Customers
    # =========================================================================

    def create_customer(
        self,
        actor: Actor,
        customer_type: CustomerType | str,
        details: Mapping[str, Any],
    ) -> EntitySnapshot:
        """
        Create a DRAFT customer of the given type.

        Raises:
            ValidationError: unknown type, or details that do not satisfy
                the type's field contract.
            ForbiddenError: actor is not an inputter or administrator.
        """
        with operation_scope(
            self.session,
            logger,
            Operation.CREATE_RECORD.value,
            actor,
            auto_commit=self._auto_commit,
            extra={"entity_kind": EntityKind.CUSTOMER.value},
        ):
            variant = variant_for(customer_type)
            cleaned = variant.validate(details)
            require_authorized(actor, Operation.CREATE_RECORD, subject="customers")

            now = self._clock.now()
            reference_id = self._sequences.next_reference(
                self._customer_prefix, now.year, self._customer_width
            )
            customer = Customer(
                reference_id=reference_id,
                customer_type=variant.customer_type.value,
                display_name=variant.display_name(cleaned),
                status=EntityStatus.DRAFT.value,
                created_by=actor.id,
                version=1,
                created_at=now,
                updated_at=now,
            )
            self.session.add(customer)
            self.session.flush()

            detail_model = DETAIL_MODELS[variant.customer_type]
            self.session.add(detail_model(customer_id=customer.id, **cleaned))
            self.session.flush()

            if self._auto_commit:
                self.session.commit()

            logger.info(
                "customer_created",
                extra={
                    "customer_id": str(customer.id),
                    "reference_id": reference_id,
                    "customer_type": variant.customer_type.value,
                },
            )
            self._after_create(
                actor,
                EntityKind.CUSTOMER,
                customer.id,
                {"reference_id": reference_id, "customer_type": customer.customer_type},
                now,
            )
            return self._selector.snapshot(customer)

    # =========================================================================
    # Properties
    # =========================================================================

    def create_property(
        self,
        actor: Actor,
        *,
        parcel_number: str,
        district_code: str,
        size: Any,
        property_location: str | None = None,
        road_name: str | None = None,
        door_number: str | None = None,
        is_building: bool = False,
        number_of_floors: int | None = None,
        owner_ids: Iterable[UUID] = (),
        primary_owner_id: UUID | None = None,
    ) -> EntitySnapshot:
        """
        Create a DRAFT property, optionally linked to owning customers.

        Raises:
            ValidationError: duplicate parcel number, bad district code,
                non-positive size, or an unknown owner.
        """
        with operation_scope(
            self.session,
            logger,
            Operation.CREATE_RECORD.value,
            actor,
            auto_commit=self._auto_commit,
            extra={"entity_kind": EntityKind.PROPERTY.value},
        ):
            parcel = _clean_text("parcel_number", parcel_number, required=True)
            district = (_clean_text("district_code", district_code, required=True)).upper()
            if not _DISTRICT_RE.match(district):
                raise ValidationError(
                    "district_code must be 1-10 letters or digits", field="district_code"
                )
            size_value = _clean_size(size)
            floors = _clean_floors(number_of_floors)
            owners = list(dict.fromkeys(owner_ids))
            if primary_owner_id is not None and primary_owner_id not in owners:
                owners.insert(0, primary_owner_id)

            require_authorized(actor, Operation.CREATE_RECORD, subject="properties")

            self._check_parcel_free(parcel)
            self._check_owners_exist(owners)

            now = self._clock.now()
            reference_id = self._sequences.next_reference(
                district, now.year, self._property_width
            )
            prop = Property(
                reference_id=reference_id,
                display_name=parcel,
                status=EntityStatus.DRAFT.value,
                created_by=actor.id,
                version=1,
                parcel_number=parcel,
                district_code=district,
                size=size_value,
                property_location=_clean_text("property_location", property_location),
                road_name=_clean_text("road_name", road_name),
                door_number=_clean_text("door_number", door_number),
                is_building=bool(is_building),
                number_of_floors=floors,
                created_at=now,
                updated_at=now,
            )
            self.session.add(prop)
            self.session.flush()

            primary = primary_owner_id or (owners[0] if owners else None)
            self.session.add_all(
                PropertyOwner(
                    property_id=prop.id,
                    customer_id=owner_id,
                    is_primary=owner_id == primary,
                )
                for owner_id in owners
            )
            self.session.flush()

            if self._auto_commit:
                self.session.commit()

            logger.info(
                "property_created",
                extra={
                    "property_id": str(prop.id),
                    "reference_id": reference_id,
                    "owner_count": len(owners),
                },
            )
            self._after_create(
                actor,
                EntityKind.PROPERTY,
                prop.id,
                {"reference_id": reference_id, "parcel_number": parcel},
                now,
            )
            return self._selector.snapshot(prop)

    def add_property_photo(
        self,
        actor: Actor,
        property_id: UUID,
        url: str,
        caption: str | None = None,
    ) -> UUID:
        """Attach a photo location while the property is editable.  Returns the photo id."""
        with operation_scope(
            self.session,
            logger,
            Operation.UPDATE_RECORD.value,
            actor,
            property_id,
            auto_commit=self._auto_commit,
            extra={"entity_kind": EntityKind.PROPERTY.value},
        ):
            location = _clean_text("url", url, required=True)
            prop = self._load(EntityKind.PROPERTY, property_id)
            self._require_editable(actor, EntityKind.PROPERTY, prop)

            photo = PropertyPhoto(
                property_id=property_id,
                url=location,
                caption=_clean_text("caption", caption),
                uploaded_by=actor.id,
                uploaded_at=self._clock.now(),
            )
            self.session.add(photo)
            self.session.flush()
            if self._auto_commit:
                self.session.commit()
            logger.info(
                "property_photo_added",
                extra={"property_id": str(property_id), "photo_id": str(photo.id)},
            )
            return photo.id

    # =========================================================================
    # Draft edits
    # =========================================================================

    def update_draft(
        self,
        actor: Actor,
        kind: EntityKind,
        entity_id: UUID,
        changes: Mapping[str, Any],
        expected_version: int | None = None,
    ) -> EntitySnapshot:
        """
        Edit a DRAFT or REJECTED record.

        Customers take ``{"details": {...}}`` (merged over the current
        details and re-validated by the type's variant).  Properties take
        any of ``PROPERTY_EDITABLE_FIELDS``.  Passing ``expected_version``
        makes a stale client fail with ConflictError.

        Raises:
            ValidationError: unknown or workflow-owned field, bad value.
            InvalidTransitionError: record is SUBMITTED or APPROVED.
        """
        with operation_scope(
            self.session,
            logger,
            Operation.UPDATE_RECORD.value,
            actor,
            entity_id,
            auto_commit=self._auto_commit,
            extra={"entity_kind": kind.value},
        ):
            allowed = ("details",) if kind is EntityKind.CUSTOMER else PROPERTY_EDITABLE_FIELDS
            unknown = sorted(set(changes) - set(allowed))
            if unknown:
                raise ValidationError(
                    f"Fields cannot be changed on a {kind.value}: {', '.join(unknown)}",
                    field=unknown[0],
                )
            if not changes:
                raise ValidationError("No changes given")

            row = self._load(kind, entity_id)
            self._require_editable(actor, kind, row)
            if expected_version is not None and expected_version != row.version:
                raise ConflictError(kind.value, str(entity_id), expected_version)

            if kind is EntityKind.CUSTOMER:
                field_changes, entity_values, detail_values = self._customer_changes(
                    row, changes
                )
            else:
                field_changes, entity_values = self._property_changes(row, changes)
                detail_values = {}

            if not field_changes:
                return self._selector.snapshot(row)

            now = self._clock.now()
            row = conditional_update(
                self.session,
                ENTITY_MODELS[kind],
                entity_id,
                row.version,
                {**entity_values, "updated_at": now},
                entity_type=kind.value,
                expected_status=row.status,
            )
            if detail_values:
                detail_model = DETAIL_MODELS[CustomerType(row.customer_type)]
                detail = self.session.execute(
                    select(detail_model).where(detail_model.customer_id == entity_id)
                ).scalar_one()
                for name, value in detail_values.items():
                    setattr(detail, name, value)
                self.session.flush()

            if self._auto_commit:
                self.session.commit()

            logger.info(
                "record_updated",
                extra={
                    "entity_kind": kind.value,
                    "reference_id": row.reference_id,
                    "fields": [c.field for c in field_changes],
                    "version": row.version,
                },
            )

            effects = SecondaryEffects(
                self.session,
                entity_type=kind.value,
                entity_id=entity_id,
                attempts=self._effect_attempts,
            )
            effects.run(
                "audit",
                lambda: AuditTrail(self.session, self._clock).record(
                    kind.value, entity_id, LogAction.UPDATED, field_changes, actor.id,
                    timestamp=now,
                ),
            )
            effects.run(
                "activity",
                lambda: ActivityLog(self.session, self._clock).record(
                    kind.value,
                    entity_id,
                    LogAction.UPDATED,
                    actor.id,
                    {
                        "reference_id": row.reference_id,
                        "fields": [c.field for c in field_changes],
                    },
                    timestamp=now,
                ),
            )
            effects.commit(self._auto_commit)

            return self._selector.snapshot(row)

    def _customer_changes(
        self, row: Customer, changes: Mapping[str, Any]
    ) -> tuple[list[FieldChange], dict[str, Any], dict[str, Any]]:
        new_details = changes["details"]
        if not isinstance(new_details, Mapping):
            raise ValidationError("details must be an object", field="details")
        variant = variant_for(row.customer_type)
        current = self._selector.customer_details(row)
        cleaned = variant.validate({**current, **new_details})

        field_changes = diff_fields(current, cleaned)
        detail_values = {c.field: c.new_value for c in field_changes}
        entity_values: dict[str, Any] = {}
        display_name = variant.display_name(cleaned)
        if display_name != row.display_name:
            entity_values["display_name"] = display_name
        return field_changes, entity_values, detail_values

    def _property_changes(
        self, row: Property, changes: Mapping[str, Any]
    ) -> tuple[list[FieldChange], dict[str, Any]]:
        cleaned: dict[str, Any] = {}
        for name, value in changes.items():
            if name == "parcel_number":
                cleaned[name] = _clean_text(name, value, required=True)
            elif name == "size":
                cleaned[name] = _clean_size(value)
            elif name == "number_of_floors":
                cleaned[name] = _clean_floors(value)
            elif name == "is_building":
                if not isinstance(value, bool):
                    raise ValidationError("is_building must be true or false", field=name)
                cleaned[name] = value
            else:
                cleaned[name] = _clean_text(name, value)

        before = {name: getattr(row, name) for name in cleaned}
        field_changes = diff_fields(before, cleaned)
        values = {c.field: c.new_value for c in field_changes}
        if "parcel_number" in values:
            self._check_parcel_free(values["parcel_number"], exclude_id=row.id)
            values["display_name"] = values["parcel_number"]
        return field_changes, values

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load(self, kind: EntityKind, entity_id: UUID) -> Customer | Property:
        model = ENTITY_MODELS[kind]
        row = self.session.execute(
            select(model)
            .where(model.id == entity_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise EntityNotFoundError(kind.value, str(entity_id))
        return row

    def _require_editable(
        self, actor: Actor, kind: EntityKind, row: Customer | Property
    ) -> None:
        current = EntityStatus(row.status)
        require_authorized(
            actor,
            Operation.UPDATE_RECORD,
            current,
            created_by=row.created_by,
            subject=kind.plural,
        )
        if current not in EDITABLE_STATUSES:
            raise InvalidTransitionError(
                kind.value,
                str(row.id),
                current.value,
                Operation.UPDATE_RECORD.value,
                message=transition_error_message(kind, Operation.UPDATE_RECORD),
            )

    def _check_parcel_free(self, parcel_number: str, exclude_id: UUID | None = None) -> None:
        stmt = select(Property.id).where(Property.parcel_number == parcel_number)
        if exclude_id is not None:
            stmt = stmt.where(Property.id != exclude_id)
        if self.session.execute(stmt).first() is not None:
            raise ValidationError(
                f"Parcel number already registered: {parcel_number}",
                field="parcel_number",
            )

    def _check_owners_exist(self, owner_ids: list[UUID]) -> None:
        if not owner_ids:
            return
        found = set(
            self.session.execute(
                select(Customer.id).where(Customer.id.in_(owner_ids))
            ).scalars()
        )
        missing = [str(o) for o in owner_ids if o not in found]
        if missing:
            raise ValidationError(
                f"Unknown owner customer(s): {', '.join(missing)}", field="owner_ids"
            )

    def _after_create(
        self,
        actor: Actor,
        kind: EntityKind,
        entity_id: UUID,
        metadata: dict[str, Any],
        now: datetime,
    ) -> None:
        effects = SecondaryEffects(
            self.session,
            entity_type=kind.value,
            entity_id=entity_id,
            attempts=self._effect_attempts,
        )
        effects.run(
            "audit",
            lambda: AuditTrail(self.session, self._clock).record(
                kind.value,
                entity_id,
                LogAction.CREATED,
                [FieldChange("status", None, EntityStatus.DRAFT)],
                actor.id,
                timestamp=now,
            ),
        )
        effects.run(
            "activity",
            lambda: ActivityLog(self.session, self._clock).record(
                kind.value, entity_id, LogAction.CREATED, actor.id, metadata, timestamp=now
            ),
        )
        effects.commit(self._auto_commit)
