"""
Module: lms_kernel.models.property
Responsibility: ORM persistence for land parcels, their ownership links and
    photos.
Architecture position: Kernel > Models.

Invariants enforced:
    - parcel_number is unique.
    - size > 0.
    - Ownership links and photos are removed with the property.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from lms_kernel.db.base import Base, TrackedBase, UUIDString
from lms_kernel.models.workflow_entity import WorkflowEntityMixin, workflow_constraints

if TYPE_CHECKING:
    from lms_kernel.domain.dtos import EntitySnapshot


class Property(WorkflowEntityMixin, TrackedBase):
    """A land parcel subject to the approval workflow and taxation."""

    __tablename__ = "properties"

    __table_args__ = workflow_constraints("properties") + (
        CheckConstraint("size > 0", name="ck_properties_size_positive"),
    )

    parcel_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    district_code: Mapped[str] = mapped_column(String(10), nullable=False)
    size: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    property_location: Mapped[str | None] = mapped_column(String(400), nullable=True)
    road_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    door_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_building: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    number_of_floors: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<Property {self.reference_id} parcel={self.parcel_number} status={self.status}>"

    def to_dto(self, owner_ids: tuple[UUID, ...] = ()) -> EntitySnapshot:
        from lms_kernel.domain.dtos import EntitySnapshot
        from lms_kernel.domain.values import EntityKind

        return EntitySnapshot(
            kind=EntityKind.PROPERTY,
            attributes={
                "parcel_number": self.parcel_number,
                "district_code": self.district_code,
                "size": self.size,
                "property_location": self.property_location,
                "road_name": self.road_name,
                "door_number": self.door_number,
                "is_building": self.is_building,
                "number_of_floors": self.number_of_floors,
                "owner_ids": list(owner_ids),
            },
            **self.snapshot_fields(),
        )


class PropertyOwner(Base):
    """Link between a property and one of its owning customers."""

    __tablename__ = "property_owners"

    __table_args__ = (
        UniqueConstraint("property_id", "customer_id", name="uq_property_owners_pair"),
    )

    property_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("properties.id", ondelete="CASCADE"), nullable=False
    )
    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class PropertyPhoto(Base):
    """Photo attached to a property (storage location only)."""

    __tablename__ = "property_photos"

    property_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("properties.id", ondelete="CASCADE"), nullable=False
    )
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    caption: Mapped[str | None] = mapped_column(String(400), nullable=True)
    uploaded_by: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False
    )
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
