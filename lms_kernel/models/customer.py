"""
Module: lms_kernel.models.customer
Responsibility: ORM persistence for customers and their per-type detail rows.
Architecture position: Kernel > Models.

A customer row carries the workflow lifecycle; exactly one detail row in the
table matching ``customer_type`` carries the type-specific fields.  Detail
rows reference the customer with ON DELETE CASCADE and are also removed
explicitly by the delete operation.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from lms_kernel.db.base import TrackedBase, UUIDString, Base
from lms_kernel.domain.values import CustomerType
from lms_kernel.models.workflow_entity import WorkflowEntityMixin, workflow_constraints

if TYPE_CHECKING:
    from lms_kernel.domain.dtos import EntitySnapshot


class Customer(WorkflowEntityMixin, TrackedBase):
    """A customer record subject to the approval workflow."""

    __tablename__ = "customers"

    __table_args__ = workflow_constraints("customers") + (
        CheckConstraint(
            "customer_type IN ('PERSON', 'BUSINESS', 'GOVERNMENT', "
            "'MOSQUE_HOSPITAL', 'NON_PROFIT', 'CONTRACTOR')",
            name="ck_customers_valid_type",
        ),
    )

    customer_type: Mapped[str] = mapped_column(String(30), nullable=False)

    def __repr__(self) -> str:
        return f"<Customer {self.reference_id} {self.customer_type} status={self.status}>"

    def to_dto(self, details: dict[str, Any] | None = None) -> EntitySnapshot:
        from lms_kernel.domain.dtos import EntitySnapshot
        from lms_kernel.domain.values import EntityKind

        return EntitySnapshot(
            kind=EntityKind.CUSTOMER,
            attributes={
                "customer_type": self.customer_type,
                "details": dict(details or {}),
            },
            **self.snapshot_fields(),
        )


class CustomerDetailMixin:
    """Link from a detail row to its customer."""

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    contact_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    mobile_number_1: Mapped[str | None] = mapped_column(String(30), nullable=True)
    mobile_number_2: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def to_details(self, fields: tuple[str, ...]) -> dict[str, Any]:
        return {name: getattr(self, name) for name in fields}


class CustomerPerson(CustomerDetailMixin, Base):
    __tablename__ = "customer_person"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    father_name: Mapped[str] = mapped_column(String(100), nullable=False)
    grandfather_name: Mapped[str] = mapped_column(String(100), nullable=False)
    fourth_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    date_of_birth: Mapped[date] = mapped_column(Date, nullable=False)
    gender: Mapped[str] = mapped_column(String(10), nullable=False)
    nationality: Mapped[str] = mapped_column(String(100), nullable=False)
    id_type: Mapped[str] = mapped_column(String(50), nullable=False)
    id_number: Mapped[str] = mapped_column(String(100), nullable=False)
    id_expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class CustomerBusiness(CustomerDetailMixin, Base):
    __tablename__ = "customer_business"

    business_name: Mapped[str] = mapped_column(String(200), nullable=False)
    business_registration_number: Mapped[str] = mapped_column(String(100), nullable=False)
    business_license_number: Mapped[str] = mapped_column(String(100), nullable=False)
    business_address: Mapped[str] = mapped_column(String(400), nullable=False)


class CustomerGovernment(CustomerDetailMixin, Base):
    __tablename__ = "customer_government"

    full_department_name: Mapped[str] = mapped_column(String(200), nullable=False)
    department_address: Mapped[str] = mapped_column(String(400), nullable=False)


class CustomerMosqueHospital(CustomerDetailMixin, Base):
    __tablename__ = "customer_mosque_hospital"

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    registration_number: Mapped[str] = mapped_column(String(100), nullable=False)
    address: Mapped[str] = mapped_column(String(400), nullable=False)


class CustomerNonProfit(CustomerDetailMixin, Base):
    __tablename__ = "customer_non_profit"

    full_non_profit_name: Mapped[str] = mapped_column(String(200), nullable=False)
    registration_number: Mapped[str] = mapped_column(String(100), nullable=False)
    license_number: Mapped[str] = mapped_column(String(100), nullable=False)
    address: Mapped[str] = mapped_column(String(400), nullable=False)


class CustomerContractor(CustomerDetailMixin, Base):
    __tablename__ = "customer_contractor"

    full_contractor_name: Mapped[str] = mapped_column(String(200), nullable=False)


DETAIL_MODELS: dict[CustomerType, type[CustomerDetailMixin]] = {
    CustomerType.PERSON: CustomerPerson,
    CustomerType.BUSINESS: CustomerBusiness,
    CustomerType.GOVERNMENT: CustomerGovernment,
    CustomerType.MOSQUE_HOSPITAL: CustomerMosqueHospital,
    CustomerType.NON_PROFIT: CustomerNonProfit,
    CustomerType.CONTRACTOR: CustomerContractor,
}
