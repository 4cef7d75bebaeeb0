"""
Module: lms_kernel.selectors.entity_selector
Responsibility: Snapshots of customers and properties, including the
    customer detail variant and property ownership links.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select

from lms_kernel.domain.customer_variants import variant_for
from lms_kernel.domain.dtos import EntitySnapshot
from lms_kernel.domain.values import CustomerType, EntityKind
from lms_kernel.exceptions import EntityNotFoundError
from lms_kernel.models.customer import DETAIL_MODELS, Customer
from lms_kernel.models.property import Property, PropertyOwner
from lms_kernel.selectors.base import BaseSelector

ENTITY_MODELS: dict[EntityKind, type] = {
    EntityKind.CUSTOMER: Customer,
    EntityKind.PROPERTY: Property,
}


class EntitySelector(BaseSelector):

    def customer_details(self, customer: Customer) -> dict[str, Any]:
        customer_type = CustomerType(customer.customer_type)
        detail_model = DETAIL_MODELS[customer_type]
        detail = self.session.execute(
            select(detail_model).where(detail_model.customer_id == customer.id)
        ).scalar_one_or_none()
        if detail is None:
            return {}
        return detail.to_details(variant_for(customer_type).fields)

    def owner_ids(self, property_id: UUID) -> tuple[UUID, ...]:
        return tuple(
            self.session.execute(
                select(PropertyOwner.customer_id)
                .where(PropertyOwner.property_id == property_id)
                .order_by(PropertyOwner.is_primary.desc(), PropertyOwner.customer_id)
            ).scalars()
        )

    def snapshot(self, row: Customer | Property) -> EntitySnapshot:
        """DTO for an already-loaded row."""
        if isinstance(row, Customer):
            return row.to_dto(self.customer_details(row))
        return row.to_dto(self.owner_ids(row.id))

    def get(self, kind: EntityKind, entity_id: UUID) -> EntitySnapshot:
        """
        Raises:
            EntityNotFoundError: no such record.
        """
        model = ENTITY_MODELS[kind]
        row = self.session.execute(
            select(model).where(model.id == entity_id)
        ).scalar_one_or_none()
        if row is None:
            raise EntityNotFoundError(kind.value, str(entity_id))
        return self.snapshot(row)
