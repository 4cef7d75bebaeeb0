"""Customer and property records: create, read, edit while editable, photos."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from lms_api.dependencies import get_actor, get_db, get_record_service
from lms_api.schemas import (
    AddPhotoRequest,
    CreateCustomerRequest,
    CreatePropertyRequest,
    EntityOut,
    UpdateRecordRequest,
)
from lms_kernel.domain.values import Actor, EntityKind
from lms_kernel.selectors.entity_selector import EntitySelector
from lms_kernel.services.record_service import RecordService

router = APIRouter(prefix="/records", tags=["Records"])


@router.post("/customers", response_model=EntityOut, status_code=status.HTTP_201_CREATED)
def create_customer(
    body: CreateCustomerRequest,
    actor: Actor = Depends(get_actor),
    records: RecordService = Depends(get_record_service),
):
    return EntityOut.model_validate(
        records.create_customer(actor, body.customer_type, body.details)
    )


@router.post("/properties", response_model=EntityOut, status_code=status.HTTP_201_CREATED)
def create_property(
    body: CreatePropertyRequest,
    actor: Actor = Depends(get_actor),
    records: RecordService = Depends(get_record_service),
):
    return EntityOut.model_validate(
        records.create_property(
            actor,
            parcel_number=body.parcel_number,
            district_code=body.district_code,
            size=body.size,
            property_location=body.property_location,
            road_name=body.road_name,
            door_number=body.door_number,
            is_building=body.is_building,
            number_of_floors=body.number_of_floors,
            owner_ids=body.owner_ids,
            primary_owner_id=body.primary_owner_id,
        )
    )


@router.post("/properties/{property_id}/photos", status_code=status.HTTP_201_CREATED)
def add_property_photo(
    property_id: UUID,
    body: AddPhotoRequest,
    actor: Actor = Depends(get_actor),
    records: RecordService = Depends(get_record_service),
):
    photo_id = records.add_property_photo(actor, property_id, body.url, body.caption)
    return {"id": str(photo_id)}


@router.get("/{entity_type}/{entity_id}", response_model=EntityOut)
def get_record(
    entity_type: EntityKind,
    entity_id: UUID,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_db),
):
    return EntityOut.model_validate(EntitySelector(session).get(entity_type, entity_id))


@router.patch("/{entity_type}/{entity_id}", response_model=EntityOut)
def update_record(
    entity_type: EntityKind,
    entity_id: UUID,
    body: UpdateRecordRequest,
    actor: Actor = Depends(get_actor),
    records: RecordService = Depends(get_record_service),
):
    return EntityOut.model_validate(
        records.update_draft(
            actor,
            entity_type,
            entity_id,
            body.changes(),
            expected_version=body.expected_version,
        )
    )
