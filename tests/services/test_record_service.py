"""
Tests for RecordService: creating customers and properties, draft edits
and property photos.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from lms_kernel.domain.values import CustomerType, EntityKind, EntityStatus
from lms_kernel.exceptions import (
    ConflictError,
    EntityNotFoundError,
    ForbiddenError,
    InvalidAmountError,
    InvalidTransitionError,
    ValidationError,
)
from lms_kernel.models.property import PropertyPhoto
from lms_kernel.selectors.activity_selector import ActivitySelector
from lms_kernel.selectors.audit_selector import AuditFilters, AuditSelector
from lms_kernel.selectors.entity_selector import EntitySelector
from tests.helpers import business_details, person_details


class TestCreateCustomer:

    def test_person_customer_starts_as_draft(self, make_customer, inputter):
        customer = make_customer()

        assert customer.kind is EntityKind.CUSTOMER
        assert customer.status is EntityStatus.DRAFT
        assert customer.reference_id == "CUS-2026-00001"
        assert customer.display_name == "Amina Yusuf Hassan"
        assert customer.created_by == inputter.id
        assert customer.version == 1
        assert customer.attributes["customer_type"] == "PERSON"
        assert customer.attributes["details"]["id_number"] == "SO-448812"

    def test_business_customer(self, make_customer):
        customer = make_customer(customer_type=CustomerType.BUSINESS)
        assert customer.display_name == "Hodan Trading"
        assert customer.attributes["details"]["email"] == "info@hodan.example"

    def test_reference_numbers_increase(self, make_customer):
        first = make_customer()
        second = make_customer(customer_type=CustomerType.BUSINESS)
        assert (first.reference_id, second.reference_id) == (
            "CUS-2026-00001",
            "CUS-2026-00002",
        )

    def test_invalid_details_rejected(self, record_service, inputter):
        with pytest.raises(ValidationError) as exc_info:
            record_service.create_customer(
                inputter, CustomerType.PERSON, person_details(gender="X")
            )
        assert exc_info.value.field == "gender"

    def test_details_of_wrong_variant_rejected(self, record_service, inputter):
        with pytest.raises(ValidationError):
            record_service.create_customer(inputter, CustomerType.PERSON, business_details())

    @pytest.mark.parametrize("role_fixture", ["approver", "viewer"])
    def test_only_inputters_and_admins_create(self, request, record_service, role_fixture):
        actor = request.getfixturevalue(role_fixture)
        with pytest.raises(ForbiddenError):
            record_service.create_customer(actor, CustomerType.PERSON, person_details())

    def test_admin_may_create(self, make_customer, admin):
        assert make_customer(actor=admin).created_by == admin.id

    def test_creation_is_audited(self, session, make_customer, inputter):
        customer = make_customer()

        audit = AuditSelector(session).query(entity_id=customer.id).items
        assert [(e.action, e.field, e.old_value, e.new_value) for e in audit] == [
            ("CREATED", "status", None, "DRAFT")
        ]
        activity = ActivitySelector(session).query(entity_id=customer.id).items
        assert activity[0].action == "CREATED"
        assert activity[0].metadata == {
            "reference_id": customer.reference_id,
            "customer_type": "PERSON",
        }


class TestCreateProperty:

    def test_property_reference_uses_district(self, make_property):
        prop = make_property(district_code="hdn")

        assert prop.reference_id == "HDN-2026-00001"
        assert prop.status is EntityStatus.DRAFT
        assert prop.attributes["district_code"] == "HDN"
        assert prop.attributes["size"] == Decimal("450.00")

    def test_districts_have_separate_counters(self, make_property):
        make_property(district_code="HDN")
        other = make_property(district_code="WDG")
        assert other.reference_id == "WDG-2026-00001"

    def test_owners_linked_primary_first(self, make_property, make_customer):
        first = make_customer()
        second = make_customer(customer_type=CustomerType.BUSINESS)

        prop = make_property(owner_ids=[first.id], primary_owner_id=second.id)

        assert prop.attributes["owner_ids"][0] == second.id
        assert set(prop.attributes["owner_ids"]) == {first.id, second.id}

    def test_unknown_owner_rejected(self, make_property):
        with pytest.raises(ValidationError) as exc_info:
            make_property(owner_ids=[uuid4()])
        assert exc_info.value.field == "owner_ids"

    def test_duplicate_parcel_rejected(self, make_property):
        make_property(parcel_number="PCL-DUP")
        with pytest.raises(ValidationError) as exc_info:
            make_property(parcel_number="PCL-DUP")
        assert exc_info.value.field == "parcel_number"

    @pytest.mark.parametrize("district", ["", "H-DN", "ABCDEFGHIJK"])
    def test_bad_district_code(self, make_property, district):
        with pytest.raises(ValidationError) as exc_info:
            make_property(district_code=district)
        assert exc_info.value.field == "district_code"

    @pytest.mark.parametrize("size", ["0", "-10"])
    def test_size_must_be_positive(self, make_property, size):
        with pytest.raises(InvalidAmountError):
            make_property(size=size)

    @pytest.mark.parametrize("floors", [0, -1, True, "3"])
    def test_floors_must_be_positive_integer(self, make_property, floors):
        with pytest.raises(ValidationError) as exc_info:
            make_property(is_building=True, number_of_floors=floors)
        assert exc_info.value.field == "number_of_floors"


class TestUpdateDraft:

    def test_property_edit_bumps_version_and_audits(
        self, session, make_property, record_service, inputter
    ):
        prop = make_property(size="100")

        updated = record_service.update_draft(
            inputter, EntityKind.PROPERTY, prop.id, {"size": "125.50", "road_name": " Main "}
        )

        assert updated.version == prop.version + 1
        assert updated.attributes["size"] == Decimal("125.50")
        assert updated.attributes["road_name"] == "Main"
        audit = AuditSelector(session).query(
            entity_id=prop.id, filters=AuditFilters(action="UPDATED")
        ).items
        assert {e.field: (e.old_value, e.new_value) for e in audit} == {
            "size": ("100.00", "125.50"),
            "road_name": (None, "Main"),
        }

    def test_unchanged_values_do_not_write(self, make_property, record_service, inputter):
        prop = make_property(size="100")
        result = record_service.update_draft(
            inputter, EntityKind.PROPERTY, prop.id, {"size": "100.00"}
        )
        assert result.version == prop.version

    def test_parcel_change_updates_display_name(self, make_property, record_service, inputter):
        prop = make_property()
        updated = record_service.update_draft(
            inputter, EntityKind.PROPERTY, prop.id, {"parcel_number": "PCL-NEW"}
        )
        assert updated.display_name == "PCL-NEW"

    def test_customer_details_merged_and_revalidated(
        self, make_customer, record_service, inputter
    ):
        customer = make_customer()

        updated = record_service.update_draft(
            inputter, EntityKind.CUSTOMER, customer.id, {"details": {"fourth_name": "Omar"}}
        )
        assert updated.display_name == "Amina Yusuf Hassan Omar"
        assert updated.attributes["details"]["id_number"] == "SO-448812"

        with pytest.raises(ValidationError):
            record_service.update_draft(
                inputter, EntityKind.CUSTOMER, customer.id, {"details": {"gender": "?"}}
            )

    def test_workflow_fields_cannot_be_edited(self, make_property, record_service, inputter):
        prop = make_property()
        with pytest.raises(ValidationError) as exc_info:
            record_service.update_draft(
                inputter, EntityKind.PROPERTY, prop.id, {"status": "APPROVED"}
            )
        assert exc_info.value.field == "status"

    def test_empty_change_set(self, make_property, record_service, inputter):
        prop = make_property()
        with pytest.raises(ValidationError, match="No changes given"):
            record_service.update_draft(inputter, EntityKind.PROPERTY, prop.id, {})

    def test_stale_version_conflicts(self, make_property, record_service, inputter):
        prop = make_property()
        record_service.update_draft(inputter, EntityKind.PROPERTY, prop.id, {"road_name": "A"})

        with pytest.raises(ConflictError) as exc_info:
            record_service.update_draft(
                inputter, EntityKind.PROPERTY, prop.id, {"road_name": "B"},
                expected_version=prop.version,
            )
        assert exc_info.value.expected_version == prop.version

    def test_submitted_record_is_locked(self, submitted_customer, record_service, inputter):
        with pytest.raises(InvalidTransitionError) as exc_info:
            record_service.update_draft(
                inputter, EntityKind.CUSTOMER, submitted_customer.id,
                {"details": {"fourth_name": "Omar"}},
            )
        assert exc_info.value.current_status == "SUBMITTED"

    def test_rejected_record_is_editable(
        self, submitted_customer, workflow_engine, record_service, inputter, approver
    ):
        workflow_engine.reject(
            approver, EntityKind.CUSTOMER, submitted_customer.id, "Missing ID scan attached"
        )
        updated = record_service.update_draft(
            inputter, EntityKind.CUSTOMER, submitted_customer.id,
            {"details": {"fourth_name": "Omar"}},
        )
        assert updated.status is EntityStatus.REJECTED

    def test_only_creator_or_admin_edits(
        self, make_property, record_service, other_inputter, admin
    ):
        prop = make_property()
        with pytest.raises(ForbiddenError):
            record_service.update_draft(
                other_inputter, EntityKind.PROPERTY, prop.id, {"road_name": "X"}
            )
        updated = record_service.update_draft(
            admin, EntityKind.PROPERTY, prop.id, {"road_name": "X"}
        )
        assert updated.attributes["road_name"] == "X"

    def test_unknown_record(self, record_service, inputter):
        with pytest.raises(EntityNotFoundError):
            record_service.update_draft(
                inputter, EntityKind.PROPERTY, uuid4(), {"road_name": "X"}
            )


class TestPropertyPhotos:

    def test_photo_attached_to_draft(self, session, make_property, record_service, inputter):
        prop = make_property()

        photo_id = record_service.add_property_photo(
            inputter, prop.id, "https://files.example/p1.jpg", caption="Front"
        )

        photo = session.execute(
            select(PropertyPhoto).where(PropertyPhoto.id == photo_id)
        ).scalar_one()
        assert photo.property_id == prop.id
        assert photo.caption == "Front"
        assert photo.uploaded_by == inputter.id

    def test_url_required(self, make_property, record_service, inputter):
        prop = make_property()
        with pytest.raises(ValidationError) as exc_info:
            record_service.add_property_photo(inputter, prop.id, "  ")
        assert exc_info.value.field == "url"

    def test_approved_property_takes_no_photos(
        self, approved_property, record_service, inputter
    ):
        with pytest.raises(InvalidTransitionError):
            record_service.add_property_photo(
                inputter, approved_property.id, "https://files.example/p2.jpg"
            )


class TestEntitySelector:

    def test_get_returns_current_snapshot(self, session, make_property):
        prop = make_property()
        assert EntitySelector(session).get(EntityKind.PROPERTY, prop.id).id == prop.id

    def test_get_unknown(self, session):
        with pytest.raises(EntityNotFoundError):
            EntitySelector(session).get(EntityKind.CUSTOMER, uuid4())
