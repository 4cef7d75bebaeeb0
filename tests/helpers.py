"""Shared builders for test inputs (importable from any test module)."""

from datetime import datetime, timezone

from lms_kernel.domain.values import Actor

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def person_details(**overrides) -> dict:
    details = {
        "first_name": "Amina",
        "father_name": "Yusuf",
        "grandfather_name": "Hassan",
        "date_of_birth": "1985-04-12",
        "gender": "FEMALE",
        "nationality": "Somali",
        "mobile_number_1": "+252611234567",
        "email": "amina@example.com",
        "id_type": "NATIONAL_ID",
        "id_number": "SO-448812",
    }
    details.update(overrides)
    return details


def business_details(**overrides) -> dict:
    details = {
        "business_name": "Hodan Trading",
        "business_registration_number": "BR-2201",
        "business_license_number": "BL-9001",
        "business_address": "Maka Al Mukarama Rd",
        "contact_name": "Hodan Ali",
        "mobile_number_1": "+252615550000",
        "email": "info@hodan.example",
    }
    details.update(overrides)
    return details


def actor_headers(actor: Actor) -> dict[str, str]:
    return {"X-Actor-Id": str(actor.id), "X-Actor-Role": actor.role.value}
