"""
Customer detail variants (``lms_kernel.domain.customer_variants``).

A customer is a tagged union keyed by ``customer_type``.  Each variant owns
its field set, its required-field validation and the way its display name
is composed.  The persistence side maps each variant to one detail table
(see ``lms_kernel.models.customer.DETAIL_MODELS``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping

from lms_kernel.domain.values import CustomerType, Gender
from lms_kernel.exceptions import ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class CustomerVariant:
    """Field contract for one customer type."""

    customer_type: CustomerType
    required_fields: tuple[str, ...]
    optional_fields: tuple[str, ...] = ()
    date_fields: frozenset[str] = frozenset()
    name_field: str = "contact_name"

    @property
    def fields(self) -> tuple[str, ...]:
        return self.required_fields + self.optional_fields

    def validate(self, details: Mapping[str, Any]) -> dict[str, Any]:
        """
        Return cleaned detail values for this variant.

        Raises:
            ValidationError: unknown field, missing required field, or a
                malformed email/date value.
        """
        unknown = sorted(set(details) - set(self.fields))
        if unknown:
            raise ValidationError(
                f"Unknown fields for {self.customer_type.value} customer: "
                f"{', '.join(unknown)}",
                field=unknown[0],
            )

        cleaned: dict[str, Any] = {}
        for name in self.fields:
            value = details.get(name)
            if isinstance(value, str):
                value = value.strip() or None
            if value is None:
                if name in self.required_fields:
                    raise ValidationError(f"{name} is required", field=name)
                cleaned[name] = None
                continue
            if name in self.date_fields:
                value = _parse_date(name, value)
            elif name == "email":
                value = _check_email(value)
            cleaned[name] = value
        return cleaned

    def display_name(self, details: Mapping[str, Any]) -> str:
        return str(details.get(self.name_field) or "")


@dataclass(frozen=True)
class PersonVariant(CustomerVariant):
    """Individuals: names are composed from the name chain."""

    name_field: str = "first_name"

    def validate(self, details: Mapping[str, Any]) -> dict[str, Any]:
        cleaned = super().validate(details)
        gender = cleaned["gender"]
        try:
            cleaned["gender"] = Gender(str(gender).upper()).value
        except ValueError:
            raise ValidationError(f"Invalid gender: {gender}", field="gender") from None
        dob = cleaned["date_of_birth"]
        if isinstance(dob, date) and cleaned.get("id_expiry_date"):
            if cleaned["id_expiry_date"] <= dob:
                raise ValidationError(
                    "id_expiry_date must be after date_of_birth",
                    field="id_expiry_date",
                )
        return cleaned

    def display_name(self, details: Mapping[str, Any]) -> str:
        parts = (
            details.get("first_name"),
            details.get("father_name"),
            details.get("grandfather_name"),
            details.get("fourth_name"),
        )
        return " ".join(p for p in parts if p)


def _parse_date(name: str, value: Any) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)", field=name) from None


def _check_email(value: Any) -> str:
    email = str(value)
    if not _EMAIL_RE.match(email):
        raise ValidationError(f"Invalid email address: {email}", field="email")
    return email.lower()


_CONTACT = ("contact_name", "mobile_number_1", "email")

CUSTOMER_VARIANTS: dict[CustomerType, CustomerVariant] = {
    CustomerType.PERSON: PersonVariant(
        customer_type=CustomerType.PERSON,
        required_fields=(
            "first_name",
            "father_name",
            "grandfather_name",
            "date_of_birth",
            "gender",
            "nationality",
            "mobile_number_1",
            "email",
            "id_type",
            "id_number",
        ),
        optional_fields=("fourth_name", "mobile_number_2", "id_expiry_date"),
        date_fields=frozenset({"date_of_birth", "id_expiry_date"}),
    ),
    CustomerType.BUSINESS: CustomerVariant(
        customer_type=CustomerType.BUSINESS,
        required_fields=(
            "business_name",
            "business_registration_number",
            "business_license_number",
            "business_address",
        ) + _CONTACT,
        optional_fields=("mobile_number_2",),
        name_field="business_name",
    ),
    CustomerType.GOVERNMENT: CustomerVariant(
        customer_type=CustomerType.GOVERNMENT,
        required_fields=("full_department_name", "department_address") + _CONTACT,
        optional_fields=("mobile_number_2",),
        name_field="full_department_name",
    ),
    CustomerType.MOSQUE_HOSPITAL: CustomerVariant(
        customer_type=CustomerType.MOSQUE_HOSPITAL,
        required_fields=("full_name", "registration_number", "address") + _CONTACT,
        optional_fields=("mobile_number_2",),
        name_field="full_name",
    ),
    CustomerType.NON_PROFIT: CustomerVariant(
        customer_type=CustomerType.NON_PROFIT,
        required_fields=(
            "full_non_profit_name",
            "registration_number",
            "license_number",
            "address",
        ) + _CONTACT,
        optional_fields=("mobile_number_2",),
        name_field="full_non_profit_name",
    ),
    CustomerType.CONTRACTOR: CustomerVariant(
        customer_type=CustomerType.CONTRACTOR,
        required_fields=("full_contractor_name",) + _CONTACT,
        optional_fields=("mobile_number_2",),
        name_field="full_contractor_name",
    ),
}


def variant_for(customer_type: CustomerType | str) -> CustomerVariant:
    """Look up the variant for a customer type.

    Raises:
        ValidationError: unknown customer type.
    """
    try:
        return CUSTOMER_VARIANTS[CustomerType(customer_type)]
    except ValueError:
        raise ValidationError(
            f"Unknown customer type: {customer_type}", field="customer_type"
        ) from None
