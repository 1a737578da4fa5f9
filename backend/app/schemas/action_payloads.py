"""Typed change_data payloads, one model per action type.

`change_data` is stored as JSON on the pending action, but it is always
produced and consumed through these models: the registry picks the model
for an action type (and, for website content, for the section being
edited), so a payload can never reach the executor with missing or
misspelled fields.

Update payloads are sparse: only the fields the employee set are stored,
and at least one field must be set. A field may be sent as null to clear it,
except where the column it maps to cannot be empty.
"""

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ClientStatus = Literal["Active", "Inactive", "Suspended"]
LotType = Literal["Standard", "Premium"]
LotStatus = Literal["Available", "Reserved", "Occupied", "Maintenance"]
PaymentStatus = Literal["Completed", "Pending", "Failed", "Overdue"]


class ActionPayload(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class UpdatePayload(ActionPayload):
    """Sparse update: at least one field must be provided."""

    @model_validator(mode="after")
    def _at_least_one_field(self):
        if not self.model_fields_set:
            raise ValueError("at least one field must be changed")
        return self


def _not_null(value):
    if value is None:
        raise ValueError("cannot be null")
    return value


# ── Clients ──────────────────────────────────────────────────


class ClientCreateData(ActionPayload):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    phone: str | None = Field(None, max_length=50)
    address: str | None = None
    emergency_contact: str | None = Field(None, max_length=255)
    emergency_phone: str | None = Field(None, max_length=50)
    notes: str | None = None
    status: ClientStatus = "Active"


class ClientUpdateData(UpdatePayload):
    name: str | None = Field(None, min_length=1, max_length=255)
    email: str | None = Field(None, min_length=3, max_length=255)
    phone: str | None = Field(None, max_length=50)
    address: str | None = None
    emergency_contact: str | None = Field(None, max_length=255)
    emergency_phone: str | None = Field(None, max_length=50)
    notes: str | None = None
    status: ClientStatus | None = None

    @field_validator("name", "email", "status")
    @classmethod
    def required_fields_not_null(cls, v):
        return _not_null(v)


# ── Lots ─────────────────────────────────────────────────────


class LotCreateData(ActionPayload):
    lot_number: str = Field(..., min_length=1, max_length=50)
    section: str = Field(..., min_length=1, max_length=100)
    lot_type: LotType = "Standard"
    status: LotStatus = "Available"
    price: float = Field(..., ge=0)
    dimensions: str | None = Field(None, max_length=100)
    description: str | None = None


class LotUpdateData(UpdatePayload):
    lot_number: str | None = Field(None, min_length=1, max_length=50)
    section: str | None = Field(None, min_length=1, max_length=100)
    lot_type: LotType | None = None
    status: LotStatus | None = None
    price: float | None = Field(None, ge=0)
    owner_id: str | None = None
    occupant_name: str | None = None
    dimensions: str | None = Field(None, max_length=100)
    description: str | None = None

    @field_validator("lot_number", "section", "lot_type", "status", "price")
    @classmethod
    def required_fields_not_null(cls, v):
        return _not_null(v)


# ── Payments ─────────────────────────────────────────────────


class PaymentUpdateData(UpdatePayload):
    status: PaymentStatus | None = None
    amount: float | None = Field(None, gt=0)
    method: str | None = Field(None, max_length=50)
    reference: str | None = Field(None, max_length=100)
    payment_date: date | None = None
    notes: str | None = None

    @field_validator("status", "amount")
    @classmethod
    def required_fields_not_null(cls, v):
        return _not_null(v)


# ── Burials ──────────────────────────────────────────────────


class BurialCreateData(ActionPayload):
    lot_id: str = Field(..., min_length=1)
    deceased_name: str = Field(..., min_length=1, max_length=255)
    burial_date: date
    burial_time: str | None = Field(None, pattern=r"^\d{2}:\d{2}$")
    age: int | None = Field(None, ge=0, le=150)
    family_name: str | None = Field(None, max_length=255)
    cause_of_death: str | None = Field(None, max_length=255)
    funeral_home: str | None = Field(None, max_length=255)
    attendees: int = Field(0, ge=0)
    notes: str | None = None


class BurialUpdateData(UpdatePayload):
    deceased_name: str | None = Field(None, min_length=1, max_length=255)
    burial_date: date | None = None
    burial_time: str | None = Field(None, pattern=r"^\d{2}:\d{2}$")
    age: int | None = Field(None, ge=0, le=150)
    family_name: str | None = Field(None, max_length=255)
    cause_of_death: str | None = Field(None, max_length=255)
    funeral_home: str | None = Field(None, max_length=255)
    attendees: int | None = Field(None, ge=0)
    notes: str | None = None

    @field_validator("deceased_name", "burial_date", "attendees")
    @classmethod
    def required_fields_not_null(cls, v):
        return _not_null(v)


# ── Website content (one model per section) ──────────────────


class HeroContentData(UpdatePayload):
    title: str | None = Field(None, max_length=200)
    subtitle: str | None = Field(None, max_length=300)
    description: str | None = None


class AboutContentData(UpdatePayload):
    title: str | None = Field(None, max_length=200)
    content: str | None = None


class ContactContentData(UpdatePayload):
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    address: str | None = None
    visiting_hours: str | None = Field(None, max_length=200)


class PricingContentData(UpdatePayload):
    standard_label: str | None = Field(None, max_length=100)
    standard_price: float | None = Field(None, ge=0)
    standard_description: str | None = None
    premium_label: str | None = Field(None, max_length=100)
    premium_price: float | None = Field(None, ge=0)
    premium_description: str | None = None


CONTENT_SECTION_PAYLOADS: dict[str, type[UpdatePayload]] = {
    "hero": HeroContentData,
    "about": AboutContentData,
    "contact": ContactContentData,
    "pricing": PricingContentData,
}
