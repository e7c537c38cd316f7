"""Data models for waivers, search candidates and admin accounts."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class SearchCandidate(BaseModel):
    """Immutable read projection of a stored waiver used in search results."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    display_name: str
    first_name: str
    last_name: str
    email: str | None = None
    year_of_birth: str = ""
    minor_names: str | None = None
    waiver_year: int
    is_current_year: bool
    signature_timestamp: str = ""
    score: float | None = Field(
        default=None,
        description="Relevance score supplied by fuzzy ranking.",
    )


class WaiverSubmission(BaseModel):
    """Payload accepted from the public waiver form."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    first_name: str
    last_name: str
    email: str
    year_of_birth: str
    phone: str | None = None
    emergency_contact_phone: str
    safety_rules_initial: str
    medical_consent_initial: str
    photo_release: bool = False
    minor_names: str | None = None
    signature: str

    @field_validator(
        "first_name",
        "last_name",
        "email",
        "year_of_birth",
        "emergency_contact_phone",
        "safety_rules_initial",
        "medical_consent_initial",
        "signature",
    )
    @classmethod
    def _require_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("field is required")
        return value

    @field_validator("phone", "minor_names")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None


class WaiverRecord(WaiverSubmission):
    """Full stored waiver for the detail view."""

    id: int
    signature_date: str
    waiver_year: int
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: str | None = None


class AdminUser(BaseModel):
    """Admin account without credentials."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    username: str
    created_at: str | None = None
