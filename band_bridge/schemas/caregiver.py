from __future__ import annotations

from pydantic import BaseModel, field_validator

NOT_PROVIDED = "Not Provided"


class CaregiverContact(BaseModel):
    name: str = ""
    mobile: str = ""
    email: str = ""

    @field_validator("name", "mobile", "email", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        # None and missing both mean "not filled in"
        if value is None:
            return ""
        return value.strip() if isinstance(value, str) else value


class CaregiverDetails(BaseModel):
    """Caregiver block sent with an alert. Every field is always filled."""

    name: str
    mobile: str
    email: str

    @classmethod
    def from_contact(cls, contact: CaregiverContact) -> "CaregiverDetails":
        return cls(
            name=contact.name or NOT_PROVIDED,
            mobile=contact.mobile or NOT_PROVIDED,
            email=contact.email or NOT_PROVIDED,
        )
