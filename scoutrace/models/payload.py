"""Inbound registration payload."""

import re
from typing import Annotated, Optional
from pydantic import BaseModel, EmailStr, Field, StrictInt, StringConstraints, field_validator

PHONE_RE = re.compile(r"^\+?[0-9 .\-()]{6,30}$")

Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


class UnitInput(BaseModel):
    unit_name: Name = Field(..., alias="unitName")
    region: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)]] = None

    class Config:
        """Pydantic configuration."""

        populate_by_name = True

    @field_validator("region")
    @classmethod
    def _blank_region_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class LeaderInput(BaseModel):
    first_name: Name = Field(..., alias="firstName")
    last_name: Name = Field(..., alias="lastName")
    email: EmailStr
    phone: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=30)]

    class Config:
        """Pydantic configuration."""

        populate_by_name = True

    @field_validator("phone")
    @classmethod
    def _valid_phone(cls, value: str) -> str:
        if not PHONE_RE.match(value):
            raise ValueError("invalid phone number")
        return value


class TeamInput(BaseModel):
    team_name: Name = Field(..., alias="teamName")
    # Bounds are checked against the race, not here
    participant_count: StrictInt = Field(..., alias="participantCount")

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class RegistrationPayload(BaseModel):
    """
    Candidate registration as submitted by a client.

    Only the shape is checked here. The number of teams and the business
    rules are checked by the validator so that each gets its own error code.
    """

    race_id: StrictInt = Field(..., alias="raceId")
    unit: UnitInput
    leader: LeaderInput
    teams: list[TeamInput]

    class Config:
        """Pydantic configuration."""

        populate_by_name = True
