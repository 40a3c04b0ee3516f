"""Unit, Leader, Registration and Team data models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from scoutrace.models.race import Race


class PaymentStatus(str, Enum):
    """Payment status of a registration. Only PENDING -> PAID is allowed."""

    PENDING = "PENDING"
    PAID = "PAID"


class Unit(BaseModel):
    """A scout group entity that registers for races."""

    id: int
    unit_name: str = Field(..., alias="unitName")
    region: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class Leader(BaseModel):
    """The single responsible contact of a unit."""

    id: int
    unit_id: int = Field(..., alias="unitId")
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    email: str
    phone: str
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class Team(BaseModel):
    """A named sub-group of participants within a registration."""

    id: int
    registration_id: int = Field(..., alias="registrationId")
    team_name: str = Field(..., alias="teamName")
    participant_count: int = Field(..., alias="participantCount")
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class Registration(BaseModel):
    """Canonical record linking a unit to a race with aggregated totals."""

    id: int
    unit_id: int = Field(..., alias="unitId")
    race_id: int = Field(..., alias="raceId")
    total_participants: int = Field(..., alias="totalParticipants")
    total_price: Decimal = Field(..., alias="totalPrice")
    payment_status: PaymentStatus = Field(PaymentStatus.PENDING, alias="paymentStatus")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    paid_at: Optional[datetime] = Field(None, alias="paidAt")

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class TeamSummary(BaseModel):
    """Team as echoed back in a confirmation."""

    id: int
    team_name: str = Field(..., alias="teamName")
    participant_count: int = Field(..., alias="participantCount")

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class LeaderSummary(BaseModel):
    """Leader as echoed back in a confirmation."""

    id: int
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    email: str
    phone: str

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class UnitSummary(BaseModel):
    """Unit as echoed back in a confirmation."""

    id: int
    unit_name: str = Field(..., alias="unitName")
    region: Optional[str] = None

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class Pricing(BaseModel):
    """Pricing breakdown of a registration."""

    participation_price: Decimal = Field(..., alias="participationPrice")
    total_participants: int = Field(..., alias="totalParticipants")
    total_price: Decimal = Field(..., alias="totalPrice")
    currency: str = "EUR"

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class ConfirmationSnapshot(BaseModel):
    """
    Full denormalized view of a stored registration.

    Sufficient to render a receipt without any further query.
    """

    id: int
    payment_status: PaymentStatus = Field(..., alias="paymentStatus")
    created_at: datetime = Field(..., alias="createdAt")
    paid_at: Optional[datetime] = Field(None, alias="paidAt")
    race: Race
    unit: UnitSummary
    leader: LeaderSummary
    teams: list[TeamSummary]
    pricing: Pricing

    class Config:
        """Pydantic configuration."""

        populate_by_name = True

    def to_response(self) -> dict:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class PaymentSummary(BaseModel):
    """Registration state returned after a payment status change."""

    id: int
    payment_status: PaymentStatus = Field(..., alias="paymentStatus")
    total_participants: int = Field(..., alias="totalParticipants")
    total_price: Decimal = Field(..., alias="totalPrice")
    paid_at: Optional[datetime] = Field(None, alias="paidAt")
    already_paid: bool = Field(False, alias="alreadyPaid")

    class Config:
        """Pydantic configuration."""

        populate_by_name = True

    def to_response(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
