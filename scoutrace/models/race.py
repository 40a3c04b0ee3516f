"""Race data model."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from scoutrace.utils.money import to_amount


class Race(BaseModel):
    """A race category with its own pricing and participant bounds."""

    id: Optional[int] = None
    name: str = Field(..., min_length=1)
    participation_price: Decimal = Field(..., alias="participationPrice", ge=0)
    min_participants: int = Field(..., alias="minParticipants", gt=0)
    max_participants: int = Field(..., alias="maxParticipants", gt=0)
    race_date: date = Field(..., alias="raceDate")
    description: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    class Config:
        """Pydantic configuration."""

        populate_by_name = True

    @field_validator("participation_price")
    @classmethod
    def _two_decimals(cls, value: Decimal) -> Decimal:
        return to_amount(value)

    @model_validator(mode="after")
    def _check_bounds(self) -> "Race":
        if self.max_participants < self.min_participants:
            raise ValueError("maxParticipants must be >= minParticipants")
        return self

    def accepts(self, participant_count: int) -> bool:
        """Check whether a team size falls within this race's bounds."""
        return self.min_participants <= participant_count <= self.max_participants
