"""Data models for the scout race registration service."""

from scoutrace.models.race import Race
from scoutrace.models.registration import (
    ConfirmationSnapshot,
    Leader,
    LeaderSummary,
    PaymentStatus,
    PaymentSummary,
    Pricing,
    Registration,
    Team,
    TeamSummary,
    Unit,
    UnitSummary,
)
from scoutrace.models.payload import LeaderInput, RegistrationPayload, TeamInput, UnitInput

__all__ = [
    "Race",
    "Unit",
    "Leader",
    "Registration",
    "Team",
    "PaymentStatus",
    "ConfirmationSnapshot",
    "PaymentSummary",
    "Pricing",
    "TeamSummary",
    "LeaderSummary",
    "UnitSummary",
    "RegistrationPayload",
    "UnitInput",
    "LeaderInput",
    "TeamInput",
]
