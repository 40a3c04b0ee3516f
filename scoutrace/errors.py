"""
Error taxonomy shared by the services and the HTTP layer.

Expected business failures are returned as `Failure` values rather than
raised. The code is the stable machine-readable contract; messages are the
French strings shown to users.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .types import ErrorEnvelopeDict


class ErrorKind(str, Enum):
    """Machine-readable error codes."""

    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    RACE_NOT_FOUND = "RACE_NOT_FOUND"
    PARTICIPANT_CONSTRAINT = "PARTICIPANT_CONSTRAINT"
    TOO_MANY_TEAMS = "TOO_MANY_TEAMS"
    UNIT_LEADER_CONFLICT = "UNIT_LEADER_CONFLICT"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMIT = "RATE_LIMIT"
    RATE_LIMIT_LOGIN = "RATE_LIMIT_LOGIN"
    INTERNAL = "INTERNAL"


STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.INVALID_PAYLOAD: 400,
    ErrorKind.RACE_NOT_FOUND: 400,
    ErrorKind.PARTICIPANT_CONSTRAINT: 422,
    ErrorKind.TOO_MANY_TEAMS: 400,
    ErrorKind.UNIT_LEADER_CONFLICT: 409,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.RATE_LIMIT: 429,
    ErrorKind.RATE_LIMIT_LOGIN: 429,
    ErrorKind.INTERNAL: 500,
}

MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.INVALID_PAYLOAD: "Les données envoyées sont invalides ou incomplètes.",
    ErrorKind.RACE_NOT_FOUND: "La course sélectionnée n'existe pas.",
    ErrorKind.PARTICIPANT_CONSTRAINT: "Le nombre de participants ne respecte pas les limites de la course.",
    ErrorKind.TOO_MANY_TEAMS: "Trop d'équipes dans une seule inscription.",
    ErrorKind.UNIT_LEADER_CONFLICT: "Cette unité est déjà inscrite avec un autre responsable.",
    ErrorKind.UNAUTHORIZED: "Authentification requise.",
    ErrorKind.FORBIDDEN: "Session invalide ou expirée.",
    ErrorKind.NOT_FOUND: "Ressource introuvable.",
    ErrorKind.RATE_LIMIT: "Trop de tentatives. Veuillez réessayer plus tard.",
    ErrorKind.RATE_LIMIT_LOGIN: "Trop de tentatives de connexion. Veuillez réessayer plus tard.",
    ErrorKind.INTERNAL: "Une erreur interne est survenue. Veuillez réessayer.",
}


@dataclass(frozen=True)
class Failure:
    """A tagged, expected failure returned by a service call."""

    kind: ErrorKind
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    retry_after: Optional[int] = None

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def to_envelope(self) -> ErrorEnvelopeDict:
        """Render the JSON error envelope."""
        error: Dict[str, Any] = {
            "code": self.kind.value,
            "message": self.message or MESSAGES[self.kind],
        }
        if self.details:
            error["details"] = self.details
        return {"error": error}


def fail(kind: ErrorKind, message: Optional[str] = None, **details: Any) -> Failure:
    """Build a Failure with the default French message for its kind."""
    return Failure(kind=kind, message=message or MESSAGES[kind], details=details)
