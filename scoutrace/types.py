"""
Type definitions for the scout race registration API.

Provides TypedDict classes for the JSON shapes exchanged with clients.
"""

from typing import TypedDict, Optional, List

class FieldErrorDict(TypedDict):
    """One structural validation problem."""
    field: str  # dotted path, e.g. "teams.0.participantCount"
    reason: str

class ErrorBodyDict(TypedDict, total=False):
    """Body of the error envelope."""
    code: str  # ErrorKind value
    message: str  # French, user-facing
    details: dict

class ErrorEnvelopeDict(TypedDict):
    """Error response: {"error": {...}}."""
    error: ErrorBodyDict

class ListingPageDict(TypedDict):
    """One page of an admin listing."""
    items: List[dict]
    page: int
    pageSize: int
    total: int

class AuditEventDict(TypedDict, total=False):
    """Audit log line."""
    event: str  # admin.login, admin.logout, admin.mark_paid
    ip: str
    outcome: str
    timestamp: str
    registrationId: Optional[int]
