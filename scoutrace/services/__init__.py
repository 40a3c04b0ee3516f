"""Service layer: validation, registration engine, abuse guard, admin sessions, exports."""

from .abuse_guard import AbuseGuard, Action, Admission, InMemoryCounterStore, Outcome
from .admin_auth import AdminAuthority, SessionStore
from .export_service import ExportService
from .registration_service import RegistrationService
from .validator import ValidatedRegistration, validate_registration

__all__ = [
    "AbuseGuard",
    "Action",
    "Admission",
    "InMemoryCounterStore",
    "Outcome",
    "AdminAuthority",
    "SessionStore",
    "ExportService",
    "RegistrationService",
    "ValidatedRegistration",
    "validate_registration",
]
