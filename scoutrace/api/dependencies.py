"""FastAPI dependencies for dependency injection."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from ..config import Settings
from ..errors import Failure
from ..services import AbuseGuard, AdminAuthority, ExportService, RegistrationService
from ..services.admin_auth import SessionContext
from ..storage import DatabaseInterface


@dataclass
class Services:
    """Everything a request handler may need, built once at startup."""

    settings: Settings
    db: DatabaseInterface
    guard: AbuseGuard
    registrations: RegistrationService
    admin: AdminAuthority
    exports: ExportService


def build_services(settings: Settings, db: DatabaseInterface, guard: Optional[AbuseGuard] = None) -> Services:
    """Wire the service graph around one database and one settings value."""
    guard = guard or AbuseGuard(settings)
    return Services(
        settings=settings,
        db=db,
        guard=guard,
        registrations=RegistrationService(db, settings),
        admin=AdminAuthority(settings, guard, db),
        exports=ExportService(db, max_page_size=settings.admin_max_page_size),
    )


class ApiError(Exception):
    """Raised by handlers and dependencies to return an error envelope."""

    def __init__(self, failure: Failure):
        super().__init__(failure.kind.value)
        self.failure = failure


def error_response(failure: Failure) -> JSONResponse:
    """Render a Failure as the JSON error envelope."""
    headers = {}
    if failure.retry_after:
        headers["Retry-After"] = str(failure.retry_after)
    return JSONResponse(
        status_code=failure.status_code,
        content=failure.to_envelope(),
        headers=headers,
    )


def get_services(request: Request) -> Services:
    """Get the service container dependency."""
    return request.app.state.services


def client_ip(request: Request) -> str:
    """Client address, honouring X-Forwarded-For only when configured to."""
    services: Services = request.app.state.services
    if services.settings.trust_proxy_headers:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def session_token(request: Request) -> Optional[str]:
    """Session token from the admin cookie, or a Bearer header for API clients."""
    services: Services = request.app.state.services
    token = request.cookies.get(services.settings.session_cookie_name)
    if token:
        return token
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None


def require_admin(request: Request) -> SessionContext:
    """Admin session dependency: 401 without a session, 403 when invalid."""
    services: Services = request.app.state.services
    result = services.admin.validate(session_token(request))
    if isinstance(result, Failure):
        raise ApiError(result)
    return result
