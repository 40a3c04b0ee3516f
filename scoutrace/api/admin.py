"""Admin API route definitions. Every route except login requires a session."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..errors import Failure
from ..services.admin_auth import SessionContext
from .dependencies import (
    ApiError,
    Services,
    client_ip,
    get_services,
    require_admin,
    session_token,
)

logger = logging.getLogger(__name__)
admin_router = APIRouter(prefix="/api/admin", tags=["admin"])


class LoginRequest(BaseModel):
    password: str


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


# =============================================================================
# SESSION
# =============================================================================

@admin_router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Exchange the admin password for a session cookie."""
    ip = client_ip(request)
    # bcrypt is slow on purpose; keep it off the event loop
    result = await run_in_threadpool(services.admin.login, body.password, ip)
    if isinstance(result, Failure):
        raise ApiError(result)

    response = JSONResponse(content={
        "authenticated": True,
        "expiresAt": _iso(result.expires_at),
    })
    response.set_cookie(
        key=services.settings.session_cookie_name,
        value=result.token,
        max_age=result.max_age,
        httponly=True,
        secure=services.settings.session_cookie_secure,
        samesite="strict",
        path="/api/admin",
    )
    return response


@admin_router.post("/logout")
async def logout(
    request: Request,
    services: Services = Depends(get_services),
) -> JSONResponse:
    """End the current session. Succeeds even without one."""
    services.admin.logout(session_token(request), client_ip(request))
    response = JSONResponse(content={"authenticated": False})
    response.delete_cookie(services.settings.session_cookie_name, path="/api/admin")
    return response


@admin_router.get("/session")
async def current_session(session: SessionContext = Depends(require_admin)) -> dict:
    """Describe the current session."""
    return {
        "authenticated": True,
        "issuedAt": _iso(session.issued_at),
        "expiresAt": _iso(session.expires_at),
        "idleExpiresAt": _iso(session.idle_expires_at),
    }


# =============================================================================
# REGISTRATIONS
# =============================================================================

@admin_router.get("/registrations/{registration_id}")
async def get_registration(
    registration_id: int,
    session: SessionContext = Depends(require_admin),
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Full snapshot of one registration."""
    result = await run_in_threadpool(services.registrations.get_registration, registration_id)
    if isinstance(result, Failure):
        raise ApiError(result)
    return JSONResponse(content=result.to_response())


@admin_router.patch("/registrations/{registration_id}/mark-paid")
async def mark_paid(
    registration_id: int,
    request: Request,
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Mark a registration as paid. Repeating the call is harmless."""
    result = await run_in_threadpool(
        services.admin.mark_paid,
        session_token(request),
        registration_id,
        client_ip(request),
    )
    if isinstance(result, Failure):
        raise ApiError(result)
    return JSONResponse(content=result.to_response())


# =============================================================================
# LISTINGS & EXPORTS
# =============================================================================

def _filters(
    race_id: Optional[int],
    payment_status: Optional[str],
    region: Optional[str],
    q: Optional[str],
) -> dict:
    return {
        "raceId": race_id,
        "paymentStatus": payment_status,
        "region": region,
        "q": q,
    }


@admin_router.get("/{entity}.csv")
async def export_entity(
    entity: str,
    race_id: Optional[int] = Query(None, alias="raceId"),
    payment_status: Optional[str] = Query(None, alias="paymentStatus", pattern="^(PENDING|PAID)$"),
    region: Optional[str] = Query(None),
    q: Optional[str] = Query(None, max_length=100),
    sort: Optional[str] = Query(None),
    order: str = Query("asc", pattern="^(asc|desc)$"),
    session: SessionContext = Depends(require_admin),
    services: Services = Depends(get_services),
) -> Response:
    """
    Export an entity listing as CSV.

    Example URLs:
    - /api/admin/registrations.csv?paymentStatus=PENDING
    - /api/admin/teams.csv?raceId=1&sort=teamName
    """
    result = await run_in_threadpool(
        services.exports.export_csv,
        entity,
        _filters(race_id, payment_status, region, q),
        sort,
        order,
    )
    if isinstance(result, Failure):
        raise ApiError(result)

    stamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    return Response(
        content=result,
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f"attachment; filename={entity}-{stamp}.csv",
            "Cache-Control": "no-store",
        },
    )


@admin_router.get("/{entity}")
async def list_entity(
    entity: str,
    race_id: Optional[int] = Query(None, alias="raceId"),
    payment_status: Optional[str] = Query(None, alias="paymentStatus", pattern="^(PENDING|PAID)$"),
    region: Optional[str] = Query(None),
    q: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, alias="pageSize", ge=1),
    sort: Optional[str] = Query(None),
    order: str = Query("asc", pattern="^(asc|desc)$"),
    session: SessionContext = Depends(require_admin),
    services: Services = Depends(get_services),
) -> JSONResponse:
    """List teams, leaders, units or registrations."""
    result = await run_in_threadpool(
        services.exports.list,
        entity,
        _filters(race_id, payment_status, region, q),
        page,
        page_size,
        sort,
        order,
    )
    if isinstance(result, Failure):
        raise ApiError(result)
    return JSONResponse(content=result)
