"""Public API route definitions."""

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from ..errors import MESSAGES, ErrorKind, Failure, fail
from ..services import Action, Outcome
from .dependencies import ApiError, Services, client_ip, get_services

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/races")
async def list_races(services: Services = Depends(get_services)) -> JSONResponse:
    """List the races open for registration."""
    races = await run_in_threadpool(services.registrations.list_races)
    if isinstance(races, Failure):
        raise ApiError(races)
    return JSONResponse(content=races)


@router.post("/api/registration", status_code=201)
async def create_registration(
    request: Request,
    services: Services = Depends(get_services),
) -> JSONResponse:
    """
    Register a unit for a race.

    Returns the full confirmation snapshot, so the client needs no
    follow-up read to render a receipt.
    """
    ip = client_ip(request)

    admission = services.guard.check(ip, Action.REGISTRATION)
    if not admission.allowed:
        logger.warning(f"Registration from {ip} rate limited ({admission.retry_after}s)")
        raise ApiError(Failure(
            kind=ErrorKind.RATE_LIMIT,
            message=MESSAGES[ErrorKind.RATE_LIMIT],
            retry_after=admission.retry_after,
        ))

    outcome = None
    try:
        try:
            raw = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            outcome = Outcome.FAILURE
            raise ApiError(fail(ErrorKind.INVALID_PAYLOAD, "Le corps de la requête n'est pas un JSON valide."))

        result = await run_in_threadpool(services.registrations.submit, raw)

        if isinstance(result, Failure):
            # Server-side faults are not held against the client
            if result.kind is not ErrorKind.INTERNAL:
                outcome = Outcome.FAILURE
            raise ApiError(result)

        outcome = Outcome.SUCCESS
        return JSONResponse(status_code=201, content=result.to_response())
    finally:
        services.guard.record(ip, Action.REGISTRATION, outcome)


@router.get("/health")
async def health(services: Services = Depends(get_services)) -> JSONResponse:
    """Health check endpoint."""
    healthy = await run_in_threadpool(services.db.health_check)
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ok" if healthy else "degraded", "database": healthy},
    )
