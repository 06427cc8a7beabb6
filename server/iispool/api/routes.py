"""API route handlers."""
import asyncio
import logging
import secrets
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status

from .. import __version__
from ..core.config import settings, get_config_validation_result
from ..core.confirmation import ConfirmationGate
from ..core.models import (
    HealthResponse,
    PoolAction,
    PoolActionRequest,
    PoolActionResponse,
    PoolRecordError,
    PoolTarget,
    SessionContext,
    WinRMCredential,
)
from ..services.pool_control_service import pool_control_service

logger = logging.getLogger(__name__)

router = APIRouter()


def require_token(authorization: Optional[str] = Header(None)) -> None:
    """Check the bearer token when API_TOKEN is configured."""

    if not settings.api_token:
        return

    expected = f"Bearer {settings.api_token.get_secret_value()}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


def _session_for(request: PoolActionRequest) -> SessionContext:
    """Use the request credential, falling back to the configured default."""

    if request.username and request.password:
        return SessionContext(
            credential=WinRMCredential(username=request.username, password=request.password)
        )
    if settings.has_default_credential():
        return SessionContext(
            credential=WinRMCredential(
                username=settings.winrm_username,
                password=settings.winrm_password,
            )
        )
    return SessionContext()


def _run_pool_action(action: PoolAction, request: PoolActionRequest) -> PoolActionResponse:
    """Run one pool command synchronously and collect everything it reports."""

    response = PoolActionResponse(action=action)
    errors: List[PoolRecordError] = response.errors
    skipped: List[str] = response.skipped

    def on_error(target: PoolTarget, exc: Exception) -> None:
        logger.error(
            "Pool %s for %s on %s failed: %s", action.value, target.name, target.computer_name, exc
        )
        errors.append(
            PoolRecordError(
                computer_name=target.computer_name,
                name=target.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
        )

    def approve(text: str) -> bool:
        if not request.approved:
            skipped.append(text)
        return request.approved

    gate = ConfirmationGate(what_if=request.what_if, prompt=approve, report=skipped.append)
    command = (
        pool_control_service.restart_pools
        if action is PoolAction.RECYCLE
        else pool_control_service.stop_pools
    )

    outputs = command(
        request.records or None,
        computer_name=request.computer_name,
        name=request.name,
        sites=request.sites,
        pass_thru=request.pass_thru,
        session=_session_for(request),
        gate=gate,
        on_error=on_error,
    )
    response.outputs = [item.model_dump(by_alias=True, mode="json") for item in outputs]
    return response


@router.get("/healthz", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/readyz", response_model=HealthResponse, tags=["Health"])
async def readiness_check(response: Response):
    """Readiness check endpoint."""

    config_result = get_config_validation_result()
    readiness_status = "ready"
    if config_result and config_result.has_errors:
        readiness_status = "config_error"

    response.status_code = status.HTTP_200_OK
    return HealthResponse(
        status=readiness_status,
        version=__version__,
        timestamp=datetime.now(timezone.utc),
    )


@router.post(
    "/api/v1/pools/restart",
    response_model=PoolActionResponse,
    tags=["Pools"],
    dependencies=[Depends(require_token)],
)
async def restart_pool_action(request: PoolActionRequest):
    """Recycle application pools; restart failures are returned as outputs."""

    return await asyncio.to_thread(_run_pool_action, PoolAction.RECYCLE, request)


@router.post(
    "/api/v1/pools/stop",
    response_model=PoolActionResponse,
    tags=["Pools"],
    dependencies=[Depends(require_token)],
)
async def stop_pool_action(request: PoolActionRequest):
    """Stop application pools."""

    return await asyncio.to_thread(_run_pool_action, PoolAction.STOP, request)
