"""FastAPI dependencies: bearer identity token -> Principal -> RecordService."""

from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ehr_guard.access.errors import Unauthenticated
from ehr_guard.access.principal import Principal, resolve_principal
from ehr_guard.api.middleware import REQUEST_ID_HEADER
from ehr_guard.core.auth import claims_from_token
from ehr_guard.core.database import get_db
from ehr_guard.services.records import RecordService, RequestMeta
from ehr_guard.triggers.notifications import NotificationDispatcher, build_dispatcher


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


async def get_principal(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Resolve the caller from its identity token.

    The token only supplies the auth reference; the role comes from the
    users/patients tables, read in this request's transaction.
    """
    token = _bearer_token(request)
    if not token:
        raise Unauthenticated("Not authenticated")

    claims = claims_from_token(token)
    if claims is None:
        raise Unauthenticated("Invalid or expired token")

    return await resolve_principal(db, claims.auth_ref, claims.claimed_role)


def get_request_meta(request: Request) -> RequestMeta:
    return RequestMeta(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
        request_id=getattr(request.state, "request_id", None) or request.headers.get(REQUEST_ID_HEADER),
    )


def get_dispatcher(request: Request) -> NotificationDispatcher:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        dispatcher = build_dispatcher()
        request.app.state.dispatcher = dispatcher
    return dispatcher


async def get_record_service(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    meta: RequestMeta = Depends(get_request_meta),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> RecordService:
    return RecordService(db, principal, meta=meta, dispatcher=dispatcher)
