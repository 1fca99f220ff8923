from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from api.v1.deps import get_calendar_session
from core.errors import IntegrationErrorKind, ProvisioningError
from services.calendar.client import CalendarSession


router = APIRouter(prefix="/calendars", tags=["calendars"])


def _require_session(session: CalendarSession | None) -> CalendarSession:
    if session is None or not session.is_open:
        raise ProvisioningError(IntegrationErrorKind.unauthenticated, "calendar integration is not connected")
    return session


@router.get("")
async def list_calendars(session: CalendarSession | None = Depends(get_calendar_session)) -> dict[str, Any]:
    calendars = await _require_session(session).list_calendars()
    return {"items": calendars, "total": len(calendars)}


@router.get("/status")
async def calendar_status(session: CalendarSession | None = Depends(get_calendar_session)) -> dict[str, Any]:
    if session is None or not session.is_open:
        return {"connected": False, "authenticated": False, "calendar_id": None, "error": "not connected"}
    try:
        await session.verify()
    except ProvisioningError as exc:
        return {
            "connected": True,
            "authenticated": False,
            "calendar_id": session.calendar_id,
            "error": exc.to_dict(),
        }
    return {
        "connected": True,
        "authenticated": True,
        "calendar_id": session.calendar_id,
        "verified_at": session.verified_at.isoformat() if session.verified_at else None,
    }
