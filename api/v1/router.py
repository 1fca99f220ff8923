from __future__ import annotations

from fastapi import APIRouter

from api.v1.endpoints import admin as admin_endpoints
from api.v1.endpoints import calendars as calendar_endpoints
from api.v1.endpoints import meetings as meeting_endpoints
from api.v1.endpoints import notifications as notification_endpoints
from api.v1.endpoints import public as public_endpoints


api_router = APIRouter()

api_router.include_router(public_endpoints.router)
api_router.include_router(admin_endpoints.router)
api_router.include_router(meeting_endpoints.router)
api_router.include_router(notification_endpoints.router)
api_router.include_router(calendar_endpoints.router)
