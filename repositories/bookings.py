from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from core.config import settings
from models.booking import Booking, BookingStatus, StatusChange
from .base import BaseRepository, utcnow


def _to_mongo(data: Any) -> Any:
    # Convert Enums to their .value and recurse; keep datetime as datetime
    if isinstance(data, Enum):
        return data.value
    if isinstance(data, dict):
        return {k: _to_mongo(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_to_mongo(x) for x in data]
    return data


def to_document(booking: Booking) -> Dict[str, Any]:
    return _to_mongo(booking.model_dump(by_alias=True, exclude_none=False))


class BookingRepository(BaseRepository):
    """Booking documents keyed by their opaque booking id.

    Status changes go through :meth:`transition`, a compare-and-swap on the
    current status, so concurrent transitions on one booking serialize and
    only one of them wins.
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection: Optional[str] = None) -> None:
        super().__init__(db)
        self.collection = collection or settings.bookings_collection

    async def get(self, booking_id: str) -> Optional[Booking]:
        doc = await self.find_one(self.collection, {"_id": booking_id})
        return Booking(**doc) if doc else None

    async def create(self, booking: Booking) -> Booking:
        doc = to_document(booking)
        await self.insert_one(self.collection, doc)
        return Booking(**doc)

    async def list(self, *, status: Optional[BookingStatus] = None, limit: int = 100, skip: int = 0) -> List[Booking]:
        query: Dict[str, Any] = {}
        if status is not None:
            query["status"] = status.value
        docs = await self.find_many(self.collection, query, sort=[("updated_at", -1)], limit=limit, skip=skip)
        return [Booking(**d) for d in docs]

    async def transition(
        self,
        booking_id: str,
        expected: BookingStatus,
        target: BookingStatus,
        *,
        fields: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> Optional[Booking]:
        """Move ``booking_id`` from ``expected`` to ``target`` if it is still in ``expected``.

        Returns the updated booking, or None when the booking is missing or its
        status changed underneath us.
        """
        change = StatusChange(from_status=expected, to_status=target, at=utcnow(), reason=reason)
        update = {
            "$set": _to_mongo({**(fields or {}), "status": target}),
            "$push": {"status_history": _to_mongo(change.model_dump())},
        }
        doc = await self.find_one_and_update(
            self.collection, {"_id": booking_id, "status": expected.value}, update
        )
        return Booking(**doc) if doc else None

    async def record_meeting(
        self,
        booking_id: str,
        fields: Dict[str, Any],
        *,
        expected_status: Optional[BookingStatus] = None,
    ) -> Optional[Booking]:
        query: Dict[str, Any] = {"_id": booking_id}
        if expected_status is not None:
            query["status"] = expected_status.value
        doc = await self.find_one_and_update(self.collection, query, {"$set": _to_mongo(fields)})
        return Booking(**doc) if doc else None
