from __future__ import annotations

from datetime import date as date_type, datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, model_validator


class WorkingHours(BaseModel):
    start_hour: int = Field(default=9, ge=0, le=23)
    end_hour: int = Field(default=17, ge=1, le=24)

    @model_validator(mode="after")
    def _ordered(self) -> "WorkingHours":
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be after start_hour")
        return self


class BusyInterval(BaseModel):
    """Half-open range [start, end) during which a calendar is occupied."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        # Touching endpoints are not conflicts
        return start < self.end and end > self.start


class Slot(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: date_type
    time: str
    start: datetime
    end: datetime
    available: bool = True

    def descriptor(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "time": self.time,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "available": self.available,
        }
