from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class MeetingDetails(BaseModel):
    """Result of a provisioning call. ``meeting_link`` is None when the event
    was created but the calendar did not attach a video link."""

    calendar_event_id: str
    meeting_link: Optional[str] = None
    conference_id: Optional[str] = None
    html_link: Optional[str] = None
    reused: bool = False

    @property
    def link_missing(self) -> bool:
        return not self.meeting_link
