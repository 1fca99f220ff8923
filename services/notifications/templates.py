"""
Email bodies for booking notifications.

Every renderer is a pure function of the event and the clinic context: no
I/O, no clock. Reasons supplied by admins are shown verbatim (HTML-escaped).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Callable, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from models.notification import NotificationEvent, NotificationType


@dataclass(frozen=True)
class TemplateContext:
    clinic_name: str
    timezone: str = "UTC"
    admin_email: Optional[str] = None
    support_phone: Optional[str] = None
    dashboard_url: Optional[str] = None


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str
    html: str


def format_appointment(value: Optional[datetime], tz_name: str) -> str:
    if value is None:
        return "To be confirmed"
    local = value.astimezone(ZoneInfo(tz_name))
    return local.strftime("%A, %d %B %Y at %I:%M %p %Z")


_STYLE = (
    "body{font-family:Arial,sans-serif;line-height:1.6;color:#333}"
    ".container{max-width:600px;margin:0 auto;padding:20px}"
    ".header{background:%s;color:#fff;padding:20px;text-align:center;border-radius:10px 10px 0 0}"
    ".content{background:#f9f9f9;padding:30px;border-radius:0 0 10px 10px}"
    ".info-box{background:#fff;padding:16px;border-radius:8px;margin:15px 0;border-left:4px solid %s}"
)


def _rows_html(rows: List[Tuple[str, str]]) -> str:
    return "".join(f"<p><strong>{escape(label)}:</strong> {escape(value)}</p>" for label, value in rows)


def _rows_text(rows: List[Tuple[str, str]]) -> str:
    return "\n".join(f"{label}: {value}" for label, value in rows)


def _page(color: str, title: str, greeting: str, intro: str, rows: List[Tuple[str, str]], extra_html: str, ctx: TemplateContext) -> str:
    contact = f"<p>Questions? Call us at {escape(ctx.support_phone)}.</p>" if ctx.support_phone else ""
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<style>{_STYLE % (color, color)}</style></head><body>"
        "<div class=\"container\">"
        f"<div class=\"header\"><h1>{escape(title)}</h1></div>"
        "<div class=\"content\">"
        f"<h2>{escape(greeting)}</h2>"
        f"<p>{escape(intro)}</p>"
        f"<div class=\"info-box\">{_rows_html(rows)}</div>"
        f"{extra_html}{contact}"
        f"<p>{escape(ctx.clinic_name)}</p>"
        "</div></div></body></html>"
    )


def _text(greeting: str, intro: str, rows: List[Tuple[str, str]], tail: str, ctx: TemplateContext) -> str:
    parts = [greeting, "", intro, "", _rows_text(rows)]
    if tail:
        parts += ["", tail]
    if ctx.support_phone:
        parts += ["", f"Questions? Call us at {ctx.support_phone}."]
    parts += ["", ctx.clinic_name]
    return "\n".join(parts)


def render_new_booking(event: NotificationEvent, ctx: TemplateContext) -> RenderedEmail:
    rows = [
        ("Patient", event.patient_name),
        ("Email", event.patient_email),
        ("Phone", event.phone or "Not provided"),
        ("Service", event.service_type),
        ("Requested time", format_appointment(event.appointment_date, ctx.timezone)),
        ("Medical history", event.medical_history or "None provided"),
        ("Current concerns", event.current_concerns or "None provided"),
        ("Booking ID", event.booking_id),
    ]
    intro = "A new consultation request is waiting for review."
    extra_html = ""
    tail = ""
    if ctx.dashboard_url:
        extra_html = f"<p><a href=\"{escape(ctx.dashboard_url, quote=True)}\">Open the admin dashboard</a></p>"
        tail = f"Review it at {ctx.dashboard_url}"
    return RenderedEmail(
        subject=f"New booking request - {event.patient_name} | {event.booking_id}",
        text=_text("New booking request", intro, rows, tail, ctx),
        html=_page("#e67e22", "New Booking Alert", "New booking request", intro, rows, extra_html, ctx),
    )


def render_confirmation(event: NotificationEvent, ctx: TemplateContext) -> RenderedEmail:
    rows = [
        ("Service", event.service_type),
        ("Date & time", format_appointment(event.appointment_date, ctx.timezone)),
        ("Booking ID", event.booking_id),
    ]
    if event.meeting_link:
        rows.append(("Video meeting", event.meeting_link))
        extra_html = (
            f"<p><a href=\"{escape(event.meeting_link, quote=True)}\">Join the video consultation</a></p>"
        )
        tail = f"Join the video consultation: {event.meeting_link}"
    else:
        extra_html = "<p>Your video meeting link will be sent separately.</p>"
        tail = "Your video meeting link will be sent separately."
    greeting = f"Hello {event.patient_name},"
    intro = "Your appointment has been confirmed."
    return RenderedEmail(
        subject=f"Appointment Confirmed - Booking {event.booking_id}",
        text=_text(greeting, intro, rows, tail, ctx),
        html=_page("#27ae60", "Appointment Confirmed", greeting, intro, rows, extra_html, ctx),
    )


def render_rejection(event: NotificationEvent, ctx: TemplateContext) -> RenderedEmail:
    rows = [
        ("Service", event.service_type),
        ("Requested time", format_appointment(event.appointment_date, ctx.timezone)),
        ("Reason", event.reason or "Not specified"),
        ("Booking ID", event.booking_id),
    ]
    greeting = f"Hello {event.patient_name},"
    intro = "We are unable to accommodate your appointment request at the requested time."
    tail = "You are welcome to book another time that suits you."
    return RenderedEmail(
        subject=f"Appointment Request Declined - Booking {event.booking_id}",
        text=_text(greeting, intro, rows, tail, ctx),
        html=_page("#e74c3c", "Appointment Update", greeting, intro, rows, f"<p>{escape(tail)}</p>", ctx),
    )


def render_reschedule(event: NotificationEvent, ctx: TemplateContext) -> RenderedEmail:
    rows = [
        ("Service", event.service_type),
        ("Previous time", format_appointment(event.old_date, ctx.timezone)),
        ("New time", format_appointment(event.new_date or event.appointment_date, ctx.timezone)),
    ]
    if event.reason:
        rows.append(("Reason", event.reason))
    rows.append(("Booking ID", event.booking_id))
    tail = ""
    extra_html = ""
    if event.meeting_link:
        rows.append(("Video meeting", event.meeting_link))
        tail = f"Join the video consultation: {event.meeting_link}"
        extra_html = f"<p><a href=\"{escape(event.meeting_link, quote=True)}\">Join the video consultation</a></p>"
    greeting = f"Hello {event.patient_name},"
    intro = "Your appointment has been rescheduled."
    return RenderedEmail(
        subject=f"Appointment Rescheduled - Booking {event.booking_id}",
        text=_text(greeting, intro, rows, tail, ctx),
        html=_page("#3498db", "Appointment Rescheduled", greeting, intro, rows, extra_html, ctx),
    )


def render_cancellation(event: NotificationEvent, ctx: TemplateContext) -> RenderedEmail:
    rows = [
        ("Service", event.service_type),
        ("Appointment time", format_appointment(event.appointment_date, ctx.timezone)),
        ("Reason", event.reason or "Not specified"),
        ("Booking ID", event.booking_id),
    ]
    greeting = f"Hello {event.patient_name},"
    intro = "Your appointment has been cancelled."
    tail = "If this is unexpected, please contact us to book a new time."
    return RenderedEmail(
        subject=f"Appointment Cancelled - Booking {event.booking_id}",
        text=_text(greeting, intro, rows, tail, ctx),
        html=_page("#7f8c8d", "Appointment Cancelled", greeting, intro, rows, f"<p>{escape(tail)}</p>", ctx),
    )


RENDERERS: Dict[str, Callable[[NotificationEvent, TemplateContext], RenderedEmail]] = {
    NotificationType.new_booking.value: render_new_booking,
    NotificationType.booking_confirmation.value: render_confirmation,
    NotificationType.booking_rejection.value: render_rejection,
    NotificationType.booking_reschedule.value: render_reschedule,
    NotificationType.booking_cancellation.value: render_cancellation,
}
