from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, AliasChoices
from pydantic_settings import BaseSettings


load_dotenv()


class AppSettings(BaseSettings):
    # Pydantic v2 settings configuration

    mongo_uri: str = Field(default="mongodb://localhost:27017", alias="MONGO_URI")
    # Accept MONGO_DB_NAME (preferred) or DATABASE_NAME (legacy)
    database_name: str = Field(
        default="consultations",
        validation_alias=AliasChoices("MONGO_DB_NAME", "DATABASE_NAME"),
    )
    bookings_collection: str = Field(default="bookings", alias="BOOKINGS_COLLECTION")

    # Google Calendar
    google_service_account_file: Optional[str] = Field(
        default="service-account-key.json", alias="GOOGLE_SERVICE_ACCOUNT_FILE"
    )
    # Authorized-user token, used when no service account file is present
    google_token_file: str = Field(default="token.json", alias="GOOGLE_TOKEN_FILE")
    google_calendar_id: str = Field(default="primary", alias="GOOGLE_CALENDAR_ID")
    google_delegated_user: Optional[str] = Field(default=None, alias="GOOGLE_DELEGATED_USER")
    calendar_enabled: bool = Field(default=True, alias="CALENDAR_ENABLED")
    provisioning_timeout_seconds: float = Field(default=20.0, alias="PROVISIONING_TIMEOUT_SECONDS")
    freebusy_timeout_seconds: float = Field(default=10.0, alias="FREEBUSY_TIMEOUT_SECONDS")
    meeting_reminder_minutes: int = Field(default=30, alias="MEETING_REMINDER_MINUTES")

    # Clinic
    clinic_name: str = Field(default="Clinic", alias="CLINIC_NAME")
    clinic_timezone: str = Field(default="UTC", alias="CLINIC_TIMEZONE")
    admin_email: str = Field(default="admin@clinic.example.com", alias="ADMIN_EMAIL")
    admin_dashboard_url: str = Field(default="", alias="ADMIN_DASHBOARD_URL")
    support_phone: Optional[str] = Field(default=None, alias="SUPPORT_PHONE")
    working_hours_start: int = Field(default=9, ge=0, le=23, alias="WORKING_HOURS_START")
    working_hours_end: int = Field(default=17, ge=1, le=24, alias="WORKING_HOURS_END")
    slot_duration_minutes: int = Field(default=60, gt=0, alias="SLOT_DURATION_MINUTES")
    consultation_duration_minutes: int = Field(default=60, gt=0, alias="CONSULTATION_DURATION_MINUTES")

    # Outbound mail (SMTP)
    smtp_host: str = Field(default="smtp.gmail.com", alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_username: Optional[str] = Field(default=None, alias="SMTP_USERNAME")
    smtp_password: Optional[str] = Field(default=None, alias="SMTP_PASSWORD")
    smtp_from_email: Optional[str] = Field(default=None, alias="SMTP_FROM_EMAIL")
    smtp_from_name: str = Field(default="Clinic", alias="SMTP_FROM_NAME")
    smtp_timeout_seconds: float = Field(default=30.0, alias="SMTP_TIMEOUT_SECONDS")
    notification_timeout_seconds: float = Field(default=45.0, alias="NOTIFICATION_TIMEOUT_SECONDS")

    allowed_origins: str = Field(default="http://localhost:3000", alias="ALLOWED_ORIGINS")

    environment: Literal["development", "production", "test"] = Field(
        default="development", alias="ENVIRONMENT"
    )


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings()


settings = get_settings()
