"""
Event record model.

One immutable observation of a handled request, as queued and persisted.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

REQUEST_EVENT_TYPE = "request"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventRecord(BaseModel):
    """
    Per-request telemetry event.

    Built by the capture middleware after the response is produced, with the
    client IP already passed through the anonymizer.
    """

    event_type: str = Field(default=REQUEST_EVENT_TYPE, description="Event type tag")
    occurred_at: datetime = Field(default_factory=utcnow, description="Capture timestamp")
    user_id: Optional[str] = Field(default=None, description="Host-resolved user id")
    route: Optional[str] = Field(default=None, description="Normalized route template")
    method: Optional[str] = Field(default=None, description="HTTP method")
    status: Optional[int] = Field(default=None, description="HTTP status code")
    latency_ms: int = Field(default=0, ge=0, description="Request handling time in ms")
    ip_anonymized: Optional[str] = Field(default=None, description="Anonymized client IP")
    ip_full: Optional[str] = Field(default=None, description="Full client IP (policy none only)")
    user_agent: Optional[str] = Field(default=None, description="User-Agent header")
    meta: Optional[Dict[str, Any]] = Field(default=None, description="Free-form metadata")

    @field_validator("occurred_at")
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Store timestamps as UTC; naive values are assumed to be UTC already."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    model_config = ConfigDict(frozen=True)
