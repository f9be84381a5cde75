"""
Dashboard response models.

Field names follow the JSON the dashboard page consumes (counts are `c`).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class StatusCount(BaseModel):
    status: Optional[int] = Field(description="HTTP status code")
    c: int = Field(description="Event count")


class LatencyPercentiles(BaseModel):
    """Continuous latency percentiles in milliseconds (null without data)."""

    p50: Optional[float] = None
    p95: Optional[float] = None
    p99: Optional[float] = None


class Summary(BaseModel):
    total_30d: int = Field(description="Events in the trailing 30 days")
    statuses: List[StatusCount] = Field(description="Status distribution, trailing 7 days")
    latency: LatencyPercentiles = Field(description="Latency percentiles, trailing 24 hours")


class TrafficPoint(BaseModel):
    t: datetime = Field(description="Bucket start")
    c: int = Field(description="Event count")


class RouteCount(BaseModel):
    route: str
    c: int


class IpCount(BaseModel):
    ip: Optional[str]
    c: int


class RecentEvent(BaseModel):
    occurred_at: datetime
    method: Optional[str] = None
    route: Optional[str] = None
    status: Optional[int] = None
    latency_ms: Optional[int] = None
    ip_anonymized: Optional[str] = None
    ip_full: Optional[str] = None
    user_agent: Optional[str] = None


class ErrorResponse(BaseModel):
    """
    Standard error response model.
    """

    error: str = Field(description="Error code")
    message: str = Field(description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional error details"
    )
