"""
Pydantic data models package.

Contains all data validation models for:
- Event records queued and persisted by the pipeline
- Dashboard API responses
"""

from .analytics import (
    ErrorResponse,
    IpCount,
    LatencyPercentiles,
    RecentEvent,
    RouteCount,
    StatusCount,
    Summary,
    TrafficPoint,
)
from .event import REQUEST_EVENT_TYPE, EventRecord

__all__ = [
    # Event models
    "EventRecord",
    "REQUEST_EVENT_TYPE",

    # Dashboard models
    "ErrorResponse",
    "IpCount",
    "LatencyPercentiles",
    "RecentEvent",
    "RouteCount",
    "StatusCount",
    "Summary",
    "TrafficPoint",
]
