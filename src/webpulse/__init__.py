"""
WebPulse - request analytics for FastAPI applications

Captures one event per handled request, batches events in memory, writes
them to PostgreSQL with multi-row inserts and serves dashboard aggregations
(traffic, latency percentiles, top routes and IPs, recent activity).
"""

__version__ = "0.1.0"
