"""
Core business logic components.

This package contains the ingestion pipeline and its read side:
- IP anonymizer
- In-memory event queue and batch flusher
- PostgreSQL event store
- Aggregation queries
- Request capture middleware
- Metrics collection and health checks
"""
