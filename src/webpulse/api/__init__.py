"""
API endpoints package.

Contains FastAPI routers for all service endpoints:
- /analytics/api/* - Dashboard read views
- /metrics - Prometheus metrics
- /healthz, /readyz - Health checks
- /v1/admin/flush - Manual flush
"""
from .admin import router as admin_router
from .dashboard import router as dashboard_router
from .healthz import router as healthz_router
from .metrics import router as metrics_router

__all__ = ["admin_router", "dashboard_router", "healthz_router", "metrics_router"]
