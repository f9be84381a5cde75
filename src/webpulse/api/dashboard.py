"""
Dashboard API endpoints.

Read-only views over the event table:
- GET /api/summary
- GET /api/traffic?window=24 hours&bucket=hour
- GET /api/top-routes
- GET /api/top-ips
- GET /api/recent
- GET / (minimal HTML page polling the endpoints above)
"""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse

from ..core.auth import authenticate_dashboard
from ..core.service import AnalyticsService
from ..models.analytics import (
    ErrorResponse,
    IpCount,
    RecentEvent,
    RouteCount,
    Summary,
    TrafficPoint,
)
from .deps import get_analytics_service

logger = structlog.get_logger(__name__)

router = APIRouter(dependencies=[Depends(authenticate_dashboard)])

_ERRORS = {
    401: {"description": "Dashboard credentials required"},
    500: {"model": ErrorResponse, "description": "Query failed"},
}


@router.get("/api/summary", response_model=Summary, responses=_ERRORS)
async def summary(service: AnalyticsService = Depends(get_analytics_service)) -> Summary:
    """Total events (30 days), status mix (7 days) and latency percentiles (24 hours)."""
    return await service.queries.summary()


@router.get(
    "/api/traffic",
    response_model=List[TrafficPoint],
    responses={**_ERRORS, 400: {"model": ErrorResponse, "description": "Invalid window or bucket"}},
)
async def traffic(
    window: Optional[str] = Query(None, description="Lookback window, e.g. '24 hours' or '7 days'"),
    bucket: Optional[str] = Query(None, description="minute, hour, day, week or month"),
    service: AnalyticsService = Depends(get_analytics_service),
) -> List[TrafficPoint]:
    """Event counts per time bucket."""
    return await service.queries.traffic(window=window, bucket=bucket)


@router.get("/api/top-routes", response_model=List[RouteCount], responses=_ERRORS)
async def top_routes(service: AnalyticsService = Depends(get_analytics_service)) -> List[RouteCount]:
    """Busiest routes over the last 24 hours (max 50)."""
    return await service.queries.top_routes()


@router.get("/api/top-ips", response_model=List[IpCount], responses=_ERRORS)
async def top_ips(service: AnalyticsService = Depends(get_analytics_service)) -> List[IpCount]:
    """Most active client addresses over the last 24 hours (max 50)."""
    return await service.queries.top_ips()


@router.get("/api/recent", response_model=List[RecentEvent], responses=_ERRORS)
async def recent(service: AnalyticsService = Depends(get_analytics_service)) -> List[RecentEvent]:
    """The 200 most recent events."""
    return await service.queries.recent()


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def dashboard_page() -> str:
    return DASHBOARD_HTML


DASHBOARD_HTML = """
<!doctype html>
<html>
<head>
  <meta charset="utf-8"/>
  <title>WebPulse</title>
  <style>
    body { font-family: Arial, sans-serif; margin: 20px; color: #222; }
    h2 { margin-bottom: 4px; }
    .cards { display: flex; gap: 12px; margin: 12px 0; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 10px 14px; min-width: 120px; }
    .card b { display: block; font-size: 22px; }
    table { border-collapse: collapse; margin: 8px 0 20px; font-size: 13px; }
    td, th { border-bottom: 1px solid #eee; padding: 4px 10px; text-align: left; }
    select, button { padding: 6px; }
  </style>
</head>
<body>
  <h2>WebPulse</h2>
  <div class="cards" id="cards"></div>
  <div>
    Window:
    <select id="window">
      <option>1 hour</option><option selected>24 hours</option><option>7 days</option><option>30 days</option>
    </select>
    Bucket:
    <select id="bucket">
      <option>minute</option><option selected>hour</option><option>day</option>
    </select>
    <button onclick="load()">Refresh</button>
  </div>
  <h3>Traffic</h3><table id="traffic"></table>
  <h3>Top routes</h3><table id="routes"></table>
  <h3>Top IPs</h3><table id="ips"></table>
  <h3>Recent</h3><table id="recent"></table>

<script>
const base = location.pathname.replace(/\\/$/, '');
async function get(path) {
  const res = await fetch(base + path);
  return res.json();
}
function fill(id, rows, cols) {
  const el = document.getElementById(id);
  el.innerHTML = '<tr>' + cols.map(c => `<th>${c}</th>`).join('') + '</tr>';
  (Array.isArray(rows) ? rows : []).forEach(r => {
    const tr = document.createElement('tr');
    cols.forEach(c => { const td = document.createElement('td'); td.textContent = r[c] ?? ''; tr.appendChild(td); });
    el.appendChild(tr);
  });
}
async function load() {
  const w = encodeURIComponent(document.getElementById('window').value);
  const b = encodeURIComponent(document.getElementById('bucket').value);
  const s = await get('/api/summary');
  const lat = s.latency || {};
  document.getElementById('cards').innerHTML =
    `<div class="card">Events (30d)<b>${s.total_30d ?? '-'}</b></div>` +
    `<div class="card">p50 ms<b>${lat.p50 ?? '-'}</b></div>` +
    `<div class="card">p95 ms<b>${lat.p95 ?? '-'}</b></div>` +
    `<div class="card">p99 ms<b>${lat.p99 ?? '-'}</b></div>`;
  fill('traffic', await get(`/api/traffic?window=${w}&bucket=${b}`), ['t', 'c']);
  fill('routes', await get('/api/top-routes'), ['route', 'c']);
  fill('ips', await get('/api/top-ips'), ['ip', 'c']);
  fill('recent', await get('/api/recent'),
       ['occurred_at', 'method', 'route', 'status', 'latency_ms', 'ip_anonymized', 'ip_full', 'user_agent']);
}
load();
setInterval(load, 10000);
</script>
</body>
</html>
"""
