import time
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..schemas import GeneratedAppraisalReport, ValuationOutput

HTTP_REQUESTS = Counter("http_requests_total", "HTTP requests served", ["route", "method", "code"])
HTTP_LATENCY = Histogram("http_request_duration_seconds", "HTTP handler latency", ["route", "method"])

VALUATIONS = Counter("valuations_total", "Valuations produced", ["strategy"])
OUTLIERS_REJECTED = Counter("outliers_rejected_total", "Comparables rejected by the IQR fence")
MANUAL_OVERRIDES = Counter("manual_overrides_total", "Adjustment fields overridden by appraisers")
REPORTS_GENERATED = Counter("reports_generated_total", "Deterministic report drafts", ["ready"])

def record_valuation(output: ValuationOutput) -> None:
    VALUATIONS.labels(strategy=output.strategy).inc()
    OUTLIERS_REJECTED.inc(len(output.rejected_outliers))

def record_report(report: GeneratedAppraisalReport) -> None:
    REPORTS_GENERATED.labels(ready=str(report.ready_for_final_approval).lower()).inc()

class PromMiddleware(BaseHTTPMiddleware):
    """
    Per-route request count and latency, labelled by the route template
    (/v1/comparables/{run_id}) rather than the concrete path.
    """
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response: Response = await call_next(request)
        route = getattr(request.scope.get("route"), "path", "unmatched")
        HTTP_REQUESTS.labels(route=route, method=request.method, code=str(response.status_code)).inc()
        HTTP_LATENCY.labels(route=route, method=request.method).observe(time.perf_counter() - started)
        return response

async def metrics_endpoint(request: Request):
    """Prometheus scrape target."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
