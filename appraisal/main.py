from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.errors import register_error_handlers
from .core.logging import REQUEST_ID_HEADER, CorrelationIdMiddleware, configure_logging
from .core.metrics import PromMiddleware, metrics_endpoint
from .routers.audit import router as audit_router
from .routers.comparables import router as comparables_router
from .routers.reports import router as reports_router
from .routers.valuations import router as valuations_router

API_PREFIX = "/v1"

def _add_middleware(app: FastAPI) -> None:
    origins = [o.strip() for o in settings.ALLOW_ORIGINS.split(",") if o.strip()] or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["ETag", REQUEST_ID_HEADER],
    )
    app.add_middleware(CorrelationIdMiddleware)
    if settings.PROMETHEUS_ENABLED:
        app.add_middleware(PromMiddleware)

def _add_meta_routes(app: FastAPI) -> None:
    @app.get(f"{API_PREFIX}/health", tags=["meta"])
    def health():
        return {"status": "ok"}

    @app.get(f"{API_PREFIX}/ping", tags=["meta"])
    def ping():
        return {"pong": True}

    if settings.PROMETHEUS_ENABLED:
        app.add_route(f"{API_PREFIX}/metrics", metrics_endpoint, methods=["GET"])

def create_app() -> FastAPI:
    """Build the API; tests call this directly, ASGI servers use `app` below."""
    configure_logging()
    app = FastAPI(
        title="Comparable Valuation Engine",
        version="1.0.0",
        description="Comparable search, adjustments, outlier-filtered valuation ranges, "
                    "audited manual overrides and grounded appraisal report drafts.",
    )
    _add_middleware(app)
    register_error_handlers(app)
    _add_meta_routes(app)

    app.include_router(comparables_router, prefix=API_PREFIX, tags=["comparables"])
    app.include_router(valuations_router, prefix=API_PREFIX, tags=["valuations"])
    app.include_router(reports_router, prefix=API_PREFIX, tags=["reports"])
    app.include_router(audit_router, prefix=API_PREFIX, tags=["audit"])
    return app

app = create_app()
