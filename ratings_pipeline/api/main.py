"""
FastAPI Application Main
Hauptanwendung für die Ratings API

Jeder Request unter ``api_prefix`` läuft durch das Gateway-Middleware: API-Key
prüfen, Rate-Limit zählen, RequestLog schreiben (auch bei 401/429/500), bevor
die Response zurückgeht. Store-Zugriffe laufen im Threadpool.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from ratings_pipeline import __version__
from ratings_pipeline.apps.scheduler import TaskRegistry, TaskScheduler, init_scheduler
from ratings_pipeline.core.config import Settings, settings as default_settings
from ratings_pipeline.database import create_store
from ratings_pipeline.database.store import Store
from ratings_pipeline.domain.models import ANONYMOUS_CALLER, RequestLog
from ratings_pipeline.domain.utils import utcnow
from ratings_pipeline.monitoring.prometheus_metrics import PrometheusMetrics

from .errors import ApiError, RateLimitExceeded, api_error_response, error_response, kind_for_status
from .security import ApiKeyAuthenticator, FixedWindowRateLimiter

logger = logging.getLogger("api")

# below api_prefix; reachable without X-API-Key (admin routes check X-Admin-Key)
PUBLIC_PATHS = frozenset({"/health", "/register"})


def _attach_store(app: FastAPI, store: Store, task_registry: Optional[TaskRegistry] = None) -> None:
    state = app.state
    state.store = store
    state.authenticator = ApiKeyAuthenticator(store, state.settings)
    state.rate_limiter = FixedWindowRateLimiter(store, state.settings.rate_limit_window_seconds)
    state.task_registry = task_registry or init_scheduler(
        store, state.settings, metrics=state.metrics, clock=state.clock
    )


def _record_request(store: Store, log: RequestLog) -> None:
    store.append_request_log(log)
    if log.caller != ANONYMOUS_CALLER:
        store.touch_api_key(log.caller, log.timestamp)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("query", "path", "body"))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def _install_request_gate(app: FastAPI, settings: Settings) -> None:
    prefix = settings.api_prefix.rstrip("/")
    window = settings.rate_limit_window_seconds

    @app.middleware("http")
    async def request_gate(request: Request, call_next):
        path = request.url.path
        if not (path == prefix or path.startswith(prefix + "/")):
            return await call_next(request)

        state = app.state
        store = getattr(state, "store", None)
        if store is None:
            return error_response("service_unavailable", "Store not initialized", 503)

        started = time.perf_counter()
        now: datetime = state.clock()
        caller = ANONYMOUS_CALLER
        rate_headers: dict[str, str] = {}
        error_kind: Optional[str] = None
        sub_path = path[len(prefix) :] or "/"
        gated = sub_path not in PUBLIC_PATHS and not sub_path.startswith("/admin")

        async def admit(counter: str, limit: int) -> None:
            decision = await run_in_threadpool(state.rate_limiter.hit, counter, limit, now)
            rate_headers.update(decision.headers())
            if not decision.allowed:
                retry_after = max(0, decision.reset_at - int(now.timestamp()))
                raise RateLimitExceeded(
                    f"Rate limit of {decision.limit} requests per {window}s exceeded",
                    headers={"Retry-After": str(retry_after)},
                )

        try:
            if gated:
                api_key = await run_in_threadpool(state.authenticator.authenticate, request.headers.get("X-API-Key"))
                caller = api_key.key
                await admit(caller, api_key.rate_limit)
                request.state.api_key = api_key
            elif sub_path == "/register":
                # anonymous, so counted per client address
                client = request.client.host if request.client else "unknown"
                await admit(f"register:{client}", settings.registration_rate_limit)
            response = await call_next(request)
        except ApiError as e:
            error_kind = e.kind
            if state.metrics:
                state.metrics.record_api_rejection(e.kind)
            response = api_error_response(e, now)
        except Exception:
            logger.exception(f"Unhandled error on {request.method} {path}")
            error_kind = "internal_error"
            response = error_response("internal_error", "Internal server error", 500, when=now)

        response.headers.update(rate_headers)
        elapsed = time.perf_counter() - started
        log = RequestLog(
            timestamp=now,
            caller=caller,
            endpoint=path,
            method=request.method,
            status_code=response.status_code,
            outcome=error_kind or kind_for_status(response.status_code),
            response_time_ms=round(elapsed * 1000, 3),
        )
        try:
            await run_in_threadpool(_record_request, store, log)
        except Exception:
            # an unlogged request must not be served
            logger.exception(f"Failed to write request log for {request.method} {path}")
            response = error_response("internal_error", "Internal server error", 500, when=now)

        if state.metrics:
            route = request.scope.get("route")
            state.metrics.record_api_request(
                method=request.method,
                endpoint=getattr(route, "path", "unmatched"),
                status=str(response.status_code),
                duration=elapsed,
            )
        return response


def create_fastapi_app(
    settings: Settings,
    store: Optional[Store] = None,
    *,
    metrics: Optional[PrometheusMetrics] = None,
    clock: Optional[Callable[[], datetime]] = None,
    task_registry: Optional[TaskRegistry] = None,
    run_scheduler: bool = False,
) -> FastAPI:
    """Factory function to create the FastAPI app.

    Without an injected ``store`` the configured backend is created in the
    lifespan (and closed on shutdown). ``run_scheduler`` starts the daily
    retention loop inside the API process.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application Lifespan Management"""
        logger.info("Starting Ratings API")
        owns_store = app.state.store is None
        if owns_store:
            _attach_store(app, await run_in_threadpool(create_store, settings), task_registry)

        scheduler = None
        scheduler_task = None
        if run_scheduler:
            scheduler = TaskScheduler(app.state.task_registry, clock=app.state.clock)
            scheduler_task = asyncio.create_task(scheduler.start_schedule())

        logger.info("Application startup complete")
        yield

        logger.info("Shutting down application")
        if scheduler is not None:
            scheduler.stop()
            scheduler_task.cancel()
            with suppress(asyncio.CancelledError):
                await scheduler_task
        if owns_store:
            app.state.store.close()
            app.state.store = None

    app = FastAPI(
        title="NBA 2K Ratings API",
        description="Canonical NBA 2K player ratings: current, classic and all-time rosters",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.clock = clock or utcnow
    if metrics is None and settings.enable_metrics:
        metrics = PrometheusMetrics(settings)
    app.state.metrics = metrics
    app.state.store = None
    if store is not None:
        _attach_store(app, store, task_registry)

    _install_request_gate(app, settings)

    # CORS Middleware (tighten in non-development); added last so it wraps the gate
    cors_origins = settings.cors_origins
    if settings.environment != "development":
        cors_origins = [o for o in cors_origins if o != "*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return api_error_response(exc, app.state.clock())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_response("invalid_request", _validation_message(exc), 422, when=app.state.clock())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return error_response(
            kind_for_status(exc.status_code),
            str(exc.detail),
            exc.status_code,
            headers=getattr(exc, "headers", None),
            when=app.state.clock(),
        )

    @app.get("/health")
    def health_check():
        """Basic health check endpoint"""
        store = app.state.store
        if store is None:
            return {"status": "starting", "version": __version__}
        return {"status": "ok" if store.health_check() else "degraded", "version": __version__}

    @app.get("/metrics", response_class=PlainTextResponse)
    def prometheus_metrics():
        if not app.state.metrics:
            return PlainTextResponse("# metrics disabled\n")
        return PlainTextResponse(app.state.metrics.export_metrics())

    # Include aggregated API router
    from ratings_pipeline.api.router import api_router

    app.include_router(api_router, prefix=settings.api_prefix)

    return app


# --- ASGI app instantiation for Uvicorn ---

app = create_fastapi_app(default_settings, run_scheduler=default_settings.enable_scheduled_cleanup)
