from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from staffclock.api.routes import health
from staffclock.core.config import settings
from staffclock.core.errors import install_error_handlers
from staffclock.core.logging import bind_request_context, clear_request_context, configure_logging, get_logger
from staffclock.core.monitoring import configure_error_monitoring
from staffclock.core.observability import configure_observability
from staffclock.core.rate_limit import limiter
from staffclock.domains.audit.router import router as audit_router
from staffclock.domains.auth.router import router as auth_router
from staffclock.domains.exports.router import router as exports_router
from staffclock.domains.reporting.router import router as dashboard_router
from staffclock.domains.tenants.router import router as tenant_router
from staffclock.domains.time_entries.router import router as time_router
from staffclock.domains.users.router import router as users_router

configure_logging(settings.log_level)
configure_observability()
configure_error_monitoring()
logger = get_logger(__name__)

app = FastAPI(title=settings.app_name)
app.state.limiter = limiter

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.cors_origins] or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_error_handlers(app)


@app.middleware("http")
async def request_context(request: Request, call_next):
    clear_request_context()
    request_id = request.headers.get("X-Request-ID") or uuid4().hex
    bind_request_context(request_id=request_id, method=request.method, path=request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(health.router)
app.include_router(auth_router)
app.include_router(tenant_router)
app.include_router(time_router)
app.include_router(dashboard_router)
app.include_router(exports_router)
app.include_router(users_router)
app.include_router(audit_router)


@app.on_event("startup")
def startup_event() -> None:
    logger.info("startup_complete", env=settings.env)


@app.get("/")
def root() -> dict[str, str]:
    return {"message": "StaffClock API running", "environment": settings.env}
