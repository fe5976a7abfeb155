import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.orm import sessionmaker

from marketplace.api import admin_sessions, auth, cron, seller
from marketplace.core.config import Settings, settings
from marketplace.core.exceptions import SessionError, session_error_handler, unhandled_error_handler
from marketplace.core.limiter import limiter
from marketplace.core.logging_config import init_application_logging
from marketplace.core.middleware import (
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
    SessionHintMiddleware,
)
from marketplace.db.helpers import check_database_health
from marketplace.db.init_db import init_database
from marketplace.db.session import SessionLocal, get_db
from marketplace.sessions import (
    AuthorizationGate,
    CacheSweeper,
    FastPathSessionReader,
    SessionCache,
    SessionManager,
    SessionStore,
)
from marketplace.sessions.models import now_ms

logger = logging.getLogger("marketplace.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    factory = app.state.db_session_factory
    with factory() as db:
        init_database(db.get_bind())

    app.state.cache_sweeper.start()
    logger.info("%s started (environment=%s)", app.state.settings.APP_NAME, app.state.settings.ENVIRONMENT)
    try:
        yield
    finally:
        app.state.cache_sweeper.stop()
        app.state.session_cache.clear()
        logger.info("%s stopped", app.state.settings.APP_NAME)


def create_app(
    app_settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    clock: Callable[[], int] = now_ms,
) -> FastAPI:
    """
    Build the FastAPI application.

    Every process-wide object (session cache, store, manager, fast-path
    reader, authorization gate) is created here and hung off ``app.state``;
    nothing session-related lives at module scope.
    """
    app_settings = app_settings or settings
    session_factory = session_factory or SessionLocal

    app = FastAPI(
        title=app_settings.APP_NAME,
        description="Session management and role-based access for the marketplace",
        version=app_settings.VERSION,
        lifespan=lifespan,
    )

    cache = SessionCache(ttl_ms=app_settings.SESSION_CACHE_TTL_SECONDS * 1000, clock=clock)
    store = SessionStore(session_factory)
    manager = SessionManager.from_settings(store, cache, app_settings, clock=clock)

    app.state.settings = app_settings
    app.state.db_session_factory = session_factory
    app.state.session_cache = cache
    app.state.session_store = store
    app.state.session_manager = manager
    app.state.fast_path_reader = FastPathSessionReader(cache, manager.cookie, clock=clock)
    app.state.authorization_gate = AuthorizationGate(manager)
    app.state.cache_sweeper = CacheSweeper(cache, app_settings.SESSION_CACHE_SWEEP_INTERVAL_SECONDS)

    # Attach limiter to app.state for access in route decorators
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(SessionError, session_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    if session_factory is not SessionLocal:
        def get_app_db():
            db = session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = get_app_db

    # Starlette runs the last added middleware first
    app.add_middleware(SessionHintMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
    app.include_router(admin_sessions.router, prefix="/api/admin", tags=["Admin Sessions"])
    app.include_router(seller.router, prefix="/api/seller", tags=["Seller"])
    app.include_router(cron.router, prefix="/api/cron", tags=["Maintenance"])

    @app.get("/health")
    def health_check():
        """Basic health check endpoint."""
        return {"status": "healthy"}

    @app.get("/api/health")
    def api_health_check(request: Request):
        """
        Detailed health: database connectivity, session cache and rate
        limiting backend.
        """
        state = request.app.state
        with state.db_session_factory() as db:
            db_health = check_database_health(db.get_bind())

        health_status = {
            "status": "healthy" if db_health["status"] == "healthy" else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": state.settings.VERSION,
            "environment": {
                "name": state.settings.ENVIRONMENT,
                "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
            },
            "services": {
                "database": {
                    "status": db_health["status"],
                    "type": db_health["database_type"],
                    "connected": db_health["connected"],
                    "table_count": db_health["table_count"],
                    "last_error": db_health["last_error"],
                },
                "session_cache": {
                    "entries": len(state.session_cache),
                    "sweeper_running": state.cache_sweeper.running,
                },
                "rate_limiting": {
                    "storage": "redis" if state.settings.redis_url else "memory",
                    "auth_limit": state.settings.rate_limit_auth_endpoints,
                },
            },
        }
        return health_status

    logger.info(
        "Rate limiting initialized with configuration: auth=%s, read=%s",
        app_settings.rate_limit_auth_endpoints,
        app_settings.rate_limit_read_endpoints,
    )
    return app


init_application_logging(settings.LOG_LEVEL, settings.STRUCTURED_LOGGING)

app = create_app()
