"""
Relaygate — bot / VPN / emulator aware front for an upstream lander.
Main application entry point.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from relaygate.api.lander import router as lander_router
from relaygate.config import Settings, get_settings
from relaygate.core.cache import ReputationCache
from relaygate.core.flag_log import FlagLogger
from relaygate.core.guard import Guard
from relaygate.core.reputation import ReputationClient
from relaygate.middleware.headers import CorsMiddleware, SecurityHeadersMiddleware

import structlog

VERSION = "0.1.0"

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer() if get_settings().debug else structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cache = ReputationCache(
            max_entries=settings.cache_max_entries,
            burst_window_ms=settings.burst_window_ms,
        )
        flag_log = FlagLogger(settings.flag_log_path, max_backlog=settings.flag_log_backlog)
        await flag_log.start()

        app.state.settings = settings
        app.state.cache = cache
        app.state.flag_log = flag_log
        app.state.guard = Guard(
            cache=cache,
            reputation=ReputationClient(cache, settings),
            flag_log=flag_log,
            burst_limit=settings.burst_limit,
        )

        logger.info("relaygate_starting", upstream=settings.upstream_url, port=settings.port,
                    ua_mode=settings.white_ua_mode, flag_log=settings.flag_log_path)
        yield
        await flag_log.close()
        logger.info("relaygate_shutting_down", cached_ips=len(cache))

    app = FastAPI(
        title="Relaygate",
        description="Classifies visitors and forwards them to the lander under a real or white identity.",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    app.add_middleware(SecurityHeadersMiddleware)
    # Outermost, so OPTIONS never reaches a route
    app.add_middleware(CorsMiddleware)

    app.include_router(lander_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "relaygate", "version": VERSION}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=get_settings().host,
        port=get_settings().port,
        proxy_headers=get_settings().trust_proxy,
        forwarded_allow_ips=get_settings().forwarded_allow_ips,
    )
