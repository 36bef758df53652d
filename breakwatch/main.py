from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import asyncio
from prometheus_client import make_asgi_app

from breakwatch.config import settings
from breakwatch.core.market.calendar import is_market_hours, minutes_until_open
from breakwatch.api.v1.router import router as api_router
from breakwatch.dependencies import ServiceContainer, build_container

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager for startup/shutdown.
    Runs ONCE per worker.
    """

    # --------------------------------------------------
    # STARTUP
    # --------------------------------------------------
    logger.info(f"Starting {settings.PROJECT_NAME} ({settings.ENVIRONMENT.value})...")

    # A container injected by create_app() (tests) wins over the default build
    container: ServiceContainer = getattr(app.state, "container", None) or build_container(settings)
    app.state.container = container

    flush_task = asyncio.create_task(
        container.accounting.run_periodic_flush(container.settings.STATS_FLUSH_INTERVAL_SECONDS)
    )
    logger.info(
        f"Volume rule: {container.analyzer.volume_rule.name} | "
        f"stats flush every {container.settings.STATS_FLUSH_INTERVAL_SECONDS}s"
    )

    yield

    # --------------------------------------------------
    # SHUTDOWN
    # --------------------------------------------------
    logger.info("Shutting down BreakWatch API...")
    flush_task.cancel()
    try:
        await flush_task
    except asyncio.CancelledError:
        pass

    # Last chance to persist call counts from this instance
    await container.accounting.flush()
    await container.close()
    logger.info("Upstream client and state store closed")


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )
    if container is not None:
        app.state.container = container

    # --------------------------------------------------
    # MIDDLEWARE
    # --------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --------------------------------------------------
    # ROUTERS
    # --------------------------------------------------
    app.include_router(api_router, prefix=settings.API_V1_STR)

    # --------------------------------------------------
    # PROMETHEUS METRICS
    # --------------------------------------------------
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)

    # --------------------------------------------------
    # HEALTH CHECK
    # --------------------------------------------------
    @app.get("/health")
    async def health_check():
        services: Optional[ServiceContainer] = getattr(app.state, "container", None)
        return {
            "status": "healthy",
            "env": settings.ENVIRONMENT,
            "store_backend": settings.STORE_BACKEND,
            "market_hours": is_market_hours(),
            "minutes_until_open": minutes_until_open(),
            "baselines_available": services.baselines.stats()["available"] if services else 0,
        }

    return app


app = create_app()
