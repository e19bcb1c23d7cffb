"""
FastAPI application entry point for the front door.

Tenant applications are loaded from YAML at startup; an invalid
configuration aborts startup. Handlers are plain `def` functions, so each
request runs on its own worker thread and blocks it during provider calls.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from frontdoor import __version__
from frontdoor.api.routes import auth, catalog, entitlements, health, mutations, preflight
from frontdoor.config.settings import Settings
from frontdoor.errors import register_exception_handlers
from frontdoor.platform.container import Services, build_services

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(services: Optional[Services] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    When services is None they are built from settings (or the environment)
    during startup, and torn down at shutdown either way.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting front door", extra={"version": __version__})
        if services is None:
            app.state.services = build_services(settings or Settings.from_env())
        app.state.services.start()
        logger.info("Front door ready", extra={
            "tenant_count": len(app.state.services.registry),
        })

        yield

        logger.info("Shutting down front door")
        app.state.services.shutdown()

    app = FastAPI(
        title="Front Door",
        description="Multi-tenant login, entitlement and field mutation gateway",
        version=__version__,
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(entitlements.router)
    app.include_router(mutations.router)
    app.include_router(catalog.router)
    app.include_router(preflight.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)
