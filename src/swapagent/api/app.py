"""FastAPI application factory."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from swapagent import __version__
from swapagent.config import Settings, get_settings
from swapagent.ledger.database import close_db, init_db
from swapagent.notifications.telegram import close_bot
from swapagent.services.factory import Services, build_services


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings: Settings = app.state.settings
    # Startup
    await init_db(settings)
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(settings)
    yield
    # Shutdown
    await close_bot()
    await close_db()


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[Services] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="SwapAgent API",
        description="Custodial wallet swap execution API",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.services = services

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    from swapagent.api.routes import actions, health, swaps

    app.include_router(health.router, tags=["Health"])
    app.include_router(swaps.router, tags=["Swaps"])
    app.include_router(actions.router, tags=["Actions"])

    return app


# Default app instance
app = create_app()
