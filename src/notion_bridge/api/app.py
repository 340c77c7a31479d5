"""FastAPI application setup."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from rich import box
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..config import Settings, get_settings, load_credential_blob
from ..errors import ConfigError
from ..schemas import HealthResponse
from ..sessions.pool import SessionPool
from ..sessions.store import CredentialStore, build_store
from ..streaming.gateway import StreamingGateway
from ..streaming.registry import StreamRegistry
from .auth import require_token
from .routes import chat, cookies

logger = logging.getLogger(__name__)


def _print_pool_status(entries: list[dict[str, Any]]) -> None:
    table = Table(title="Notion credentials", box=box.ROUNDED)
    table.add_column("Identity", style="cyan")
    table.add_column("Space", style="white")
    table.add_column("Thread", style="dim")
    table.add_column("Enabled")
    table.add_column("Valid")
    for entry in entries:
        table.add_row(
            entry["identity"],
            entry["tenant"],
            entry["conversationContext"] or "-",
            "[green]yes[/green]" if entry["enabled"] else "[yellow]no[/yellow]",
            "[green]yes[/green]" if entry["valid"] else "[red]no[/red]",
        )
    Console().print(table)


def create_app(
    settings: Settings | None = None,
    store: CredentialStore | None = None,
    client_factory: Callable[[], httpx.AsyncClient] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        logger.info("Notion bridge starting...")

        pool = SessionPool(store or build_store(settings), delimiter=settings.cookie_delimiter)
        registry = StreamRegistry()
        app.state.pool = pool
        app.state.registry = registry
        app.state.gateway = StreamingGateway(pool, registry, settings, client_factory=client_factory)

        try:
            count = await pool.initialize(load_credential_blob(settings))
        except ConfigError as e:
            logger.error("Cannot start without a usable Notion credential: %s", e)
            raise

        logger.info("Loaded %d Notion credential(s)", count)
        _print_pool_status(await pool.status())

        yield

        logger.info("Notion bridge shutting down...")
        registry.close_all()
        logger.info("Notion bridge shutdown complete")

    app = FastAPI(
        title="Notion Bridge",
        description="OpenAI-compatible chat completions served by Notion AI",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(chat.router, prefix="/v1", tags=["chat"], dependencies=[Depends(require_token)])
    app.include_router(cookies.router, prefix="/cookies", tags=["cookies"], dependencies=[Depends(require_token)])

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        """Health check endpoint."""
        state = request.app.state
        return HealthResponse(
            timestamp=datetime.now(timezone.utc).isoformat(),
            initialized=state.pool.initialized,
            valid_cookies=await state.pool.eligible_count(),
            active_streams=state.registry.active_count(),
        )

    return app


app = create_app()
