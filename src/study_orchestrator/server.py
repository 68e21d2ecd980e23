"""FastAPI application factory.

Example:
    >>> ctx = await AppContext.create(load_config("conf.yaml"))
    >>> app = create_app(ctx)

or, with the context built at startup from configuration::

    uvicorn study_orchestrator.server:build_app --factory
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from loguru import logger

from .app_context import AppContext
from .config_loader import load_config
from .env_config import default_config_path, get_env, get_env_int
from .logging_setup import configure_logging
from .routes.chat_routes import init_chat_routes

API_TITLE = "Study Orchestrator API"
API_VERSION = "0.1.0"


def create_app(ctx: AppContext, close_context: bool = False) -> FastAPI:
    """Create the application around an existing context.

    Args:
        ctx: Application context to serve
        close_context: Close ``ctx`` when the application shuts down
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        yield
        if close_context:
            await ctx.close()

    app = FastAPI(title=API_TITLE, version=API_VERSION, lifespan=lifespan)
    app.state.context = ctx
    app.include_router(init_chat_routes(ctx))
    return app


def build_app(config_path: str | None = None) -> FastAPI:
    """Build the application, creating the context on startup."""
    config = load_config(config_path or default_config_path())
    configure_logging(config.logging.level, config.logging.log_file)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        ctx = await AppContext.create(config)
        app.state.context = ctx
        app.include_router(init_chat_routes(ctx))
        logger.info(f"{API_TITLE} started")
        try:
            yield
        finally:
            await ctx.close()
            logger.info(f"{API_TITLE} stopped")

    return FastAPI(title=API_TITLE, version=API_VERSION, lifespan=lifespan)


def run_server(host: str | None = None, port: int | None = None) -> None:
    import uvicorn

    uvicorn.run(
        "study_orchestrator.server:build_app",
        factory=True,
        host=host or get_env("STUDY_ORCHESTRATOR_HOST", "127.0.0.1"),
        port=port or get_env_int("STUDY_ORCHESTRATOR_PORT", 8000),
    )


if __name__ == "__main__":
    run_server()
