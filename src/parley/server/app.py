"""FastAPI chat application."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from parley.config import ServerConfig
from parley.directory import ChannelDirectory
from parley.errors import (
    AccessDenied,
    ChatError,
    Conflict,
    InvalidInput,
    NotFound,
    StoreUnavailable,
)
from parley.gateway import MessageGateway
from parley.metrics import GatewayMetrics
from parley.registry import MembershipRegistry
from parley.server.routes import router
from parley.server.websocket import chat_session
from parley.store import SQLChannelStore, SQLiteDialect

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFound: status.HTTP_404_NOT_FOUND,
    InvalidInput: status.HTTP_400_BAD_REQUEST,
    AccessDenied: status.HTTP_403_FORBIDDEN,
    Conflict: status.HTTP_409_CONFLICT,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store and build the components shared by all sessions."""
    config: ServerConfig = app.state.config
    logger.info("Opening database %s", config.store.database)

    async with aiosqlite.connect(config.store.database) as connection:
        async with SQLChannelStore(connection, SQLiteDialect(), config.store) as store:
            gateway = MessageGateway(
                store,
                MembershipRegistry(),
                GatewayMetrics(),
                outbox_size=config.outbox_size,
                history_limit=config.history_limit,
            )
            app.state.store = store
            app.state.directory = ChannelDirectory(store)
            app.state.gateway = gateway

            yield

            logger.info("Shutting down, closing %d sessions", len(gateway.sessions))
            for session in gateway.sessions:
                gateway.disconnect(session)


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    """Render a ``ChatError`` as ``{"error": code, "detail": message}``."""
    status_code = next(
        (code for error, code in ERROR_STATUS.items() if isinstance(exc, error)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "detail": str(exc)},
    )


def create_app(config: ServerConfig | None = None) -> FastAPI:
    """Build the chat application."""
    app = FastAPI(title="Parley", lifespan=lifespan)
    app.state.config = config or ServerConfig()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app.state.config.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ChatError, chat_error_handler)
    app.include_router(router)
    app.add_api_websocket_route("/ws", chat_session)
    return app
