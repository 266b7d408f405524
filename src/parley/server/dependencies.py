"""FastAPI dependencies for the chat application.

Components live on ``app.state`` and are built by the app lifespan, so
every request and WebSocket of one app shares one registry and one store.
"""

from typing import Annotated

from fastapi import Depends
from starlette.requests import HTTPConnection

from parley.directory import ChannelDirectory
from parley.gateway import MessageGateway
from parley.store import SQLChannelStore


def get_store(conn: HTTPConnection) -> SQLChannelStore:
    """Get the app's channel store."""
    return conn.app.state.store


def get_directory(conn: HTTPConnection) -> ChannelDirectory:
    """Get the app's channel directory."""
    return conn.app.state.directory


def get_gateway(conn: HTTPConnection) -> MessageGateway:
    """Get the app's message gateway."""
    return conn.app.state.gateway


StoreDep = Annotated[SQLChannelStore, Depends(get_store)]
DirectoryDep = Annotated[ChannelDirectory, Depends(get_directory)]
GatewayDep = Annotated[MessageGateway, Depends(get_gateway)]
