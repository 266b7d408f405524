"""HTTP endpoints for channel discovery, creation and history."""

from typing import Annotated

from fastapi import APIRouter, Query, status
from pydantic import BaseModel

from parley.models import ChannelCreate, ChannelView, ChatMessage, User
from parley.server.dependencies import DirectoryDep, StoreDep

MAX_HISTORY_PAGE = 1000

router = APIRouter(prefix="/api")


# Request models
class VerifySecretRequest(BaseModel):
    secret: str | None = None


class UserCreate(BaseModel):
    username: str
    avatar_url: str | None = None


# Endpoints
@router.get("/channels")
async def list_channels(
    directory: DirectoryDep,
    user_id: int | None = None,
) -> list[ChannelView]:
    """List channels visible to the requesting user."""
    return await directory.list_channels(user_id)


@router.post("/channels", status_code=status.HTTP_201_CREATED)
async def create_channel(
    request: ChannelCreate,
    directory: DirectoryDep,
) -> ChannelView:
    """Create a channel."""
    return await directory.create_channel(request)


@router.post("/channels/{channel_id}/verify")
async def verify_channel_secret(
    channel_id: int,
    request: VerifySecretRequest,
    directory: DirectoryDep,
) -> dict[str, bool]:
    """Check a channel password."""
    valid = await directory.verify_channel_secret(channel_id, request.secret)
    return {"valid": valid}


@router.get("/channels/{channel_id}/messages")
async def get_messages(
    channel_id: int,
    directory: DirectoryDep,
    limit: Annotated[int | None, Query(ge=1, le=MAX_HISTORY_PAGE)] = None,
) -> list[ChatMessage]:
    """Get the message history of a channel, oldest first."""
    return await directory.get_history(channel_id, limit)


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(request: UserCreate, store: StoreDep) -> User:
    """Register an identity for chatting."""
    return await store.add_user(request.username, request.avatar_url)


@router.get("/users/{user_id}")
async def get_user(user_id: int, store: StoreDep) -> User:
    """Get a user profile."""
    return await store.get_user(user_id)
