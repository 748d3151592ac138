from fastapi import APIRouter, Depends, Request, status
from typing import List
import logging

from socialcore.config import settings
from socialcore.schemas.relationship_schema import UserSummary
from socialcore.services.relationship_service import RelationshipService
from socialcore.services.auth_service import get_current_user_id
from socialcore.api.deps import get_relationship_service
from socialcore.utils.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/block/{user_id}", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit)
async def block_user(
    request: Request,
    user_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Block a user"""
    block = await service.block(current_user_id, user_id)
    return {"blocked": True, "blocked_id": block.blocked_id}


@router.delete("/block/{user_id}")
async def unblock_user(
    user_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Unblock a user"""
    unblocked = await service.unblock(current_user_id, user_id)
    return {"unblocked": unblocked}


@router.get("/block", response_model=List[UserSummary])
async def get_blocked_users(
    current_user_id: int = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    return await service.list_blocked(current_user_id)


@router.post("/mute/{user_id}", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit)
async def mute_user(
    request: Request,
    user_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Mute a user"""
    mute = await service.mute(current_user_id, user_id)
    return {"muted": True, "muted_id": mute.muted_id}


@router.delete("/mute/{user_id}")
async def unmute_user(
    user_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Unmute a user"""
    unmuted = await service.unmute(current_user_id, user_id)
    return {"unmuted": unmuted}


@router.get("/mute", response_model=List[UserSummary])
async def get_muted_users(
    current_user_id: int = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    return await service.list_muted(current_user_id)
