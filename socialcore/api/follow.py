from fastapi import APIRouter, Depends, Query, Request, status
from typing import List
import logging

from socialcore.config import settings
from socialcore.schemas.relationship_schema import (
    FollowResult,
    FollowRequestRespond,
    FollowRequestResponse,
    UserListResponse,
    RelationshipStatus,
)
from socialcore.services.relationship_service import RelationshipService
from socialcore.services.auth_service import get_current_user_id
from socialcore.api.deps import get_relationship_service
from socialcore.utils.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/users/{user_id}", response_model=FollowResult, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit)
async def follow_user(
    request: Request,
    user_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Follow a user, or send a follow request when the account is private"""
    return await service.follow(current_user_id, user_id)


@router.delete("/users/{user_id}")
@limiter.limit(settings.rate_limit)
async def unfollow_user(
    request: Request,
    user_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Unfollow a user"""
    unfollowed = await service.unfollow(current_user_id, user_id)
    return {"unfollowed": unfollowed}


@router.get("/users/{user_id}/followers", response_model=UserListResponse)
async def get_followers(
    user_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user_id: int = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Get a user's followers"""
    return await service.get_followers(user_id, current_user_id, skip=skip, limit=limit)


@router.get("/users/{user_id}/following", response_model=UserListResponse)
async def get_following(
    user_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user_id: int = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Get users that a user follows"""
    return await service.get_following(user_id, current_user_id, skip=skip, limit=limit)


@router.get("/users/{user_id}/relationship", response_model=RelationshipStatus)
async def get_relationship(
    user_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    return await service.get_relationship_status(current_user_id, user_id)


@router.delete("/users/{user_id}/request")
async def cancel_follow_request(
    user_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Cancel a pending follow request"""
    cancelled = await service.cancel_follow_request(current_user_id, user_id)
    return {"cancelled": cancelled}


@router.get("/requests/incoming", response_model=List[FollowRequestResponse])
async def get_incoming_follow_requests(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user_id: int = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    return await service.list_incoming_follow_requests(current_user_id, skip=skip, limit=limit)


@router.put("/requests/{request_id}", response_model=FollowRequestResponse)
@limiter.limit(settings.rate_limit)
async def respond_to_follow_request(
    request: Request,
    request_id: int,
    body: FollowRequestRespond,
    current_user_id: int = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Accept or deny a follow request"""
    return await service.respond_to_follow_request(request_id, current_user_id, body.decision)
