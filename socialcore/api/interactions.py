from fastapi import APIRouter, Depends, Query, Request, status
import logging

from socialcore.config import settings
from socialcore.schemas.interaction_schema import (
    LikeResponse,
    LikeToggleResponse,
    RetweetResponse,
    CommentCreate,
    CommentResponse,
    TipCreate,
    TipResponse,
)
from socialcore.schemas.relationship_schema import UserListResponse
from socialcore.services.interaction_service import InteractionService
from socialcore.services.auth_service import get_current_user_id
from socialcore.api.deps import get_interaction_service
from socialcore.utils.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/posts/{post_id}/like", response_model=LikeResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit)
async def like_post(
    request: Request,
    post_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: InteractionService = Depends(get_interaction_service),
):
    """Like a post"""
    return await service.like(current_user_id, post_id)


@router.delete("/posts/{post_id}/like")
async def unlike_post(
    post_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: InteractionService = Depends(get_interaction_service),
):
    """Unlike a post"""
    unliked = await service.unlike(current_user_id, post_id)
    return {"unliked": unliked}


@router.post("/posts/{post_id}/like/toggle", response_model=LikeToggleResponse)
@limiter.limit(settings.rate_limit)
async def toggle_like(
    request: Request,
    post_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: InteractionService = Depends(get_interaction_service),
):
    """Like the post if not liked yet, otherwise unlike it"""
    return await service.toggle_like(current_user_id, post_id)


@router.get("/posts/{post_id}/likes", response_model=UserListResponse)
async def get_post_likes(
    post_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user_id: int = Depends(get_current_user_id),
    service: InteractionService = Depends(get_interaction_service),
):
    """Get users who liked a post"""
    return await service.list_likers(post_id, current_user_id, skip=skip, limit=limit)


@router.post("/posts/{post_id}/retweet", response_model=RetweetResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit)
async def retweet_post(
    request: Request,
    post_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: InteractionService = Depends(get_interaction_service),
):
    """Retweet a post"""
    return await service.retweet(current_user_id, post_id)


@router.delete("/posts/{post_id}/retweet")
async def unretweet_post(
    post_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: InteractionService = Depends(get_interaction_service),
):
    unretweeted = await service.unretweet(current_user_id, post_id)
    return {"unretweeted": unretweeted}


@router.get("/posts/{post_id}/retweets", response_model=UserListResponse)
async def get_post_retweets(
    post_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user_id: int = Depends(get_current_user_id),
    service: InteractionService = Depends(get_interaction_service),
):
    return await service.list_retweeters(post_id, current_user_id, skip=skip, limit=limit)


@router.post("/posts/{post_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit)
async def comment_on_post(
    request: Request,
    post_id: int,
    body: CommentCreate,
    current_user_id: int = Depends(get_current_user_id),
    service: InteractionService = Depends(get_interaction_service),
):
    """Comment on a post, notifying the author and any mentioned users"""
    return await service.comment(
        current_user_id,
        post_id,
        body.content,
        mentioned_user_ids=body.mentioned_user_ids,
    )


@router.post("/tips", response_model=TipResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit)
async def send_tip(
    request: Request,
    body: TipCreate,
    current_user_id: int = Depends(get_current_user_id),
    service: InteractionService = Depends(get_interaction_service),
):
    """Record a tip to another user"""
    return await service.tip(
        current_user_id,
        body.to_user_id,
        body.amount,
        message=body.message,
        post_id=body.post_id,
    )
