from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from Gateway.auth import get_current_user
from Gateway.database import get_db
from Gateway.models.user_model import User
from Gateway.responses import envelope
from Gateway.schemas.share import ShareRequest, SharingSettingsRequest
from Gateway.services.cache_service import CacheService, get_cache_service
from Gateway.services.share_service import ShareService
from Gateway.settings import get_settings


router = APIRouter()


def _share_service(db: Session, cache: CacheService) -> ShareService:
    return ShareService(db, cache, get_settings().public_base_url)


# Enable or disable public sharing for one conversation
@router.post("/conversations/{conversation_id}/share")
def share_conversation(
    conversation_id: str,
    payload: ShareRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    svc = _share_service(db, cache)
    if payload.share:
        result = svc.enable_share(
            user_id=user.id,
            conversation_id=conversation_id,
            max_views=payload.max_views,
            expires_in_hours=payload.expires_in_hours,
        )
        return envelope(result, message="Conversation shared")
    result = svc.disable_share(user_id=user.id, conversation_id=conversation_id)
    return envelope(result, message="Conversation is no longer shared")


# Global kill-switch for every shared link the caller owns
@router.put("/sharing")
def update_sharing_settings(
    payload: SharingSettingsRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    svc = _share_service(db, cache)
    return envelope(svc.set_sharing_enabled(user_id=user.id, enabled=payload.enabled))


# Public, unauthenticated read of a shared conversation
@router.get("/shared/{token}")
def get_shared_conversation(
    token: str,
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    svc = _share_service(db, cache)
    return envelope(svc.resolve_shared_link(token=token))
