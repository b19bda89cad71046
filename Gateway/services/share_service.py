from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from Gateway.crud import chat as chat_crud
from Gateway.crud import share as share_crud
from Gateway.crud import user as user_crud
from Gateway.errors import ForbiddenError, NotFoundError
from Gateway.models._common import utcnow_naive
from Gateway.models.chat_models import Conversation
from Gateway.models.shared_link_model import SharedLink
from Gateway.schemas.share import SharedConversationOut, SharedMessageOut, ShareOut, SharingSettingsOut
from Gateway.services.cache_service import CacheService


logger = logging.getLogger(__name__)

SHARE_TOKEN_BYTES = 16


def generate_share_token() -> str:
    return secrets.token_hex(SHARE_TOKEN_BYTES)


# Public share links for conversations: Private <-> Shared, with view and expiry limits
class ShareService:
    def __init__(self, db: Session, cache: CacheService, public_base_url: str):
        self.db = db
        self.cache = cache
        self.public_base_url = public_base_url.rstrip("/")

    def share_url(self, token: str) -> str:
        return f"{self.public_base_url}/shared/{token}"

    def _get_owned(self, user_id: str, conversation_id: str) -> Conversation:
        conv = chat_crud.get_conversation(self.db, conversation_id, user_id)
        if conv is None:
            raise NotFoundError("Conversation not found")
        return conv

    def _share_out(self, conv: Conversation, link: Optional[SharedLink]) -> ShareOut:
        if link is None:
            return ShareOut(conversation_id=conv.id, is_shared=bool(conv.is_shared))
        return ShareOut(
            conversation_id=conv.id,
            is_shared=bool(conv.is_shared),
            share_url=self.share_url(link.hashed_link),
            token=link.hashed_link,
            view_count=link.view_count,
            max_views=link.max_views,
            expires_at=link.expires_at,
        )

    # Losing an insert race to a concurrent enable returns the winner's link
    def _create_link(
        self,
        user_id: str,
        conversation_id: str,
        max_views: Optional[int],
        expires_in_hours: Optional[int],
    ) -> SharedLink:
        expires_at = utcnow_naive() + timedelta(hours=expires_in_hours) if expires_in_hours else None
        try:
            link = share_crud.create_link(
                self.db,
                user_id=user_id,
                conversation_id=conversation_id,
                token=generate_share_token(),
                max_views=max_views,
                expires_at=expires_at,
            )
        except IntegrityError:
            self.db.rollback()
            link = share_crud.get_link_for_conversation(self.db, user_id, conversation_id)
            if link is None:
                raise
            logger.info("share.link.race: conv=%s reused=%s", conversation_id, link.id)
            return link
        logger.info("share.link.created: conv=%s max_views=%s expires_at=%s", conversation_id, max_views, expires_at)
        return link

    # Find-or-create the link; repeated calls hand back the same token
    def enable_share(
        self,
        *,
        user_id: str,
        conversation_id: str,
        max_views: Optional[int] = None,
        expires_in_hours: Optional[int] = None,
    ) -> ShareOut:
        conv = self._get_owned(user_id, conversation_id)
        user = user_crud.get_user(self.db, user_id)
        if user is None:
            raise NotFoundError("User not found")

        link = share_crud.get_link_for_conversation(self.db, user_id, conv.id)
        if link is None:
            link = self._create_link(user_id, conv.id, max_views, expires_in_hours)

        conv.is_shared = True
        user_crud.set_share_enabled(self.db, user, True)
        self.db.commit()
        self.cache.clear_user_cache(user_id)
        self.cache.clear_conversation_cache(conv.id)
        return self._share_out(conv, link)

    # Hard revoke: removes every link, so previously distributed URLs stop working for good
    def disable_share(self, *, user_id: str, conversation_id: str) -> ShareOut:
        conv = self._get_owned(user_id, conversation_id)
        conv.is_shared = False
        removed = share_crud.delete_links_for_conversation(self.db, conv.id)
        self.db.commit()
        self.cache.clear_user_cache(user_id)
        self.cache.clear_conversation_cache(conv.id)
        logger.info("share.link.revoked: conv=%s removed=%d", conv.id, removed)
        return self._share_out(conv, None)

    def set_sharing_enabled(self, *, user_id: str, enabled: bool) -> SharingSettingsOut:
        user = user_crud.get_user(self.db, user_id)
        if user is None:
            raise NotFoundError("User not found")
        user_crud.set_share_enabled(self.db, user, enabled)
        self.db.commit()
        logger.info("share.settings: user=%s enabled=%s", user_id, enabled)
        return SharingSettingsOut(share_enabled=bool(user.share_enabled))

    # Public access by token; each check fails with its own reason, in order
    def resolve_shared_link(self, *, token: str) -> SharedConversationOut:
        link = share_crud.get_link_by_token(self.db, token)
        if link is None:
            raise NotFoundError("Shared link not found")

        owner = user_crud.get_user(self.db, link.user_id)
        if owner is None or not owner.share_enabled:
            raise ForbiddenError("Sharing is disabled for this account", code="SHARING_DISABLED")

        conv = chat_crud.get_conversation_unscoped(self.db, link.conversation_id)
        if conv is None:
            raise NotFoundError("Conversation not found")
        if not conv.is_shared:
            raise ForbiddenError("This conversation is no longer shared", code="SHARE_INACTIVE")
        if link.expires_at is not None and link.expires_at <= utcnow_naive():
            raise ForbiddenError("This shared link has expired", code="LINK_EXPIRED")
        if link.max_views is not None and link.view_count >= link.max_views:
            raise ForbiddenError("This shared link has reached its view limit", code="VIEW_LIMIT_REACHED")

        if not share_crud.increment_view_count(self.db, link.id):
            self.db.rollback()
            raise ForbiddenError("This shared link has reached its view limit", code="VIEW_LIMIT_REACHED")
        self.db.commit()
        self.db.refresh(link)

        messages = chat_crud.get_messages(self.db, conv.id)
        logger.info("share.link.viewed: conv=%s views=%d", conv.id, link.view_count)
        return SharedConversationOut(
            id=conv.id,
            title=conv.title,
            mode=conv.mode,
            document_name=conv.document_name,
            created_at=conv.created_at,
            last_message_at=conv.last_message_at,
            view_count=link.view_count,
            messages=[
                SharedMessageOut(
                    id=m.id,
                    role=m.role,
                    content=m.content,
                    attachments=list(m.attachments or []),
                    created_at=m.created_at,
                )
                for m in messages
            ],
        )
