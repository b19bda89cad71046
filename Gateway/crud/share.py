from datetime import datetime
from typing import Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.orm import Session

from Gateway.models.shared_link_model import SharedLink


# Existing link for (user_id, conversation_id), if any
def get_link_for_conversation(session: Session, user_id: str, conversation_id: str) -> Optional[SharedLink]:
    stmt = (
        select(SharedLink)
        .where(SharedLink.user_id == user_id, SharedLink.conversation_id == conversation_id)
        .order_by(SharedLink.created_at)
        .limit(1)
    )
    return session.execute(stmt).scalar_one_or_none()


def get_link_by_token(session: Session, token: str) -> Optional[SharedLink]:
    stmt = select(SharedLink).where(SharedLink.hashed_link == token)
    return session.execute(stmt).scalar_one_or_none()


def create_link(
    session: Session,
    *,
    user_id: str,
    conversation_id: str,
    token: str,
    max_views: Optional[int] = None,
    expires_at: Optional[datetime] = None,
) -> SharedLink:
    link = SharedLink(
        hashed_link=token,
        user_id=user_id,
        conversation_id=conversation_id,
        view_count=0,
        max_views=max_views,
        expires_at=expires_at,
    )
    session.add(link)
    session.flush()
    return link


# Hard revoke: every link for the conversation is removed
def delete_links_for_conversation(session: Session, conversation_id: str) -> int:
    result = session.execute(delete(SharedLink).where(SharedLink.conversation_id == conversation_id))
    return result.rowcount or 0


# Increments view_count in one statement, only while it is still under max_views
def increment_view_count(session: Session, link_id: str) -> bool:
    stmt = (
        update(SharedLink)
        .where(
            SharedLink.id == link_id,
            or_(SharedLink.max_views.is_(None), SharedLink.view_count < SharedLink.max_views),
        )
        .values(view_count=SharedLink.view_count + 1)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    return (result.rowcount or 0) == 1
