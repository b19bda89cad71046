from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from Gateway.models._common import utcnow_naive
from Gateway.models.chat_models import Conversation, ConversationMode, Message, MessageRole


RECENT_HISTORY_LIMIT = 20


# Create a conversation owned by user_id
def create_conversation(
    session: Session,
    user_id: str,
    title: str,
    mode: ConversationMode,
    document_id: Optional[str] = None,
    document_name: Optional[str] = None,
    session_id: Optional[str] = None,
) -> Conversation:
    conv = Conversation(
        user_id=user_id,
        title=title,
        mode=mode,
        document_id=document_id or None,
        document_name=document_name or None,
        session_id=session_id or None,
        last_message_at=utcnow_naive(),
    )
    session.add(conv)
    session.flush()
    return conv


# Get a conversation only if it is owned by user_id
def get_conversation(session: Session, conversation_id: str, user_id: str) -> Optional[Conversation]:
    stmt = select(Conversation).where(
        Conversation.id == conversation_id,
        Conversation.user_id == user_id,
    )
    return session.execute(stmt).scalar_one_or_none()


# Get a conversation by id without an ownership filter (public share resolution only)
def get_conversation_unscoped(session: Session, conversation_id: str) -> Optional[Conversation]:
    return session.get(Conversation, conversation_id)


# Last `limit` messages of a conversation, oldest first
def get_recent_messages(session: Session, conversation_id: str, limit: int = RECENT_HISTORY_LIMIT) -> list[Message]:
    stmt = (
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
    )
    rows = list(session.execute(stmt).scalars())
    rows.reverse()
    return rows


# Full ordered history of a conversation
def get_messages(session: Session, conversation_id: str) -> list[Message]:
    stmt = (
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at, Message.id)
    )
    return list(session.execute(stmt).scalars())


# Append a message to a conversation
def create_message(
    session: Session,
    conversation_id: str,
    role: MessageRole,
    content: str,
    attachments: Optional[list[str]] = None,
    metadata: Optional[dict] = None,
) -> Message:
    msg = Message(
        conversation_id=conversation_id,
        role=role,
        content=content,
        attachments=list(attachments or []),
        message_metadata=metadata,
        created_at=utcnow_naive(),
    )
    session.add(msg)
    session.flush()
    return msg


# Apply affinity updates (document/session) to a conversation; None values are ignored
def update_affinity(
    session: Session,
    conv: Conversation,
    *,
    document_id: Optional[str] = None,
    document_name: Optional[str] = None,
    session_id: Optional[str] = None,
) -> bool:
    changed = False
    if document_id is not None:
        conv.document_id = document_id
        changed = True
    if document_name is not None:
        conv.document_name = document_name
        changed = True
    if session_id is not None:
        conv.session_id = session_id
        changed = True
    if changed:
        session.flush()
    return changed


def touch_conversation(session: Session, conv: Conversation) -> None:
    conv.last_message_at = utcnow_naive()
    session.flush()


# Conversations for a user, most recently active first, each with its latest message
def list_conversations_with_last_message(session: Session, user_id: str) -> list[tuple[Conversation, Optional[Message]]]:
    conversations = list(
        session.execute(
            select(Conversation)
            .where(Conversation.user_id == user_id)
            .order_by(Conversation.last_message_at.desc(), Conversation.created_at.desc())
        ).scalars()
    )
    if not conversations:
        return []

    conv_ids = [c.id for c in conversations]
    latest_ids = (
        select(func.max(Message.id).label("message_id"))
        .where(Message.conversation_id.in_(conv_ids))
        .group_by(Message.conversation_id)
        .subquery()
    )
    latest = session.execute(select(Message).join(latest_ids, Message.id == latest_ids.c.message_id)).scalars()
    by_conv = {m.conversation_id: m for m in latest}
    return [(c, by_conv.get(c.id)) for c in conversations]


def delete_conversation(session: Session, conv: Conversation) -> None:
    session.delete(conv)
    session.flush()


# Delete every conversation owned by user_id; returns the removed ids
def delete_all_conversations(session: Session, user_id: str) -> list[str]:
    conversations = list(session.execute(select(Conversation).where(Conversation.user_id == user_id)).scalars())
    deleted_ids = [c.id for c in conversations]
    for conv in conversations:
        session.delete(conv)
    session.flush()
    return deleted_ids
