import enum

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from Gateway.database import Base
from Gateway.models._common import new_uuid, utcnow_naive


class ConversationMode(str, enum.Enum):
    NORMAL = "NORMAL"
    AGENTIC = "AGENTIC"


class MessageRole(str, enum.Enum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"


# Stores conversation-level metadata plus the agent affinity fields (document/session)
class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    mode = Column(Enum(ConversationMode, name="conversation_mode"), nullable=False, default=ConversationMode.NORMAL)
    document_id = Column(String(255), nullable=True)
    document_name = Column(String(255), nullable=True)
    session_id = Column(String(255), nullable=True)
    is_shared = Column(Boolean, nullable=False, default=False)
    last_message_at = Column(DateTime, nullable=False, default=utcnow_naive, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow_naive)
    updated_at = Column(DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: [Message.created_at, Message.id],
    )
    shared_links = relationship("SharedLink", cascade="all, delete-orphan", passive_deletes=True)


# Stores individual chat messages; rows are never updated after insert
class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), index=True, nullable=False)
    role = Column(Enum(MessageRole, name="message_role"), nullable=False)
    content = Column(Text, nullable=False)
    attachments = Column(JSON, nullable=False, default=list)
    message_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow_naive, index=True)

    conversation = relationship("Conversation", back_populates="messages")
