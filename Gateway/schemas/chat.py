from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from Gateway.models.chat_models import ConversationMode, MessageRole


# Request body for creating a conversation (accepts camelCase keys from web clients)
class ConversationCreate(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    mode: ConversationMode
    title: Optional[str] = None
    document_id: Optional[str] = Field(default=None, alias="documentId")
    document_name: Optional[str] = Field(default=None, alias="documentName")
    session_id: Optional[str] = Field(default=None, alias="sessionId")


# Per-invocation tool record recovered from the agent's intermediate steps
class ToolUsage(BaseModel):
    tool: str
    query_time: Optional[float] = None
    chunks_used: Optional[int] = None
    total_chunks: Optional[int] = None


# Metadata stored on assistant messages
class MessageMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")
    tools_used: List[ToolUsage] = Field(default_factory=list)
    total_query_time: Optional[float] = None
    total_chunks: Optional[int] = None
    document_id: Optional[str] = None
    cached: Optional[bool] = None

    def to_json(self) -> dict:
        return self.model_dump(exclude_none=True)


class MessageOut(BaseModel):
    id: int
    role: MessageRole
    content: str
    attachments: List[str] = Field(default_factory=list)
    metadata: Optional[MessageMetadata] = None
    created_at: Optional[datetime] = None


# Conversation affinity as of the reply just processed
class AffinityOut(BaseModel):
    id: str
    session_id: Optional[str] = None
    document_id: Optional[str] = None


class SendMessageOut(BaseModel):
    message: MessageOut
    conversation: AffinityOut


class ConversationOut(BaseModel):
    id: str
    title: str
    mode: ConversationMode
    document_id: Optional[str] = None
    document_name: Optional[str] = None
    session_id: Optional[str] = None
    is_shared: bool = False
    last_message_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ConversationSummaryOut(ConversationOut):
    last_message: Optional[MessageOut] = None


class ConversationDetailOut(ConversationOut):
    messages: List[MessageOut] = Field(default_factory=list)


class ConversationInfoOut(BaseModel):
    id: str
    title: str
    mode: ConversationMode
    document_id: Optional[str] = None
    document_name: Optional[str] = None
    session_id: Optional[str] = None
    is_shared: bool = False
    created_at: Optional[datetime] = None


class DeleteAllOut(BaseModel):
    deleted_count: int
