from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from Gateway.models.chat_models import ConversationMode, MessageRole


# Body for POST /conversations/{id}/share; limits only apply when the link is first created
class ShareRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    share: bool
    max_views: Optional[int] = Field(default=None, ge=1, alias="maxViews")
    expires_in_hours: Optional[int] = Field(default=None, ge=1, alias="expiresInHours")


class ShareOut(BaseModel):
    conversation_id: str
    is_shared: bool
    share_url: Optional[str] = None
    token: Optional[str] = None
    view_count: Optional[int] = None
    max_views: Optional[int] = None
    expires_at: Optional[datetime] = None


class SharingSettingsRequest(BaseModel):
    enabled: bool


class SharingSettingsOut(BaseModel):
    share_enabled: bool


# Read-only projection of a message exposed through a public link
class SharedMessageOut(BaseModel):
    id: int
    role: MessageRole
    content: str
    attachments: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class SharedConversationOut(BaseModel):
    id: str
    title: str
    mode: ConversationMode
    document_name: Optional[str] = None
    created_at: Optional[datetime] = None
    last_message_at: Optional[datetime] = None
    view_count: int
    messages: List[SharedMessageOut] = Field(default_factory=list)
