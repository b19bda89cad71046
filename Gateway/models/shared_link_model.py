from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from Gateway.database import Base
from Gateway.models._common import new_uuid, utcnow_naive


# Public read capability for one conversation; the token is the only credential
class SharedLink(Base):
    __tablename__ = "shared_links"

    id = Column(String(36), primary_key=True, default=new_uuid)
    hashed_link = Column(String(64), unique=True, index=True, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), unique=True, index=True, nullable=False)  # at most one live link per conversation
    view_count = Column(Integer, nullable=False, default=0)
    max_views = Column(Integer, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow_naive)
