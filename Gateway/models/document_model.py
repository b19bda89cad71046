from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text

from Gateway.database import Base
from Gateway.models._common import new_uuid, utcnow_naive


# Generated legal documents (content produced by the AI backend)
class Document(Base):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False, default="")
    format = Column(String(16), nullable=False, default="pdf")
    file_url = Column(String(1024), nullable=False, default="")
    prompt = Column(Text, nullable=False)
    generated_by = Column(String(64), nullable=False, default="ai-backend")
    document_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow_naive, index=True)
