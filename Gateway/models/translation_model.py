from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text

from Gateway.database import Base
from Gateway.models._common import new_uuid, utcnow_naive


class Translation(Base):
    __tablename__ = "translations"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    source_text = Column(Text, nullable=False)
    translated_text = Column(Text, nullable=False)
    source_lang = Column(String(16), nullable=False)
    target_lang = Column(String(16), nullable=False)
    translation_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow_naive, index=True)
