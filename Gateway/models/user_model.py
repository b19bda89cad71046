from sqlalchemy import Boolean, Column, DateTime, String

from Gateway.database import Base
from Gateway.models._common import new_uuid, utcnow_naive


# Account row; credentials are issued elsewhere, this service only reads it
class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    avatar = Column(String(1024), nullable=True)
    password = Column(String(255), nullable=True)  # hash, NULL for OAuth accounts
    provider = Column(String(32), nullable=False, default="LOCAL")
    share_enabled = Column(Boolean, nullable=False, default=False)  # global kill-switch for shared links
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow_naive)
    updated_at = Column(DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)
