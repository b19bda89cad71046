from typing import Optional

from sqlalchemy.orm import Session

from Gateway.models.user_model import User


def get_user(session: Session, user_id: str) -> Optional[User]:
    return session.get(User, user_id)


def set_share_enabled(session: Session, user: User, enabled: bool) -> User:
    user.share_enabled = enabled
    session.flush()
    return user
