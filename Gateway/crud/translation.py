from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from Gateway.models.translation_model import Translation


def create_translation(
    session: Session,
    user_id: str,
    source_text: str,
    translated_text: str,
    source_lang: str,
    target_lang: str,
    metadata: Optional[dict] = None,
) -> Translation:
    row = Translation(
        user_id=user_id,
        source_text=source_text,
        translated_text=translated_text,
        source_lang=source_lang,
        target_lang=target_lang,
        translation_metadata=metadata or {},
    )
    session.add(row)
    session.flush()
    return row


# Most recent translations for a user, newest first
def list_translations(session: Session, user_id: str, limit: int = 50) -> list[Translation]:
    stmt = (
        select(Translation)
        .where(Translation.user_id == user_id)
        .order_by(Translation.created_at.desc())
        .limit(limit)
    )
    return list(session.execute(stmt).scalars())
