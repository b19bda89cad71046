from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from Gateway.models.document_model import Document


def create_document(
    session: Session,
    *,
    user_id: str,
    title: str,
    content: str,
    format: str,
    prompt: str,
    metadata: Optional[dict] = None,
    file_url: str = "",
) -> Document:
    doc = Document(
        user_id=user_id,
        title=title,
        content=content,
        format=format,
        file_url=file_url,
        prompt=prompt,
        document_metadata=metadata or {},
    )
    session.add(doc)
    session.flush()
    return doc


def list_documents(session: Session, user_id: str) -> list[Document]:
    stmt = select(Document).where(Document.user_id == user_id).order_by(Document.created_at.desc())
    return list(session.execute(stmt).scalars())


# Get a document only if it is owned by user_id
def get_document(session: Session, document_id: str, user_id: str) -> Optional[Document]:
    stmt = select(Document).where(Document.id == document_id, Document.user_id == user_id)
    return session.execute(stmt).scalar_one_or_none()


def delete_document(session: Session, doc: Document) -> None:
    session.delete(doc)
    session.flush()
