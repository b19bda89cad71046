import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from Gateway.crud import document as document_crud
from Gateway.errors import NotFoundError
from Gateway.models.document_model import Document
from Gateway.schemas.document import DocumentOut, DocumentSummaryOut, GeneratedDocumentOut
from Gateway.services.ai_backend_client import AIBackendClient


logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = "default"


def document_out(doc: Document) -> DocumentOut:
    return DocumentOut(
        id=doc.id,
        title=doc.title,
        format=doc.format,
        file_url=doc.file_url or "",
        created_at=doc.created_at,
        content=doc.content or "",
        prompt=doc.prompt,
        generated_by=doc.generated_by,
        metadata=doc.document_metadata,
    )


# Generates documents through the AI backend and keeps a per-user record of them
class DocumentService:
    def __init__(self, db: Session, backend: AIBackendClient):
        self.db = db
        self.backend = backend

    def generate_document(self, *, user_id: str, prompt: str, format: str = "pdf") -> GeneratedDocumentOut:
        template_data = {
            "prompt": prompt,
            "format": format,
            "user_instructions": prompt,
        }
        result = self.backend.generate_document(DEFAULT_TEMPLATE, template_data)
        content = result.get("document_content") or result.get("content") or ""
        if not isinstance(content, str):
            content = str(content)
        download_url = result.get("download_url") or result.get("file_url") or result.get("url") or ""

        doc = document_crud.create_document(
            self.db,
            user_id=user_id,
            title=result.get("title") or f"Document {datetime.now(timezone.utc).isoformat()}",
            content=content,
            format=format,
            prompt=prompt,
            file_url=download_url,
            metadata={"template": DEFAULT_TEMPLATE, "success": result.get("success")},
        )
        self.db.commit()
        logger.info("document.generated: id=%s format=%s chars=%d", doc.id, format, len(content))
        return GeneratedDocumentOut(document=document_out(doc), download_url=download_url)

    def get_user_documents(self, *, user_id: str) -> list[DocumentSummaryOut]:
        return [
            DocumentSummaryOut(id=d.id, title=d.title, format=d.format, file_url=d.file_url or "", created_at=d.created_at)
            for d in document_crud.list_documents(self.db, user_id)
        ]

    def get_document(self, *, user_id: str, document_id: str) -> DocumentOut:
        doc = document_crud.get_document(self.db, document_id, user_id)
        if doc is None:
            raise NotFoundError("Document not found")
        return document_out(doc)

    def delete_document(self, *, user_id: str, document_id: str) -> None:
        doc = document_crud.get_document(self.db, document_id, user_id)
        if doc is None:
            raise NotFoundError("Document not found")
        document_crud.delete_document(self.db, doc)
        self.db.commit()
