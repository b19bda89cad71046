from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from Gateway.auth import get_current_user
from Gateway.database import get_db
from Gateway.models.user_model import User
from Gateway.responses import envelope
from Gateway.schemas.document import GenerateDocumentRequest
from Gateway.services.ai_backend_client import AIBackendClient, get_ai_backend_client
from Gateway.services.document_service import DocumentService


router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("", status_code=201)
def generate_document(
    payload: GenerateDocumentRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    backend: AIBackendClient = Depends(get_ai_backend_client),
):
    svc = DocumentService(db, backend)
    return envelope(svc.generate_document(user_id=user.id, prompt=payload.prompt, format=payload.format))


@router.get("")
def list_documents(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    backend: AIBackendClient = Depends(get_ai_backend_client),
):
    svc = DocumentService(db, backend)
    return envelope(svc.get_user_documents(user_id=user.id))


@router.get("/{document_id}")
def get_document(
    document_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    backend: AIBackendClient = Depends(get_ai_backend_client),
):
    svc = DocumentService(db, backend)
    return envelope(svc.get_document(user_id=user.id, document_id=document_id))


@router.delete("/{document_id}")
def delete_document(
    document_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    backend: AIBackendClient = Depends(get_ai_backend_client),
):
    svc = DocumentService(db, backend)
    svc.delete_document(user_id=user.id, document_id=document_id)
    return envelope(message="Document deleted successfully")
