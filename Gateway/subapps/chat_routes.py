import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from Gateway.auth import get_current_user
from Gateway.database import get_db
from Gateway.errors import ValidationFailure
from Gateway.models.chat_models import ConversationMode
from Gateway.models.user_model import User
from Gateway.rate_limiters.user_rate_limiter import RedisRateLimiter, get_message_rate_limiter, get_upload_rate_limiter
from Gateway.responses import envelope
from Gateway.schemas.chat import ConversationCreate
from Gateway.services.ai_backend_client import AIBackendClient, get_ai_backend_client
from Gateway.services.cache_service import CacheService, get_cache_service
from Gateway.services.chat_service import ChatService, UploadedFile


router = APIRouter()
logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
ALLOWED_UPLOAD_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
}


def _parse_mode(value: Any) -> ConversationMode:
    try:
        return ConversationMode(str(value).strip().upper())
    except ValueError:
        raise ValidationFailure("Mode is required and must be either NORMAL or AGENTIC")


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


# Accepts either a JSON body or multipart/form-data with an optional single "file" part
async def _read_message_request(request: Request) -> tuple[dict, Optional[UploadedFile]]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        fields = {k: v for k, v in form.items() if not isinstance(v, UploadFile)}
        upload = form.get("file")
        if not isinstance(upload, UploadFile):
            return fields, None

        if upload.content_type not in ALLOWED_UPLOAD_TYPES:
            raise ValidationFailure("Invalid file type. Only PDF, DOC, DOCX, and TXT files are allowed.")
        content = await upload.read(MAX_UPLOAD_BYTES + 1)
        if len(content) > MAX_UPLOAD_BYTES:
            raise ValidationFailure(f"File too large. Max size is {MAX_UPLOAD_BYTES // (1024 * 1024)}MB.")
        if not content:
            raise ValidationFailure("Uploaded file is empty")
        return fields, UploadedFile(file_name=upload.filename or "document", content=content, content_type=upload.content_type)

    try:
        body = await request.json()
    except ValueError:
        raise ValidationFailure("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise ValidationFailure("Request body must be a JSON object")
    return body, None


# Create a new conversation
@router.post("/conversations", status_code=201)
def create_conversation(
    payload: ConversationCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    backend: AIBackendClient = Depends(get_ai_backend_client),
    cache: CacheService = Depends(get_cache_service),
):
    svc = ChatService(db, backend, cache)
    return envelope(svc.create_conversation(user_id=user.id, payload=payload))


# List the caller's conversations, most recently active first
@router.get("/conversations")
def list_conversations(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    backend: AIBackendClient = Depends(get_ai_backend_client),
    cache: CacheService = Depends(get_cache_service),
):
    svc = ChatService(db, backend, cache)
    return envelope(svc.get_conversations(user_id=user.id))


@router.delete("/conversations")
def delete_all_conversations(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    backend: AIBackendClient = Depends(get_ai_backend_client),
    cache: CacheService = Depends(get_cache_service),
):
    svc = ChatService(db, backend, cache)
    result = svc.delete_all_conversations(user_id=user.id)
    return envelope(result, message=f"{result.deleted_count} conversation(s) deleted successfully")


# Ordered message history for one conversation
@router.get("/conversations/{conversation_id}")
def get_conversation_messages(
    conversation_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    backend: AIBackendClient = Depends(get_ai_backend_client),
    cache: CacheService = Depends(get_cache_service),
):
    svc = ChatService(db, backend, cache)
    return envelope(svc.get_conversation_messages(user_id=user.id, conversation_id=conversation_id))


# Mode / document / session metadata for one conversation
@router.get("/conversations/{conversation_id}/info")
def get_conversation_info(
    conversation_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    backend: AIBackendClient = Depends(get_ai_backend_client),
    cache: CacheService = Depends(get_cache_service),
):
    svc = ChatService(db, backend, cache)
    return envelope(svc.get_conversation_info(user_id=user.id, conversation_id=conversation_id))


# Send a message; AGENTIC turns may attach one document for analysis
@router.post("/conversations/{conversation_id}/messages")
async def send_message(
    conversation_id: str,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    backend: AIBackendClient = Depends(get_ai_backend_client),
    cache: CacheService = Depends(get_cache_service),
    message_limiter: RedisRateLimiter = Depends(get_message_rate_limiter),
    upload_limiter: RedisRateLimiter = Depends(get_upload_rate_limiter),
):
    fields, file = await _read_message_request(request)

    message = _optional_str(fields.get("message"))
    if not message:
        raise ValidationFailure("Message is required")
    mode = _parse_mode(fields.get("mode"))

    await run_in_threadpool(message_limiter.enforce, user.id, "Sending messages too quickly.")
    if file is not None:
        await run_in_threadpool(upload_limiter.enforce, user.id, "Too many uploads.")

    svc = ChatService(db, backend, cache)
    result = await run_in_threadpool(
        lambda: svc.send_message(
            user_id=user.id,
            conversation_id=conversation_id,
            message=message,
            mode=mode,
            file=file,
            input_language=_optional_str(fields.get("input_language")),
            output_language=_optional_str(fields.get("output_language")),
        )
    )
    return envelope(result)


@router.delete("/conversations/{conversation_id}")
def delete_conversation(
    conversation_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    backend: AIBackendClient = Depends(get_ai_backend_client),
    cache: CacheService = Depends(get_cache_service),
):
    svc = ChatService(db, backend, cache)
    svc.delete_conversation(user_id=user.id, conversation_id=conversation_id)
    return envelope(message="Conversation deleted successfully")
