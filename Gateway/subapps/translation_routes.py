from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from Gateway.auth import get_current_user
from Gateway.database import get_db
from Gateway.models.user_model import User
from Gateway.responses import envelope
from Gateway.schemas.translation import DetectLanguageRequest, TranslateRequest
from Gateway.services.ai_backend_client import AIBackendClient, get_ai_backend_client
from Gateway.services.cache_service import CacheService, get_cache_service
from Gateway.services.translation_service import TranslationService


router = APIRouter(prefix="/translation", tags=["translation"])


@router.post("/translate")
def translate(
    payload: TranslateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    backend: AIBackendClient = Depends(get_ai_backend_client),
    cache: CacheService = Depends(get_cache_service),
):
    svc = TranslationService(db, backend, cache)
    return envelope(
        svc.translate(
            user_id=user.id,
            text=payload.text,
            source_lang=payload.source_lang,
            target_lang=payload.target_lang,
        )
    )


@router.post("/detect-language")
def detect_language(
    payload: DetectLanguageRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    backend: AIBackendClient = Depends(get_ai_backend_client),
    cache: CacheService = Depends(get_cache_service),
):
    svc = TranslationService(db, backend, cache)
    return envelope(svc.detect_language(text=payload.text))


# 50 most recent translations for the caller
@router.get("/history")
def translation_history(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    backend: AIBackendClient = Depends(get_ai_backend_client),
    cache: CacheService = Depends(get_cache_service),
):
    svc = TranslationService(db, backend, cache)
    return envelope(svc.get_user_translations(user_id=user.id))
