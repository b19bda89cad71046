import logging
from typing import Any

from sqlalchemy.orm import Session

from Gateway.crud import translation as translation_crud
from Gateway.errors import UpstreamError
from Gateway.schemas.translation import LanguageDetectionOut, TranslationOut, TranslationResultOut
from Gateway.services.ai_backend_client import AIBackendClient
from Gateway.services.cache_service import CacheService


logger = logging.getLogger(__name__)

_TRANSLATED_TEXT_FIELDS = ("translated_text", "translation", "text")


def _first_text(result: dict[str, Any]) -> str:
    for key in _TRANSLATED_TEXT_FIELDS:
        value = result.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


class TranslationService:
    def __init__(self, db: Session, backend: AIBackendClient, cache: CacheService):
        self.db = db
        self.backend = backend
        self.cache = cache

    def translate(self, *, user_id: str, text: str, source_lang: str, target_lang: str) -> TranslationResultOut:
        cached = self.cache.get_translation(text, source_lang, target_lang)
        if cached:
            return TranslationResultOut(
                source_text=text,
                translated_text=cached,
                source_lang=source_lang,
                target_lang=target_lang,
                cached=True,
            )

        result = self.backend.translate(text, source_lang, target_lang)
        translated_text = _first_text(result)
        if not translated_text:
            logger.error("translation.empty: src=%s tgt=%s keys=%s", source_lang, target_lang, sorted(result.keys()))
            raise UpstreamError("Translation failed: No translated text returned")

        translation_crud.create_translation(
            self.db,
            user_id,
            text,
            translated_text,
            source_lang,
            target_lang,
            metadata=result.get("metadata") if isinstance(result.get("metadata"), dict) else {},
        )
        self.db.commit()
        self.cache.cache_translation(text, source_lang, target_lang, translated_text)

        return TranslationResultOut(
            source_text=text,
            translated_text=translated_text,
            source_lang=source_lang,
            target_lang=target_lang,
            cached=False,
        )

    def detect_language(self, *, text: str) -> LanguageDetectionOut:
        result = self.backend.detect_language(text)
        language = result.get("language") or result.get("detected_language") or "unknown"
        confidence = result.get("confidence")
        try:
            confidence = float(confidence) if confidence is not None else None
        except (TypeError, ValueError):
            confidence = None
        return LanguageDetectionOut(language=str(language), confidence=confidence)

    def get_user_translations(self, *, user_id: str) -> list[TranslationOut]:
        rows = translation_crud.list_translations(self.db, user_id)
        return [
            TranslationOut(
                id=r.id,
                source_text=r.source_text,
                translated_text=r.translated_text,
                source_lang=r.source_lang,
                target_lang=r.target_lang,
                created_at=r.created_at,
            )
            for r in rows
        ]
