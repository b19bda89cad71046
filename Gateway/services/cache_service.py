from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Optional

import redis

from Gateway.settings import get_settings


logger = logging.getLogger(__name__)

AI_RESPONSE_TTL_SECONDS = 2 * 60 * 60
USER_DATA_TTL_SECONDS = 60 * 60
CONVERSATION_LIST_TTL_SECONDS = 30 * 60
CONVERSATION_TTL_SECONDS = 30 * 60
TRANSLATION_TTL_SECONDS = 24 * 60 * 60

# Values left behind by an older writer that stringified objects instead of serializing them
_CORRUPT_PREFIX = "[object"


def stable_hash(*parts: Any) -> str:
    """First 16 hex chars of SHA-256 over the JSON of the ordered parts."""
    payload = json.dumps(list(parts), ensure_ascii=False, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def ai_response_key(query: str, mode: str) -> str:
    return f"ai:{stable_hash(query, mode)}"


def translation_key(text: str, source_lang: str, target_lang: str) -> str:
    return f"translation:{stable_hash(text, source_lang, target_lang)}"


def user_key(user_id: str) -> str:
    return f"user:{user_id}"


def conversation_key(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"


# Advisory Redis cache: every read failure is a miss, every write failure is logged and dropped
class CacheService:
    def __init__(self, client: Optional[Any]):
        self._client = client

    def _get_raw(self, key: str) -> Optional[str]:
        if self._client is None:
            return None
        try:
            value = self._client.get(key)
        except Exception:
            logger.warning("cache.get.error: key=%s", key, exc_info=True)
            return None
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        return value

    def _set_raw(self, key: str, value: str, ttl: int) -> None:
        if self._client is None:
            return
        try:
            self._client.setex(key, ttl, value)
        except Exception:
            logger.warning("cache.set.error: key=%s", key, exc_info=True)

    def _delete(self, key: str) -> None:
        if self._client is None:
            return
        try:
            self._client.delete(key)
        except Exception:
            logger.warning("cache.delete.error: key=%s", key, exc_info=True)

    def _get_json(self, key: str) -> Optional[Any]:
        cached = self._get_raw(key)
        if cached is None:
            return None
        if cached.startswith(_CORRUPT_PREFIX):
            logger.warning("cache.corrupt: key=%s", key)
            self._delete(key)
            return None
        try:
            return json.loads(cached)
        except ValueError:
            logger.warning("cache.parse.error: key=%s", key)
            self._delete(key)
            return None

    def _set_json(self, key: str, value: Any, ttl: int) -> None:
        try:
            serialized = json.dumps(value, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            logger.warning("cache.serialize.error: key=%s", key, exc_info=True)
            return
        self._set_raw(key, serialized, ttl)

    # AI responses, keyed by (query, mode)
    def get_ai_response(self, query: str, mode: str) -> Optional[dict]:
        key = ai_response_key(query, mode)
        value = self._get_json(key)
        if value is None:
            return None
        if not isinstance(value, dict):
            logger.warning("cache.ai.unexpected_type: key=%s type=%s", key, type(value).__name__)
            self._delete(key)
            return None
        return value

    def cache_ai_response(self, query: str, mode: str, response: dict, ttl: int = AI_RESPONSE_TTL_SECONDS) -> None:
        self._set_json(ai_response_key(query, mode), response, ttl)

    # Per-user payloads (conversation list)
    def get_user_data(self, user_id: str) -> Optional[Any]:
        return self._get_json(user_key(user_id))

    def cache_user_data(self, user_id: str, data: Any, ttl: int = USER_DATA_TTL_SECONDS) -> None:
        self._set_json(user_key(user_id), data, ttl)

    def clear_user_cache(self, user_id: str) -> None:
        self._delete(user_key(user_id))

    def get_conversation(self, conversation_id: str) -> Optional[Any]:
        return self._get_json(conversation_key(conversation_id))

    def cache_conversation(self, conversation_id: str, data: Any, ttl: int = CONVERSATION_TTL_SECONDS) -> None:
        self._set_json(conversation_key(conversation_id), data, ttl)

    def clear_conversation_cache(self, conversation_id: str) -> None:
        self._delete(conversation_key(conversation_id))

    # Translations are stored as plain strings
    def get_translation(self, text: str, source_lang: str, target_lang: str) -> Optional[str]:
        value = self._get_raw(translation_key(text, source_lang, target_lang))
        if not value:
            return None
        return value

    def cache_translation(self, text: str, source_lang: str, target_lang: str, translation: str, ttl: int = TRANSLATION_TTL_SECONDS) -> None:
        self._set_raw(translation_key(text, source_lang, target_lang), translation, ttl)


_singleton: Optional[CacheService] = None


def get_cache_service() -> CacheService:
    global _singleton
    if _singleton is not None:
        return _singleton

    redis_url = get_settings().redis_url
    if not redis_url:
        logger.warning("REDIS_URL is not set; response caching is disabled.")
        _singleton = CacheService(None)
        return _singleton
    _singleton = CacheService(redis.from_url(redis_url, decode_responses=True))
    return _singleton
