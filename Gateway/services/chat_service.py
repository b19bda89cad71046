from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from Gateway.crud import chat as chat_crud
from Gateway.errors import NotFoundError, ValidationFailure
from Gateway.models.chat_models import Conversation, ConversationMode, Message, MessageRole
from Gateway.schemas.chat import (
    AffinityOut,
    ConversationCreate,
    ConversationDetailOut,
    ConversationInfoOut,
    ConversationOut,
    ConversationSummaryOut,
    DeleteAllOut,
    MessageMetadata,
    MessageOut,
    SendMessageOut,
)
from Gateway.services.ai_backend_client import AIBackendClient
from Gateway.services.ai_replies import FALLBACK_TEXT, AIReply, NormalizedReply, normalize_reply
from Gateway.services.cache_service import CONVERSATION_LIST_TTL_SECONDS, CacheService


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedFile:
    file_name: str
    content: bytes
    content_type: Optional[str] = None


class Route(str, enum.Enum):
    UPLOAD_AND_CHAT = "upload_and_chat"
    DOCUMENT_CHAT = "document_chat"
    AGENT_CHAT = "agent_chat"
    PLAIN_CHAT = "plain_chat"


# Picks the backend call for a turn; evaluated in precedence order
def select_route(conv: Conversation, mode: ConversationMode, has_file: bool) -> Route:
    if has_file and mode == ConversationMode.AGENTIC:
        return Route.UPLOAD_AND_CHAT
    if conv.document_id and mode == ConversationMode.AGENTIC:
        return Route.DOCUMENT_CHAT
    if mode == ConversationMode.AGENTIC:
        return Route.AGENT_CHAT
    return Route.PLAIN_CHAT


def message_out(m: Message) -> MessageOut:
    metadata = None
    if m.message_metadata:
        try:
            metadata = MessageMetadata.model_validate(m.message_metadata)
        except ValidationError:
            logger.warning("chat.message.metadata.invalid: id=%s", m.id)
    return MessageOut(
        id=m.id,
        role=m.role,
        content=m.content,
        attachments=list(m.attachments or []),
        metadata=metadata,
        created_at=m.created_at,
    )


def _conversation_fields(conv: Conversation) -> dict:
    return {
        "id": conv.id,
        "title": conv.title,
        "mode": conv.mode,
        "document_id": conv.document_id,
        "document_name": conv.document_name,
        "session_id": conv.session_id,
        "is_shared": bool(conv.is_shared),
        "last_message_at": conv.last_message_at,
        "created_at": conv.created_at,
        "updated_at": conv.updated_at,
    }


def conversation_out(conv: Conversation) -> ConversationOut:
    return ConversationOut(**_conversation_fields(conv))


def _default_title(mode: ConversationMode) -> str:
    return f"{mode.value} Chat - {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"


# Routes each user turn to one of four backend calls and keeps affinity and the response cache in step
class ChatService:
    def __init__(self, db: Session, backend: AIBackendClient, cache: CacheService):
        self.db = db
        self.backend = backend
        self.cache = cache

    def _get_owned(self, user_id: str, conversation_id: str) -> Conversation:
        conv = chat_crud.get_conversation(self.db, conversation_id, user_id)
        if conv is None:
            raise NotFoundError("Conversation not found")
        return conv

    def _invalidate(self, user_id: str, conversation_id: Optional[str] = None) -> None:
        self.cache.clear_user_cache(user_id)
        if conversation_id:
            self.cache.clear_conversation_cache(conversation_id)

    def create_conversation(self, *, user_id: str, payload: ConversationCreate) -> ConversationOut:
        if payload.mode != ConversationMode.AGENTIC and (payload.document_id or payload.session_id):
            raise ValidationFailure("documentId and sessionId are only valid for AGENTIC conversations")

        title = (payload.title or "").strip() or _default_title(payload.mode)
        conv = chat_crud.create_conversation(
            self.db,
            user_id,
            title,
            payload.mode,
            document_id=payload.document_id,
            document_name=payload.document_name,
            session_id=payload.session_id,
        )
        self.db.commit()
        self._invalidate(user_id)
        logger.info("chat.conversation.created: conv=%s mode=%s", conv.id, conv.mode.value)
        return conversation_out(conv)

    # User message is committed before the assistant message; concurrent turns are not serialized (last affinity write wins)
    def send_message(
        self,
        *,
        user_id: str,
        conversation_id: str,
        message: str,
        mode: ConversationMode,
        file: Optional[UploadedFile] = None,
        input_language: Optional[str] = None,
        output_language: Optional[str] = None,
    ) -> SendMessageOut:
        conv = self._get_owned(user_id, conversation_id)
        history = chat_crud.get_recent_messages(self.db, conv.id)
        logger.info(
            "chat.send: conv=%s mode=%s history=%d file=%s",
            conv.id,
            mode.value,
            len(history),
            file.file_name if file else None,
        )

        if file is None:
            cached = self.cache.get_ai_response(message, mode.value)
            if cached is not None:
                logger.info("chat.send.cache_hit: conv=%s", conv.id)
                return self._persist_cached_turn(user_id, conv, message, cached)

        route = select_route(conv, mode, has_file=file is not None)
        prior_session_id = conv.session_id
        prior_document_id = conv.document_id

        reply = self._call_backend(route, conv, message, file, input_language, output_language)
        normalized = normalize_reply(reply)

        self._apply_affinity(route, conv, normalized, file, prior_session_id)

        chat_crud.create_message(
            self.db,
            conv.id,
            MessageRole.USER,
            message,
            attachments=[file.file_name] if file else [],
        )
        self.db.commit()

        metadata = normalized.tool_summary.model_copy(
            update={"document_id": prior_document_id or normalized.document_id}
        )
        assistant = chat_crud.create_message(
            self.db,
            conv.id,
            MessageRole.ASSISTANT,
            normalized.text,
            metadata=metadata.to_json(),
        )

        if file is None:
            if normalized.text == FALLBACK_TEXT:
                logger.warning("chat.send.cache_skip: conv=%s reason=unextractable", conv.id)
            else:
                self.cache.cache_ai_response(message, mode.value, reply.raw)

        chat_crud.touch_conversation(self.db, conv)
        self.db.commit()
        self._invalidate(user_id, conv.id)

        return SendMessageOut(
            message=message_out(assistant),
            conversation=AffinityOut(
                id=conv.id,
                session_id=normalized.session_id,
                document_id=normalized.document_id,
            ),
        )

    def _call_backend(
        self,
        route: Route,
        conv: Conversation,
        message: str,
        file: Optional[UploadedFile],
        input_language: Optional[str],
        output_language: Optional[str],
    ) -> AIReply:
        logger.info("chat.route: conv=%s route=%s session=%s document=%s", conv.id, route.value, conv.session_id, conv.document_id)
        if route == Route.UPLOAD_AND_CHAT:
            return self.backend.upload_and_chat(
                file.content,
                file.file_name,
                message,
                session_id=conv.session_id or None,
                input_language=input_language,
                output_language=output_language,
            )
        if route == Route.DOCUMENT_CHAT:
            return self.backend.agent_chat(message, session_id=conv.session_id or None, document_id=conv.document_id)
        if route == Route.AGENT_CHAT:
            return self.backend.agent_chat(message, session_id=conv.session_id or None)
        return self.backend.chat(message)

    def _apply_affinity(
        self,
        route: Route,
        conv: Conversation,
        normalized: NormalizedReply,
        file: Optional[UploadedFile],
        prior_session_id: Optional[str],
    ) -> None:
        if route == Route.PLAIN_CHAT:
            return

        document_id = document_name = session_id = None
        if route == Route.UPLOAD_AND_CHAT:
            if normalized.document_id:
                document_id = normalized.document_id
                document_name = file.file_name
            session_id = normalized.session_id
        elif normalized.session_id and normalized.session_id != prior_session_id:
            session_id = normalized.session_id

        if chat_crud.update_affinity(self.db, conv, document_id=document_id, document_name=document_name, session_id=session_id):
            # Affinity fields only exist on agentic conversations
            conv.mode = ConversationMode.AGENTIC
            self.db.commit()
            logger.info("chat.affinity.updated: conv=%s session=%s document=%s", conv.id, conv.session_id, conv.document_id)

    def _persist_cached_turn(self, user_id: str, conv: Conversation, message: str, cached: dict) -> SendMessageOut:
        normalized = normalize_reply(cached)

        chat_crud.create_message(self.db, conv.id, MessageRole.USER, message)
        self.db.commit()

        metadata = normalized.tool_summary.model_copy(update={"cached": True})
        assistant = chat_crud.create_message(
            self.db,
            conv.id,
            MessageRole.ASSISTANT,
            normalized.text,
            metadata=metadata.to_json(),
        )
        chat_crud.touch_conversation(self.db, conv)
        self.db.commit()
        self._invalidate(user_id, conv.id)

        return SendMessageOut(
            message=message_out(assistant),
            conversation=AffinityOut(
                id=conv.id,
                session_id=normalized.session_id,
                document_id=normalized.document_id,
            ),
        )

    def get_conversations(self, *, user_id: str) -> list[ConversationSummaryOut]:
        cached = self.cache.get_user_data(user_id)
        if isinstance(cached, list):
            try:
                return [ConversationSummaryOut.model_validate(item) for item in cached]
            except ValidationError:
                logger.warning("chat.list.cache.invalid: user=%s", user_id)
                self.cache.clear_user_cache(user_id)

        rows = chat_crud.list_conversations_with_last_message(self.db, user_id)
        summaries = [
            ConversationSummaryOut(
                **_conversation_fields(conv),
                last_message=message_out(last) if last is not None else None,
            )
            for conv, last in rows
        ]
        self.cache.cache_user_data(
            user_id,
            [s.model_dump(mode="json") for s in summaries],
            ttl=CONVERSATION_LIST_TTL_SECONDS,
        )
        return summaries

    def get_conversation_messages(self, *, user_id: str, conversation_id: str) -> ConversationDetailOut:
        conv = self._get_owned(user_id, conversation_id)
        messages = chat_crud.get_messages(self.db, conv.id)
        return ConversationDetailOut(
            **_conversation_fields(conv),
            messages=[message_out(m) for m in messages],
        )

    def get_conversation_info(self, *, user_id: str, conversation_id: str) -> ConversationInfoOut:
        cached = self.cache.get_conversation(conversation_id)
        if isinstance(cached, dict) and cached.get("user_id") == user_id:
            try:
                return ConversationInfoOut.model_validate(cached.get("info"))
            except ValidationError:
                self.cache.clear_conversation_cache(conversation_id)

        conv = self._get_owned(user_id, conversation_id)
        info = ConversationInfoOut(
            id=conv.id,
            title=conv.title,
            mode=conv.mode,
            document_id=conv.document_id,
            document_name=conv.document_name,
            session_id=conv.session_id,
            is_shared=bool(conv.is_shared),
            created_at=conv.created_at,
        )
        self.cache.cache_conversation(conversation_id, {"user_id": user_id, "info": info.model_dump(mode="json")})
        return info

    def delete_conversation(self, *, user_id: str, conversation_id: str) -> None:
        conv = self._get_owned(user_id, conversation_id)
        chat_crud.delete_conversation(self.db, conv)
        self.db.commit()
        self._invalidate(user_id, conversation_id)
        logger.info("chat.conversation.deleted: conv=%s", conversation_id)

    def delete_all_conversations(self, *, user_id: str) -> DeleteAllOut:
        deleted_ids = chat_crud.delete_all_conversations(self.db, user_id)
        self.db.commit()
        self.cache.clear_user_cache(user_id)
        for conversation_id in deleted_ids:
            self.cache.clear_conversation_cache(conversation_id)
        logger.info("chat.conversation.deleted_all: user=%s count=%d", user_id, len(deleted_ids))
        return DeleteAllOut(deleted_count=len(deleted_ids))
