from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from Gateway.schemas.chat import MessageMetadata, ToolUsage


logger = logging.getLogger(__name__)

FALLBACK_TEXT = "AI response received but content could not be extracted."

_PLAIN_TEXT_FIELDS = ("response", "message", "text", "answer")


# /api/v1/chat: text only, no session or document affinity
@dataclass(frozen=True)
class PlainChatReply:
    raw: dict
    text: Any = None


# /api/v1/agent/chat: carries a session id; document id is left untouched
@dataclass(frozen=True)
class AgentChatReply:
    raw: dict
    session_id: Optional[str] = None
    text: Any = None
    tools_used: tuple = ()
    intermediate_steps: tuple = ()


# /api/v1/agent/upload-and-chat: carries a freshly assigned document id and session id
@dataclass(frozen=True)
class UploadAndChatReply:
    raw: dict
    document_id: Optional[str] = None
    session_id: Optional[str] = None
    text: Any = None
    tools_used: tuple = ()
    intermediate_steps: tuple = ()


AIReply = Union[PlainChatReply, AgentChatReply, UploadAndChatReply]


# Uniform view of a reply: what gets persisted and returned to the caller
@dataclass(frozen=True)
class NormalizedReply:
    reply: AIReply
    text: str
    session_id: Optional[str]
    document_id: Optional[str]
    tool_summary: MessageMetadata


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _as_tuple(value: Any) -> tuple:
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return ()


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (dict, list, tuple)):
        return len(value) == 0
    return False


# Sniffs the reply shape once at the client boundary; downstream code works on the tagged types
def classify_reply(raw: Any) -> AIReply:
    # Bare-string bodies are wrapped so the cached payload replays to the same text
    if isinstance(raw, str):
        return PlainChatReply(raw={"response": raw}, text=raw)
    if not isinstance(raw, dict):
        return PlainChatReply(raw={}, text=None)

    if "document_id" in raw and "agent_response" in raw:
        return UploadAndChatReply(
            raw=raw,
            document_id=_opt_str(raw.get("document_id")),
            session_id=_opt_str(raw.get("session_id")),
            text=raw.get("agent_response"),
            tools_used=_as_tuple(raw.get("tools_used")),
            intermediate_steps=_as_tuple(raw.get("intermediate_steps")),
        )

    if "session_id" in raw and "document_id" not in raw:
        return AgentChatReply(
            raw=raw,
            session_id=_opt_str(raw.get("session_id")),
            text=raw.get("response"),
            tools_used=_as_tuple(raw.get("tools_used")),
            intermediate_steps=_as_tuple(raw.get("intermediate_steps")),
        )

    text = None
    for key in _PLAIN_TEXT_FIELDS:
        if not _is_blank(raw.get(key)):
            text = raw.get(key)
            break
    return PlainChatReply(raw=raw, text=text)


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str, ensure_ascii=False)


def _render_sources(sources: Any) -> str:
    if isinstance(sources, str):
        return sources
    if isinstance(sources, (list, tuple)):
        return "\n".join(f"- {s}" if isinstance(s, str) else f"- {_dumps(s)}" for s in sources)
    return _dumps(sources)


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        if not _is_blank(value.get("answer")):
            content = _render(value["answer"])
            if not _is_blank(value.get("sources")):
                content += "\n\n**Sources:**\n" + _render_sources(value["sources"])
            return content
        nested = value.get("response")
        if not _is_blank(nested):
            return nested if isinstance(nested, str) else _dumps(nested)
        return _dumps(value)
    if isinstance(value, (list, tuple)):
        return _dumps(value)
    return str(value)


def _primary_text(reply: AIReply) -> str:
    main = reply.text
    if _is_blank(main) and not isinstance(reply, PlainChatReply):
        steps = reply.intermediate_steps
        first = steps[0] if steps else None
        if isinstance(first, dict) and not _is_blank(first.get("result")):
            main = first["result"]
    return _render(main)


# Never raises: unreadable replies degrade to FALLBACK_TEXT
def extract_text(reply: AIReply) -> str:
    try:
        text = _primary_text(reply)
    except Exception:
        logger.exception("ai.reply.text.error: shape=%s", type(reply).__name__)
        return FALLBACK_TEXT
    if not text.strip():
        logger.warning("ai.reply.text.empty: shape=%s", type(reply).__name__)
        return FALLBACK_TEXT
    return text


def extract_session_id(reply: AIReply) -> Optional[str]:
    if isinstance(reply, (UploadAndChatReply, AgentChatReply)):
        return reply.session_id
    return None


def extract_document_id(reply: AIReply) -> Optional[str]:
    if isinstance(reply, UploadAndChatReply):
        return reply.document_id
    return None


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _tool_usage(step: dict) -> ToolUsage:
    usage = ToolUsage(tool=str(step.get("tool") or "unknown"))
    result = step.get("result")
    if isinstance(result, dict):
        usage.query_time = _as_float(result.get("query_time"))
        usage.chunks_used = _as_int(result.get("chunks_used"))
        usage.total_chunks = _as_int(result.get("total_chunks"))
    return usage


def _tool_summary(reply: AIReply) -> MessageMetadata:
    if isinstance(reply, PlainChatReply):
        return MessageMetadata()

    detailed = [_tool_usage(step) for step in reply.intermediate_steps if isinstance(step, dict)]
    if detailed:
        tools = detailed
    else:
        tools = [ToolUsage(tool=str(name)) for name in reply.tools_used if name]

    total_query_time = sum(t.query_time for t in detailed if t.query_time)
    max_total_chunks = max((t.total_chunks for t in detailed if t.total_chunks), default=0)

    return MessageMetadata(
        tools_used=tools,
        total_query_time=round(total_query_time, 2) if total_query_time > 0 else None,
        total_chunks=max_total_chunks if max_total_chunks > 0 else None,
        document_id=reply.document_id if isinstance(reply, UploadAndChatReply) else None,
    )


def extract_tool_summary(reply: AIReply) -> MessageMetadata:
    try:
        return _tool_summary(reply)
    except Exception:
        logger.exception("ai.reply.tools.error: shape=%s", type(reply).__name__)
        return MessageMetadata()


def normalize_reply(raw: Any) -> NormalizedReply:
    reply = raw if isinstance(raw, (PlainChatReply, AgentChatReply, UploadAndChatReply)) else classify_reply(raw)
    return NormalizedReply(
        reply=reply,
        text=extract_text(reply),
        session_id=extract_session_id(reply),
        document_id=extract_document_id(reply),
        tool_summary=extract_tool_summary(reply),
    )
