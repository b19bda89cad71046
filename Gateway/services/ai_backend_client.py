import logging
from typing import Any, Optional

import requests

from Gateway.errors import UPSTREAM_TIMEOUT_MESSAGE, UpstreamError, UpstreamTimeout
from Gateway.services.ai_replies import AIReply, classify_reply
from Gateway.settings import get_settings


logger = logging.getLogger(__name__)

# Statuses a sleeping inference space answers with while it boots
_COLD_START_STATUSES = {502, 503, 504}


# HTTP client for the Python inference backend; chat endpoints return classified replies
class AIBackendClient:
    def __init__(self, base_url: str, timeout: float = 120.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def _post(self, path: str, *, json_body: Optional[dict] = None, data: Optional[dict] = None, files: Optional[dict] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.post(url, json=json_body, data=data, files=files, timeout=self.timeout)
        except requests.Timeout:
            logger.error("ai.backend.timeout: path=%s timeout=%ss", path, self.timeout)
            raise UpstreamTimeout(UPSTREAM_TIMEOUT_MESSAGE)
        except requests.ConnectionError:
            logger.error("ai.backend.unreachable: path=%s", path)
            raise UpstreamTimeout(UPSTREAM_TIMEOUT_MESSAGE)

        if response.status_code in _COLD_START_STATUSES:
            logger.warning("ai.backend.cold_start: path=%s status=%d", path, response.status_code)
            raise UpstreamTimeout(UPSTREAM_TIMEOUT_MESSAGE)
        if response.status_code >= 400:
            logger.error("ai.backend.error: path=%s status=%d body=%s", path, response.status_code, response.text[:500])
            raise UpstreamError(f"AI service request failed with status {response.status_code}.")

        try:
            return response.json()
        except ValueError:
            logger.warning("ai.backend.non_json: path=%s", path)
            return {}

    # Normal chat: general knowledge chatbot
    def chat(self, prompt: str) -> AIReply:
        return classify_reply(self._post("/api/v1/chat", json_body={"prompt": prompt}))

    # Agentic chat: tool-using agent, optionally bound to a session and an uploaded document
    def agent_chat(self, message: str, session_id: Optional[str] = None, document_id: Optional[str] = None) -> AIReply:
        body = {
            "message": message,
            "session_id": session_id or "",
            "document_id": document_id or "",
        }
        return classify_reply(self._post("/api/v1/agent/chat", json_body=body))

    def upload_and_chat(
        self,
        file_bytes: bytes,
        file_name: str,
        message: str = "Please analyze this document",
        session_id: Optional[str] = None,
        input_language: Optional[str] = None,
        output_language: Optional[str] = None,
    ) -> AIReply:
        data = {"initial_message": message}
        if session_id:
            data["session_id"] = session_id
        if input_language:
            data["input_language"] = input_language
        if output_language:
            data["output_language"] = output_language
        files = {"file": (file_name, file_bytes)}
        return classify_reply(self._post("/api/v1/agent/upload-and-chat", data=data, files=files))

    def translate(self, text: str, source_lang: str = "en", target_lang: str = "hi") -> dict:
        body = {"text": text, "source_lang": source_lang, "target_lang": target_lang}
        result = self._post("/api/v1/translate", json_body=body)
        return result if isinstance(result, dict) else {}

    def detect_language(self, text: str) -> dict:
        result = self._post("/api/v1/agent/detect-language", json_body={"text": text})
        return result if isinstance(result, dict) else {}

    def generate_document(self, template_name: str, data: dict) -> dict:
        body = {"template_name": template_name, "data": data}
        result = self._post("/api/v1/generate-document", json_body=body)
        return result if isinstance(result, dict) else {}

    def close(self) -> None:
        self._session.close()


_singleton: Optional[AIBackendClient] = None


def get_ai_backend_client() -> AIBackendClient:
    global _singleton
    if _singleton is not None:
        return _singleton

    settings = get_settings()
    _singleton = AIBackendClient(settings.ai_backend_url, timeout=settings.ai_backend_timeout_seconds)
    return _singleton


def close_ai_backend_client() -> None:
    global _singleton
    if _singleton is not None:
        _singleton.close()
        _singleton = None
