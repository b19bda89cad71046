import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("PUBLIC_BASE_URL", "https://chat.example.test")

from collections import defaultdict, deque

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import Gateway.models  # noqa: F401
from Gateway.app import app
from Gateway.database import Base, get_db
from Gateway.models.user_model import User
from Gateway.rate_limiters.user_rate_limiter import RedisRateLimiter, get_message_rate_limiter, get_upload_rate_limiter
from Gateway.services.ai_backend_client import get_ai_backend_client
from Gateway.services.ai_replies import classify_reply
from Gateway.services.cache_service import CacheService, get_cache_service


# In-memory stand-in for the subset of the redis client API the cache uses
class FakeRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise ConnectionError("redis unavailable")

    def get(self, key):
        self._check()
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl

    def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed


# Recording fake of AIBackendClient; replies are queued per method
class FakeAIBackend:
    def __init__(self):
        self.calls = []
        self.replies = defaultdict(deque)
        self.errors = {}

    def queue(self, method, reply):
        self.replies[method].append(reply)

    def calls_to(self, method):
        return [kwargs for name, kwargs in self.calls if name == method]

    def _log(self, method, **kwargs):
        self.calls.append((method, kwargs))

    def _next(self, method, default):
        if method in self.errors:
            raise self.errors[method]
        if self.replies[method]:
            return self.replies[method].popleft()
        return default

    def chat(self, prompt):
        self._log("chat", prompt=prompt)
        return classify_reply(self._next("chat", {"response": f"echo: {prompt}"}))

    def agent_chat(self, message, session_id=None, document_id=None):
        self._log("agent_chat", message=message, session_id=session_id, document_id=document_id)
        return classify_reply(self._next("agent_chat", {"response": f"agent: {message}", "session_id": session_id or "sess-new"}))

    def upload_and_chat(self, file_bytes, file_name, message="Please analyze this document", session_id=None, input_language=None, output_language=None):
        self._log(
            "upload_and_chat",
            file_bytes=file_bytes,
            file_name=file_name,
            message=message,
            session_id=session_id,
            input_language=input_language,
            output_language=output_language,
        )
        default = {"agent_response": f"analyzed {file_name}", "document_id": "doc-1", "session_id": session_id or "sess-upload"}
        return classify_reply(self._next("upload_and_chat", default))

    def translate(self, text, source_lang="en", target_lang="hi"):
        self._log("translate", text=text, source_lang=source_lang, target_lang=target_lang)
        return self._next("translate", {"translated_text": f"[{target_lang}] {text}"})

    def detect_language(self, text):
        self._log("detect_language", text=text)
        return self._next("detect_language", {"language": "en", "confidence": 0.98})

    def generate_document(self, template_name, data):
        self._log("generate_document", template_name=template_name, data=data)
        return self._next("generate_document", {"document_content": "Generated agreement text", "success": True})


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)

    # SQLite leaves foreign keys off by default; ON DELETE CASCADE depends on them
    @event.listens_for(eng, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return CacheService(fake_redis)


@pytest.fixture
def backend():
    return FakeAIBackend()


def make_user(db_session, email="alice@example.test", share_enabled=False):
    user = User(email=email, name=email.split("@")[0], share_enabled=share_enabled)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def user(db_session):
    return make_user(db_session)


@pytest.fixture
def other_user(db_session):
    return make_user(db_session, email="bob@example.test")


def auth_headers_for(user_id):
    token = jwt.encode({"userId": user_id}, os.environ["JWT_SECRET"], algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(user):
    return auth_headers_for(user.id)


@pytest.fixture
def client(db_session, backend, cache):
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_ai_backend_client] = lambda: backend
    app.dependency_overrides[get_cache_service] = lambda: cache
    app.dependency_overrides[get_message_rate_limiter] = lambda: RedisRateLimiter(None, "message", 20, 60)
    app.dependency_overrides[get_upload_rate_limiter] = lambda: RedisRateLimiter(None, "upload", 10, 3600)
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
