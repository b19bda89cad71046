import pytest

from Gateway.crud import chat as chat_crud
from Gateway.errors import NotFoundError, UpstreamTimeout, ValidationFailure
from Gateway.models.chat_models import Conversation, ConversationMode, MessageRole
from Gateway.schemas.chat import ConversationCreate
from Gateway.services.ai_replies import FALLBACK_TEXT
from Gateway.services.cache_service import ai_response_key, conversation_key, user_key
from Gateway.services.chat_service import ChatService, Route, UploadedFile, select_route


@pytest.fixture
def service(db_session, backend, cache):
    return ChatService(db_session, backend, cache)


def _create(service, user, mode=ConversationMode.NORMAL, **extra):
    return service.create_conversation(user_id=user.id, payload=ConversationCreate(mode=mode, **extra))


def _pdf(name="contract.pdf"):
    return UploadedFile(file_name=name, content=b"%PDF-1.4 test", content_type="application/pdf")


def test_select_route_precedence():
    bound = Conversation(document_id="doc-1")
    unbound = Conversation()
    assert select_route(bound, ConversationMode.AGENTIC, has_file=True) == Route.UPLOAD_AND_CHAT
    assert select_route(bound, ConversationMode.AGENTIC, has_file=False) == Route.DOCUMENT_CHAT
    assert select_route(unbound, ConversationMode.AGENTIC, has_file=False) == Route.AGENT_CHAT
    assert select_route(bound, ConversationMode.NORMAL, has_file=False) == Route.PLAIN_CHAT
    assert select_route(unbound, ConversationMode.NORMAL, has_file=True) == Route.PLAIN_CHAT


def test_create_conversation_defaults_title(service, user):
    conv = _create(service, user)
    assert conv.mode == ConversationMode.NORMAL
    assert conv.title.startswith("NORMAL Chat - ")
    assert conv.session_id is None
    assert conv.is_shared is False


def test_create_agentic_conversation_keeps_affinity(service, user):
    conv = _create(service, user, ConversationMode.AGENTIC, title="Lease review", documentId="doc-5", documentName="lease.pdf", sessionId="s-5")
    assert conv.title == "Lease review"
    assert conv.document_id == "doc-5"
    assert conv.document_name == "lease.pdf"
    assert conv.session_id == "s-5"


def test_normal_conversation_rejects_affinity(service, user):
    with pytest.raises(ValidationFailure):
        _create(service, user, documentId="doc-1")


def test_normal_turn_end_to_end(service, user, backend, db_session):
    conv = _create(service, user)
    out = service.send_message(user_id=user.id, conversation_id=conv.id, message="Hello", mode=ConversationMode.NORMAL)

    assert backend.calls_to("chat") == [{"prompt": "Hello"}]
    assert out.message.role == MessageRole.ASSISTANT
    assert out.message.content == "echo: Hello"
    assert out.conversation.id == conv.id
    assert out.conversation.session_id is None
    assert out.conversation.document_id is None

    messages = chat_crud.get_messages(db_session, conv.id)
    assert [(m.role, m.content) for m in messages] == [(MessageRole.USER, "Hello"), (MessageRole.ASSISTANT, "echo: Hello")]
    assert messages[0].id < messages[1].id


def test_repeated_question_is_served_from_cache(service, user, backend, fake_redis):
    first = _create(service, user)
    second = _create(service, user)
    service.send_message(user_id=user.id, conversation_id=first.id, message="What is bail?", mode=ConversationMode.NORMAL)
    assert ai_response_key("What is bail?", "NORMAL") in fake_redis.store

    out = service.send_message(user_id=user.id, conversation_id=second.id, message="What is bail?", mode=ConversationMode.NORMAL)

    assert len(backend.calls_to("chat")) == 1
    assert out.message.content == "echo: What is bail?"
    assert out.message.metadata.cached is True
    detail = service.get_conversation_messages(user_id=user.id, conversation_id=second.id)
    assert [m.role for m in detail.messages] == [MessageRole.USER, MessageRole.ASSISTANT]


def test_cache_is_keyed_by_mode(service, user, backend):
    conv = _create(service, user, ConversationMode.AGENTIC)
    service.send_message(user_id=user.id, conversation_id=conv.id, message="Hi", mode=ConversationMode.AGENTIC)
    service.send_message(user_id=user.id, conversation_id=conv.id, message="Hi", mode=ConversationMode.NORMAL)
    assert len(backend.calls_to("agent_chat")) == 1
    assert len(backend.calls_to("chat")) == 1


def test_agent_session_is_carried_forward(service, user, backend, db_session):
    conv = _create(service, user, ConversationMode.AGENTIC)

    out = service.send_message(user_id=user.id, conversation_id=conv.id, message="first", mode=ConversationMode.AGENTIC)
    assert backend.calls_to("agent_chat")[-1]["session_id"] is None
    assert out.conversation.session_id == "sess-new"
    assert db_session.get(Conversation, conv.id).session_id == "sess-new"

    service.send_message(user_id=user.id, conversation_id=conv.id, message="second", mode=ConversationMode.AGENTIC)
    assert backend.calls_to("agent_chat")[-1]["session_id"] == "sess-new"
    assert backend.calls_to("agent_chat")[-1]["document_id"] is None


def test_upload_binds_document_for_later_turns(service, user, backend, db_session, fake_redis):
    conv = _create(service, user, ConversationMode.AGENTIC)

    out = service.send_message(
        user_id=user.id,
        conversation_id=conv.id,
        message="Summarize this",
        mode=ConversationMode.AGENTIC,
        file=_pdf(),
        output_language="hi",
    )
    upload_call = backend.calls_to("upload_and_chat")[-1]
    assert upload_call["file_name"] == "contract.pdf"
    assert upload_call["output_language"] == "hi"
    assert upload_call["session_id"] is None
    assert out.conversation.document_id == "doc-1"
    assert out.conversation.session_id == "sess-upload"
    assert out.message.metadata.document_id == "doc-1"

    stored = db_session.get(Conversation, conv.id)
    assert stored.document_id == "doc-1"
    assert stored.document_name == "contract.pdf"
    assert stored.session_id == "sess-upload"
    assert ai_response_key("Summarize this", "AGENTIC") not in fake_redis.store

    user_message = chat_crud.get_messages(db_session, conv.id)[0]
    assert user_message.attachments == ["contract.pdf"]

    service.send_message(user_id=user.id, conversation_id=conv.id, message="Who signed it?", mode=ConversationMode.AGENTIC)
    follow_up = backend.calls_to("agent_chat")[-1]
    assert follow_up["document_id"] == "doc-1"
    assert follow_up["session_id"] == "sess-upload"


def test_upload_reuses_existing_session(service, user, backend):
    conv = _create(service, user, ConversationMode.AGENTIC, sessionId="s-existing")
    service.send_message(user_id=user.id, conversation_id=conv.id, message="Read", mode=ConversationMode.AGENTIC, file=_pdf())
    assert backend.calls_to("upload_and_chat")[-1]["session_id"] == "s-existing"


def test_file_in_normal_mode_goes_to_plain_chat(service, user, backend, db_session, fake_redis):
    conv = _create(service, user)
    service.send_message(user_id=user.id, conversation_id=conv.id, message="Look", mode=ConversationMode.NORMAL, file=_pdf("notes.txt"))

    assert backend.calls_to("upload_and_chat") == []
    assert backend.calls_to("chat") == [{"prompt": "Look"}]
    assert chat_crud.get_messages(db_session, conv.id)[0].attachments == ["notes.txt"]
    assert ai_response_key("Look", "NORMAL") not in fake_redis.store


def test_agentic_turn_promotes_normal_conversation(service, user, db_session):
    conv = _create(service, user)
    service.send_message(user_id=user.id, conversation_id=conv.id, message="Plan", mode=ConversationMode.AGENTIC)
    stored = db_session.get(Conversation, conv.id)
    assert stored.session_id == "sess-new"
    assert stored.mode == ConversationMode.AGENTIC


def test_malformed_reply_is_stored_but_not_cached(service, user, backend, fake_redis):
    conv = _create(service, user)
    backend.queue("chat", {})
    out = service.send_message(user_id=user.id, conversation_id=conv.id, message="Anything", mode=ConversationMode.NORMAL)
    assert out.message.content == FALLBACK_TEXT
    assert ai_response_key("Anything", "NORMAL") not in fake_redis.store


def test_tool_summary_is_stored_on_assistant_message(service, user, backend):
    conv = _create(service, user, ConversationMode.AGENTIC)
    backend.queue(
        "agent_chat",
        {
            "response": "Found 2 sections",
            "session_id": "s-9",
            "intermediate_steps": [{"tool": "legal_search", "result": {"query_time": 0.42, "chunks_used": 2, "total_chunks": 12}}],
        },
    )
    out = service.send_message(user_id=user.id, conversation_id=conv.id, message="Search", mode=ConversationMode.AGENTIC)
    metadata = out.message.metadata
    assert [t.tool for t in metadata.tools_used] == ["legal_search"]
    assert metadata.total_query_time == 0.42
    assert metadata.total_chunks == 12


def test_foreign_conversation_is_not_found(service, user, other_user, backend):
    conv = _create(service, user)
    with pytest.raises(NotFoundError):
        service.send_message(user_id=other_user.id, conversation_id=conv.id, message="hi", mode=ConversationMode.NORMAL)
    with pytest.raises(NotFoundError):
        service.get_conversation_messages(user_id=other_user.id, conversation_id=conv.id)
    assert backend.calls == []


def test_upstream_timeout_leaves_no_messages(service, user, backend, db_session):
    conv = _create(service, user)
    backend.errors["chat"] = UpstreamTimeout("slow")
    with pytest.raises(UpstreamTimeout):
        service.send_message(user_id=user.id, conversation_id=conv.id, message="hi", mode=ConversationMode.NORMAL)
    assert chat_crud.get_messages(db_session, conv.id) == []


def test_conversation_info_is_cached_per_owner(service, user, other_user, fake_redis):
    conv = _create(service, user, ConversationMode.AGENTIC, sessionId="s-1")
    info = service.get_conversation_info(user_id=user.id, conversation_id=conv.id)
    assert info.session_id == "s-1"
    assert conversation_key(conv.id) in fake_redis.store

    assert service.get_conversation_info(user_id=user.id, conversation_id=conv.id) == info
    with pytest.raises(NotFoundError):
        service.get_conversation_info(user_id=other_user.id, conversation_id=conv.id)


def test_conversation_list_is_cached_and_invalidated(service, user, fake_redis):
    older = _create(service, user, title="older")
    newer = _create(service, user, title="newer")

    listed = service.get_conversations(user_id=user.id)
    assert [c.id for c in listed] == [newer.id, older.id]
    assert listed[0].last_message is None
    assert user_key(user.id) in fake_redis.store

    service.send_message(user_id=user.id, conversation_id=older.id, message="bump", mode=ConversationMode.NORMAL)
    assert user_key(user.id) not in fake_redis.store

    listed = service.get_conversations(user_id=user.id)
    assert [c.id for c in listed] == [older.id, newer.id]
    assert listed[0].last_message.content == "echo: bump"
    assert service.get_conversations(user_id=user.id) == listed


def test_delete_conversation(service, user, db_session):
    conv = _create(service, user)
    service.send_message(user_id=user.id, conversation_id=conv.id, message="hi", mode=ConversationMode.NORMAL)
    service.delete_conversation(user_id=user.id, conversation_id=conv.id)
    assert db_session.get(Conversation, conv.id) is None
    assert chat_crud.get_messages(db_session, conv.id) == []
    with pytest.raises(NotFoundError):
        service.delete_conversation(user_id=user.id, conversation_id=conv.id)


def test_delete_all_only_touches_own_conversations(service, user, other_user):
    _create(service, user)
    _create(service, user)
    theirs = _create(service, other_user)
    assert service.delete_all_conversations(user_id=user.id).deleted_count == 2
    assert service.get_conversations(user_id=user.id) == []
    assert [c.id for c in service.get_conversations(user_id=other_user.id)] == [theirs.id]


def test_bare_string_reply_is_replayed_from_cache(service, user, backend):
    first = _create(service, user)
    second = _create(service, user)
    backend.queue("chat", "Bail is a security deposit.")

    out = service.send_message(user_id=user.id, conversation_id=first.id, message="What is bail?", mode=ConversationMode.NORMAL)
    assert out.message.content == "Bail is a security deposit."

    again = service.send_message(user_id=user.id, conversation_id=second.id, message="What is bail?", mode=ConversationMode.NORMAL)
    assert len(backend.calls_to("chat")) == 1
    assert again.message.metadata.cached is True
    assert again.message.content == "Bail is a security deposit."


def test_turns_succeed_while_cache_is_down(service, user, backend, fake_redis, db_session):
    fake_redis.fail = True
    conv = _create(service, user, ConversationMode.AGENTIC)

    first = service.send_message(user_id=user.id, conversation_id=conv.id, message="Hi", mode=ConversationMode.AGENTIC)
    second = service.send_message(user_id=user.id, conversation_id=conv.id, message="Hi", mode=ConversationMode.AGENTIC)

    assert first.message.content == second.message.content == "agent: Hi"
    assert second.message.metadata is None or second.message.metadata.cached is None
    assert len(backend.calls_to("agent_chat")) == 2
    assert backend.calls_to("agent_chat")[-1]["session_id"] == "sess-new"
    assert len(chat_crud.get_messages(db_session, conv.id)) == 4
    assert [c.id for c in service.get_conversations(user_id=user.id)] == [conv.id]
    assert service.get_conversation_info(user_id=user.id, conversation_id=conv.id).session_id == "sess-new"
