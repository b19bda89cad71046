import json

from Gateway.services.ai_replies import (
    FALLBACK_TEXT,
    AgentChatReply,
    PlainChatReply,
    UploadAndChatReply,
    classify_reply,
    extract_document_id,
    extract_session_id,
    extract_text,
    extract_tool_summary,
    normalize_reply,
)


def test_classify_upload_and_chat_reply():
    reply = classify_reply({"agent_response": "Done", "document_id": "doc-9", "session_id": "s-1"})
    assert isinstance(reply, UploadAndChatReply)
    assert extract_document_id(reply) == "doc-9"
    assert extract_session_id(reply) == "s-1"
    assert extract_text(reply) == "Done"


def test_classify_agent_chat_reply():
    reply = classify_reply({"response": "Hi", "session_id": "s-2"})
    assert isinstance(reply, AgentChatReply)
    assert extract_session_id(reply) == "s-2"
    assert extract_document_id(reply) is None


def test_document_id_without_agent_response_is_plain():
    reply = classify_reply({"response": "Hi", "session_id": "s-2", "document_id": "doc-1"})
    assert isinstance(reply, PlainChatReply)
    assert extract_session_id(reply) is None
    assert extract_document_id(reply) is None


def test_plain_reply_uses_first_text_field():
    assert extract_text(classify_reply({"message": "from message"})) == "from message"
    assert extract_text(classify_reply({"response": "", "text": "from text"})) == "from text"


def test_non_dict_reply_is_plain():
    assert extract_text(classify_reply("just a string")) == "just a string"
    assert extract_text(classify_reply(None)) == FALLBACK_TEXT
    assert extract_text(classify_reply([1, 2])) == FALLBACK_TEXT


def test_blank_text_falls_back_to_first_intermediate_step():
    reply = classify_reply(
        {
            "response": "   ",
            "session_id": "s",
            "intermediate_steps": [{"tool": "search", "result": "found it"}, {"tool": "x", "result": "later"}],
        }
    )
    assert extract_text(reply) == "found it"


def test_structured_step_result_prefers_answer_with_sources():
    reply = classify_reply(
        {
            "response": "",
            "session_id": "s",
            "intermediate_steps": [{"tool": "rag", "result": {"answer": "Section 5 applies.", "sources": "IPC p.12"}}],
        }
    )
    assert extract_text(reply) == "Section 5 applies.\n\n**Sources:**\nIPC p.12"


def test_structured_step_result_without_answer_is_serialized():
    result = {"rows": [1, 2, 3]}
    reply = classify_reply({"response": "", "session_id": "s", "intermediate_steps": [{"tool": "sql", "result": result}]})
    assert json.loads(extract_text(reply)) == result


def test_nested_response_in_structured_text():
    reply = classify_reply({"agent_response": {"response": "nested"}, "document_id": "d"})
    assert extract_text(reply) == "nested"


def test_missing_text_and_steps_yields_placeholder():
    assert extract_text(classify_reply({})) == FALLBACK_TEXT
    assert extract_text(classify_reply({"session_id": "s"})) == FALLBACK_TEXT
    assert extract_text(classify_reply({"session_id": "s", "intermediate_steps": "not-a-list"})) == FALLBACK_TEXT


def test_tool_summary_aggregates_invocations():
    reply = classify_reply(
        {
            "response": "ok",
            "session_id": "s",
            "intermediate_steps": [
                {"tool": "doc_search", "result": {"query_time": 1.234, "chunks_used": 3, "total_chunks": 40}},
                {"tool": "doc_search", "result": {"query_time": 0.5, "chunks_used": 2, "total_chunks": 55}},
                {"result": "plain text result"},
            ],
        }
    )
    summary = extract_tool_summary(reply)
    assert [t.tool for t in summary.tools_used] == ["doc_search", "doc_search", "unknown"]
    assert summary.tools_used[0].chunks_used == 3
    assert summary.total_query_time == 1.73
    assert summary.total_chunks == 55
    assert summary.document_id is None


def test_tool_summary_falls_back_to_tool_names():
    reply = classify_reply({"agent_response": "ok", "document_id": "doc-3", "tools_used": ["ocr", "summarize"]})
    summary = extract_tool_summary(reply)
    assert [t.tool for t in summary.tools_used] == ["ocr", "summarize"]
    assert summary.total_query_time is None
    assert summary.total_chunks is None
    assert summary.document_id == "doc-3"


def test_tool_summary_ignores_bad_numbers():
    reply = classify_reply(
        {"response": "ok", "session_id": "s", "intermediate_steps": [{"tool": "t", "result": {"query_time": "fast", "total_chunks": None}}]}
    )
    summary = extract_tool_summary(reply)
    assert summary.tools_used[0].query_time is None
    assert summary.total_query_time is None


def test_plain_reply_has_empty_tool_summary():
    summary = extract_tool_summary(classify_reply({"response": "hello"}))
    assert summary.tools_used == []
    assert summary.to_json() == {"tools_used": []}


def test_normalize_reply_bundles_fields():
    normalized = normalize_reply({"agent_response": "Read it", "document_id": "doc-7", "session_id": "s-7"})
    assert normalized.text == "Read it"
    assert normalized.session_id == "s-7"
    assert normalized.document_id == "doc-7"
    assert normalized.tool_summary.document_id == "doc-7"


def test_bare_string_reply_keeps_replayable_payload():
    reply = classify_reply("Bail is a security deposit.")
    assert reply.raw == {"response": "Bail is a security deposit."}
    assert extract_text(classify_reply(reply.raw)) == "Bail is a security deposit."
