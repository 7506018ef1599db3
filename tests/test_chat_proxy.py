import itertools
import json

import pytest
import requests

from chat_gateway.models import CanonicalRequest, ConversationTurn
from chat_gateway.services import chat_proxy
from chat_gateway.services.chat_proxy import (
    NETWORK_ERROR_MESSAGE,
    SERVICE_UNAVAILABLE_MESSAGE,
    ChatProxy,
    build_system_prompt,
)
from tests.conftest import FakeResponse, SessionFactory, chat_completion


def chat(body):
    if not isinstance(body, str):
        body = json.dumps(body)
    return CanonicalRequest(method="POST", path="/chat", body=body)


def body_of(response):
    return json.loads(response.body)


@pytest.mark.parametrize(
    "body",
    [
        "",
        "{not json",
        "[1, 2]",
        {},
        {"message": ""},
        {"message": None},
        {"message": 123},
        {"message": "hi", "recentConversations": "oops"},
        {"message": "hi", "recentConversations": [{"user": 1, "assistant": "x"}]},
    ],
)
def test_invalid_bodies_are_rejected_without_upstream_call(settings, body):
    factory = SessionFactory(FakeResponse(200, chat_completion("never")))
    response = ChatProxy(settings, session_factory=factory).handle(chat(body))

    assert response.status_code == 400
    assert "error" in body_of(response)
    assert factory.call_count == 0
    assert factory.sessions == []


def test_missing_message_names_the_field(settings):
    factory = SessionFactory()
    response = ChatProxy(settings, session_factory=factory).handle(chat({"text": "hello"}))

    assert response.status_code == 400
    assert "message" in body_of(response)["error"]
    assert factory.call_count == 0


def test_message_length_limit(settings):
    settings.max_message_length = 5
    factory = SessionFactory()
    response = ChatProxy(settings, session_factory=factory).handle(chat({"message": "too long"}))

    assert response.status_code == 400
    assert factory.call_count == 0


def test_missing_api_key_is_generic_500(settings):
    settings.api_key = None
    factory = SessionFactory()
    response = ChatProxy(settings, session_factory=factory).handle(chat({"message": "hello"}))

    assert response.status_code == 500
    assert body_of(response) == {"error": SERVICE_UNAVAILABLE_MESSAGE}
    assert factory.call_count == 0


def test_successful_reply(settings):
    factory = SessionFactory(FakeResponse(200, chat_completion("hi there")))
    response = ChatProxy(settings, session_factory=factory).handle(chat({"message": "hello"}))

    assert response.status_code == 200
    assert body_of(response) == {"reply": "hi there"}
    assert response.headers["Content-Type"] == "application/json"
    assert response.headers["Access-Control-Allow-Origin"] == "*"

    session = factory.sessions[0]
    assert session.closed
    url, kwargs = session.calls[0]
    assert url == settings.upstream_url
    assert kwargs["headers"]["Authorization"] == "Bearer test-key"
    assert kwargs["timeout"] == 30.0
    assert kwargs["stream"] is True
    assert kwargs["json"] == {
        "model": "deepseek-chat",
        "messages": [
            {"role": "system", "content": "You are a test persona."},
            {"role": "user", "content": "hello"},
        ],
        "stream": False,
    }


def test_recent_turns_rendered_into_system_message(settings):
    factory = SessionFactory(FakeResponse(200, chat_completion("ok")))
    raw_message = 'say "<b>hi</b>"\nplease'
    ChatProxy(settings, session_factory=factory).handle(
        chat(
            {
                "message": raw_message,
                "recentConversations": [
                    {"user": "hi", "assistant": "hello"},
                    {"user": "who are you", "assistant": "Shier AI"},
                ],
            }
        )
    )

    messages = factory.sessions[0].calls[0][1]["json"]["messages"]
    assert [m["role"] for m in messages] == ["system", "user"]
    assert messages[0]["content"].startswith("You are a test persona.")
    assert "turn 1: user: hi; assistant: hello" in messages[0]["content"]
    assert "turn 2: user: who are you; assistant: Shier AI" in messages[0]["content"]
    assert messages[1]["content"] == raw_message


def test_only_the_latest_turns_are_kept(settings):
    settings.max_history_turns = 2
    turns = [ConversationTurn(user=u, assistant="ok") for u in ("first", "second", "third")]
    prompt = build_system_prompt(settings, turns)

    assert "first" not in prompt
    assert "turn 1: user: second; assistant: ok" in prompt
    assert "turn 2: user: third; assistant: ok" in prompt


def test_upstream_non_200(settings):
    factory = SessionFactory(FakeResponse(500, text="Internal Server Error"))
    response = ChatProxy(settings, session_factory=factory).handle(chat({"message": "hello"}))

    assert response.status_code == 500
    assert body_of(response) == {"error": "API returned status code: 500"}
    assert factory.sessions[0].closed


def test_upstream_malformed_json(settings):
    factory = SessionFactory(FakeResponse(200, text="<html>gateway</html>"))
    response = ChatProxy(settings, session_factory=factory).handle(chat({"message": "hello"}))

    assert response.status_code == 500
    assert body_of(response) == {"error": "failed to parse upstream response"}


def test_upstream_business_error_is_surfaced(settings):
    payload = {"error": {"message": "Insufficient Balance", "type": "unknown_error"}}
    factory = SessionFactory(FakeResponse(200, payload))
    response = ChatProxy(settings, session_factory=factory).handle(chat({"message": "hello"}))

    assert response.status_code == 500
    assert body_of(response) == {"error": "Insufficient Balance"}


@pytest.mark.parametrize(
    "payload",
    [
        {"id": "x"},
        {"choices": []},
        {"choices": [{"message": {}}]},
        {"choices": [{"message": {"content": None}}]},
        ["not", "an", "object"],
    ],
)
def test_unexpected_response_shape(settings, payload):
    factory = SessionFactory(FakeResponse(200, payload))
    response = ChatProxy(settings, session_factory=factory).handle(chat({"message": "hello"}))

    assert response.status_code == 500
    assert body_of(response) == {"error": "unexpected response shape"}


def test_timeout_closes_the_session(settings):
    factory = SessionFactory(exc=requests.exceptions.ReadTimeout("read timed out"))
    response = ChatProxy(settings, session_factory=factory).handle(chat({"message": "hello"}))

    assert response.status_code == 500
    assert "timed out" in body_of(response)["error"]
    assert factory.call_count == 1
    assert factory.sessions[0].closed


def test_trickling_upstream_hits_the_total_deadline(settings, monkeypatch):
    # Each clock reading advances 20s against a 30s budget.
    clock = itertools.count(0, 20)
    monkeypatch.setattr(chat_proxy.time, "monotonic", lambda: next(clock))
    body = json.dumps(chat_completion("slow")).encode("utf-8")
    chunks = [body[i:i + 4] for i in range(0, len(body), 4)]
    factory = SessionFactory(FakeResponse(200, chunks=chunks))

    response = ChatProxy(settings, session_factory=factory).handle(chat({"message": "hello"}))

    assert response.status_code == 500
    assert body_of(response) == {"error": "upstream request timed out after 30s"}
    assert factory.call_count == 1
    assert factory.sessions[0].closed


def test_chunked_body_is_reassembled(settings):
    body = json.dumps(chat_completion("你好"), ensure_ascii=False).encode("utf-8")
    chunks = [body[i:i + 3] for i in range(0, len(body), 3)]
    factory = SessionFactory(FakeResponse(200, chunks=chunks))

    response = ChatProxy(settings, session_factory=factory).handle(chat({"message": "hello"}))

    assert response.status_code == 200
    assert body_of(response) == {"reply": "你好"}


def test_turn_with_null_side_renders_empty(settings):
    factory = SessionFactory(FakeResponse(200, chat_completion("ok")))
    body = {"message": "hi", "recentConversations": [{"user": "a", "assistant": None}, {"user": None}]}

    response = ChatProxy(settings, session_factory=factory).handle(chat(body))

    assert response.status_code == 200
    system = factory.sessions[0].calls[0][1]["json"]["messages"][0]["content"]
    assert "turn 1: user: a; assistant: " in system
    assert "turn 2: user: ; assistant: " in system


def test_connection_error(settings):
    factory = SessionFactory(exc=requests.exceptions.ConnectionError("refused"))
    response = ChatProxy(settings, session_factory=factory).handle(chat({"message": "hello"}))

    assert response.status_code == 500
    assert body_of(response) == {"error": NETWORK_ERROR_MESSAGE}
    assert factory.sessions[0].closed
