"""
Unit tests -- LLM client: mock provider, dispatch, missing keys, provider payloads.
"""
import json
from types import SimpleNamespace

import pytest

from ga4_copilot.copilot import llm_client
from ga4_copilot.copilot.llm_client import (
    LLMReply,
    ToolCall,
    request_tool_call,
    summarize_tool_result,
)
from ga4_copilot.copilot.tool import TOOL_NAME, tool_schema


@pytest.fixture(autouse=True)
def _fresh_clients():
    llm_client._openai_client.cache_clear()
    llm_client._anthropic_client.cache_clear()


# ── mock provider ────────────────────────────────────────

def test_mock_returns_tool_call():
    reply = request_tool_call("active users by city last 7 days", provider="mock")
    assert isinstance(reply, LLMReply)
    assert reply.tool_call is not None
    assert reply.tool_call.name == TOOL_NAME
    args = json.loads(reply.tool_call.arguments)
    assert args["metrics"] == ["activeUsers"]
    assert args["dimensions"] == ["city"]


def test_mock_declines_non_analytics_text():
    reply = request_tool_call("tell me a joke", provider="mock")
    assert reply.tool_call is None
    assert reply.text.startswith("[MOCK]")


def test_mock_summary_mentions_rows_and_insights():
    call = ToolCall(id="c1", name=TOOL_NAME, arguments=json.dumps({
        "metrics": ["bounceRate"], "dimensions": ["city"],
        "startDate": "2024-06-01", "endDate": "2024-06-07",
    }))
    text = summarize_tool_result(
        "bounce rate by city",
        call,
        {"rows": [{"city": "Madrid", "bounceRate": "85"}], "insights": ["1 segments have bounce rate above 80%."]},
        provider="mock",
    )
    assert text.startswith("[MOCK] 1 rows for bounceRate by city")
    assert "1 segments have bounce rate above 80%." in text


def test_default_provider_is_mock():
    reply = request_tool_call("sessions by country")
    assert reply.tool_call is not None


# ── dispatch and keys ────────────────────────────────────

def test_unknown_provider_raises():
    with pytest.raises(NotImplementedError, match="not supported"):
        request_tool_call("hi", provider="banana")


def test_openai_missing_key_raises(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "")
    llm_client.get_settings.cache_clear()
    with pytest.raises(RuntimeError, match="openai_api_key"):
        request_tool_call("hi", provider="openai")


def test_anthropic_missing_key_raises(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    llm_client.get_settings.cache_clear()
    with pytest.raises(RuntimeError, match="anthropic_api_key"):
        summarize_tool_result("hi", ToolCall("c", TOOL_NAME, "{}"), {}, provider="anthropic")


# ── provider payloads ────────────────────────────────────

class _FakeCompletions:
    def __init__(self, message):
        self.message = message
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(choices=[SimpleNamespace(message=self.message)])


def _fake_openai(monkeypatch, message):
    completions = _FakeCompletions(message)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    monkeypatch.setattr(llm_client, "_openai_client", lambda: client)
    return completions


def test_openai_tool_call_parsed(monkeypatch):
    tc = SimpleNamespace(
        id="call_1",
        function=SimpleNamespace(name=TOOL_NAME, arguments='{"metrics": ["sessions"]}'),
    )
    completions = _fake_openai(monkeypatch, SimpleNamespace(content=None, tool_calls=[tc]))

    reply = request_tool_call("sessions", provider="openai")

    assert reply.tool_call == ToolCall(id="call_1", name=TOOL_NAME, arguments='{"metrics": ["sessions"]}')
    sent = completions.calls[0]
    assert sent["tools"] == [{"type": "function", "function": tool_schema()}]
    assert sent["messages"][-1] == {"role": "user", "content": "sessions"}


def test_openai_no_tool_call(monkeypatch):
    _fake_openai(monkeypatch, SimpleNamespace(content="I can't help with that.", tool_calls=None))
    reply = request_tool_call("hello", provider="openai")
    assert reply.tool_call is None
    assert reply.text == "I can't help with that."


def test_openai_summary_replays_conversation(monkeypatch):
    completions = _fake_openai(monkeypatch, SimpleNamespace(content="Madrid leads.", tool_calls=None))
    call = ToolCall(id="call_1", name=TOOL_NAME, arguments='{"metrics": ["sessions"]}')

    text = summarize_tool_result("q", call, {"rows": [], "insights": []}, provider="openai")

    assert text == "Madrid leads."
    messages = completions.calls[0]["messages"]
    assert messages[1] == {"role": "user", "content": "q"}
    assert messages[2]["tool_calls"][0]["id"] == "call_1"
    assert messages[3] == {
        "role": "tool",
        "tool_call_id": "call_1",
        "content": json.dumps({"rows": [], "insights": []}),
    }


def test_anthropic_tool_use_parsed(monkeypatch):
    blocks = [
        SimpleNamespace(type="text", text="Let me check."),
        SimpleNamespace(type="tool_use", id="toolu_1", name=TOOL_NAME, input={"metrics": ["sessions"]}),
    ]
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(content=blocks)

    client = SimpleNamespace(messages=SimpleNamespace(create=create))
    monkeypatch.setattr(llm_client, "_anthropic_client", lambda: client)

    reply = request_tool_call("sessions", provider="anthropic")

    assert reply.text == "Let me check."
    assert reply.tool_call.id == "toolu_1"
    assert json.loads(reply.tool_call.arguments) == {"metrics": ["sessions"]}
    assert calls[0]["tools"][0]["input_schema"] == tool_schema()["parameters"]
