"""
LLM client abstraction -- provider-agnostic two-phase tool-call wrapper.

Phase 1  ``request_tool_call``     user text + getGa4Report tool -> tool call or text
Phase 2  ``summarize_tool_result`` user text + that tool call + its result -> text

Supported providers:
  mock      -- keyword planner + templated summary (for tests / offline dev)
  openai    -- OpenAI Chat Completions with function tools (gpt-4o default)
  anthropic -- Anthropic Messages with tool_use blocks

Configuration is read from Settings (env / .env).  Clients are built once per
process and never retry on their own; every call is bounded by
``llm_timeout_seconds``.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable

from ga4_copilot.copilot.planner import extract_tool_arguments
from ga4_copilot.copilot.tool import TOOL_NAME, tool_schema, system_prompt, summary_instructions
from ga4_copilot.core.config import get_settings
from ga4_copilot.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: str  # raw JSON text, untrusted


@dataclass(frozen=True)
class LLMReply:
    text: str = ""
    tool_call: ToolCall | None = None


def _dumps(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, default=str)


# ── mock ─────────────────────────────────────────────────

def _extract_mock(message: str) -> LLMReply:
    logger.info("LLM mock mode -- keyword planner")
    args = extract_tool_arguments(message)
    if args is None:
        return LLMReply(text="[MOCK] I can only answer Google Analytics questions.")
    return LLMReply(tool_call=ToolCall(id="call_mock_0", name=TOOL_NAME, arguments=_dumps(args)))


def _summarize_mock(message: str, tool_call: ToolCall, result: dict[str, Any]) -> str:
    args = json.loads(tool_call.arguments)
    rows = result.get("rows", [])
    parts = [
        f"[MOCK] {len(rows)} rows for {', '.join(args.get('metrics', []))}"
        + (f" by {', '.join(args['dimensions'])}" if args.get("dimensions") else "")
        + f" from {args.get('startDate')} to {args.get('endDate')}."
    ]
    parts.extend(result.get("insights", []))
    return " ".join(parts)


# ── openai ───────────────────────────────────────────────

@lru_cache
def _openai_client() -> Any:
    settings = get_settings()
    api_key = settings.openai_api_key
    if not api_key:
        raise RuntimeError(
            "openai_api_key is not set.  "
            "Set OPENAI_API_KEY in your .env file or environment."
        )

    try:
        import openai  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'openai' package is not installed.  "
            "Run: pip install openai"
        ) from exc

    return openai.OpenAI(api_key=api_key, timeout=settings.llm_timeout_seconds, max_retries=0)


def _extract_openai(message: str) -> LLMReply:
    """Call OpenAI Chat Completions with the report tool available."""
    client = _openai_client()
    response = client.chat.completions.create(
        model=get_settings().openai_model,
        messages=[
            {"role": "system", "content": system_prompt()},
            {"role": "user", "content": message},
        ],
        tools=[{"type": "function", "function": tool_schema()}],
        tool_choice="auto",
        temperature=0.0,
    )
    msg = response.choices[0].message
    if not msg.tool_calls:
        return LLMReply(text=msg.content or "")

    tc = msg.tool_calls[0]
    logger.info("OpenAI requested tool=%s", tc.function.name)
    return LLMReply(
        text=msg.content or "",
        tool_call=ToolCall(id=tc.id, name=tc.function.name, arguments=tc.function.arguments or ""),
    )


def _summarize_openai(message: str, tool_call: ToolCall, result: dict[str, Any]) -> str:
    client = _openai_client()
    response = client.chat.completions.create(
        model=get_settings().openai_model,
        messages=[
            {"role": "system", "content": summary_instructions()},
            {"role": "user", "content": message},
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [{
                    "id": tool_call.id,
                    "type": "function",
                    "function": {"name": tool_call.name, "arguments": tool_call.arguments},
                }],
            },
            {"role": "tool", "tool_call_id": tool_call.id, "content": _dumps(result)},
        ],
        temperature=0.2,
    )
    text = response.choices[0].message.content or ""
    logger.info("OpenAI summary (%d chars)", len(text))
    return text


# ── anthropic ────────────────────────────────────────────

@lru_cache
def _anthropic_client() -> Any:
    settings = get_settings()
    api_key = settings.anthropic_api_key
    if not api_key:
        raise RuntimeError(
            "anthropic_api_key is not set.  "
            "Set ANTHROPIC_API_KEY in your .env file or environment."
        )

    try:
        import anthropic  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'anthropic' package is not installed.  "
            "Run: pip install anthropic"
        ) from exc

    return anthropic.Anthropic(api_key=api_key, timeout=settings.llm_timeout_seconds, max_retries=0)


def _anthropic_tools() -> list[dict[str, Any]]:
    schema = tool_schema()
    return [{
        "name": schema["name"],
        "description": schema["description"],
        "input_schema": schema["parameters"],
    }]


def _extract_anthropic(message: str) -> LLMReply:
    """Call Anthropic Messages with the report tool available."""
    client = _anthropic_client()
    response = client.messages.create(
        model=get_settings().anthropic_model,
        max_tokens=1024,
        system=system_prompt(),
        tools=_anthropic_tools(),
        messages=[{"role": "user", "content": message}],
    )
    text = "".join(b.text for b in response.content if b.type == "text")
    for block in response.content:
        if block.type == "tool_use":
            logger.info("Anthropic requested tool=%s", block.name)
            return LLMReply(
                text=text,
                tool_call=ToolCall(id=block.id, name=block.name, arguments=_dumps(block.input)),
            )
    return LLMReply(text=text)


def _summarize_anthropic(message: str, tool_call: ToolCall, result: dict[str, Any]) -> str:
    client = _anthropic_client()
    response = client.messages.create(
        model=get_settings().anthropic_model,
        max_tokens=1024,
        system=summary_instructions(),
        tools=_anthropic_tools(),
        messages=[
            {"role": "user", "content": message},
            {
                "role": "assistant",
                "content": [{
                    "type": "tool_use",
                    "id": tool_call.id,
                    "name": tool_call.name,
                    "input": json.loads(tool_call.arguments),
                }],
            },
            {
                "role": "user",
                "content": [{
                    "type": "tool_result",
                    "tool_use_id": tool_call.id,
                    "content": _dumps(result),
                }],
            },
        ],
    )
    text = "".join(b.text for b in response.content if b.type == "text")
    logger.info("Anthropic summary (%d chars)", len(text))
    return text


_PROVIDERS: dict[str, tuple[Callable[..., LLMReply], Callable[..., str]]] = {
    "mock": (_extract_mock, _summarize_mock),
    "openai": (_extract_openai, _summarize_openai),
    "anthropic": (_extract_anthropic, _summarize_anthropic),
}


def _resolve(provider: str | None) -> tuple[str, tuple[Callable[..., LLMReply], Callable[..., str]]]:
    if provider is None:
        provider = get_settings().llm_provider.lower()

    fns = _PROVIDERS.get(provider)
    if fns is None:
        raise NotImplementedError(
            f"LLM provider '{provider}' is not supported.  "
            f"Choose from: {', '.join(_PROVIDERS)}"
        )
    return provider, fns


def request_tool_call(message: str, provider: str | None = None) -> LLMReply:
    """Phase 1: ask the model to turn *message* into a getGa4Report call.

    Parameters
    ----------
    message : str
        The user's free-text question.
    provider : str, optional
        Override the provider from settings.  One of: mock, openai, anthropic.
    """
    provider, (extract, _) = _resolve(provider)
    logger.info("Calling LLM provider=%s phase=extract message_len=%d", provider, len(message))
    return extract(message)


def summarize_tool_result(
    message: str,
    tool_call: ToolCall,
    result: dict[str, Any],
    provider: str | None = None,
) -> str:
    """Phase 2: replay the conversation with the tool result and return the answer."""
    provider, (_, summarize) = _resolve(provider)
    logger.info(
        "Calling LLM provider=%s phase=summarize rows=%d",
        provider, len(result.get("rows", [])),
    )
    return summarize(message, tool_call, result)
