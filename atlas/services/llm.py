# =============================================================================
# Multi-Provider LLM Abstraction — Reasoning Service Client
# =============================================================================
#
# Provides one interface for "given a system instruction, a conversation and
# an optional tool menu, return either text or one tool invocation", with
# concrete implementations for Anthropic (Claude) and OpenAI-compatible APIs
# (OpenAI, DeepSeek, Qwen, Gemini's OpenAI endpoint, ...).
#
# DESIGN DECISION: Protocol (structural typing) over ABC. Tests pass a
# scripted fake provider; anything with a matching `generate()` works.
#
# DESIGN DECISION: Provider-neutral conversation model. Agents build a list
# of `ChatMessage` objects (user text, assistant text, assistant tool call,
# tool result). Each provider renders that list into its own wire format:
#   - Anthropic: tool_use / tool_result content blocks
#   - OpenAI:    assistant.tool_calls + role="tool" messages
#
# DESIGN DECISION: A call without a tool menu renders earlier tool exchanges
# as plain text. The forced-summary call in the research loop offers no
# tools, and both APIs reject tool blocks in history without tool
# definitions.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        — Claude via native Anthropic SDK
#   ├── OpenAICompatibleProvider — Any OpenAI-compatible API
#   ├── create_llm_provider()    — New provider from config
#   └── get_llm_provider()       — Lazy shared instance
# =============================================================================

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from atlas.config import settings
from atlas.errors import ReasoningServiceError
from atlas.services.text import first_n_words

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolDescriptor:
    """A callable operation offered to the reasoning service."""

    name: str
    description: str
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


@dataclass(frozen=True)
class ToolInvocation:
    """A tool call requested by the reasoning service."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    id: str = ""


@dataclass(frozen=True)
class ChatMessage:
    """
    One conversation entry.

    - role="user": `content` is user text
    - role="assistant": `content` is model text, or `tool_call` is set
    - role="tool": `content` is the result of `tool_call`
    """

    role: Literal["user", "assistant", "tool"]
    content: str = ""
    tool_call: ToolInvocation | None = None


def user_message(text: str) -> ChatMessage:
    return ChatMessage(role="user", content=text)


def assistant_message(text: str) -> ChatMessage:
    return ChatMessage(role="assistant", content=text)


def tool_call_message(call: ToolInvocation) -> ChatMessage:
    return ChatMessage(role="assistant", tool_call=call)


def tool_result_message(call: ToolInvocation, result: str) -> ChatMessage:
    return ChatMessage(role="tool", content=result, tool_call=call)


@dataclass
class LLMResponse:
    """
    Standardised response from any provider.

    Exactly one of `text` / `tool_call` is meaningful: when the model asks
    for a tool, `text` is empty.
    """

    text: str = ""
    tool_call: ToolInvocation | None = None
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """Reasoning-service interface used by every agent."""

    async def generate(
        self,
        system: str,
        conversation: list[ChatMessage],
        tools: list[ToolDescriptor] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """
        Generate the next conversation step.

        Args:
            system: System instruction.
            conversation: Ordered messages, oldest first.
            tools: Tool menu. None or empty = the model must answer in text.
            temperature: Override sampling temperature (default from config).
            max_tokens: Override max output tokens (default from config).

        Raises:
            ReasoningServiceError: The service answered with a non-2xx status
                or could not be reached.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Anthropic Claude provider using the native async SDK.

    KEY API DIFFERENCE: Anthropic takes system prompts as a top-level
    `system=` kwarg, and tool results travel back inside a *user* message
    as `tool_result` blocks.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        from anthropic import AsyncAnthropic

        resolved_key = api_key or settings.llm_api_key or settings.anthropic_api_key
        if not resolved_key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._client = AsyncAnthropic(api_key=resolved_key)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    async def generate(
        self,
        system: str,
        conversation: list[ChatMessage],
        tools: list[ToolDescriptor] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate the next step using Claude."""
        from anthropic import APIConnectionError, APIError, APIStatusError

        with_tools = bool(tools)
        kwargs: dict = {
            "model": self._model,
            "system": system,
            "messages": _to_anthropic_messages(conversation, with_tools),
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
        }
        if with_tools:
            kwargs["tools"] = [
                {
                    "name": t.name,
                    "description": t.description,
                    "input_schema": t.parameters,
                }
                for t in tools
            ]

        _log_request(system, conversation, tools)
        try:
            response = await self._client.messages.create(**kwargs)
        except APIStatusError as e:
            raise ReasoningServiceError(e.status_code, e.message) from e
        except APIConnectionError as e:
            raise ReasoningServiceError(None, str(e)) from e
        except APIError as e:
            raise ReasoningServiceError(None, e.message) from e

        text_parts: list[str] = []
        tool_call: ToolInvocation | None = None
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use" and tool_call is None:
                tool_call = ToolInvocation(
                    name=block.name,
                    arguments=dict(block.input or {}),
                    id=block.id,
                )

        result = LLMResponse(
            text="" if tool_call else "".join(text_parts),
            tool_call=tool_call,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        _log_response(result)
        return result


def _to_anthropic_messages(
    conversation: list[ChatMessage],
    with_tools: bool,
) -> list[dict]:
    messages: list[dict] = []
    for msg in conversation:
        if not with_tools and msg.tool_call is not None:
            messages.append(_flatten_tool_message(msg))
        elif msg.role == "tool":
            messages.append({
                "role": "user",
                "content": [{
                    "type": "tool_result",
                    "tool_use_id": _call_id(msg.tool_call),
                    "content": msg.content,
                }],
            })
        elif msg.tool_call is not None:
            messages.append({
                "role": "assistant",
                "content": [{
                    "type": "tool_use",
                    "id": _call_id(msg.tool_call),
                    "name": msg.tool_call.name,
                    "input": msg.tool_call.arguments,
                }],
            })
        else:
            messages.append({"role": msg.role, "content": msg.content})
    return messages


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    OpenAI-compatible provider for any API that follows the OpenAI spec.

    Switching providers is a config change:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://generativelanguage.googleapis.com/v1beta/openai/
        LLM_API_KEY=your-key
        LLM_MODEL=gemini-2.5-pro
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        resolved_key = api_key or settings.llm_api_key or settings.openai_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        resolved_base_url = base_url or settings.llm_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def generate(
        self,
        system: str,
        conversation: list[ChatMessage],
        tools: list[ToolDescriptor] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate the next step using an OpenAI-compatible API."""
        from openai import APIConnectionError, APIError, APIStatusError

        with_tools = bool(tools)
        kwargs: dict = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system},
                *_to_openai_messages(conversation, with_tools),
            ],
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
        }
        if with_tools:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.parameters,
                    },
                }
                for t in tools
            ]

        _log_request(system, conversation, tools)
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except APIStatusError as e:
            raise ReasoningServiceError(e.status_code, e.message) from e
        except APIConnectionError as e:
            raise ReasoningServiceError(None, str(e)) from e
        except APIError as e:
            raise ReasoningServiceError(None, e.message) from e

        message = response.choices[0].message
        tool_call: ToolInvocation | None = None
        if message.tool_calls:
            first = message.tool_calls[0]
            tool_call = ToolInvocation(
                name=first.function.name,
                arguments=_parse_arguments(first.function.arguments),
                id=first.id,
            )

        usage = response.usage
        result = LLMResponse(
            text="" if tool_call else (message.content or ""),
            tool_call=tool_call,
            model=response.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )
        _log_response(result)
        return result


def _to_openai_messages(
    conversation: list[ChatMessage],
    with_tools: bool,
) -> list[dict]:
    messages: list[dict] = []
    for msg in conversation:
        if not with_tools and msg.tool_call is not None:
            messages.append(_flatten_tool_message(msg))
        elif msg.role == "tool":
            messages.append({
                "role": "tool",
                "tool_call_id": _call_id(msg.tool_call),
                "content": msg.content,
            })
        elif msg.tool_call is not None:
            messages.append({
                "role": "assistant",
                "content": None,
                "tool_calls": [{
                    "id": _call_id(msg.tool_call),
                    "type": "function",
                    "function": {
                        "name": msg.tool_call.name,
                        "arguments": json.dumps(msg.tool_call.arguments),
                    },
                }],
            })
        else:
            messages.append({"role": msg.role, "content": msg.content})
    return messages


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Tool call arguments are not valid JSON: %s", raw[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}


# ---------------------------------------------------------------------------
# Shared Helpers
# ---------------------------------------------------------------------------


def _call_id(call: ToolInvocation | None) -> str:
    if call is not None and call.id:
        return call.id
    # Both APIs require an id to pair a tool call with its result
    seed = "tool"
    if call is not None:
        seed = call.name + json.dumps(call.arguments, sort_keys=True)
    return f"call_{uuid.uuid5(uuid.NAMESPACE_OID, seed).hex[:24]}"


def _flatten_tool_message(msg: ChatMessage) -> dict:
    call = msg.tool_call
    if msg.role == "tool":
        return {
            "role": "user",
            "content": f"[Result of tool {call.name}]\n{msg.content}",
        }
    return {
        "role": "assistant",
        "content": f"[Called tool {call.name} with arguments "
        f"{json.dumps(call.arguments, sort_keys=True)}]",
    }


def _log_request(
    system: str,
    conversation: list[ChatMessage],
    tools: list[ToolDescriptor] | None,
) -> None:
    last_text = next(
        (m.content for m in reversed(conversation) if m.content), "",
    )
    logger.debug(
        "llm_request: tools=%d system='%s' last='%s'",
        len(tools or []),
        first_n_words(system, 20),
        first_n_words(last_text, 50),
    )


def _log_response(response: LLMResponse) -> None:
    if response.tool_call:
        logger.debug(
            "llm_response: tool_call=%s args=%s",
            response.tool_call.name,
            json.dumps(response.tool_call.arguments)[:300],
        )
    else:
        logger.debug(
            "llm_response: text='%s' length=%d",
            first_n_words(response.text, 50),
            len(response.text),
        )


# ---------------------------------------------------------------------------
# Factory Functions
# ---------------------------------------------------------------------------


def create_llm_provider() -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Build a new provider from settings.

    Reads `llm_provider`:
    - "anthropic" → AnthropicProvider (Claude)
    - "openai_compatible" → OpenAICompatibleProvider

    The SDK clients pool connections on the event loop that first uses
    them; code that starts a new loop per unit of work (the Celery drain
    tick) builds its own provider with this function.
    """
    if settings.llm_provider == "openai_compatible":
        return OpenAICompatibleProvider()
    return AnthropicProvider()


# Lazy singleton for long-lived event loops (the API process)
_provider: AnthropicProvider | OpenAICompatibleProvider | None = None


def get_llm_provider() -> AnthropicProvider | OpenAICompatibleProvider:
    """Return the shared provider, creating it on first use."""
    global _provider
    if _provider is None:
        _provider = create_llm_provider()
    return _provider
