# =============================================================================
# Unit Tests — LLM Providers
# =============================================================================
#
# The SDK clients are replaced with mocks; these tests cover the wire
# rendering of conversations and the mapping of SDK responses and errors.
# =============================================================================

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest
from fakes import _run

from atlas.errors import ReasoningServiceError
from atlas.services.llm import (
    AnthropicProvider,
    OpenAICompatibleProvider,
    ToolDescriptor,
    ToolInvocation,
    _to_anthropic_messages,
    _to_openai_messages,
    assistant_message,
    tool_call_message,
    tool_result_message,
    user_message,
)

CALL = ToolInvocation(name="jira_search", arguments={"query": "mailer"}, id="toolu_1")
CONVERSATION = [
    user_message("Why is the mailer down?"),
    tool_call_message(CALL),
    tool_result_message(CALL, "OPS-1 Mailer down"),
]
MENU = [ToolDescriptor(name="jira_search", description="Search Jira")]


class TestMessageRendering:
    def test_anthropic_tool_blocks(self):
        messages = _to_anthropic_messages(CONVERSATION, with_tools=True)
        assert messages[1] == {
            "role": "assistant",
            "content": [{
                "type": "tool_use", "id": "toolu_1",
                "name": "jira_search", "input": {"query": "mailer"},
            }],
        }
        assert messages[2]["role"] == "user"
        assert messages[2]["content"][0]["tool_use_id"] == "toolu_1"

    def test_openai_tool_messages(self):
        messages = _to_openai_messages(CONVERSATION, with_tools=True)
        assert messages[1]["tool_calls"][0]["function"] == {
            "name": "jira_search", "arguments": '{"query": "mailer"}',
        }
        assert messages[2] == {
            "role": "tool", "tool_call_id": "toolu_1", "content": "OPS-1 Mailer down",
        }

    @pytest.mark.parametrize("render", [_to_anthropic_messages, _to_openai_messages])
    def test_without_tools_exchanges_become_text(self, render):
        messages = render(CONVERSATION, with_tools=False)
        assert messages[1] == {
            "role": "assistant",
            "content": '[Called tool jira_search with arguments {"query": "mailer"}]',
        }
        assert messages[2] == {
            "role": "user",
            "content": "[Result of tool jira_search]\nOPS-1 Mailer down",
        }

    def test_missing_ids_pair_up(self):
        call = ToolInvocation(name="jira_search", arguments={"query": "x"})
        messages = _to_openai_messages(
            [tool_call_message(call), tool_result_message(call, "r")], with_tools=True,
        )
        assert messages[0]["tool_calls"][0]["id"] == messages[1]["tool_call_id"]


class TestAnthropicProvider:
    def _provider(self, create):
        provider = AnthropicProvider(api_key="test-key", model="claude-test")
        provider._client = MagicMock()
        provider._client.messages.create = create
        return provider

    def test_tool_use_response(self):
        create = AsyncMock(return_value=SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Let me search."),
                SimpleNamespace(type="tool_use", name="jira_search",
                                input={"query": "mailer"}, id="toolu_9"),
            ],
            model="claude-test",
            usage=SimpleNamespace(input_tokens=10, output_tokens=5),
        ))
        response = _run(self._provider(create).generate(
            "system", [user_message("hi")], tools=MENU,
        ))

        assert response.text == ""
        assert response.tool_call == ToolInvocation("jira_search", {"query": "mailer"}, "toolu_9")
        kwargs = create.await_args.kwargs
        assert kwargs["system"] == "system"
        assert kwargs["tools"][0]["input_schema"] == MENU[0].parameters

    def test_no_tools_key_without_menu(self):
        create = AsyncMock(return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text="Answer")],
            model="claude-test",
            usage=SimpleNamespace(input_tokens=1, output_tokens=1),
        ))
        response = _run(self._provider(create).generate("s", [user_message("hi")]))
        assert response.text == "Answer"
        assert "tools" not in create.await_args.kwargs

    def test_status_error_is_wrapped(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        error = anthropic.InternalServerError(
            "overloaded", response=httpx.Response(529, request=request), body=None,
        )
        provider = self._provider(AsyncMock(side_effect=error))

        with pytest.raises(ReasoningServiceError) as exc:
            _run(provider.generate("s", [user_message("hi")]))
        assert exc.value.status_code == 529

    def test_response_validation_error_is_wrapped(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        error = anthropic.APIResponseValidationError(
            response=httpx.Response(200, request=request), body=None,
        )
        provider = self._provider(AsyncMock(side_effect=error))

        with pytest.raises(ReasoningServiceError) as exc:
            _run(provider.generate("s", [user_message("hi")]))
        assert exc.value.status_code is None


class TestOpenAICompatibleProvider:
    def _provider(self, create):
        provider = OpenAICompatibleProvider(api_key="test-key", model="gpt-test")
        provider._client = MagicMock()
        provider._client.chat.completions.create = create
        return provider

    def test_tool_call_arguments_are_parsed(self):
        tool_call = SimpleNamespace(
            id="call_1",
            function=SimpleNamespace(name="jira_search", arguments='{"query": "mailer"}'),
        )
        create = AsyncMock(return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=None, tool_calls=[tool_call]))],
            model="gpt-test",
            usage=SimpleNamespace(prompt_tokens=3, completion_tokens=2),
        ))

        response = _run(self._provider(create).generate(
            "system", [user_message("hi"), assistant_message("ok")], tools=MENU,
        ))

        assert response.tool_call.arguments == {"query": "mailer"}
        messages = create.await_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "system"}

    def test_invalid_arguments_become_empty(self):
        tool_call = SimpleNamespace(
            id="call_1", function=SimpleNamespace(name="jira_search", arguments="{not json"),
        )
        create = AsyncMock(return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=None, tool_calls=[tool_call]))],
            model="gpt-test",
            usage=None,
        ))
        response = _run(self._provider(create).generate("s", [user_message("hi")], tools=MENU))
        assert response.tool_call.arguments == {}
        assert response.input_tokens == 0

    def test_response_validation_error_is_wrapped(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        error = openai.APIResponseValidationError(
            response=httpx.Response(200, request=request), body=None,
        )
        provider = self._provider(AsyncMock(side_effect=error))

        with pytest.raises(ReasoningServiceError):
            _run(provider.generate("s", [user_message("hi")]))
