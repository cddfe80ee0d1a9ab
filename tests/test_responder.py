"""Tests for the responder: conversation shape, escalation and the create-issue action."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fakes import ScriptedLLM, _run, make_registry, tool_reply

from atlas.agents.responder import (
    COMPILING_LINE,
    ESCALATION_REPLY,
    build_responder_conversation,
    build_system_instruction,
    compile_answer,
    create_issue_action,
)
from atlas.config import settings
from atlas.models.persona import PersonaContext
from atlas.models.turns import ConversationMessage

LEAD = "lead@example.com"


@pytest.fixture(autouse=True)
def ticket_lead(monkeypatch):
    monkeypatch.setattr(settings, "ticket_authorized_requester", LEAD)
    monkeypatch.setattr(settings, "ticket_authorized_name", "Dana")


def _compile(llm, registry, requester_id="someone@example.com", **kwargs):
    return _run(compile_answer(
        llm=llm,
        question=kwargs.pop("question", "Why is the mailer down?"),
        knowledge=kwargs.pop("knowledge", ["blob one", "blob two"]),
        requester_id=requester_id,
        prior_messages=kwargs.pop("prior_messages", ()),
        persona=kwargs.pop("persona", PersonaContext.neutral()),
        registry=registry,
        agent_display=kwargs.pop("agent_display", "Alex (Support Engineer)"),
    ))


class TestConversationShape:
    def test_first_message(self):
        conversation = build_responder_conversation("why?", ["a", "b"])
        assert [m.role for m in conversation] == ["user", "assistant", "user"]
        assert conversation[0].content == "why?"
        assert conversation[1].content == COMPILING_LINE
        assert "a\n\n---\n\nb" in conversation[2].content
        assert "create a Jira ticket" in conversation[2].content

    def test_trailing_repeat_is_not_duplicated(self):
        prior = (
            ConversationMessage(role="user", text="is prod ok?"),
            ConversationMessage(role="assistant", text="Yes."),
            ConversationMessage(role="user", text="why is it failing?"),
        )
        conversation = build_responder_conversation("why is it failing?", ["a"], prior)
        user_texts = [m.content for m in conversation if m.role == "user"]
        assert user_texts.count("why is it failing?") == 1

    def test_new_question_is_appended(self):
        prior = (
            ConversationMessage(role="user", text="is prod ok?"),
            ConversationMessage(role="assistant", text="Yes."),
        )
        conversation = build_responder_conversation("and staging?", ["a"], prior)
        assert conversation[2].content == "and staging?"

    def test_led_by_sentence(self):
        conversation = build_responder_conversation("q", ["a"], agent_display="Sam (Senior Engineer)")
        assert conversation[-1].content.startswith(
            "The research for this request was conducted by **Sam (Senior Engineer)**. "
        )

    def test_system_instruction_ticket_policy(self):
        assert "IS authorized" in build_system_instruction(LEAD, PersonaContext.neutral())
        refusal = build_system_instruction("other@example.com", PersonaContext.neutral())
        assert "NOT authorized" in refusal
        assert "Dana" in refusal


class TestCreateIssueAction:
    def test_unauthorized_has_no_side_effect(self):
        create = AsyncMock(return_value="Ticket created: OPS-1")
        registry = make_registry({"jira_create_issue": create})

        result = _run(create_issue_action(
            {"project_key": "OPS", "summary": "x"}, "intruder@example.com", registry,
        ))

        assert result == "UNAUTHORIZED: Only Dana can create tickets."
        create.assert_not_awaited()

    def test_unauthorized_when_no_identity_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "ticket_authorized_requester", "")
        create = AsyncMock()
        registry = make_registry({"jira_create_issue": create})

        result = _run(create_issue_action({"summary": "x"}, "", registry))

        assert result.startswith("UNAUTHORIZED")
        create.assert_not_awaited()

    def test_authorized_case_insensitive(self):
        create = AsyncMock(return_value="Ticket created: OPS-7 - https://x/browse/OPS-7")
        registry = make_registry({"jira_create_issue": create})

        result = _run(create_issue_action(
            {"project_key": "OPS", "summary": "Mailer down"}, " Lead@Example.com ", registry,
        ))

        assert result.startswith("Ticket created: OPS-7")
        create.assert_awaited_once_with(project_key="OPS", summary="Mailer down")


class TestCompileAnswer:
    def test_free_text_gets_credit(self):
        llm = ScriptedLLM("The mailer ran out of memory.")
        answer = _compile(llm, make_registry({}))
        assert answer == (
            "**Alex (Support Engineer)** led this analysis.\n\n"
            "The mailer ran out of memory."
        )

    def test_no_credit_without_display(self):
        llm = ScriptedLLM("Plain answer.")
        assert _compile(llm, make_registry({}), agent_display=None) == "Plain answer."

    def test_empty_reply_escalates(self):
        llm = ScriptedLLM("")
        assert _compile(llm, make_registry({})) == ESCALATION_REPLY

    def test_action_menu_offered(self):
        llm = ScriptedLLM("ok")
        _compile(llm, make_registry({
            "jira_create_issue": AsyncMock(),
            "jira_search": AsyncMock(),
        }))
        assert [d.name for d in llm.calls[0].tools] == ["jira_create_issue"]

    def test_unauthorized_ticket_request(self):
        create = AsyncMock()
        registry = make_registry({"jira_create_issue": create})
        llm = ScriptedLLM(
            tool_reply("jira_create_issue", "c1", project_key="OPS", summary="x"),
            "Sorry, only Dana can create tickets.",
        )

        answer = _compile(llm, registry)

        create.assert_not_awaited()
        assert answer.endswith("Sorry, only Dana can create tickets.")
        follow_up = llm.calls[1]
        assert follow_up.tools is None
        assert follow_up.conversation[-1].content == (
            "UNAUTHORIZED: Only Dana can create tickets."
        )

    def test_authorized_ticket_empty_follow_up_returns_result(self):
        create = AsyncMock(return_value="Ticket created: OPS-9 - https://x/browse/OPS-9")
        registry = make_registry({"jira_create_issue": create})
        llm = ScriptedLLM(
            tool_reply("jira_create_issue", project_key="OPS", summary="Mailer down"),
            "",
        )

        answer = _compile(llm, registry, requester_id=LEAD)

        create.assert_awaited_once()
        assert answer == (
            "**Alex (Support Engineer)** led this analysis.\n\n"
            "Ticket created: OPS-9 - https://x/browse/OPS-9"
        )
