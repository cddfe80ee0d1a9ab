# =============================================================================
# Responder — Best-Effort Answer After the Round Budget
# =============================================================================
#
# When the evaluator never became satisfied, the responder compiles the best
# possible answer from all accumulated knowledge, in the context of the chat
# thread. It is also the only agent offered an action tool
# (jira_create_issue), for requests that turn out to be "please file a
# ticket" rather than a question.
#
# CONVERSATION SHAPE:
#   [prior thread messages | the question]
#   (+ the question again, unless it repeats the last user message)
#   assistant: "I've finished researching. Let me compile my findings."
#   user:      led-by credit + knowledge dump + answering instructions
#
# AUTHORIZATION: `create_issue_action()` checks the requester against the
# single allow-listed identity before anything reaches the issue tracker.
# Everyone else gets a fixed refusal and nothing is created.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from atlas.config import settings
from atlas.models.persona import PersonaContext
from atlas.models.turns import ConversationMessage
from atlas.services.llm import (
    ChatMessage,
    LLMProvider,
    ToolInvocation,
    assistant_message,
    tool_call_message,
    tool_result_message,
    user_message,
)
from atlas.services.persona import (
    is_ticket_authorized,
    requester_context_paragraph,
    ticket_policy,
)
from atlas.services.text import first_n_words
from atlas.tools.catalog import ACTION_TOOLS, CREATE_ISSUE_TOOL
from atlas.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

ESCALATION_REPLY = (
    "I wasn't able to find a clear answer after extensive research. "
    "Your request has been escalated to the engineering team for further "
    "assistance."
)

COMPILING_LINE = "I've finished researching. Let me compile my findings."

RESPONDER_PROMPT = (
    "You are Atlas Support, an assistant that answers operational and "
    "support questions for engineers, TechOps and other departments. "
    "Research agents have already searched the wiki, the issue tracker, the "
    "helpdesk, logs and code for you.\n\n"
    "Rules:\n"
    "- Answer from the research findings and the conversation only\n"
    "- Lead with concrete facts; put sources (links) at the end\n"
    "- Say clearly what is unknown instead of guessing\n"
    "- Keep the reply short and scannable"
)

ANSWER_INSTRUCTIONS = (
    "\n\nUsing ONLY the research above and the conversation so far, give the "
    "best possible answer. Resolve references like \"this service\", \"it\", "
    "or \"the outage\" from the conversation context above. Lead with "
    "concrete facts, cite sources at the end. Format your reply using only "
    "chat-native syntax: *bold*, _italic_, `monospace`, bullet lists, "
    "[title](url). Keep the message scannable. If the user asked to create "
    "a Jira ticket instead of asking a question, do that."
)


def credit_line(agent_display: str | None) -> str:
    return f"**{agent_display or 'Research'}** led this analysis.\n\n"


def build_system_instruction(requester_id: str, persona: PersonaContext) -> str:
    return (
        f"{RESPONDER_PROMPT}\n\n"
        f"{requester_context_paragraph(persona)}\n\n"
        f"{ticket_policy(requester_id)}"
    )


def build_responder_conversation(
    question: str,
    knowledge: Sequence[str],
    prior_messages: Sequence[ConversationMessage] = (),
    agent_display: str | None = None,
) -> list[ChatMessage]:
    conversation: list[ChatMessage] = []
    if not prior_messages:
        conversation.append(user_message(question))
    else:
        for message in prior_messages:
            if message.role == "user":
                conversation.append(user_message(message.text))
            else:
                conversation.append(assistant_message(message.text))
        last_user = next(
            (m.text.strip() for m in reversed(prior_messages) if m.role == "user"),
            None,
        )
        current = (question or "").strip()
        if current and current != last_user:
            conversation.append(user_message(question))

    led_by = ""
    if agent_display and agent_display.strip():
        led_by = (
            "The research for this request was conducted by "
            f"**{agent_display.strip()}**. "
        )
    conversation.append(assistant_message(COMPILING_LINE))
    conversation.append(user_message(
        led_by
        + "Here is everything the research agent found:\n\n"
        + "\n\n---\n\n".join(knowledge)
        + ANSWER_INSTRUCTIONS
    ))
    return conversation


async def create_issue_action(
    arguments: dict[str, Any],
    requester_id: str,
    registry: ToolRegistry,
) -> str:
    """Run jira_create_issue for the allow-listed requester; refuse everyone else."""
    if not is_ticket_authorized(requester_id):
        logger.warning("Refused issue creation for %s", requester_id or "<anonymous>")
        return f"UNAUTHORIZED: Only {settings.ticket_authorized_name} can create tickets."
    return await registry.execute(CREATE_ISSUE_TOOL, arguments)


async def compile_answer(
    llm: LLMProvider,
    question: str,
    knowledge: Sequence[str],
    requester_id: str,
    prior_messages: Sequence[ConversationMessage],
    persona: PersonaContext,
    registry: ToolRegistry,
    agent_display: str | None = None,
) -> str:
    """Produce the final reply from everything the research rounds found."""
    logger.debug(
        "responder_start: %s knowledge_blobs=%d",
        first_n_words(question, 50), len(knowledge),
    )
    system = build_system_instruction(requester_id, persona)
    conversation = build_responder_conversation(
        question, knowledge, prior_messages, agent_display,
    )
    has_credit = bool(agent_display and agent_display.strip())

    response = await llm.generate(
        system=system,
        conversation=conversation,
        tools=registry.menu(ACTION_TOOLS),
    )

    call = response.tool_call
    if call is not None and call.name == CREATE_ISSUE_TOOL:
        if not call.id:
            call = ToolInvocation(name=call.name, arguments=call.arguments, id="call_action")
        result = await create_issue_action(call.arguments, requester_id, registry)
        conversation.append(tool_call_message(call))
        conversation.append(tool_result_message(call, result))
        follow_up = await llm.generate(system=system, conversation=conversation)
        reply = follow_up.text or result
        return credit_line(agent_display) + reply if has_credit else reply

    if call is not None:
        logger.warning("Responder requested unexpected tool: %s", call.name)

    if not response.text:
        return ESCALATION_REPLY
    return credit_line(agent_display) + response.text if has_credit else response.text
