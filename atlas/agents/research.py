# =============================================================================
# Research Workers — Bounded Tool-Dispatch Loop
# =============================================================================
#
# A research worker turns a question into a findings text by letting the
# reasoning service call knowledge-source tools:
#
#   opening message (hint + seed + question + prior knowledge + feedback)
#        │
#        ▼
#   ┌─ generate(tools=menu) ──▶ tool call? ──yes──▶ registry.execute ─┐
#   │                               │                                  │
#   │                               no ──▶ return text                 │
#   └──────────────────── (at most max_iterations) ◀───────────────────┘
#        │ budget spent
#        ▼
#   "summarize NOW" + generate(tools=None) ──▶ text or exhausted sentinel
#
# Three variants share this loop and differ only in prompts and menu:
#   support_engineer (A) — triage/handoff, no logs, metrics or code
#   senior_engineer  (B) — deep investigation, full knowledge menu
#   sre_engineer     (C) — incident investigation, + k8s events + metrics
#
# DESIGN DECISION: Variants are data, not subclasses. `WorkerVariant` is a
# frozen dataclass and `run_research()` is the only behaviour. Adding a
# variant means adding one entry to WORKER_VARIANTS.
#
# DESIGN DECISION: The menu bounds what may run. A tool name the model
# invents (or one outside this variant's menu) is answered with
# "Unknown tool: <name>" and never reaches a registry handler.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

from atlas.config import settings
from atlas.models.verdicts import ResearchAgentId
from atlas.services.llm import (
    ChatMessage,
    LLMProvider,
    ToolInvocation,
    tool_call_message,
    tool_result_message,
    user_message,
)
from atlas.services.text import first_n_words
from atlas.tools.catalog import INCIDENT_TOOLS, INVESTIGATION_TOOLS, TRIAGE_TOOLS
from atlas.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Variant Definition
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkerVariant:
    """Static configuration of one research worker."""

    id: ResearchAgentId
    display_name: str
    role: str
    system_prompt: str
    seed_prompt: str
    focus_line: str
    summary_instruction: str
    exhausted_sentinel: str
    tool_names: tuple[str, ...]

    @property
    def display(self) -> str:
        """Credit line name, e.g. "Alex (Support Engineer)"."""
        return f"{self.display_name} ({self.role})"


_STANDARD_LAYOUT = "(SOURCES, KEY FINDINGS, CONFIDENCE, GAPS)"
_INCIDENT_LAYOUT = (
    "(TIMELINE, ROOT CAUSE HYPOTHESIS, AFFECTED COMPONENTS, EVIDENCE, "
    "RECOMMENDED ACTIONS, CONFIDENCE, GAPS)"
)

_FINDINGS_FORMAT = (
    "When you are done, reply in plain text with:\n"
    "SOURCES: every page, ticket, issue or file you used, with links\n"
    "KEY FINDINGS: the facts that answer the question\n"
    "CONFIDENCE: high, medium or low, and why\n"
    "GAPS: what you could not find"
)

SUPPORT_ENGINEER_PROMPT = (
    "You are Alex, a support engineer. Your job is triage and handoff: "
    "collect what the requester (an engineer or TechOps) needs to act on "
    "the question.\n\n"
    "Rules:\n"
    "- Start from the helpdesk when a ticket is mentioned, then look for "
    "existing issues and wiki pages\n"
    "- Prefer finding an existing issue or runbook over guessing\n"
    "- Read a page or issue before citing it; search results alone are "
    "not evidence\n"
    "- Call one tool at a time and stop as soon as you have enough\n\n"
    + _FINDINGS_FORMAT
)

SENIOR_ENGINEER_PROMPT = (
    "You are Sam, a senior engineer investigating technical questions in "
    "depth.\n\n"
    "Rules:\n"
    "- Use design documents and architecture pages for how things should "
    "work, logs and code for how they actually behave\n"
    "- Discover names before using them: list applications before reading "
    "logs, list repositories before reading files\n"
    "- Quote exact error messages, versions and timestamps\n"
    "- Call one tool at a time and stop as soon as you have enough\n\n"
    + _FINDINGS_FORMAT
)

SRE_ENGINEER_PROMPT = (
    "You are Riley, an SRE investigating infrastructure incidents.\n\n"
    "Rules:\n"
    "- Establish the incident window first and use start_time/end_time "
    "for every time-bound query\n"
    "- Correlate pod events, deployments, restart counts and resource "
    "usage with application logs\n"
    "- Distinguish evidence from hypothesis\n"
    "- Call one tool at a time and stop as soon as you have enough\n\n"
    "When you are done, reply in plain text with:\n"
    "TIMELINE, ROOT CAUSE HYPOTHESIS, AFFECTED COMPONENTS, EVIDENCE, "
    "RECOMMENDED ACTIONS, CONFIDENCE, GAPS"
)

WORKER_VARIANTS: dict[str, WorkerVariant] = {
    "support_engineer": WorkerVariant(
        id="support_engineer",
        display_name="Alex",
        role="Support Engineer",
        system_prompt=SUPPORT_ENGINEER_PROMPT,
        seed_prompt=(
            "Gather information to support the requester (engineer or "
            "TechOps). Question: "
        ),
        focus_line="Focus on filling these gaps.",
        summary_instruction=(
            "You have used all your iterations. Summarize your findings NOW "
            f"using the structured format {_STANDARD_LAYOUT}."
        ),
        exhausted_sentinel="No findings after exhausting iterations.",
        tool_names=TRIAGE_TOOLS,
    ),
    "senior_engineer": WorkerVariant(
        id="senior_engineer",
        display_name="Sam",
        role="Senior Engineer",
        system_prompt=SENIOR_ENGINEER_PROMPT,
        seed_prompt="Investigate this question in depth: ",
        focus_line="Focus on filling these gaps. Try different search terms or tools.",
        summary_instruction=(
            "You have used all your investigation iterations. Summarize your "
            f"findings NOW using the structured format {_STANDARD_LAYOUT}."
        ),
        exhausted_sentinel="No findings after exhausting investigation iterations.",
        tool_names=INVESTIGATION_TOOLS,
    ),
    "sre_engineer": WorkerVariant(
        id="sre_engineer",
        display_name="Riley",
        role="SRE Engineer",
        system_prompt=SRE_ENGINEER_PROMPT,
        seed_prompt="Investigate this infrastructure/incident question: ",
        focus_line="Focus on filling these gaps. Try different search terms or tools.",
        summary_instruction=(
            "You have used all your iterations. Summarize your findings NOW "
            f"using the structured format {_INCIDENT_LAYOUT}."
        ),
        exhausted_sentinel="No findings after exhausting investigation iterations.",
        tool_names=INCIDENT_TOOLS,
    ),
}

DEFAULT_VARIANT = "support_engineer"

NO_FINDINGS = "No findings."


def get_variant(agent_id: str | None) -> WorkerVariant:
    """Variant for `agent_id`; unknown ids get the triage worker."""
    return WORKER_VARIANTS.get(agent_id or "", WORKER_VARIANTS[DEFAULT_VARIANT])


# ---------------------------------------------------------------------------
# Opening Message
# ---------------------------------------------------------------------------


def build_opening_message(
    seed_prompt: str,
    question: str,
    prior_knowledge: list[str] | None = None,
    feedback: str | None = None,
    persona_hint: str | None = None,
    focus_line: str = "",
) -> str:
    """
    Compose the first user message of a research run.

    Layout:
        <hint><seed><question>

        Previous research already found:
        <blob 1>
        ---
        <blob 2>

        A quality review flagged these gaps: <feedback>
        <focus line>
    """
    text = f"{persona_hint or ''}{seed_prompt}{question}"
    if prior_knowledge:
        text += "\n\nPrevious research already found:\n" + "\n---\n".join(prior_knowledge)
    if feedback:
        text += f"\n\nA quality review flagged these gaps: {feedback}"
        if focus_line:
            text += f"\n{focus_line}"
    return text


# ---------------------------------------------------------------------------
# Tool-Dispatch Loop
# ---------------------------------------------------------------------------


async def run_tool_loop(
    llm: LLMProvider,
    system_instruction: str,
    opening_message: str,
    tool_names: tuple[str, ...],
    registry: ToolRegistry,
    summary_instruction: str,
    exhausted_sentinel: str,
    max_iterations: int | None = None,
    label: str = "research",
) -> str:
    """
    Run the bounded tool-dispatch loop and return the findings text.

    Makes at most `max_iterations` calls with the tool menu, plus one final
    call without tools when the budget runs out. Tool failures come back as
    text results; `ReasoningServiceError` from the provider propagates.
    """
    max_iterations = settings.max_tool_iterations if max_iterations is None else max_iterations
    menu = registry.menu(tool_names)
    allowed = {descriptor.name for descriptor in menu}
    conversation: list[ChatMessage] = [user_message(opening_message)]

    for iteration in range(max_iterations):
        response = await llm.generate(
            system=system_instruction,
            conversation=conversation,
            tools=menu,
        )

        if response.tool_call is None:
            logger.info("%s completed at iteration %d", label, iteration)
            return response.text or NO_FINDINGS

        call = response.tool_call
        if not call.id:
            call = ToolInvocation(
                name=call.name, arguments=call.arguments, id=f"call_{iteration}",
            )
        logger.info(
            "%s iteration %d: tool=%s args=%s",
            label, iteration, call.name, first_n_words(str(call.arguments), 15),
        )

        if call.name in allowed:
            result = await registry.execute(call.name, call.arguments)
        else:
            logger.warning("%s requested tool outside its menu: %s", label, call.name)
            result = f"Unknown tool: {call.name}"

        conversation.append(tool_call_message(call))
        conversation.append(tool_result_message(call, result))

    logger.info("%s spent %d iterations, forcing a summary", label, max_iterations)
    conversation.append(user_message(summary_instruction))
    forced = await llm.generate(
        system=system_instruction,
        conversation=conversation,
        tools=None,
    )
    return forced.text or exhausted_sentinel


async def run_research(
    variant: WorkerVariant,
    llm: LLMProvider,
    registry: ToolRegistry,
    question: str,
    prior_knowledge: list[str] | None = None,
    feedback: str | None = None,
    persona_hint: str | None = None,
    max_iterations: int | None = None,
) -> str:
    """Run one research round with `variant` and return its findings."""
    opening = build_opening_message(
        seed_prompt=variant.seed_prompt,
        question=question,
        prior_knowledge=prior_knowledge,
        feedback=feedback,
        persona_hint=persona_hint,
        focus_line=variant.focus_line,
    )
    return await run_tool_loop(
        llm=llm,
        system_instruction=variant.system_prompt,
        opening_message=opening,
        tool_names=variant.tool_names,
        registry=registry,
        summary_instruction=variant.summary_instruction,
        exhausted_sentinel=variant.exhausted_sentinel,
        max_iterations=max_iterations,
        label=variant.id,
    )
