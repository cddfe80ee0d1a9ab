# =============================================================================
# LangGraph Orchestrator — Round-Bounded Research/Evaluate Loop
# =============================================================================
#
# The orchestrator answers one Turn. It wires the context, router, research,
# evaluator and responder steps into a LangGraph StateGraph:
#
#   START ──▶ contextualize ──▶ route ──▶ research ──▶ evaluate ──┬──▶ END
#                                           ▲                     │  (satisfied /
#                                           │                     │   clarifying)
#                                           └──── next round ◀────┤
#                                                                 └──▶ respond ──▶ END
#                                                                     (exhausted)
#
#   contextualize: thread summary (≥2 prior messages), optional query rewrite,
#                  persona lookup, round-0 hints
#   route:         pick the research worker once per turn
#   research:      one bounded tool loop; findings appended to knowledge
#   evaluate:      verdict on all knowledge so far
#   respond:       best-effort answer once max_orchestrator_rounds are spent
#
# TERMINATION: `research` runs at most max_orchestrator_rounds times; every
# path out of `evaluate` either ends the graph, goes to `respond` (which
# ends it), or starts a round that is still within the budget.
#
# DESIGN DECISION: Plain TypedDict state (not MessagesState). The state is
# structured data (query, knowledge, feedback, verdict), not a chat history.
#
# DESIGN DECISION: Collaborators travel in the state. `llm_override`,
# `registry` and `persona_resolver` let tests (and callers with their own
# clients) swap implementations without patching module globals. Safe as
# long as no checkpointer is configured on the graph.
# =============================================================================

from __future__ import annotations

import logging
from typing import Literal

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from atlas.agents.context import (
    build_source_hint,
    contextualize_query,
    rewrite_query,
    summarize_conversation,
)
from atlas.agents.evaluator import evaluate_findings
from atlas.agents.research import get_variant, run_research
from atlas.agents.responder import compile_answer, credit_line
from atlas.agents.router import select_research_agent
from atlas.config import settings
from atlas.models.persona import PersonaContext
from atlas.models.turns import Turn
from atlas.models.verdicts import EvaluationVerdict
from atlas.services.llm import LLMProvider, get_llm_provider
from atlas.services.persona import (
    PersonaResolver,
    build_persona_hint,
    get_persona_resolver,
)
from atlas.services.text import first_n_words
from atlas.tools.factory import get_tool_registry
from atlas.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

TurnStatus = Literal["satisfied", "clarifying", "exhausted"]

CLARIFICATION_PREFIX = "To give you a better answer, could you clarify: "


# ---------------------------------------------------------------------------
# Graph State Schema
# ---------------------------------------------------------------------------


class OrchestratorState(TypedDict, total=False):
    """
    State that flows through the orchestrator graph.

    Uses total=False so nodes only return the keys they update.
    """

    # --- Input (set by caller) ---
    turn: Turn

    # --- Collaborators (optional overrides) ---
    llm_override: LLMProvider | None
    registry: ToolRegistry | None
    persona_resolver: PersonaResolver | None
    max_rounds: int

    # --- Set by contextualize ---
    conversation_summary: str
    effective_query: str       # rewritten (or raw) message
    contextualized_query: str  # effective query + thread summary
    persona: PersonaContext
    round_hint: str | None     # persona + source hint, round 0 only

    # --- Set by route ---
    research_agent: str
    agent_display: str

    # --- Loop state ---
    round: int
    knowledge: list[str]
    feedback: str
    verdict: EvaluationVerdict | None

    # --- Output ---
    status: TurnStatus
    answer: str
    rounds_completed: int


def _llm(state: OrchestratorState) -> LLMProvider:
    return state.get("llm_override") or get_llm_provider()


def _registry(state: OrchestratorState) -> ToolRegistry:
    return state.get("registry") or get_tool_registry()


def _max_rounds(state: OrchestratorState) -> int:
    return state.get("max_rounds", settings.max_orchestrator_rounds)


# ---------------------------------------------------------------------------
# Node Functions
# ---------------------------------------------------------------------------


async def contextualize_node(state: OrchestratorState) -> dict:
    """Summarise the thread, rewrite the query and resolve the persona."""
    turn = state["turn"]
    llm = _llm(state)

    summary = await summarize_conversation(llm, turn.prior_messages)
    raw = (turn.raw_message or "").strip()
    effective = await rewrite_query(llm, raw, summary) if settings.thinking_mode else raw
    effective = effective or raw

    resolver = state.get("persona_resolver") or get_persona_resolver()
    persona = resolver.resolve(turn.requester_id)

    hints = [
        hint.strip()
        for hint in (build_persona_hint(persona), build_source_hint(effective))
        if hint
    ]
    contextualized = contextualize_query(effective, summary)
    logger.info(
        "Turn context: persona=%s query='%s'",
        persona.persona_tag, first_n_words(contextualized, 50),
    )
    return {
        "conversation_summary": summary,
        "effective_query": effective,
        "contextualized_query": contextualized,
        "persona": persona,
        "round_hint": " ".join(hints) + " " if hints else None,
        "round": 0,
        "knowledge": [],
        "feedback": "",
    }


async def route_node(state: OrchestratorState) -> dict:
    """Select the research worker for this turn."""
    agent_id = await select_research_agent(
        _llm(state), state["contextualized_query"], state.get("persona"),
    )
    variant = get_variant(agent_id)
    logger.info("Orchestrator selected research agent: %s (%s)", variant.id, variant.display)
    return {"research_agent": variant.id, "agent_display": variant.display}


async def research_node(state: OrchestratorState) -> dict:
    """Run one research round and append its findings to knowledge."""
    round_number = state.get("round", 0)
    logger.info("=== Orchestrator round %d ===", round_number)

    findings = await run_research(
        variant=get_variant(state["research_agent"]),
        llm=_llm(state),
        registry=_registry(state),
        question=state["contextualized_query"],
        prior_knowledge=list(state.get("knowledge", [])),
        feedback=state.get("feedback") or None,
        persona_hint=state.get("round_hint") if round_number == 0 else None,
    )
    logger.info("Round %d findings length: %d", round_number, len(findings))
    return {"knowledge": [*state.get("knowledge", []), findings]}


async def evaluate_node(state: OrchestratorState) -> dict:
    """Judge the knowledge; finish, ask for clarification, or carry feedback."""
    round_number = state.get("round", 0)
    verdict = await evaluate_findings(
        _llm(state), state["contextualized_query"], state["knowledge"],
    )
    logger.info("Round %d satisfied: %s", round_number, verdict.satisfied)
    update: dict = {
        "verdict": verdict,
        "round": round_number + 1,
        "rounds_completed": round_number + 1,
    }

    if verdict.satisfied and verdict.answer:
        update["status"] = "satisfied"
        update["answer"] = credit_line(state.get("agent_display")) + verdict.answer
        return update

    if verdict.clarification_needed and verdict.clarification_question:
        update["status"] = "clarifying"
        update["answer"] = CLARIFICATION_PREFIX + verdict.clarification_question
        return update

    feedback = verdict.feedback
    if verdict.follow_up_hints:
        feedback += "\nSuggested search terms: " + ", ".join(verdict.follow_up_hints)
    if feedback:
        logger.debug("orchestrator_feedback: %s", first_n_words(feedback, 50))
    update["feedback"] = feedback
    return update


async def respond_node(state: OrchestratorState) -> dict:
    """Compile the best-effort answer after the round budget is spent."""
    turn = state["turn"]
    answer = await compile_answer(
        llm=_llm(state),
        question=state.get("effective_query") or turn.raw_message,
        knowledge=state.get("knowledge", []),
        requester_id=turn.requester_id,
        prior_messages=turn.prior_messages,
        persona=state.get("persona") or PersonaContext.neutral(),
        registry=_registry(state),
        agent_display=state.get("agent_display"),
    )
    return {"status": "exhausted", "answer": answer}


# ---------------------------------------------------------------------------
# Conditional Edges
# ---------------------------------------------------------------------------


def _after_route(state: OrchestratorState) -> str:
    return "research" if _max_rounds(state) > 0 else "respond"


def _after_evaluate(state: OrchestratorState) -> str:
    if state.get("status") in ("satisfied", "clarifying"):
        return END
    if state.get("round", 0) < _max_rounds(state):
        return "research"
    return "respond"


# ---------------------------------------------------------------------------
# Graph Assembly
# ---------------------------------------------------------------------------
# Compiled once at module level and reused for every turn.
# ---------------------------------------------------------------------------

_builder = StateGraph(OrchestratorState)
_builder.add_node("contextualize", contextualize_node)
_builder.add_node("route", route_node)
_builder.add_node("research", research_node)
_builder.add_node("evaluate", evaluate_node)
_builder.add_node("respond", respond_node)

_builder.add_edge(START, "contextualize")
_builder.add_edge("contextualize", "route")
_builder.add_conditional_edges("route", _after_route, ["research", "respond"])
_builder.add_edge("research", "evaluate")
_builder.add_conditional_edges("evaluate", _after_evaluate, ["research", "respond", END])
_builder.add_edge("respond", END)

graph = _builder.compile()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def answer_turn(
    turn: Turn,
    llm: LLMProvider | None = None,
    registry: ToolRegistry | None = None,
    persona_resolver: PersonaResolver | None = None,
    max_rounds: int | None = None,
) -> OrchestratorState:
    """
    Run the orchestrator graph for one Turn and return the final state.

    The final state carries `status` (satisfied | clarifying | exhausted),
    `answer`, `knowledge`, `rounds_completed` and `research_agent`.
    """
    initial_state: OrchestratorState = {"turn": turn}
    if llm is not None:
        initial_state["llm_override"] = llm
    if registry is not None:
        initial_state["registry"] = registry
    if persona_resolver is not None:
        initial_state["persona_resolver"] = persona_resolver
    if max_rounds is not None:
        initial_state["max_rounds"] = max_rounds

    logger.info(
        "Invoking orchestrator: space=%s requester=%s message='%s'",
        turn.space_id, turn.requester_id or "<anonymous>",
        first_n_words(turn.raw_message, 20),
    )
    # Each round is two graph steps; leave room for the fixed nodes
    limit = 2 * max(_max_rounds(initial_state), 1) + 10
    result = await graph.ainvoke(initial_state, config={"recursion_limit": limit})

    logger.info(
        "Orchestrator complete: status=%s rounds=%d agent=%s",
        result.get("status"), result.get("rounds_completed", 0),
        result.get("research_agent"),
    )
    return result


async def run_turn(turn: Turn) -> str:
    """Answer text for `turn` with the configured collaborators."""
    result = await answer_turn(turn)
    return result["answer"]
