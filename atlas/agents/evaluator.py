# =============================================================================
# Evaluator — Do the Findings Answer the Question?
# =============================================================================
#
# After every research round the evaluator reads the question and all
# knowledge gathered so far and returns an `EvaluationVerdict`:
#   - satisfied + answer            → the orchestrator replies with it
#   - clarification + question      → the orchestrator asks the user
#   - otherwise feedback (+ hints)  → steers the next research round
#
# A reply that is not a valid verdict never raises: the raw text becomes the
# feedback of an unsatisfied verdict, so the next round still gets guidance.
# =============================================================================

from __future__ import annotations

import logging

from atlas.models.verdicts import (
    DecodeFailure,
    EvaluationVerdict,
    decode_structured,
)
from atlas.services.llm import LLMProvider, user_message
from atlas.services.text import first_n_words

logger = logging.getLogger(__name__)

EMPTY_REPLY_FEEDBACK = "Could not evaluate findings. Try different search terms."

EVALUATOR_PROMPT = (
    "You are a quality reviewer for a support assistant. You receive a "
    "question and the findings of one or more research rounds.\n\n"
    "Decide whether the findings answer the question.\n"
    "- If they do, write the final answer for the user: lead with concrete "
    "facts, cite sources (links) at the end, keep it scannable.\n"
    "- If they do not, explain precisely what is missing and suggest "
    "search terms that could find it.\n"
    "- Ask the user for clarification only when the question is ambiguous "
    "and more research cannot resolve it.\n\n"
    "Reply with JSON only:\n"
    "{\n"
    '  "satisfied": true | false,\n'
    '  "answer": "<final answer when satisfied, else empty>",\n'
    '  "feedback": "<what is missing when not satisfied>",\n'
    '  "follow_up_queries": ["<search term>", ...],\n'
    '  "clarification_needed": true | false,\n'
    '  "clarification_question": "<question for the user, or empty>"\n'
    "}"
)


def build_evaluation_prompt(question: str, knowledge: list[str]) -> str:
    return (
        f"Original question: {question}\n\n"
        "Accumulated research findings:\n\n" + "\n\n---\n\n".join(knowledge)
    )


async def evaluate_findings(
    llm: LLMProvider,
    question: str,
    knowledge: list[str],
) -> EvaluationVerdict:
    """Judge `knowledge` against `question`."""
    prompt = build_evaluation_prompt(question, knowledge)
    logger.debug("evaluator_input: %s", first_n_words(prompt, 50))

    response = await llm.generate(
        system=EVALUATOR_PROMPT,
        conversation=[user_message(prompt)],
    )
    text = (response.text or "").strip()
    logger.debug("evaluator_response: %s (length=%d)", first_n_words(text, 50), len(text))

    decoded = decode_structured(text, EvaluationVerdict)
    if isinstance(decoded, DecodeFailure):
        logger.warning("Evaluator reply not usable: %s", decoded.reason)
        return EvaluationVerdict.unsatisfied(text or EMPTY_REPLY_FEEDBACK)

    return decoded.value
