# =============================================================================
# Structured Reasoning Outputs — Router Decision & Evaluation Verdict
# =============================================================================
#
# The router and the evaluator ask the reasoning service for a JSON object.
# Models wrap JSON in prose or markdown fences often enough that the decoder
# looks for the first well-formed JSON object anywhere in the reply, then
# validates it against a Pydantic schema.
#
# DESIGN DECISION: Tagged decode result. `decode_structured()` never raises;
# it returns either `Decoded(value)` or `DecodeFailure(reason, raw_text)`.
# Callers branch on the tag and apply their own fallback policy:
#   - router    → lowest-capability worker
#   - evaluator → unsatisfied, raw text as feedback
# =============================================================================

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

ResearchAgentId = Literal["support_engineer", "senior_engineer", "sre_engineer"]

ModelT = TypeVar("ModelT", bound=BaseModel)


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class RouterDecision(BaseModel):
    """
    Router output: which research worker handles the question.

    Expected JSON:
        {"agent": "senior_engineer", "reason": "Needs log analysis"}
    """

    agent: ResearchAgentId
    reason: str = ""

    @field_validator("agent", mode="before")
    @classmethod
    def _normalise_agent(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("reason", mode="before")
    @classmethod
    def _none_reason(cls, value: object) -> object:
        return "" if value is None else value


class EvaluationVerdict(BaseModel):
    """
    Evaluator output for one round.

    Expected JSON:
        {
            "satisfied": false,
            "answer": "",
            "feedback": "Missing root cause",
            "follow_up_queries": ["mailer OOM", "restart count"],
            "clarification_needed": false,
            "clarification_question": ""
        }

    `clarification_needed` is cleared when no question was supplied, so a
    verdict that asks for clarification always carries the question.
    """

    model_config = ConfigDict(populate_by_name=True)

    satisfied: bool = False
    answer: str = ""
    feedback: str = ""
    follow_up_hints: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("follow_up_queries", "follow_up_hints"),
    )
    clarification_needed: bool = False
    clarification_question: str = ""

    @field_validator("answer", "feedback", "clarification_question", mode="before")
    @classmethod
    def _none_to_empty(cls, value: object) -> object:
        if value is None:
            return ""
        return value

    @field_validator("answer", "feedback", "clarification_question")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("follow_up_hints", mode="before")
    @classmethod
    def _coerce_hints(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value if item is not None and str(item).strip()]
        return value

    @model_validator(mode="after")
    def _clarification_requires_question(self) -> EvaluationVerdict:
        if self.clarification_needed and not self.clarification_question:
            self.clarification_needed = False
        return self

    @classmethod
    def unsatisfied(cls, feedback: str) -> EvaluationVerdict:
        return cls(satisfied=False, feedback=feedback)


# ---------------------------------------------------------------------------
# Tagged Decode Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Decoded(Generic[ModelT]):
    """A reply that contained a JSON object matching the schema."""

    value: ModelT


@dataclass(frozen=True)
class DecodeFailure:
    """A reply with no JSON object, or one that failed validation."""

    reason: str
    raw_text: str


def decode_structured(
    text: str | None,
    model: type[ModelT],
) -> Decoded[ModelT] | DecodeFailure:
    """
    Decode the first well-formed JSON object in `text` into `model`.

    Scans each "{" in order and attempts a JSON decode from that position;
    the first position that yields a JSON object is validated against the
    schema. Prose before or after the object (and markdown fences) is
    ignored.
    """
    raw = (text or "").strip()
    if not raw:
        return DecodeFailure(reason="empty response", raw_text=raw)

    payload = _first_json_object(raw)
    if payload is None:
        return DecodeFailure(reason="no JSON object found", raw_text=raw)

    try:
        return Decoded(value=model.model_validate(payload))
    except ValidationError as e:
        return DecodeFailure(
            reason=f"schema validation failed: {e.error_count()} error(s)",
            raw_text=raw,
        )


def _first_json_object(text: str) -> dict | None:
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    return None
