# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Defines the records that cross a boundary:
#   - turns.py: Turn + ConversationMessage (queue entries, inbound events)
#   - verdicts.py: Router and Evaluator structured outputs
#   - persona.py: requester persona context
#
# Per-run working data (tool invocations, graph state) stays as dataclasses
# and TypedDicts next to the code that owns it.
# =============================================================================
