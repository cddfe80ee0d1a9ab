# =============================================================================
# Agents Package — LangGraph Multi-Agent Orchestration
# =============================================================================
# Implements the round-bounded research loop:
#   - orchestrator.py: LangGraph graph. Contextualizes the turn, routes once,
#     then alternates research → evaluate until satisfied or out of rounds
#   - context.py: thread summary, query rewrite, round-0 source hint
#   - router.py: picks one of the three research workers
#   - research.py: worker variants + the shared tool-dispatch loop
#   - evaluator.py: structured verdict on accumulated findings
#   - responder.py: best-effort answer and the create-issue action
#
# Workers: support_engineer, senior_engineer, sre_engineer
# Loop: research → evaluate (max N rounds) → respond
# =============================================================================
