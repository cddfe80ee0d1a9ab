# =============================================================================
# Atlas Support Agent
# =============================================================================
# A chat assistant that answers operational/support questions by routing each
# question to a research worker, letting it call knowledge-source tools, and
# judging the findings until they answer the question (or the round budget
# runs out).
#
# Package structure:
#   atlas/
#   ├── api/          → FastAPI inbound chat-event endpoint
#   ├── agents/       → LangGraph orchestration (router, research workers,
#   │                    evaluator, responder)
#   ├── connectors/   → httpx clients for Jira, Confluence, Freshdesk,
#   │                    GitHub and Google Cloud
#   ├── models/       → Pydantic V2 schemas (turns, verdicts, personas)
#   ├── services/     → LLM providers, persona lookup, turn queue, transport
#   ├── tools/        → Tool catalog (schemas) and typed tool registry
#   └── workers/      → Celery app + periodic queue drain task
# =============================================================================
