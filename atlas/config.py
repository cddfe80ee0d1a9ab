# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# All runtime configuration is read from environment variables (or a .env
# file) through Pydantic V2's `BaseSettings`.
#
# Priority order (highest first):
#   1. Environment variables (e.g., `LLM_API_KEY=...`)
#   2. Values from the .env file
#   3. Default values defined below
#
# USAGE:
#   from atlas.config import settings
#   print(settings.max_orchestrator_rounds)
# =============================================================================

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Defaults target local development with Redis on localhost. Connector
    credentials default to empty, which leaves that connector unregistered.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "Atlas Support Agent"
    app_version: str = "0.1.0"
    debug: bool = True
    bot_display_name: str = "Atlas Support"

    # -------------------------------------------------------------------------
    # Reasoning Service — Multi-Provider
    # -------------------------------------------------------------------------
    # Two provider families:
    #   - "anthropic": Claude via the native Anthropic SDK
    #   - "openai_compatible": any OpenAI-compatible endpoint (OpenAI,
    #     DeepSeek, Qwen, Gemini's OpenAI endpoint, ...)
    #
    # Example configs:
    #   Gemini:  provider=openai_compatible,
    #            base_url=https://generativelanguage.googleapis.com/v1beta/openai/,
    #            model=gemini-2.5-pro
    #   Claude:  provider=anthropic, model=claude-sonnet-4-6
    # -------------------------------------------------------------------------
    llm_provider: str = "anthropic"  # "anthropic" or "openai_compatible"
    llm_base_url: str | None = None
    llm_api_key: str | None = None
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    llm_model: str = "claude-sonnet-4-6"
    llm_temperature: float = 0.2
    llm_max_tokens: int = 8192

    # -------------------------------------------------------------------------
    # Orchestration Budgets
    # -------------------------------------------------------------------------
    # max_tool_iterations: tool calls a research worker may make before it is
    #   forced to summarise.
    # max_orchestrator_rounds: research → evaluate cycles per turn before the
    #   responder compiles a best-effort answer.
    # thinking_mode: rewrite the user's message into a single self-contained
    #   query before routing.
    # -------------------------------------------------------------------------
    max_tool_iterations: int = 5
    max_orchestrator_rounds: int = 2
    thinking_mode: bool = True

    # -------------------------------------------------------------------------
    # Authorisation
    # -------------------------------------------------------------------------
    # ticket_authorized_requester: the single identity allowed to trigger the
    #   create-issue action. Everyone else gets a fixed refusal.
    # allowed_requesters: chat users allowed to talk to the bot at all.
    #   Empty list = everyone.
    # -------------------------------------------------------------------------
    ticket_authorized_requester: str = ""
    ticket_authorized_name: str = "the support lead"
    allowed_requesters: list[str] = []

    # -------------------------------------------------------------------------
    # Redis / Celery
    # -------------------------------------------------------------------------
    # Redis database numbers isolate different concerns:
    #   db 0 = Celery broker
    #   db 1 = Celery result backend
    #   db 2 = turn queue, queue locks, persona cache
    # -------------------------------------------------------------------------
    redis_url: str = "redis://localhost:6379/2"
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"

    queue_key: str = "atlas:turn_queue"
    queue_lock_key: str = "atlas:turn_queue:lock"
    queue_lock_timeout_seconds: float = 10.0
    queue_poll_interval_seconds: float = 60.0
    drain_lock_key: str = "atlas:drain:lock"
    # Upper bound for one drain tick; the drain lock expires after this.
    drain_lock_ttl_seconds: int = 900

    # -------------------------------------------------------------------------
    # Persona Lookup
    # -------------------------------------------------------------------------
    # Requester department/team come from an employee directory export
    # (JSON list of {email, first_name, department, team}). Lookups are
    # cached in Redis.
    # -------------------------------------------------------------------------
    persona_directory_path: str | None = None
    persona_cache_prefix: str = "atlas:persona:"
    persona_cache_ttl_seconds: int = 7 * 24 * 3600

    # -------------------------------------------------------------------------
    # Knowledge Connectors
    # -------------------------------------------------------------------------
    http_timeout_seconds: float = 30.0

    jira_url: str | None = None
    confluence_url: str | None = None
    atlassian_username: str = ""
    atlassian_api_token: str = ""

    freshdesk_domain: str | None = None
    freshdesk_api_key: str = ""
    freshdesk_portal_url: str | None = None
    freshdesk_search_tag: str | None = None

    github_token: str = ""
    github_org: str | None = None

    # Access token for Cloud Logging / Cloud Monitoring (e.g. from
    # `gcloud auth print-access-token` or workload identity).
    gcloud_access_token: str = ""
    # Environment alias → GCP project ID, e.g. {"prod": "acme-k8s-prod"}
    gcloud_environments: dict[str, str] = {}

    # -------------------------------------------------------------------------
    # Chat Transport
    # -------------------------------------------------------------------------
    # Outbound replies are POSTed to this webhook. When unset, replies are
    # only logged (local development).
    # -------------------------------------------------------------------------
    chat_webhook_url: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Create and cache a Settings instance."""
    return Settings()


# Import this directly in most cases:
#   from atlas.config import settings
settings = Settings()
