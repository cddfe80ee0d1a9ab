# =============================================================================
# Connectors Package — Knowledge-Source API Clients
# =============================================================================
# Thin async httpx clients, one per external system:
#   - atlassian.py: Jira (search, issues, create) + Confluence (pages)
#   - freshdesk.py: helpdesk tickets, conversations, knowledge base
#   - github.py:    repositories, code, pull requests, commits
#   - gcloud.py:    logs, Kubernetes events, container metrics
#
# Every public method returns text for the model; `base.failure_as_text`
# turns HTTP failures into a failure line.
# =============================================================================
