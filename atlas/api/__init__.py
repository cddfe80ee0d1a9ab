# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for a specific feature:
#   - events.py: inbound chat messages (queue + acknowledge)
# =============================================================================
