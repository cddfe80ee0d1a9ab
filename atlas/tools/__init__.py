# =============================================================================
# Tools Package — What the Research Workers Can Call
# =============================================================================
#   - catalog.py: tool descriptors (name, description, JSON schema) and the
#     per-worker menus
#   - registry.py: name → handler dispatch that never raises
#   - factory.py: binds configured connectors to catalog names
# =============================================================================
