# =============================================================================
# Services Package — Infrastructure Behind the Agents
# =============================================================================
#   - llm.py: Multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#   - persona.py: requester persona lookup (Redis cache + directory)
#   - queue.py: durable turn queue and the single-turn drain step
#   - transport.py: outbound chat replies (webhook or log)
#   - text.py: log previews and text cleanup
# =============================================================================
