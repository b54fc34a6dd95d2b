# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Contains the core business logic, separated from API handlers:
#   - keys.py: Secret generation, SHA-256 fingerprint, bcrypt slow hash
#   - access_keys.py: Access key store + manager (CRUD, authentication)
#   - registry.py: Compiled-in model catalogue, parameter bounds, pricing
#   - model_config.py: Model id / capability validation
#   - adapters.py: Provider adapters (mock, OpenAI-compatible, Anthropic)
#   - completions.py: Completion orchestrator + retry policies
#   - rate_limiter.py: Redis sliding-window limit per access key
#   - usage.py: Usage record persistence and monthly summaries
# =============================================================================
