# =============================================================================
# LLM Gateway
# =============================================================================
# Access-key authentication and an OpenAI-compatible chat-completion gateway
# in front of multiple upstream model providers.
#
# Package structure:
#   gateway/
#   ├── api/          → FastAPI route handlers (access keys, completions,
#   │                    models, usage) and auth dependencies
#   ├── db/           → Database engine, session factory, and ORM models
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → Business logic (key hashing, access key manager,
#   │                    model registry, adapters, orchestrator, usage)
#   ├── errors.py     → ServiceError + canonical error envelope
#   └── main.py       → Application factory, exception handlers, logging
# =============================================================================
