# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the API. These are SEPARATE from the database
# models (gateway/db/models.py): the API never exposes key fingerprints or
# hashes, and the wire format can evolve without a schema change.
# =============================================================================
