# =============================================================================
# Database Package
# =============================================================================
# Provides the async SQLAlchemy engine, session factory, and ORM models.
#
# Key exports:
#   - build_engine / build_session_factory: engine + async_sessionmaker per app
#   - Base: SQLAlchemy declarative base for ORM models
#   - AccessKey, UsageRecord: ORM models
# =============================================================================
