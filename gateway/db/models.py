# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────────────────┐      ┌─────────────────────────────────┐
# │  access_keys                 │      │  usage_records                  │
# ├──────────────────────────────┤      ├─────────────────────────────────┤
# │ id (PK, uuid4 str)           │◀─N:1─│ access_key_id (FK, SET NULL)    │
# │ user_id (indexed)            │      │ user_id (indexed)               │
# │ name, description            │      │ model, provider                 │
# │ key_fingerprint (UNIQUE)     │      │ prompt/completion/total_tokens  │
# │ key_hash (bcrypt)            │      │ estimated_cost_usd              │
# │ preview ("lr_…abcd")         │      │ latency_ms                      │
# │ revoked, expires_at          │      │ created_at                      │
# │ created_at, updated_at       │      └─────────────────────────────────┘
# │ last_used_at                 │
# └──────────────────────────────┘
#
# The plaintext key is never stored. key_fingerprint (SHA-256) is the lookup
# index; key_hash (bcrypt) is what authentication verifies against.
#
# Timestamps default on the Python side so they keep sub-second precision on
# every backend (ordering by created_at relies on it).
# =============================================================================

import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


class AccessKey(Base):
    """
    A bearer credential for the completion API, owned by one user.

    Usable only while revoked is False and expires_at is unset or in the
    future.
    """

    __tablename__ = "access_keys"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_new_id,
    )

    # Owning user (id issued by the web app's user store)
    user_id: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True,
    )

    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(
        String(500), nullable=True,
    )

    # SHA-256 hex of the plaintext key — lookup index
    key_fingerprint: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True,
    )

    # bcrypt hash of the plaintext key — verification
    key_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Display-only form, e.g. "lr_…a1b2"
    preview: Mapped[str] = mapped_column(String(32), nullable=False)

    revoked: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )

    # Null = never expires
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    # Best-effort, updated in the background after authentication
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<AccessKey(id={self.id}, user_id={self.user_id}, "
            f"preview='{self.preview}', revoked={self.revoked})>"
        )


class UsageRecord(Base):
    """
    One successful completion, recorded for per-user accounting.

    Written by a background task after the response is sent.
    """

    __tablename__ = "usage_records"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True,
    )

    # Key used for the call; kept as null if the key is later deleted
    access_key_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("access_keys.id", ondelete="SET NULL"),
        nullable=True,
    )

    model: Mapped[str] = mapped_column(String(100), nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)

    prompt_tokens: Mapped[int] = mapped_column(Integer, default=0)
    completion_tokens: Mapped[int] = mapped_column(Integer, default=0)
    total_tokens: Mapped[int] = mapped_column(Integer, default=0)

    # Null when the model has no pricing entry (unknown != free)
    estimated_cost_usd: Mapped[float | None] = mapped_column(
        Float, nullable=True,
    )

    latency_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<UsageRecord(id={self.id}, user_id={self.user_id}, "
            f"model='{self.model}', total_tokens={self.total_tokens})>"
        )
