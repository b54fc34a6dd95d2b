# =============================================================================
# Access Key Manager — Issue, List, Update, Revoke, Authenticate
# =============================================================================
#
# Two layers:
#
#   AccessKeyStore (Protocol)     persistence port, one operation per call
#   ├── SqlAlchemyAccessKeyStore  async SQLAlchemy, one session per operation
#
#   AccessKeyManager              business rules on top of a store:
#                                 ownership, patch semantics, expiry parsing,
#                                 authentication policy
#
# AUTHENTICATION FLOW:
#   1. fingerprint(secret)            → O(1) lookup on a UNIQUE index
#   2. bcrypt verify (worker thread)  → confirms the secret
#   3. revoked / expired policy
#   4. schedule last_used_at update   → detached task, never blocks the call
#
# Every failure in 1-3 is the SAME generic 401 "Unauthorized". The actual
# reason is logged server-side (by key id / preview, never the secret).
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gateway.db.models import AccessKey
from gateway.errors import ServiceError
from gateway.services import keys

logger = logging.getLogger(__name__)

_NOT_FOUND = "Access key not found or access denied"
_BAD_EXPIRY = "expiresAt must be an ISO-8601 date-time string or null"
_UPDATABLE_FIELDS = ("name", "description", "revoked", "expires_at")

# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccessKeySafe:
    """Projection of an access key that is safe to return to its owner."""

    id: str
    name: str | None
    description: str | None
    revoked: bool
    preview: str
    expires_at: datetime | None
    created_at: datetime
    updated_at: datetime
    last_used_at: datetime | None


@dataclass(frozen=True)
class CreatedAccessKey:
    """Result of create(). `key` is the plaintext, shown exactly once."""

    id: str
    key: str
    created_at: datetime
    name: str | None
    description: str | None


@dataclass(frozen=True)
class AccessKeyContext:
    """Identity attached to an authenticated completion request."""

    user_id: str
    key_id: str


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything here is stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _to_safe(row: AccessKey) -> AccessKeySafe:
    return AccessKeySafe(
        id=row.id,
        name=row.name,
        description=row.description,
        revoked=row.revoked,
        preview=row.preview,
        expires_at=_as_utc(row.expires_at),
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
        last_used_at=_as_utc(row.last_used_at),
    )


def parse_expires_at(value: Any) -> datetime | None:
    """
    Parse a client-supplied expiry.

    None clears the expiry. Strings must be ISO-8601 date-times ("Z" is
    accepted); a value without an offset is taken as UTC.

    Raises:
        ServiceError 400: anything else.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ServiceError(_BAD_EXPIRY, 400)
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise ServiceError(_BAD_EXPIRY, 400, details=str(e)) from e
    return _as_utc(parsed)


# ---------------------------------------------------------------------------
# Persistence Port
# ---------------------------------------------------------------------------


class AccessKeyStore(Protocol):
    """Persistence operations needed by AccessKeyManager."""

    async def insert(self, record: AccessKey) -> AccessKey: ...

    async def find_by_fingerprint(self, fingerprint: str) -> AccessKey | None: ...

    async def find_owned(self, key_id: str, user_id: str) -> AccessKey | None: ...

    async def list_by_user(self, user_id: str) -> Sequence[AccessKey]: ...

    async def update_fields(
        self, key_id: str, fields: dict[str, Any],
    ) -> AccessKey | None: ...

    async def delete(self, key_id: str) -> bool: ...

    async def touch_last_used(self, key_id: str, when: datetime) -> None: ...


class SqlAlchemyAccessKeyStore:
    """
    AccessKeyStore on async SQLAlchemy.

    Each operation opens its own session from the factory and commits it,
    so background callers (touch_last_used) never share a request session.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert(self, record: AccessKey) -> AccessKey:
        async with self._session_factory() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ServiceError(
                    "Access key already exists", 409, details=str(e.orig),
                ) from e
            await session.refresh(record)
            return record

    async def find_by_fingerprint(self, fingerprint: str) -> AccessKey | None:
        async with self._session_factory() as session:
            stmt = select(AccessKey).where(AccessKey.key_fingerprint == fingerprint)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def find_owned(self, key_id: str, user_id: str) -> AccessKey | None:
        async with self._session_factory() as session:
            stmt = select(AccessKey).where(
                AccessKey.id == key_id,
                AccessKey.user_id == user_id,
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def list_by_user(self, user_id: str) -> Sequence[AccessKey]:
        async with self._session_factory() as session:
            stmt = (
                select(AccessKey)
                .where(AccessKey.user_id == user_id)
                .order_by(AccessKey.created_at.desc())
            )
            result = await session.execute(stmt)
            return result.scalars().all()

    async def update_fields(
        self, key_id: str, fields: dict[str, Any],
    ) -> AccessKey | None:
        async with self._session_factory() as session:
            row = await session.get(AccessKey, key_id)
            if row is None:
                return None
            for name, value in fields.items():
                setattr(row, name, value)
            row.updated_at = datetime.now(UTC)
            await session.commit()
            await session.refresh(row)
            return row

    async def delete(self, key_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(AccessKey).where(AccessKey.id == key_id),
            )
            await session.commit()
            return result.rowcount > 0

    async def touch_last_used(self, key_id: str, when: datetime) -> None:
        # updated_at is only moved by update_fields
        async with self._session_factory() as session:
            await session.execute(
                update(AccessKey)
                .where(AccessKey.id == key_id)
                .values(last_used_at=when)
                .execution_options(synchronize_session=False),
            )
            await session.commit()


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class AccessKeyManager:
    """
    Owner-scoped key management plus bearer-token authentication.

    Args:
        store: Persistence backend.
        prefix: Prefix of generated secrets ("lr_").
        hash_rounds: bcrypt cost factor.
    """

    def __init__(
        self,
        store: AccessKeyStore,
        prefix: str = keys.DEFAULT_PREFIX,
        hash_rounds: int = 12,
    ) -> None:
        self._store = store
        self._prefix = prefix
        self._hash_rounds = hash_rounds
        # Strong refs: the event loop only keeps weak refs to tasks
        self._pending: set[asyncio.Task] = set()

    # --- management ------------------------------------------------------

    async def list_for_user(self, user_id: str) -> list[AccessKeySafe]:
        """The user's keys, newest first."""
        rows = await self._store.list_by_user(user_id)
        return [_to_safe(row) for row in rows]

    async def create(
        self,
        user_id: str,
        name: str | None = None,
        description: str | None = None,
    ) -> CreatedAccessKey:
        """Issue a new key. The plaintext is returned here and nowhere else."""
        secret = keys.generate_secret(self._prefix)
        key_hash = await asyncio.to_thread(
            keys.slow_hash, secret, self._hash_rounds,
        )
        record = AccessKey(
            user_id=user_id,
            name=name,
            description=description,
            key_fingerprint=keys.fingerprint(secret),
            key_hash=key_hash,
            preview=keys.preview(secret, self._prefix),
            revoked=False,
        )
        row = await self._store.insert(record)

        logger.info(
            "Created access key id=%s preview=%s for user=%s",
            row.id, row.preview, user_id,
        )
        return CreatedAccessKey(
            id=row.id,
            key=secret,
            created_at=_as_utc(row.created_at),
            name=row.name,
            description=row.description,
        )

    async def update(
        self, key_id: str, user_id: str, patch: dict[str, Any],
    ) -> AccessKeySafe:
        """
        Apply the fields present in `patch` to a key the user owns.

        Raises:
            ServiceError 404: key missing or owned by someone else.
            ServiceError 400: unparsable expires_at, or nothing to update.
        """
        if await self._store.find_owned(key_id, user_id) is None:
            raise ServiceError(_NOT_FOUND, 404)

        fields = {k: v for k, v in patch.items() if k in _UPDATABLE_FIELDS}
        if "expires_at" in fields:
            fields["expires_at"] = parse_expires_at(fields["expires_at"])
        if not fields:
            raise ServiceError("No fields to update", 400)

        row = await self._store.update_fields(key_id, fields)
        if row is None:
            # Deleted between the ownership check and the update
            raise ServiceError(_NOT_FOUND, 404)

        logger.info(
            "Updated access key id=%s fields=%s", key_id, sorted(fields),
        )
        return _to_safe(row)

    async def delete(self, key_id: str, user_id: str) -> None:
        """Hard-delete a key the user owns (404 otherwise)."""
        if await self._store.find_owned(key_id, user_id) is None:
            raise ServiceError(_NOT_FOUND, 404)
        if not await self._store.delete(key_id):
            raise ServiceError(_NOT_FOUND, 404)
        logger.info("Deleted access key id=%s for user=%s", key_id, user_id)

    # --- authentication --------------------------------------------------

    async def authenticate(self, secret: str) -> AccessKeyContext:
        """
        Resolve a bearer secret to its owner.

        Raises:
            ServiceError 401 "Unauthorized": for every failure reason.
        """
        row = await self._store.find_by_fingerprint(keys.fingerprint(secret))
        if row is None:
            logger.info("Authentication failed: unknown key")
            raise _unauthorized()

        if not await asyncio.to_thread(keys.verify, row.key_hash, secret):
            logger.warning(
                "Authentication failed: hash mismatch for key id=%s", row.id,
            )
            raise _unauthorized()

        if row.revoked:
            logger.info("Authentication failed: key id=%s is revoked", row.id)
            raise _unauthorized()

        now = datetime.now(UTC)
        expires_at = _as_utc(row.expires_at)
        if expires_at is not None and expires_at <= now:
            logger.info(
                "Authentication failed: key id=%s expired at %s",
                row.id, expires_at.isoformat(),
            )
            raise _unauthorized()

        self._schedule_touch(row.id, now)
        return AccessKeyContext(user_id=row.user_id, key_id=row.id)

    def _schedule_touch(self, key_id: str, when: datetime) -> None:
        task = asyncio.create_task(self._touch(key_id, when))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _touch(self, key_id: str, when: datetime) -> None:
        try:
            await self._store.touch_last_used(key_id, when)
        except Exception as e:
            logger.warning(
                "Failed to update last_used_at for key id=%s: %s", key_id, e,
            )

    async def drain(self) -> None:
        """Wait for pending last-used updates (called on shutdown)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


def _unauthorized() -> ServiceError:
    return ServiceError(
        "Unauthorized", 401, headers={"WWW-Authenticate": "Bearer"},
    )
