# =============================================================================
# Unit Tests — AccessKeyManager
# =============================================================================
#
# Business rules on an in-memory store (see conftest.FakeAccessKeyStore):
#
#   1. Create — one-time plaintext, nothing secret persisted
#   2. List — owner isolation, newest first, safe projection
#   3. Update — ownership, patch semantics, expiresAt parsing
#   4. Delete — ownership
#   5. Authenticate — generic 401 for every failure, last-used update
# =============================================================================

from __future__ import annotations

import asyncio
import dataclasses
from datetime import UTC, datetime, timedelta

import pytest

from gateway.errors import ServiceError
from gateway.services import keys
from gateway.services.access_keys import AccessKeyContext, parse_expires_at


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# 1. Create
# ---------------------------------------------------------------------------


class TestCreate:
    def test_returns_plaintext_once(self, manager, store):
        created = _run(manager.create("user-1", name="ci", description="nightly"))

        assert created.key.startswith("lr_")
        assert created.name == "ci"
        assert created.description == "nightly"
        assert created.created_at.tzinfo is not None

        row = store.rows[created.id]
        assert row.key_fingerprint == keys.fingerprint(created.key)
        assert row.key_hash != created.key
        assert keys.verify(row.key_hash, created.key)
        assert row.preview == f"lr_…{created.key[-4:]}"
        assert row.revoked is False

    def test_plaintext_never_reappears(self, manager):
        """After creation only the preview identifies the key."""

        async def scenario():
            created = await manager.create("user-1")
            listed = await manager.list_for_user("user-1")
            return created, listed

        created, listed = _run(scenario())
        safe = dataclasses.asdict(listed[0])
        assert created.key not in safe.values()
        assert "key_hash" not in safe
        assert "key_fingerprint" not in safe
        assert safe["preview"].endswith(created.key[-4:])

    def test_duplicate_fingerprint_is_conflict(self, manager, monkeypatch):
        monkeypatch.setattr(keys, "generate_secret", lambda prefix="lr_": "lr_fixed")

        async def scenario():
            await manager.create("user-1")
            await manager.create("user-1")

        with pytest.raises(ServiceError) as exc_info:
            _run(scenario())
        assert exc_info.value.status == 409
        assert exc_info.value.code == "CONFLICT"


# ---------------------------------------------------------------------------
# 2. List
# ---------------------------------------------------------------------------


class TestList:
    def test_only_own_keys_newest_first(self, manager, store):
        async def scenario():
            first = await manager.create("alice", name="first")
            second = await manager.create("alice", name="second")
            await manager.create("bob", name="bobs")
            store.rows[first.id].created_at = datetime(2026, 1, 1, tzinfo=UTC)
            store.rows[second.id].created_at = datetime(2026, 2, 1, tzinfo=UTC)
            return await manager.list_for_user("alice")

        listed = _run(scenario())
        assert [k.name for k in listed] == ["second", "first"]

    def test_unknown_user_gets_empty_list(self, manager):
        assert _run(manager.list_for_user("nobody")) == []


# ---------------------------------------------------------------------------
# 3. Update
# ---------------------------------------------------------------------------


class TestUpdate:
    def test_applies_only_present_fields(self, manager):
        async def scenario():
            created = await manager.create("user-1", name="old", description="keep")
            return await manager.update(created.id, "user-1", {"name": "new"})

        updated = _run(scenario())
        assert updated.name == "new"
        assert updated.description == "keep"
        assert updated.revoked is False

    def test_revoke(self, manager):
        async def scenario():
            created = await manager.create("user-1")
            return await manager.update(created.id, "user-1", {"revoked": True})

        assert _run(scenario()).revoked is True

    def test_updated_at_refreshed(self, manager, store):
        async def scenario():
            created = await manager.create("user-1")
            store.rows[created.id].updated_at = datetime(2020, 1, 1, tzinfo=UTC)
            return await manager.update(created.id, "user-1", {"name": "x"})

        assert _run(scenario()).updated_at > datetime(2020, 1, 1, tzinfo=UTC)

    def test_set_and_clear_expiry(self, manager):
        async def scenario():
            created = await manager.create("user-1")
            with_expiry = await manager.update(
                created.id, "user-1", {"expires_at": "2030-01-01T00:00:00Z"},
            )
            cleared = await manager.update(created.id, "user-1", {"expires_at": None})
            return with_expiry, cleared

        with_expiry, cleared = _run(scenario())
        assert with_expiry.expires_at == datetime(2030, 1, 1, tzinfo=UTC)
        assert cleared.expires_at is None

    def test_unparsable_expiry_is_400(self, manager):
        async def scenario():
            created = await manager.create("user-1")
            await manager.update(created.id, "user-1", {"expires_at": "next tuesday"})

        with pytest.raises(ServiceError) as exc_info:
            _run(scenario())
        assert exc_info.value.status == 400
        assert "expiresAt" in exc_info.value.message

    def test_empty_patch_is_400(self, manager):
        async def scenario():
            created = await manager.create("user-1")
            await manager.update(created.id, "user-1", {})

        with pytest.raises(ServiceError) as exc_info:
            _run(scenario())
        assert exc_info.value.status == 400
        assert exc_info.value.message == "No fields to update"

    def test_other_users_key_is_404(self, manager, store):
        async def scenario():
            created = await manager.create("alice", name="mine")
            try:
                await manager.update(created.id, "mallory", {"name": "stolen"})
            finally:
                assert store.rows[created.id].name == "mine"

        with pytest.raises(ServiceError) as exc_info:
            _run(scenario())
        assert exc_info.value.status == 404
        assert exc_info.value.message == "Access key not found or access denied"

    def test_missing_key_is_404(self, manager):
        with pytest.raises(ServiceError) as exc_info:
            _run(manager.update("no-such-id", "user-1", {"name": "x"}))
        assert exc_info.value.status == 404


class TestParseExpiresAt:
    def test_none_clears(self):
        assert parse_expires_at(None) is None

    def test_naive_is_utc(self):
        assert parse_expires_at("2030-06-01T12:00:00") == datetime(
            2030, 6, 1, 12, tzinfo=UTC,
        )

    def test_offset_respected(self):
        parsed = parse_expires_at("2030-06-01T12:00:00+02:00")
        assert parsed == datetime(2030, 6, 1, 10, tzinfo=UTC)

    def test_non_string_is_400(self):
        with pytest.raises(ServiceError) as exc_info:
            parse_expires_at(12345)
        assert exc_info.value.status == 400


# ---------------------------------------------------------------------------
# 4. Delete
# ---------------------------------------------------------------------------


class TestDelete:
    def test_owner_can_delete(self, manager, store):
        async def scenario():
            created = await manager.create("user-1")
            await manager.delete(created.id, "user-1")
            return created

        created = _run(scenario())
        assert created.id not in store.rows

    def test_other_user_cannot_delete(self, manager, store):
        async def scenario():
            created = await manager.create("alice")
            try:
                await manager.delete(created.id, "mallory")
            finally:
                assert created.id in store.rows

        with pytest.raises(ServiceError) as exc_info:
            _run(scenario())
        assert exc_info.value.status == 404


# ---------------------------------------------------------------------------
# 5. Authenticate
# ---------------------------------------------------------------------------


def _assert_generic_401(exc: ServiceError) -> None:
    assert exc.status == 401
    assert exc.message == "Unauthorized"
    assert exc.headers == {"WWW-Authenticate": "Bearer"}


class TestAuthenticate:
    def test_valid_key_returns_context(self, manager, store):
        async def scenario():
            created = await manager.create("user-1")
            context = await manager.authenticate(created.key)
            await manager.drain()
            return created, context

        created, context = _run(scenario())
        assert context == AccessKeyContext(user_id="user-1", key_id=created.id)
        assert store.touched and store.touched[0][0] == created.id
        assert store.rows[created.id].last_used_at is not None

    def test_unknown_key_is_401(self, manager):
        with pytest.raises(ServiceError) as exc_info:
            _run(manager.authenticate("lr_" + "0" * 64))
        _assert_generic_401(exc_info.value)

    def test_hash_mismatch_is_401(self, manager, store):
        async def scenario():
            created = await manager.create("user-1")
            store.rows[created.id].key_hash = keys.slow_hash("lr_other", rounds=4)
            await manager.authenticate(created.key)

        with pytest.raises(ServiceError) as exc_info:
            _run(scenario())
        _assert_generic_401(exc_info.value)

    def test_revoked_key_is_401(self, manager):
        async def scenario():
            created = await manager.create("user-1")
            await manager.update(created.id, "user-1", {"revoked": True})
            await manager.authenticate(created.key)

        with pytest.raises(ServiceError) as exc_info:
            _run(scenario())
        _assert_generic_401(exc_info.value)

    def test_expired_key_is_401(self, manager):
        past = (datetime.now(UTC) - timedelta(hours=1)).isoformat()

        async def scenario():
            created = await manager.create("user-1")
            await manager.update(created.id, "user-1", {"expires_at": past})
            await manager.authenticate(created.key)

        with pytest.raises(ServiceError) as exc_info:
            _run(scenario())
        _assert_generic_401(exc_info.value)

    def test_future_expiry_still_valid(self, manager):
        future = (datetime.now(UTC) + timedelta(days=1)).isoformat()

        async def scenario():
            created = await manager.create("user-1")
            await manager.update(created.id, "user-1", {"expires_at": future})
            context = await manager.authenticate(created.key)
            await manager.drain()
            return context

        assert _run(scenario()).user_id == "user-1"

    def test_naive_stored_expiry_compared_as_utc(self, manager, store):
        """Backends without tz support return naive datetimes."""

        async def scenario():
            created = await manager.create("user-1")
            store.rows[created.id].expires_at = datetime(2000, 1, 1)
            await manager.authenticate(created.key)

        with pytest.raises(ServiceError) as exc_info:
            _run(scenario())
        _assert_generic_401(exc_info.value)

    def test_touch_failure_is_swallowed(self, manager, store):
        store.fail_touch = True

        async def scenario():
            created = await manager.create("user-1")
            context = await manager.authenticate(created.key)
            await manager.drain()
            return context

        assert _run(scenario()).user_id == "user-1"
        assert store.touched == []
