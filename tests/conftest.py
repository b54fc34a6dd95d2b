# =============================================================================
# Shared Test Fixtures
# =============================================================================
#
# - FakeAccessKeyStore: in-memory AccessKeyStore (no database)
# - manager: AccessKeyManager over the fake store, bcrypt cost 4 (fast)
# - small_registry: two-model registry for orchestrator tests
# - test_settings: Settings pointing at a throwaway SQLite file
# =============================================================================

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

import pytest

from gateway.config import Settings
from gateway.db.models import AccessKey
from gateway.errors import ServiceError
from gateway.services.access_keys import AccessKeyManager
from gateway.services.registry import ModelConfig, ModelPricing, ModelRegistry

FAST_ROUNDS = 4


class FakeAccessKeyStore:
    """Dict-backed AccessKeyStore with the same contract as the SQL store."""

    def __init__(self) -> None:
        self.rows: dict[str, AccessKey] = {}
        self.touched: list[tuple[str, datetime]] = []
        self.fail_touch = False

    async def insert(self, record: AccessKey) -> AccessKey:
        if any(r.key_fingerprint == record.key_fingerprint for r in self.rows.values()):
            raise ServiceError("Access key already exists", 409)
        now = datetime.now(UTC)
        record.id = record.id or str(uuid.uuid4())
        record.created_at = record.created_at or now
        record.updated_at = record.updated_at or now
        if record.revoked is None:
            record.revoked = False
        self.rows[record.id] = record
        return record

    async def find_by_fingerprint(self, fingerprint: str) -> AccessKey | None:
        return next(
            (r for r in self.rows.values() if r.key_fingerprint == fingerprint),
            None,
        )

    async def find_owned(self, key_id: str, user_id: str) -> AccessKey | None:
        row = self.rows.get(key_id)
        if row is None or row.user_id != user_id:
            return None
        return row

    async def list_by_user(self, user_id: str) -> list[AccessKey]:
        rows = [r for r in self.rows.values() if r.user_id == user_id]
        return sorted(rows, key=lambda r: r.created_at, reverse=True)

    async def update_fields(self, key_id: str, fields: dict[str, Any]) -> AccessKey | None:
        row = self.rows.get(key_id)
        if row is None:
            return None
        for name, value in fields.items():
            setattr(row, name, value)
        row.updated_at = datetime.now(UTC)
        return row

    async def delete(self, key_id: str) -> bool:
        return self.rows.pop(key_id, None) is not None

    async def touch_last_used(self, key_id: str, when: datetime) -> None:
        if self.fail_touch:
            raise RuntimeError("database unavailable")
        self.touched.append((key_id, when))
        if key_id in self.rows:
            self.rows[key_id].last_used_at = when


@pytest.fixture
def store() -> FakeAccessKeyStore:
    return FakeAccessKeyStore()


@pytest.fixture
def manager(store: FakeAccessKeyStore) -> AccessKeyManager:
    return AccessKeyManager(store, prefix="lr_", hash_rounds=FAST_ROUNDS)


@pytest.fixture
def small_registry() -> ModelRegistry:
    return ModelRegistry([
        ModelConfig(
            id="test-gpt",
            label="Test GPT",
            provider="openai",
            description="OpenAI test model",
            context_window=8192,
            max_tokens=1000,
            pricing=ModelPricing(0.001, 0.002),
            supports_functions=True,
        ),
        ModelConfig(
            id="test-claude",
            label="Test Claude",
            provider="anthropic",
            description="Anthropic test model",
            context_window=8192,
            max_tokens=500,
            pricing=ModelPricing(0.003, 0.015),
            supports_streaming=False,
        ),
    ])


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}",
        access_key_hash_rounds=FAST_ROUNDS,
        adapter_mode="mock",
        rate_limit_enabled=False,
        usage_tracking_enabled=True,
    )
