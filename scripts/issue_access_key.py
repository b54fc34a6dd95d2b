#!/usr/bin/env python3
"""
Issue an access key for a user from the command line.

Creates any missing tables, then creates a key owned by USER_ID and prints
the plaintext key once. Useful for bootstrapping a fresh deployment before
the web app is wired up.

Usage:
    uv run python scripts/issue_access_key.py USER_ID [--name NAME] [--description TEXT]

Environment:
    DATABASE_URL and the other gateway settings (see gateway/config.py).
"""

import argparse
import asyncio

from gateway.config import settings
from gateway.db.engine import build_engine, build_session_factory, create_tables
from gateway.services.access_keys import AccessKeyManager, SqlAlchemyAccessKeyStore


async def issue_key(user_id: str, name: str | None, description: str | None) -> None:
    engine = build_engine(settings.database_url)
    try:
        await create_tables(engine)
        manager = AccessKeyManager(
            SqlAlchemyAccessKeyStore(build_session_factory(engine)),
            prefix=settings.access_key_prefix,
            hash_rounds=settings.access_key_hash_rounds,
        )
        created = await manager.create(user_id, name=name, description=description)
    finally:
        await engine.dispose()

    print(f"Access key id: {created.id}")
    print(f"Access key:    {created.key}")
    print("Store it securely — it will NOT be shown again.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a gateway access key.")
    parser.add_argument("user_id", help="Owning user id")
    parser.add_argument("--name", default=None, help="Label for the key")
    parser.add_argument("--description", default=None, help="Free-form note")
    args = parser.parse_args()

    asyncio.run(issue_key(args.user_id, args.name, args.description))


if __name__ == "__main__":
    main()
