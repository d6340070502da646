"""Fixtures for tests that run against a real PostgreSQL database.

Set TEST_DATABASE_URL to enable them; every table is truncated before each test.
"""

import os

import asyncpg
import pytest
import pytest_asyncio

from waitlist.database.connection import DatabaseConnection
from waitlist.database.schema import create_schema

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "integration" in item.nodeid.split("::")[0]:
            item.add_marker(pytest.mark.integration)
            if not TEST_DATABASE_URL:
                item.add_marker(pytest.mark.skip(reason="TEST_DATABASE_URL not set"))


@pytest_asyncio.fixture
async def db_pool():
    pool = await asyncpg.create_pool(TEST_DATABASE_URL, min_size=1, max_size=10)
    async with pool.acquire() as conn:
        await create_schema(conn)
        await conn.execute("""
            TRUNCATE blast_recipients, email_blasts, plan_feature_limits, limits,
                features, subscriptions, accounts, prices CASCADE
        """)

    DatabaseConnection._pool = pool
    try:
        yield pool
    finally:
        DatabaseConnection._pool = None
        await pool.close()
