"""Integration-test fixtures.

All integration tests share a single event-loop so that the module-level
SQLAlchemy async engine pool (created at import time) remains valid
across the entire test session.

Requires a running PostgreSQL DB with migrations applied (make up && make migrate).
Profiles are owned by the external auth service; tests seed their own.
"""

import uuid
from dataclasses import dataclass

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from src.main import app
from src.mk_common.database import async_session_factory
from src.mk_common.enums import Role
from src.mk_gateway.auth.jwt_handler import create_access_token


@dataclass(frozen=True)
class Seeded:
    client_id: str
    merchant_id: str
    product_ids: list[str]

    @property
    def client_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(self.client_id, Role.CLIENT)}"}

    @property
    def merchant_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(self.merchant_id, Role.MERCHANT)}"}


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    """Session-scoped async HTTP client — keeps the engine pool alive."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture(loop_scope="session")
async def seeded() -> Seeded:
    """Fresh client + merchant profiles and two products per test."""
    uid = uuid.uuid4().hex[:8]
    client_id, merchant_id = f"client-{uid}", f"merchant-{uid}"
    async with async_session_factory() as db:
        for profile_id, role in ((client_id, "client"), (merchant_id, "merchant")):
            await db.execute(
                text("INSERT INTO profiles (id, email, role) VALUES (:id, :email, :role)"),
                {"id": profile_id, "email": f"{profile_id}@example.com", "role": role},
            )
        product_ids = []
        for title, price in (("Mug", 1250), ("Poster", 800)):
            result = await db.execute(
                text(
                    "INSERT INTO products (merchant_id, title, price) "
                    "VALUES (:merchant_id, :title, :price) RETURNING id"
                ),
                {"merchant_id": merchant_id, "title": title, "price": price},
            )
            product_ids.append(str(result.scalar_one()))
        await db.commit()
    return Seeded(client_id, merchant_id, product_ids)
