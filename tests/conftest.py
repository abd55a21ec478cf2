"""
Shared fixtures.

Usage:
    pytest -v                        # everything
    pytest tests/test_ledger.py -v   # pure ledger arithmetic only
"""
import os
import uuid

# Must be set before salon_inventory.db.database creates its engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from salon_inventory.core.units import containers, ml
from salon_inventory.db.database import Base
from salon_inventory.services.inventory import build_in_memory_service, build_sqlalchemy_service
from salon_inventory.services.ledger import ProductLedger

CAPACITY_ML = 1000


def make_ledger(sealed=0, open_ml=0, threshold=0, capacity=CAPACITY_ML, name="Shampoing Premium", **kw):
    return ProductLedger(
        product_id=kw.pop("product_id", None) or uuid.uuid4(),
        name=name,
        container_capacity_ml=ml(capacity),
        sealed_containers=containers(sealed),
        open_container_remaining_ml=ml(open_ml),
        min_threshold=containers(threshold),
        **kw,
    )


@pytest.fixture
def ledger_factory():
    return make_ledger


@pytest.fixture
def inventory():
    """In-memory InventoryService with no products."""
    return build_in_memory_service()


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    # A file database so that every session gets its own connection
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'inventory.db'}")
    # Register every model on Base.metadata
    from salon_inventory.db import consumption_log, product, restock_log, service_product  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def sql_inventory(session_maker):
    """InventoryService backed by SQLAlchemy stores on a throwaway SQLite file."""
    return build_sqlalchemy_service(session_maker)
