"""
Seed a handful of salon products (bottle ledgers) and service requirements.

This script:
- Creates the tables if they do not exist.
- Provisions each SEED_PRODUCTS entry that is not already present (matched by name).
- Links the demo services to the products they use.

Run locally:
  python -m salon_inventory.scripts.seed_products

Optional env vars:
- SEALED_BOTTLES (default: 3) sealed bottles per product
- MIN_THRESHOLD (default: 1)
"""

from __future__ import annotations

import asyncio
import os
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select

from ..core.units import containers, ml
from ..db.database import async_session_maker, create_db_and_tables
from ..db.product import Product
from ..services.inventory import build_sqlalchemy_service
from ..services.ledger import ProductLedger


@dataclass(frozen=True)
class SeedProduct:
    name: str
    capacity_ml: int
    brand: Optional[str] = None
    category: Optional[str] = None


SEED_PRODUCTS: list[SeedProduct] = [
    SeedProduct(name="Shampoing Premium", capacity_ml=1000, brand="L'Oréal", category="Shampoing"),
    SeedProduct(name="Après-shampoing Hydratant", capacity_ml=1000, brand="Kérastase", category="Soin"),
    SeedProduct(name="Coloration Blond 7.0", capacity_ml=60, brand="Wella", category="Coloration"),
    SeedProduct(name="Oxydant 20 vol", capacity_ml=1000, brand="Wella", category="Coloration"),
]

# service id -> [(product name, ml per service)]
SEED_SERVICES: dict[str, list[tuple[str, int]]] = {
    "shampoing-brushing": [("Shampoing Premium", 30), ("Après-shampoing Hydratant", 20)],
    "coloration": [("Coloration Blond 7.0", 60), ("Oxydant 20 vol", 90)],
}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)).strip())
    except ValueError:
        return default


async def main() -> None:
    sealed = _env_int("SEALED_BOTTLES", 3)
    threshold = _env_int("MIN_THRESHOLD", 1)

    await create_db_and_tables()
    service = build_sqlalchemy_service(async_session_maker)

    ids_by_name: dict[str, uuid.UUID] = {}
    created = 0

    async with async_session_maker() as db:
        for seed in SEED_PRODUCTS:
            res = await db.execute(select(Product.id).where(func.lower(Product.name) == seed.name.lower()))
            existing = res.scalar_one_or_none()
            if existing is not None:
                ids_by_name[seed.name] = existing

    for seed in SEED_PRODUCTS:
        if seed.name in ids_by_name:
            continue
        ledger = await service.engine.provision(
            ProductLedger(
                product_id=uuid.uuid4(),
                name=seed.name,
                brand=seed.brand,
                category=seed.category,
                container_capacity_ml=ml(seed.capacity_ml),
                sealed_containers=containers(sealed),
                min_threshold=containers(threshold),
            )
        )
        ids_by_name[seed.name] = ledger.product_id
        created += 1

    links = 0
    for service_id, usages in SEED_SERVICES.items():
        for product_name, required in usages:
            await service.services.set_requirement(service_id, ids_by_name[product_name], ml(required))
            links += 1

    print(f"Seed complete. Products created: {created}. Service requirements set: {links}.")


if __name__ == "__main__":
    asyncio.run(main())
