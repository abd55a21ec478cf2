"""
Storage collaborators for the consumption service.

Two implementations of each store:
- InMemory*: process-local dicts/lists, used by tests and local
  experiments.
- SqlAlchemy*: async SQLAlchemy sessions. Every ledger read-modify-write runs
  in one transaction that locks the product row (SELECT ... FOR UPDATE) and
  is rolled back on any failure, so a StorageFailure never leaves a half
  applied ledger.

Ledger stores hand out immutable `ProductLedger` snapshots, so readers never
see a torn sealed/open pair.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Protocol, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.converters import (
    consumption_entry_to_record,
    ledger_to_model_data,
    product_to_ledger,
    record_to_consumption_entry,
    record_to_restock_entry,
    restock_entry_to_record,
)
from ..core.errors import DuplicateProduct, StorageFailure, UnknownProduct
from ..core.units import Milliliters, ml
from ..db.consumption_log import ConsumptionLogEntry
from ..db.product import Product
from ..db.restock_log import RestockEntry
from ..db.service_product import ServiceProduct
from .ledger import ProductLedger
from .records import ConsumptionLogRecord, RestockRecord, ServiceRequirement

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerStore(Protocol):
    async def get(self, product_id: UUID) -> Optional[ProductLedger]: ...

    async def list(self, active_only: bool = True) -> List[ProductLedger]: ...

    async def add(self, ledger: ProductLedger) -> ProductLedger: ...

    async def apply(self, product_id: UUID, step: Callable[[ProductLedger], T]) -> T:
        """Atomically read the ledger, run `step` on it and persist `step(...).after`.

        Raises UnknownProduct if there is no ledger. Any exception raised by
        `step` aborts the write.
        """
        ...

    async def apply_many(self, product_ids: Iterable[UUID], step: Callable[[Dict[UUID, ProductLedger]], T]) -> T:
        """Like `apply`, for several products in one atomic unit.

        `step` receives every ledger keyed by id and returns an outcome whose
        `after` maps ids to new ledgers. Either all of them are persisted or
        none is. Raises UnknownProduct if any id has no ledger.
        """
        ...


class ConsumptionLogStore(Protocol):
    async def append(self, record: ConsumptionLogRecord) -> None: ...

    async def history(self, product_id: Optional[UUID] = None, limit: int = 50) -> List[ConsumptionLogRecord]: ...

    async def for_sale(self, sale_id: str) -> List[ConsumptionLogRecord]: ...


class RestockLogStore(Protocol):
    async def append(self, record: RestockRecord) -> None: ...

    async def history(self, product_id: Optional[UUID] = None, limit: int = 50) -> List[RestockRecord]: ...


class ServiceCatalog(Protocol):
    async def requirements_for(self, service_id: str) -> List[ServiceRequirement]: ...

    async def set_requirement(self, service_id: str, product_id: UUID, required_ml: Milliliters) -> ServiceRequirement: ...


# ── In-memory ────────────────────────────────────


class InMemoryLedgerStore:
    def __init__(self, ledgers: Optional[List[ProductLedger]] = None) -> None:
        self._ledgers: Dict[UUID, ProductLedger] = {}
        for ledger in ledgers or []:
            self._ledgers[ledger.product_id] = ledger

    async def get(self, product_id: UUID) -> Optional[ProductLedger]:
        return self._ledgers.get(product_id)

    async def list(self, active_only: bool = True) -> List[ProductLedger]:
        out = [l for l in self._ledgers.values() if l.is_active or not active_only]
        return sorted(out, key=lambda l: l.name.lower())

    async def add(self, ledger: ProductLedger) -> ProductLedger:
        if ledger.product_id in self._ledgers:
            raise DuplicateProduct(ledger.product_id)
        self._ledgers[ledger.product_id] = ledger
        return ledger

    async def apply(self, product_id: UUID, step: Callable[[ProductLedger], T]) -> T:
        current = self._ledgers.get(product_id)
        if current is None:
            raise UnknownProduct(product_id)
        outcome = step(current)
        self._ledgers[product_id] = outcome.after
        return outcome

    async def apply_many(self, product_ids: Iterable[UUID], step: Callable[[Dict[UUID, ProductLedger]], T]) -> T:
        current = {}
        for product_id in product_ids:
            if product_id not in self._ledgers:
                raise UnknownProduct(product_id)
            current[product_id] = self._ledgers[product_id]
        outcome = step(current)
        # Swap in a new mapping so no reader sees a partly applied batch
        updated = dict(self._ledgers)
        updated.update(outcome.after)
        self._ledgers = updated
        return outcome


class InMemoryConsumptionLog:
    def __init__(self) -> None:
        self.entries: List[ConsumptionLogRecord] = []

    async def append(self, record: ConsumptionLogRecord) -> None:
        self.entries.append(record)

    async def history(self, product_id: Optional[UUID] = None, limit: int = 50) -> List[ConsumptionLogRecord]:
        rows = [e for e in self.entries if product_id is None or e.product_id == product_id]
        rows.sort(key=lambda e: e.created_at, reverse=True)
        return rows[:limit]

    async def for_sale(self, sale_id: str) -> List[ConsumptionLogRecord]:
        return [e for e in self.entries if e.correlation.sale_id == sale_id]


class InMemoryRestockLog:
    def __init__(self) -> None:
        self.entries: List[RestockRecord] = []

    async def append(self, record: RestockRecord) -> None:
        self.entries.append(record)

    async def history(self, product_id: Optional[UUID] = None, limit: int = 50) -> List[RestockRecord]:
        rows = [e for e in self.entries if product_id is None or e.product_id == product_id]
        rows.sort(key=lambda e: e.created_at, reverse=True)
        return rows[:limit]


class InMemoryServiceCatalog:
    def __init__(self) -> None:
        self._requirements: Dict[str, Dict[UUID, ServiceRequirement]] = {}

    async def requirements_for(self, service_id: str) -> List[ServiceRequirement]:
        return list(self._requirements.get(service_id, {}).values())

    async def set_requirement(self, service_id: str, product_id: UUID, required_ml: Milliliters) -> ServiceRequirement:
        req = ServiceRequirement(service_id=service_id, product_id=product_id, required_ml=ml(required_ml))
        self._requirements.setdefault(service_id, {})[product_id] = req
        return req


# ── SQLAlchemy ───────────────────────────────────


class SqlAlchemyLedgerStore:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def get(self, product_id: UUID) -> Optional[ProductLedger]:
        try:
            async with self._session_maker() as db:
                res = await db.execute(select(Product).where(Product.id == product_id))
                row = res.scalar_one_or_none()
                return product_to_ledger(row) if row else None
        except SQLAlchemyError as e:
            raise StorageFailure("ledger read", e) from e

    async def list(self, active_only: bool = True) -> List[ProductLedger]:
        q = select(Product).order_by(Product.name)
        if active_only:
            q = q.where(Product.is_active == True)  # noqa: E712
        try:
            async with self._session_maker() as db:
                res = await db.execute(q)
                return [product_to_ledger(p) for p in res.scalars().all()]
        except SQLAlchemyError as e:
            raise StorageFailure("ledger list", e) from e

    async def add(self, ledger: ProductLedger) -> ProductLedger:
        try:
            async with self._session_maker() as db:
                async with db.begin():
                    existing = await db.get(Product, ledger.product_id)
                    if existing is not None:
                        raise DuplicateProduct(ledger.product_id)
                    db.add(Product(**ledger_to_model_data(ledger)))
            return ledger
        except IntegrityError as e:
            # Lost a race against a concurrent provision of the same id
            raise DuplicateProduct(ledger.product_id) from e
        except SQLAlchemyError as e:
            raise StorageFailure("ledger create", e) from e

    async def apply(self, product_id: UUID, step: Callable[[ProductLedger], T]) -> T:
        try:
            async with self._session_maker() as db:
                # Commits on success, rolls back if anything below raises
                async with db.begin():
                    res = await db.execute(
                        select(Product).where(Product.id == product_id).with_for_update()
                    )
                    row = res.scalar_one_or_none()
                    if row is None:
                        raise UnknownProduct(product_id)

                    outcome = step(product_to_ledger(row))
                    _write_ledger(row, outcome.after, datetime.now(timezone.utc))
            return outcome
        except SQLAlchemyError as e:
            logger.error("[inventory] ledger update failed for %s", product_id, exc_info=True)
            raise StorageFailure("ledger update", e) from e

    async def apply_many(self, product_ids: Iterable[UUID], step: Callable[[Dict[UUID, ProductLedger]], T]) -> T:
        ids = sorted(set(product_ids), key=str)
        try:
            async with self._session_maker() as db:
                async with db.begin():
                    # Rows are locked in a stable order, like ProductLocks.hold_many
                    res = await db.execute(
                        select(Product).where(Product.id.in_(ids)).order_by(Product.id).with_for_update()
                    )
                    rows = {row.id: row for row in res.scalars().all()}
                    for product_id in ids:
                        if product_id not in rows:
                            raise UnknownProduct(product_id)

                    outcome = step({product_id: product_to_ledger(rows[product_id]) for product_id in ids})

                    now = datetime.now(timezone.utc)
                    for product_id, after in outcome.after.items():
                        _write_ledger(rows[product_id], after, now)
            return outcome
        except SQLAlchemyError as e:
            logger.error("[inventory] batch ledger update failed for %s", ids, exc_info=True)
            raise StorageFailure("batch ledger update", e) from e


def _write_ledger(row: Product, ledger: ProductLedger, now: datetime) -> None:
    row.sealed_containers = int(ledger.sealed_containers)
    row.open_container_remaining_ml = int(ledger.open_container_remaining_ml)
    row.is_active = ledger.is_active
    row.updated_at = now


class SqlAlchemyConsumptionLog:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def append(self, record: ConsumptionLogRecord) -> None:
        try:
            async with self._session_maker() as db:
                async with db.begin():
                    db.add(record_to_consumption_entry(record))
        except SQLAlchemyError as e:
            raise StorageFailure("consumption log append", e) from e

    async def history(self, product_id: Optional[UUID] = None, limit: int = 50) -> List[ConsumptionLogRecord]:
        q = select(ConsumptionLogEntry).order_by(ConsumptionLogEntry.created_at.desc()).limit(limit)
        if product_id is not None:
            q = q.where(ConsumptionLogEntry.product_id == product_id)
        try:
            async with self._session_maker() as db:
                res = await db.execute(q)
                return [consumption_entry_to_record(e) for e in res.scalars().all()]
        except SQLAlchemyError as e:
            raise StorageFailure("consumption log read", e) from e

    async def for_sale(self, sale_id: str) -> List[ConsumptionLogRecord]:
        q = (
            select(ConsumptionLogEntry)
            .where(ConsumptionLogEntry.sale_id == sale_id)
            .order_by(ConsumptionLogEntry.created_at.asc())
        )
        try:
            async with self._session_maker() as db:
                res = await db.execute(q)
                return [consumption_entry_to_record(e) for e in res.scalars().all()]
        except SQLAlchemyError as e:
            raise StorageFailure("consumption log read", e) from e


class SqlAlchemyRestockLog:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def append(self, record: RestockRecord) -> None:
        try:
            async with self._session_maker() as db:
                async with db.begin():
                    db.add(record_to_restock_entry(record))
        except SQLAlchemyError as e:
            raise StorageFailure("restock log append", e) from e

    async def history(self, product_id: Optional[UUID] = None, limit: int = 50) -> List[RestockRecord]:
        q = select(RestockEntry).order_by(RestockEntry.created_at.desc()).limit(limit)
        if product_id is not None:
            q = q.where(RestockEntry.product_id == product_id)
        try:
            async with self._session_maker() as db:
                res = await db.execute(q)
                return [restock_entry_to_record(e) for e in res.scalars().all()]
        except SQLAlchemyError as e:
            raise StorageFailure("restock log read", e) from e


class SqlAlchemyServiceCatalog:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def requirements_for(self, service_id: str) -> List[ServiceRequirement]:
        q = select(ServiceProduct).where(ServiceProduct.service_id == service_id)
        try:
            async with self._session_maker() as db:
                res = await db.execute(q)
                return [
                    ServiceRequirement(
                        service_id=sp.service_id,
                        product_id=sp.product_id,
                        required_ml=ml(sp.required_ml or 0),
                    )
                    for sp in res.scalars().all()
                ]
        except SQLAlchemyError as e:
            raise StorageFailure("service requirements read", e) from e

    async def set_requirement(self, service_id: str, product_id: UUID, required_ml: Milliliters) -> ServiceRequirement:
        try:
            async with self._session_maker() as db:
                async with db.begin():
                    res = await db.execute(
                        select(ServiceProduct).where(
                            ServiceProduct.service_id == service_id,
                            ServiceProduct.product_id == product_id,
                        )
                    )
                    sp = res.scalar_one_or_none()
                    if sp is None:
                        db.add(ServiceProduct(service_id=service_id, product_id=product_id, required_ml=int(required_ml)))
                    else:
                        sp.required_ml = int(required_ml)
            return ServiceRequirement(service_id=service_id, product_id=product_id, required_ml=ml(required_ml))
        except SQLAlchemyError as e:
            raise StorageFailure("service requirement write", e) from e
