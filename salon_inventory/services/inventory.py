from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.errors import UnknownProduct
from ..core.locks import ProductLocks
from .availability import AvailabilityChecker, AvailabilityReport
from .consumption import ConsumptionEngine
from .ledger import ProductLedger, StockStatus, classify, classify_all
from .records import ConsumptionLogRecord, RestockRecord, ServiceRequirement
from .stores import (
    ConsumptionLogStore,
    InMemoryConsumptionLog,
    InMemoryLedgerStore,
    InMemoryRestockLog,
    InMemoryServiceCatalog,
    LedgerStore,
    RestockLogStore,
    ServiceCatalog,
    SqlAlchemyConsumptionLog,
    SqlAlchemyLedgerStore,
    SqlAlchemyRestockLog,
    SqlAlchemyServiceCatalog,
)


class InventoryService:
    """Entry point used by the HTTP layer and by sale-completion workflows."""

    def __init__(
        self,
        ledgers: LedgerStore,
        consumption_log: ConsumptionLogStore,
        restock_log: RestockLogStore,
        services: ServiceCatalog,
        locks: Optional[ProductLocks] = None,
    ) -> None:
        self.ledgers = ledgers
        self.consumption_log = consumption_log
        self.restock_log = restock_log
        self.services = services
        self.checker = AvailabilityChecker(ledgers, services)
        self.engine = ConsumptionEngine(
            ledgers,
            consumption_log,
            restock_log=restock_log,
            locks=locks,
        )

    async def get_ledger(self, product_id: UUID) -> ProductLedger:
        ledger = await self.ledgers.get(product_id)
        if ledger is None:
            raise UnknownProduct(product_id)
        return ledger

    async def check_availability(self, requirements) -> AvailabilityReport:
        return await self.checker.check(requirements)

    async def check_service_availability(self, service_id: str) -> AvailabilityReport:
        return await self.checker.check_service(service_id)

    async def service_requirements(self, service_id: str) -> List[ServiceRequirement]:
        return await self.checker.requirements_for(service_id)

    async def status(self, product_id: UUID) -> StockStatus:
        return classify(await self.get_ledger(product_id))

    async def inventory_status(self) -> List[Tuple[ProductLedger, StockStatus]]:
        return [(l, classify(l)) for l in await self.ledgers.list(active_only=True)]

    async def alerts(self) -> List[Tuple[ProductLedger, StockStatus]]:
        return classify_all(await self.ledgers.list(active_only=True))

    async def consumption_history(
        self, product_id: Optional[UUID] = None, limit: Optional[int] = None
    ) -> List[ConsumptionLogRecord]:
        return await self.consumption_log.history(product_id, _clamp_limit(limit))

    async def sale_usage(self, sale_id: str) -> List[ConsumptionLogRecord]:
        return await self.consumption_log.for_sale(sale_id)

    async def restock_history(
        self, product_id: Optional[UUID] = None, limit: Optional[int] = None
    ) -> List[RestockRecord]:
        return await self.restock_log.history(product_id, _clamp_limit(limit))


def _clamp_limit(limit: Optional[int]) -> int:
    if limit is None or limit <= 0:
        return settings.history_default_limit
    return min(limit, settings.history_max_limit)


def build_sqlalchemy_service(
    session_maker: async_sessionmaker[AsyncSession],
    locks: Optional[ProductLocks] = None,
) -> InventoryService:
    return InventoryService(
        ledgers=SqlAlchemyLedgerStore(session_maker),
        consumption_log=SqlAlchemyConsumptionLog(session_maker),
        restock_log=SqlAlchemyRestockLog(session_maker),
        services=SqlAlchemyServiceCatalog(session_maker),
        locks=locks,
    )


def build_in_memory_service(ledgers: Optional[List[ProductLedger]] = None) -> InventoryService:
    return InventoryService(
        ledgers=InMemoryLedgerStore(ledgers),
        consumption_log=InMemoryConsumptionLog(),
        restock_log=InMemoryRestockLog(),
        services=InMemoryServiceCatalog(),
    )
