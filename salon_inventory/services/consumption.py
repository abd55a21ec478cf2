"""
Bottle consumption engine.

Draws liquid product from the open bottle first and opens sealed bottles only
when necessary, keeping the ledger and the consumption log consistent:

- every ledger mutation for a product happens while holding that product's
  lock (see core.locks), and inside the store's atomic read-modify-write;
- a request that cannot be fully satisfied changes nothing and is reported
  as InsufficientStock;
- the ledger is authoritative. Once it has been written, a failure to append
  the audit log entry is returned as `audit_warning` (and logged) instead of
  failing the consumption.
"""

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterable, List, Optional
from uuid import UUID

from ..core.errors import InsufficientStock, StorageFailure, UnknownProduct
from ..core.locks import ProductLocks
from ..core.units import ContainerCount, Milliliters, containers, ml
from .ledger import (
    ConsumptionPlan,
    ProductLedger,
    RestockPlan,
    plan_batch,
    plan_consumption,
    plan_deactivation,
    plan_restock,
)
from .records import ConsumptionLogRecord, Correlation, RestockRecord
from .stores import ConsumptionLogStore, LedgerStore, RestockLogStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsumptionRequest:
    product_id: UUID
    required_ml: Milliliters
    correlation: Correlation = Correlation()


@dataclass(frozen=True)
class ConsumptionResult:
    success: bool
    product_id: UUID
    required_ml: Milliliters
    consumed_ml: Milliliters
    containers_opened: ContainerCount
    sealed_containers: ContainerCount
    open_container_remaining_ml: Milliliters
    total_available_ml: Milliliters
    audit_warning: Optional[str] = None

    @classmethod
    def from_plan(cls, plan: ConsumptionPlan, audit_warning: Optional[str] = None) -> "ConsumptionResult":
        after = plan.after
        return cls(
            success=True,
            product_id=after.product_id,
            required_ml=plan.consumed_ml,
            consumed_ml=plan.consumed_ml,
            containers_opened=plan.containers_opened,
            sealed_containers=after.sealed_containers,
            open_container_remaining_ml=after.open_container_remaining_ml,
            total_available_ml=after.total_available_ml,
            audit_warning=audit_warning,
        )


@dataclass(frozen=True)
class RestockResult:
    product_id: UUID
    containers_added: ContainerCount
    sealed_containers_before: ContainerCount
    sealed_containers: ContainerCount
    open_container_remaining_ml: Milliliters
    total_available_ml: Milliliters
    audit_warning: Optional[str] = None

    @classmethod
    def from_plan(cls, plan: RestockPlan, audit_warning: Optional[str] = None) -> "RestockResult":
        return cls(
            product_id=plan.after.product_id,
            containers_added=plan.containers_added,
            sealed_containers_before=plan.before.sealed_containers,
            sealed_containers=plan.after.sealed_containers,
            open_container_remaining_ml=plan.after.open_container_remaining_ml,
            total_available_ml=plan.after.total_available_ml,
            audit_warning=audit_warning,
        )


class ConsumptionEngine:
    def __init__(
        self,
        ledgers: LedgerStore,
        consumption_log: ConsumptionLogStore,
        restock_log: Optional[RestockLogStore] = None,
        locks: Optional[ProductLocks] = None,
    ) -> None:
        self.ledgers = ledgers
        self.consumption_log = consumption_log
        self.restock_log = restock_log
        self.locks = locks or ProductLocks()

    async def consume(
        self,
        product_id: UUID,
        required_ml: int,
        correlation: Optional[Correlation] = None,
    ) -> ConsumptionResult:
        """
        Draw `required_ml` from a product.

        Raises InsufficientStock, UnknownProduct or StorageFailure; in each
        case the ledger is exactly as it was before the call.
        """
        amount = ml(required_ml)
        if amount < 0:
            raise ValueError("required_ml must be >= 0")

        async with self.locks.hold(product_id):
            return await self._consume_locked(product_id, amount, correlation or Correlation())

    async def consume_batch(self, requests: Iterable[ConsumptionRequest]) -> List[ConsumptionResult]:
        """
        Consume several products for one sale, all or nothing.

        Every product lock is held for the whole batch and every ledger is
        written in one store transaction. Nothing is consumed unless every
        product can cover its (summed) requirement, and a storage failure
        leaves all of them untouched. Log entries are appended only after
        the ledgers are written.
        """
        requests = list(requests)
        lines = [(r.product_id, ml(r.required_ml)) for r in requests]
        if any(amount < 0 for _, amount in lines):
            raise ValueError("required_ml must be >= 0")

        product_ids = [product_id for product_id, _ in lines]
        async with self.locks.hold_many(product_ids):
            try:
                batch = await self.ledgers.apply_many(product_ids, lambda ledgers: plan_batch(ledgers, lines))
            except InsufficientStock as e:
                logger.info("[inventory] batch rejected: %s", e)
                raise

            results = []
            for request, plan in zip(requests, batch.plans):
                warning = None
                if plan.consumed_ml > 0:
                    warning = await self._log_consumption(plan, request.correlation)
                results.append(ConsumptionResult.from_plan(plan, audit_warning=warning))
            return results

    async def _consume_locked(
        self,
        product_id: UUID,
        required_ml: Milliliters,
        correlation: Correlation,
    ) -> ConsumptionResult:
        if required_ml == 0:
            # Nothing to draw: no write, no log entry
            ledger = await self.ledgers.get(product_id)
            if ledger is None:
                raise UnknownProduct(product_id)
            return ConsumptionResult.from_plan(plan_consumption(ledger, required_ml))

        try:
            plan = await self.ledgers.apply(product_id, lambda l: plan_consumption(l, required_ml))
        except InsufficientStock as e:
            logger.info("[inventory] %s", e)
            raise

        warning = await self._log_consumption(plan, correlation)
        return ConsumptionResult.from_plan(plan, audit_warning=warning)

    async def _log_consumption(self, plan: ConsumptionPlan, correlation: Correlation) -> Optional[str]:
        record = ConsumptionLogRecord(
            product_id=plan.after.product_id,
            ml_consumed=plan.consumed_ml,
            containers_opened=plan.containers_opened,
            sealed_containers_before=plan.before.sealed_containers,
            sealed_containers_after=plan.after.sealed_containers,
            open_ml_before=plan.before.open_container_remaining_ml,
            open_ml_after=plan.after.open_container_remaining_ml,
            correlation=correlation,
        )
        warning = await self._append_audit(self.consumption_log, record, "consumption")

        logger.info(
            "[inventory] consumed %sml of %s (opened %s): sealed %s -> %s, open %sml -> %sml",
            plan.consumed_ml,
            plan.after.name,
            plan.containers_opened,
            plan.before.sealed_containers,
            plan.after.sealed_containers,
            plan.before.open_container_remaining_ml,
            plan.after.open_container_remaining_ml,
        )
        return warning

    async def restock(
        self,
        product_id: UUID,
        containers_added: int,
        *,
        supplier: Optional[str] = None,
        invoice_number: Optional[str] = None,
        cost_per_container: Optional[Decimal] = None,
        notes: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> RestockResult:
        """Add sealed bottles, serialized with consumption of the same product."""
        count = containers(containers_added)
        if count <= 0:
            raise ValueError("containers_added must be > 0")

        async with self.locks.hold(product_id):
            plan = await self.ledgers.apply(product_id, lambda l: plan_restock(l, count))

            warning = None
            if self.restock_log is not None:
                record = RestockRecord(
                    product_id=product_id,
                    containers_added=count,
                    sealed_containers_before=plan.before.sealed_containers,
                    sealed_containers_after=plan.after.sealed_containers,
                    supplier=supplier,
                    invoice_number=invoice_number,
                    cost_per_container=cost_per_container,
                    notes=notes,
                    actor_id=actor_id,
                )
                warning = await self._append_audit(self.restock_log, record, "restock")

        logger.info(
            "[inventory] restocked %s: %s -> %s sealed bottles (+%s)",
            plan.after.name,
            plan.before.sealed_containers,
            plan.after.sealed_containers,
            count,
        )
        return RestockResult.from_plan(plan, audit_warning=warning)

    async def provision(self, ledger: ProductLedger) -> ProductLedger:
        """Create a product ledger. New products never start with an open bottle."""
        ledger = replace(ledger, open_container_remaining_ml=Milliliters(0))
        created = await self.ledgers.add(ledger)
        logger.info("[inventory] provisioned %s (%s)", created.name, created.product_id)
        return created

    async def deactivate(self, product_id: UUID) -> ProductLedger:
        async with self.locks.hold(product_id):
            update = await self.ledgers.apply(product_id, plan_deactivation)
        logger.info("[inventory] deactivated %s (%s)", update.after.name, product_id)
        return update.after

    async def _append_audit(self, store, record, kind: str) -> Optional[str]:
        try:
            await store.append(record)
        except StorageFailure as e:
            logger.warning(
                "[inventory] %s applied to %s but log append failed: %s",
                kind,
                record.product_id,
                e,
            )
            return f"{kind.capitalize()} applied but the audit log entry was not written: {e}"
        return None
