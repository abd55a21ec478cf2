"""
Bottle ledger arithmetic.

Everything here is a pure function of an immutable `ProductLedger` snapshot:
no I/O, no locking. The consumption service computes a plan with these
helpers first and only then writes the resulting ledger back.

Consumption flow:
1. If the open bottle holds enough, subtract directly (no bottle opened).
2. Otherwise drain the open bottle to 0, then open sealed bottles one at a
   time; each new bottle supplies up to its capacity and whatever it does not
   supply stays as the new open remainder.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from ..core.errors import InsufficientStock
from ..core.units import ContainerCount, Milliliters, containers, containers_to_ml, ml


class StockStatus(str, Enum):
    GOOD = "good"
    LOW = "low"
    CRITICAL = "critical"
    OUT = "out"


@dataclass(frozen=True)
class ProductLedger:
    product_id: UUID
    name: str
    container_capacity_ml: Milliliters
    sealed_containers: ContainerCount
    open_container_remaining_ml: Milliliters = Milliliters(0)
    min_threshold: ContainerCount = ContainerCount(0)
    brand: Optional[str] = None
    category: Optional[str] = None
    is_active: bool = True

    def __post_init__(self):
        if self.container_capacity_ml <= 0:
            raise ValueError("container_capacity_ml must be > 0")
        if self.sealed_containers < 0:
            raise ValueError("sealed_containers must be >= 0")
        if not 0 <= self.open_container_remaining_ml <= self.container_capacity_ml:
            raise ValueError("open_container_remaining_ml must be between 0 and container_capacity_ml")
        if self.min_threshold < 0:
            raise ValueError("min_threshold must be >= 0")

    @property
    def total_available_ml(self) -> Milliliters:
        return Milliliters(
            containers_to_ml(self.sealed_containers, self.container_capacity_ml)
            + self.open_container_remaining_ml
        )


@dataclass(frozen=True)
class ConsumptionPlan:
    before: ProductLedger
    after: ProductLedger
    consumed_ml: Milliliters
    containers_opened: ContainerCount


@dataclass(frozen=True)
class RestockPlan:
    before: ProductLedger
    after: ProductLedger
    containers_added: ContainerCount


@dataclass(frozen=True)
class LedgerUpdate:
    before: ProductLedger
    after: ProductLedger


def plan_consumption(ledger: ProductLedger, required_ml: Milliliters) -> ConsumptionPlan:
    """Compute the ledger after drawing `required_ml`.

    Raises InsufficientStock when the total available is smaller than the
    requirement; nothing is partially drawn in that case.
    """
    required_ml = ml(required_ml)
    if required_ml < 0:
        raise ValueError("required_ml must be >= 0")

    available = ledger.total_available_ml
    if available < required_ml:
        raise InsufficientStock(ledger.product_id, ledger.name, required_ml, available)

    capacity = ledger.container_capacity_ml
    sealed = int(ledger.sealed_containers)
    open_ml = int(ledger.open_container_remaining_ml)
    remaining = int(required_ml)
    opened = 0

    if open_ml >= remaining:
        open_ml -= remaining
        remaining = 0
    else:
        remaining -= open_ml
        open_ml = 0
        while remaining > 0:
            sealed -= 1
            opened += 1
            drawn = min(capacity, remaining)
            open_ml = capacity - drawn
            remaining -= drawn

    after = replace(
        ledger,
        sealed_containers=ContainerCount(sealed),
        open_container_remaining_ml=Milliliters(open_ml),
    )
    return ConsumptionPlan(
        before=ledger,
        after=after,
        consumed_ml=Milliliters(int(required_ml)),
        containers_opened=ContainerCount(opened),
    )


@dataclass(frozen=True)
class BatchPlan:
    """Per-line plans for one sale, plus the final ledger of every product involved."""
    plans: List[ConsumptionPlan]
    after: Dict[UUID, ProductLedger]


def plan_batch(
    ledgers: Dict[UUID, ProductLedger],
    lines: Sequence[Tuple[UUID, Milliliters]],
) -> BatchPlan:
    """Plan several draws as one unit.

    Lines for the same product are summed and checked against its total
    before anything is planned: either every line fits, or InsufficientStock
    is raised for the first product that falls short.
    """
    totals: Dict[UUID, int] = {}
    for product_id, required in lines:
        required = ml(required)
        if required < 0:
            raise ValueError("required_ml must be >= 0")
        totals[product_id] = totals.get(product_id, 0) + required

    for product_id, total in totals.items():
        ledger = ledgers[product_id]
        if ledger.total_available_ml < total:
            raise InsufficientStock(product_id, ledger.name, Milliliters(total), ledger.total_available_ml)

    current = dict(ledgers)
    plans = []
    for product_id, required in lines:
        plan = plan_consumption(current[product_id], required)
        current[product_id] = plan.after
        plans.append(plan)
    return BatchPlan(plans=plans, after=current)


def plan_restock(ledger: ProductLedger, containers_added: ContainerCount) -> RestockPlan:
    """Add sealed bottles. The open bottle is never touched."""
    containers_added = containers(containers_added)
    if containers_added <= 0:
        raise ValueError("containers_added must be > 0")
    after = replace(ledger, sealed_containers=ContainerCount(ledger.sealed_containers + containers_added))
    return RestockPlan(before=ledger, after=after, containers_added=containers_added)


def plan_deactivation(ledger: ProductLedger) -> LedgerUpdate:
    return LedgerUpdate(before=ledger, after=replace(ledger, is_active=False))


def classify(ledger: ProductLedger) -> StockStatus:
    if ledger.total_available_ml == 0:
        return StockStatus.OUT
    if ledger.sealed_containers == 0:
        # Only the open bottle's remainder is left
        return StockStatus.CRITICAL
    if ledger.sealed_containers <= ledger.min_threshold:
        return StockStatus.LOW
    return StockStatus.GOOD


def classify_all(ledgers: Iterable[ProductLedger]) -> List[Tuple[ProductLedger, StockStatus]]:
    """Alerting view: (ledger, status) pairs for every non-good ledger."""
    out = []
    for ledger in ledgers:
        status = classify(ledger)
        if status is not StockStatus.GOOD:
            out.append((ledger, status))
    return out
