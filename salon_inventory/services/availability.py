"""
Availability dry-run.

Answers "can all of these be consumed right now?" without touching any
ledger, so a sale touching several products can be rejected before a single
bottle is opened. Unknown products are reported as shortfalls with 0 ml
available instead of failing the whole report.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from ..core.units import Milliliters, ml
from .ledger import ProductLedger
from .records import ServiceRequirement
from .stores import LedgerStore, ServiceCatalog


@dataclass(frozen=True)
class AvailabilityLine:
    product_id: UUID
    product_name: Optional[str]
    required_ml: Milliliters
    available_ml: Milliliters
    satisfiable: bool
    known: bool = True


@dataclass(frozen=True)
class Shortfall:
    product_id: UUID
    product_name: Optional[str]
    required_ml: Milliliters
    available_ml: Milliliters
    known: bool = True

    @property
    def missing_ml(self) -> Milliliters:
        return Milliliters(self.required_ml - self.available_ml)

    @property
    def message(self) -> str:
        if not self.known:
            return f"Product {self.product_id} not found"
        return f"{self.product_name}: need {self.required_ml}ml, have {self.available_ml}ml"


@dataclass
class AvailabilityReport:
    lines: List[AvailabilityLine] = field(default_factory=list)
    shortfalls: List[Shortfall] = field(default_factory=list)
    service_id: Optional[str] = None

    @property
    def all_satisfiable(self) -> bool:
        return not self.shortfalls

    @property
    def messages(self) -> List[str]:
        return [s.message for s in self.shortfalls]


class AvailabilityChecker:
    def __init__(self, ledgers: LedgerStore, services: Optional[ServiceCatalog] = None) -> None:
        self.ledgers = ledgers
        self.services = services

    async def check(self, requirements: Iterable[Tuple[UUID, int]]) -> AvailabilityReport:
        report = AvailabilityReport()
        # One snapshot per product, so repeated lines see the same state
        snapshots: Dict[UUID, Optional[ProductLedger]] = {}

        for product_id, required in requirements:
            required_ml = ml(required)
            if required_ml < 0:
                raise ValueError("required_ml must be >= 0")

            if product_id not in snapshots:
                snapshots[product_id] = await self.ledgers.get(product_id)
            ledger = snapshots[product_id]

            if ledger is None:
                line = AvailabilityLine(product_id, None, required_ml, Milliliters(0), False, known=False)
            else:
                available = ledger.total_available_ml
                line = AvailabilityLine(product_id, ledger.name, required_ml, available, available >= required_ml)
            report.lines.append(line)

            if not line.satisfiable:
                report.shortfalls.append(
                    Shortfall(line.product_id, line.product_name, line.required_ml, line.available_ml, known=line.known)
                )
        return report

    async def requirements_for(self, service_id: str) -> List[ServiceRequirement]:
        if self.services is None:
            return []
        return await self.services.requirements_for(service_id)

    async def check_service(self, service_id: str) -> AvailabilityReport:
        """Check the product usage configured for a salon service."""
        reqs = await self.requirements_for(service_id)
        report = await self.check((r.product_id, r.required_ml) for r in reqs)
        report.service_id = service_id
        return report
