from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from ..core.units import ContainerCount, Milliliters


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Correlation:
    """Caller context carried through to the log; never interpreted."""
    sale_id: Optional[str] = None
    service_id: Optional[str] = None
    staff_id: Optional[str] = None


@dataclass(frozen=True)
class ConsumptionLogRecord:
    product_id: UUID
    ml_consumed: Milliliters
    containers_opened: ContainerCount
    sealed_containers_before: ContainerCount
    sealed_containers_after: ContainerCount
    open_ml_before: Milliliters
    open_ml_after: Milliliters
    correlation: Correlation = Correlation()
    consumption_type: str = "service"
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class RestockRecord:
    product_id: UUID
    containers_added: ContainerCount
    sealed_containers_before: ContainerCount
    sealed_containers_after: ContainerCount
    supplier: Optional[str] = None
    invoice_number: Optional[str] = None
    cost_per_container: Optional[Decimal] = None
    notes: Optional[str] = None
    actor_id: Optional[str] = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class ServiceRequirement:
    service_id: str
    product_id: UUID
    required_ml: Milliliters
