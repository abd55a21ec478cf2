from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


StockStatusName = Literal["good", "low", "critical", "out"]


def _strip_or_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class ProductCreate(BaseModel):
    id: Optional[UUID] = None
    name: str
    brand: Optional[str] = None
    category: Optional[str] = None
    container_capacity_ml: int = Field(gt=0)
    sealed_containers: int = Field(default=0, ge=0)
    min_threshold: int = Field(default=0, ge=0)

    @field_validator("name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("brand", "category")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        return _strip_or_none(v)


class ProductLedgerOut(BaseModel):
    id: UUID
    name: str
    brand: Optional[str] = None
    category: Optional[str] = None
    container_capacity_ml: int
    sealed_containers: int
    open_container_remaining_ml: int
    total_available_ml: int
    min_threshold: int
    is_active: bool
    stock_status: StockStatusName


class CorrelationIn(BaseModel):
    sale_id: Optional[str] = None
    service_id: Optional[str] = None
    staff_id: Optional[str] = None

    @field_validator("sale_id", "service_id", "staff_id")
    @classmethod
    def _strip_ids(cls, v: Optional[str]) -> Optional[str]:
        return _strip_or_none(v)


class ConsumeRequest(CorrelationIn):
    required_ml: int = Field(ge=0)


class ConsumeBatchLine(CorrelationIn):
    product_id: UUID
    required_ml: int = Field(ge=0)


class ConsumeBatchRequest(BaseModel):
    items: List[ConsumeBatchLine] = Field(min_length=1)
    # Applied to every line that does not carry its own ids
    sale_id: Optional[str] = None
    staff_id: Optional[str] = None


class ConsumptionResultOut(BaseModel):
    success: bool
    product_id: UUID
    required_ml: int
    consumed_ml: int
    containers_opened: int
    sealed_containers: int
    open_container_remaining_ml: int
    total_available_ml: int
    audit_warning: Optional[str] = None

    class Config:
        from_attributes = True


class RestockRequest(BaseModel):
    containers_added: int = Field(gt=0)
    supplier: Optional[str] = None
    invoice_number: Optional[str] = None
    cost_per_container: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None
    actor_id: Optional[str] = None

    @field_validator("supplier", "invoice_number", "notes", "actor_id")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        return _strip_or_none(v)


class RestockResultOut(BaseModel):
    product_id: UUID
    containers_added: int
    sealed_containers_before: int
    sealed_containers: int
    open_container_remaining_ml: int
    total_available_ml: int
    audit_warning: Optional[str] = None

    class Config:
        from_attributes = True


class RequirementIn(BaseModel):
    product_id: UUID
    required_ml: int = Field(ge=0)


class AvailabilityRequest(BaseModel):
    requirements: List[RequirementIn]


class AvailabilityLineOut(BaseModel):
    product_id: UUID
    product_name: Optional[str] = None
    required_ml: int
    available_ml: int
    satisfiable: bool


class ShortfallOut(BaseModel):
    product_id: UUID
    product_name: Optional[str] = None
    required_ml: int
    available_ml: int
    message: str


class AvailabilityReportOut(BaseModel):
    service_id: Optional[str] = None
    all_satisfiable: bool
    lines: List[AvailabilityLineOut]
    shortfalls: List[ShortfallOut]


class StockStatusOut(BaseModel):
    product_id: UUID
    name: str
    status: StockStatusName


class ConsumptionLogOut(BaseModel):
    id: UUID
    product_id: UUID
    consumption_type: str
    ml_consumed: int
    containers_opened: int
    sealed_containers_before: int
    sealed_containers_after: int
    open_ml_before: int
    open_ml_after: int
    sale_id: Optional[str] = None
    service_id: Optional[str] = None
    staff_id: Optional[str] = None
    created_at: datetime


class RestockLogOut(BaseModel):
    id: UUID
    product_id: UUID
    containers_added: int
    sealed_containers_before: int
    sealed_containers_after: int
    supplier: Optional[str] = None
    invoice_number: Optional[str] = None
    cost_per_container: Optional[Decimal] = None
    notes: Optional[str] = None
    actor_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ServiceRequirementIn(BaseModel):
    required_ml: int = Field(ge=0)
