import logging
import uuid
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..core.converters import consumption_record_to_schema, ledger_to_schema
from ..core.errors import (
    DuplicateProduct,
    InsufficientStock,
    InventoryError,
    StorageFailure,
    UnknownProduct,
)
from ..core.locks import ProductLocks
from ..core.units import containers, ml
from ..db.database import async_session_maker
from ..schemas.inventory import (
    AvailabilityLineOut,
    AvailabilityReportOut,
    AvailabilityRequest,
    ConsumeBatchRequest,
    ConsumeRequest,
    ConsumptionLogOut,
    ConsumptionResultOut,
    ProductCreate,
    ProductLedgerOut,
    RestockLogOut,
    RestockRequest,
    RestockResultOut,
    ServiceRequirementIn,
    ShortfallOut,
    StockStatusOut,
)
from ..services.availability import AvailabilityReport
from ..services.consumption import ConsumptionRequest
from ..services.inventory import InventoryService, build_sqlalchemy_service
from ..services.ledger import ProductLedger
from ..services.records import Correlation

logger = logging.getLogger(__name__)

router = APIRouter()

# One lock registry per process: every request must serialize on the same locks.
_locks = ProductLocks()
_service: Optional[InventoryService] = None


def get_inventory_service() -> InventoryService:
    global _service
    if _service is None:
        _service = build_sqlalchemy_service(async_session_maker, locks=_locks)
    return _service


def _to_http(e: InventoryError) -> HTTPException:
    if isinstance(e, UnknownProduct):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, (InsufficientStock, DuplicateProduct)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, StorageFailure):
        logger.error("[inventory] storage failure: %s", e)
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


def _report_out(report: AvailabilityReport) -> AvailabilityReportOut:
    return AvailabilityReportOut(
        service_id=report.service_id,
        all_satisfiable=report.all_satisfiable,
        lines=[
            AvailabilityLineOut(
                product_id=l.product_id,
                product_name=l.product_name,
                required_ml=int(l.required_ml),
                available_ml=int(l.available_ml),
                satisfiable=l.satisfiable,
            )
            for l in report.lines
        ],
        shortfalls=[
            ShortfallOut(
                product_id=s.product_id,
                product_name=s.product_name,
                required_ml=int(s.required_ml),
                available_ml=int(s.available_ml),
                message=s.message,
            )
            for s in report.shortfalls
        ],
    )


# ── Products ─────────────────────────────────────


@router.post("/products", response_model=ProductLedgerOut, status_code=status.HTTP_201_CREATED)
async def provision_product(
    payload: ProductCreate,
    service: InventoryService = Depends(get_inventory_service),
):
    """Provision a product ledger (sealed bottles only, no open bottle)."""
    ledger = ProductLedger(
        product_id=payload.id or uuid.uuid4(),
        name=payload.name,
        brand=payload.brand,
        category=payload.category,
        container_capacity_ml=ml(payload.container_capacity_ml),
        sealed_containers=containers(payload.sealed_containers),
        min_threshold=containers(payload.min_threshold),
    )
    try:
        created = await service.engine.provision(ledger)
    except InventoryError as e:
        raise _to_http(e) from e
    return ledger_to_schema(created)


@router.get("/products/{product_id}", response_model=ProductLedgerOut)
async def get_product(product_id: UUID, service: InventoryService = Depends(get_inventory_service)):
    try:
        return ledger_to_schema(await service.get_ledger(product_id))
    except InventoryError as e:
        raise _to_http(e) from e


@router.post("/products/{product_id}/deactivate", response_model=ProductLedgerOut)
async def deactivate_product(product_id: UUID, service: InventoryService = Depends(get_inventory_service)):
    """Hide a product from status/alerts. Its ledger and history are kept."""
    try:
        return ledger_to_schema(await service.engine.deactivate(product_id))
    except InventoryError as e:
        raise _to_http(e) from e


# ── Consumption ──────────────────────────────────


@router.post("/products/{product_id}/consume", response_model=ConsumptionResultOut)
async def consume_product(
    product_id: UUID,
    payload: ConsumeRequest,
    service: InventoryService = Depends(get_inventory_service),
):
    """
    Draw `required_ml` from a product.

    - Uses the open bottle first, opening sealed bottles only when needed.
    - 409 if the total available ml does not cover the request (nothing is consumed).
    """
    correlation = Correlation(sale_id=payload.sale_id, service_id=payload.service_id, staff_id=payload.staff_id)
    try:
        result = await service.engine.consume(product_id, payload.required_ml, correlation)
    except InventoryError as e:
        raise _to_http(e) from e
    return ConsumptionResultOut.model_validate(result)


@router.post("/consume-batch", response_model=List[ConsumptionResultOut])
async def consume_batch(
    payload: ConsumeBatchRequest,
    service: InventoryService = Depends(get_inventory_service),
):
    """Consume several products for one sale. Nothing is consumed unless every line is covered."""
    requests = [
        ConsumptionRequest(
            product_id=line.product_id,
            required_ml=ml(line.required_ml),
            correlation=Correlation(
                sale_id=line.sale_id or payload.sale_id,
                service_id=line.service_id,
                staff_id=line.staff_id or payload.staff_id,
            ),
        )
        for line in payload.items
    ]
    try:
        results = await service.engine.consume_batch(requests)
    except InventoryError as e:
        raise _to_http(e) from e
    return [ConsumptionResultOut.model_validate(r) for r in results]


@router.post("/products/{product_id}/restock", response_model=RestockResultOut, status_code=status.HTTP_201_CREATED)
async def restock_product(
    product_id: UUID,
    payload: RestockRequest,
    service: InventoryService = Depends(get_inventory_service),
):
    try:
        result = await service.engine.restock(
            product_id,
            payload.containers_added,
            supplier=payload.supplier,
            invoice_number=payload.invoice_number,
            cost_per_container=payload.cost_per_container,
            notes=payload.notes,
            actor_id=payload.actor_id,
        )
    except InventoryError as e:
        raise _to_http(e) from e
    return RestockResultOut.model_validate(result)


# ── Availability ─────────────────────────────────


@router.post("/availability", response_model=AvailabilityReportOut)
async def check_availability(
    payload: AvailabilityRequest,
    service: InventoryService = Depends(get_inventory_service),
):
    """Dry-run: report whether every requirement can be met. Never modifies stock."""
    try:
        report = await service.check_availability((r.product_id, r.required_ml) for r in payload.requirements)
    except InventoryError as e:
        raise _to_http(e) from e
    return _report_out(report)


@router.put("/services/{service_id}/products/{product_id}", response_model=dict)
async def set_service_requirement(
    service_id: str,
    product_id: UUID,
    payload: ServiceRequirementIn,
    service: InventoryService = Depends(get_inventory_service),
):
    try:
        await service.get_ledger(product_id)
        req = await service.services.set_requirement(service_id, product_id, ml(payload.required_ml))
    except InventoryError as e:
        raise _to_http(e) from e
    return {"service_id": req.service_id, "product_id": req.product_id, "required_ml": int(req.required_ml)}


@router.get("/services/{service_id}/availability", response_model=AvailabilityReportOut)
async def check_service_availability(service_id: str, service: InventoryService = Depends(get_inventory_service)):
    try:
        report = await service.check_service_availability(service_id)
    except InventoryError as e:
        raise _to_http(e) from e
    return _report_out(report)


# ── Status / alerts ──────────────────────────────


@router.get("/status", response_model=List[ProductLedgerOut])
async def inventory_status(service: InventoryService = Depends(get_inventory_service)):
    try:
        rows = await service.inventory_status()
    except InventoryError as e:
        raise _to_http(e) from e
    return [ledger_to_schema(ledger) for ledger, _ in rows]


@router.get("/alerts", response_model=List[ProductLedgerOut])
async def stock_alerts(service: InventoryService = Depends(get_inventory_service)):
    """Active products whose status is low, critical or out."""
    try:
        rows = await service.alerts()
    except InventoryError as e:
        raise _to_http(e) from e
    return [ledger_to_schema(ledger) for ledger, _ in rows]


@router.get("/products/{product_id}/status", response_model=StockStatusOut)
async def product_status(product_id: UUID, service: InventoryService = Depends(get_inventory_service)):
    try:
        ledger = await service.get_ledger(product_id)
        stock_status = await service.status(product_id)
    except InventoryError as e:
        raise _to_http(e) from e
    return StockStatusOut(product_id=ledger.product_id, name=ledger.name, status=stock_status.value)


# ── History ──────────────────────────────────────


@router.get("/consumption-history", response_model=List[ConsumptionLogOut])
async def consumption_history(
    product_id: Optional[UUID] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    service: InventoryService = Depends(get_inventory_service),
):
    try:
        records = await service.consumption_history(product_id, limit)
    except InventoryError as e:
        raise _to_http(e) from e
    return [consumption_record_to_schema(r) for r in records]


@router.get("/sales/{sale_id}/usage", response_model=List[ConsumptionLogOut])
async def sale_usage(sale_id: str, service: InventoryService = Depends(get_inventory_service)):
    try:
        records = await service.sale_usage(sale_id)
    except InventoryError as e:
        raise _to_http(e) from e
    return [consumption_record_to_schema(r) for r in records]


@router.get("/restock-history", response_model=List[RestockLogOut])
async def restock_history(
    product_id: Optional[UUID] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    service: InventoryService = Depends(get_inventory_service),
):
    try:
        records = await service.restock_history(product_id, limit)
    except InventoryError as e:
        raise _to_http(e) from e
    return [RestockLogOut.model_validate(r) for r in records]
