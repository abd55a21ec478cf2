from typing import Dict

from ..db.consumption_log import ConsumptionLogEntry
from ..db.product import Product
from ..db.restock_log import RestockEntry
from ..services.ledger import ProductLedger, classify
from ..services.records import ConsumptionLogRecord, Correlation, RestockRecord
from .units import containers, ml


def product_to_ledger(product: Product) -> ProductLedger:
    """Convert SQLAlchemy model to an immutable ledger snapshot"""
    return ProductLedger(
        product_id=product.id,
        name=product.name,
        brand=product.brand,
        category=product.category,
        container_capacity_ml=ml(product.container_capacity_ml),
        sealed_containers=containers(product.sealed_containers or 0),
        open_container_remaining_ml=ml(product.open_container_remaining_ml or 0),
        min_threshold=containers(product.min_threshold or 0),
        is_active=bool(product.is_active),
    )


def ledger_to_model_data(ledger: ProductLedger) -> Dict:
    """Convert a ledger snapshot to a dict for model creation"""
    return {
        "id": ledger.product_id,
        "name": ledger.name,
        "brand": ledger.brand,
        "category": ledger.category,
        "container_capacity_ml": int(ledger.container_capacity_ml),
        "sealed_containers": int(ledger.sealed_containers),
        "open_container_remaining_ml": int(ledger.open_container_remaining_ml),
        "min_threshold": int(ledger.min_threshold),
        "is_active": ledger.is_active,
    }


def ledger_to_schema(ledger: ProductLedger) -> Dict:
    """Ledger snapshot plus derived total and stock status, for API output"""
    return {
        "id": ledger.product_id,
        "name": ledger.name,
        "brand": ledger.brand,
        "category": ledger.category,
        "container_capacity_ml": int(ledger.container_capacity_ml),
        "sealed_containers": int(ledger.sealed_containers),
        "open_container_remaining_ml": int(ledger.open_container_remaining_ml),
        "total_available_ml": int(ledger.total_available_ml),
        "min_threshold": int(ledger.min_threshold),
        "is_active": ledger.is_active,
        "stock_status": classify(ledger).value,
    }


def consumption_entry_to_record(entry: ConsumptionLogEntry) -> ConsumptionLogRecord:
    return ConsumptionLogRecord(
        id=entry.id,
        product_id=entry.product_id,
        consumption_type=entry.consumption_type,
        ml_consumed=ml(entry.ml_consumed),
        containers_opened=containers(entry.containers_opened),
        sealed_containers_before=containers(entry.sealed_containers_before),
        sealed_containers_after=containers(entry.sealed_containers_after),
        open_ml_before=ml(entry.open_ml_before),
        open_ml_after=ml(entry.open_ml_after),
        correlation=Correlation(
            sale_id=entry.sale_id,
            service_id=entry.service_id,
            staff_id=entry.staff_id,
        ),
        created_at=entry.created_at,
    )


def record_to_consumption_entry(record: ConsumptionLogRecord) -> ConsumptionLogEntry:
    return ConsumptionLogEntry(
        id=record.id,
        product_id=record.product_id,
        consumption_type=record.consumption_type,
        ml_consumed=int(record.ml_consumed),
        containers_opened=int(record.containers_opened),
        sealed_containers_before=int(record.sealed_containers_before),
        sealed_containers_after=int(record.sealed_containers_after),
        open_ml_before=int(record.open_ml_before),
        open_ml_after=int(record.open_ml_after),
        sale_id=record.correlation.sale_id,
        service_id=record.correlation.service_id,
        staff_id=record.correlation.staff_id,
        created_at=record.created_at,
    )


def restock_entry_to_record(entry: RestockEntry) -> RestockRecord:
    return RestockRecord(
        id=entry.id,
        product_id=entry.product_id,
        containers_added=containers(entry.containers_added),
        sealed_containers_before=containers(entry.sealed_containers_before),
        sealed_containers_after=containers(entry.sealed_containers_after),
        supplier=entry.supplier,
        invoice_number=entry.invoice_number,
        cost_per_container=entry.cost_per_container,
        notes=entry.notes,
        actor_id=entry.actor_id,
        created_at=entry.created_at,
    )


def record_to_restock_entry(record: RestockRecord) -> RestockEntry:
    return RestockEntry(
        id=record.id,
        product_id=record.product_id,
        containers_added=int(record.containers_added),
        sealed_containers_before=int(record.sealed_containers_before),
        sealed_containers_after=int(record.sealed_containers_after),
        supplier=record.supplier,
        invoice_number=record.invoice_number,
        cost_per_container=record.cost_per_container,
        notes=record.notes,
        actor_id=record.actor_id,
        created_at=record.created_at,
    )


def consumption_record_to_schema(record: ConsumptionLogRecord) -> Dict:
    return {
        "id": record.id,
        "product_id": record.product_id,
        "consumption_type": record.consumption_type,
        "ml_consumed": int(record.ml_consumed),
        "containers_opened": int(record.containers_opened),
        "sealed_containers_before": int(record.sealed_containers_before),
        "sealed_containers_after": int(record.sealed_containers_after),
        "open_ml_before": int(record.open_ml_before),
        "open_ml_after": int(record.open_ml_after),
        "sale_id": record.correlation.sale_id,
        "service_id": record.correlation.service_id,
        "staff_id": record.correlation.staff_id,
        "created_at": record.created_at,
    }
