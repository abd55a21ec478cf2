import asyncio
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import event, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import OperationalError

from salon_inventory.core.errors import DuplicateProduct, InsufficientStock, StorageFailure, UnknownProduct
from salon_inventory.db.product import Product
from salon_inventory.services.consumption import ConsumptionRequest
from salon_inventory.services.ledger import StockStatus
from salon_inventory.services.records import Correlation

from .conftest import make_ledger


async def _provision(inventory, **kw):
    return await inventory.engine.provision(make_ledger(**kw))


class TestLedgerStore:
    @pytest.mark.asyncio
    async def test_provision_and_read_back(self, sql_inventory):
        created = await _provision(sql_inventory, sealed=4, threshold=1, name="Masque Réparateur", brand="Kérastase")

        stored = await sql_inventory.get_ledger(created.product_id)

        assert stored == created
        assert stored.brand == "Kérastase"
        assert stored.open_container_remaining_ml == 0

    @pytest.mark.asyncio
    async def test_list_is_sorted_and_filters_inactive(self, sql_inventory):
        b = await _provision(sql_inventory, sealed=1, name="Baume")
        a = await _provision(sql_inventory, sealed=1, name="Argile")
        await sql_inventory.engine.deactivate(b.product_id)

        active = await sql_inventory.ledgers.list(active_only=True)
        everything = await sql_inventory.ledgers.list(active_only=False)

        assert [l.name for l in active] == ["Argile"]
        assert {l.product_id for l in everything} == {a.product_id, b.product_id}

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, sql_inventory):
        created = await _provision(sql_inventory, sealed=1)

        with pytest.raises(DuplicateProduct):
            await _provision(sql_inventory, sealed=2, product_id=created.product_id)

    @pytest.mark.asyncio
    async def test_unknown_product(self, sql_inventory):
        with pytest.raises(UnknownProduct):
            await sql_inventory.get_ledger(uuid.uuid4())


class TestConsumption:
    @pytest.mark.asyncio
    async def test_consume_persists_ledger_and_log(self, sql_inventory):
        p = await _provision(sql_inventory, sealed=2)
        corr = Correlation(sale_id="sale-1", service_id="brushing", staff_id="staff-3")

        result = await sql_inventory.engine.consume(p.product_id, 400, corr)

        assert result.containers_opened == 1
        stored = await sql_inventory.get_ledger(p.product_id)
        assert (stored.sealed_containers, stored.open_container_remaining_ml) == (1, 600)

        history = await sql_inventory.consumption_history(p.product_id)
        assert len(history) == 1
        entry = history[0]
        assert entry.ml_consumed == 400
        assert (entry.sealed_containers_before, entry.sealed_containers_after) == (2, 1)
        assert (entry.open_ml_before, entry.open_ml_after) == (0, 600)
        assert entry.correlation == corr

    @pytest.mark.asyncio
    async def test_insufficient_stock_rolls_back(self, sql_inventory):
        p = await _provision(sql_inventory, sealed=1)

        with pytest.raises(InsufficientStock):
            await sql_inventory.engine.consume(p.product_id, 1001)

        assert await sql_inventory.get_ledger(p.product_id) == p
        assert await sql_inventory.consumption_history() == []

    @pytest.mark.asyncio
    async def test_consume_unknown_product(self, sql_inventory):
        with pytest.raises(UnknownProduct):
            await sql_inventory.engine.consume(uuid.uuid4(), 10)

    @pytest.mark.asyncio
    async def test_history_filters_and_sale_usage(self, sql_inventory):
        shampoo = await _provision(sql_inventory, sealed=2, name="Shampoing")
        color = await _provision(sql_inventory, sealed=2, name="Coloration")
        sale = Correlation(sale_id="sale-9")

        await sql_inventory.engine.consume(shampoo.product_id, 30, sale)
        await sql_inventory.engine.consume(color.product_id, 60, sale)
        await sql_inventory.engine.consume(shampoo.product_id, 25)

        shampoo_history = await sql_inventory.consumption_history(shampoo.product_id)
        assert sorted(e.ml_consumed for e in shampoo_history) == [25, 30]
        assert len(await sql_inventory.consumption_history()) == 3
        assert len(await sql_inventory.consumption_history(limit=1)) == 1

        usage = await sql_inventory.sale_usage("sale-9")
        assert {(e.product_id, e.ml_consumed) for e in usage} == {
            (shampoo.product_id, 30),
            (color.product_id, 60),
        }

    @pytest.mark.asyncio
    async def test_batch_is_all_or_nothing(self, sql_inventory):
        p1 = await _provision(sql_inventory, sealed=1, name="P1")
        p2 = await _provision(sql_inventory, sealed=0, name="P2")

        with pytest.raises(InsufficientStock):
            await sql_inventory.engine.consume_batch([
                ConsumptionRequest(p1.product_id, 100),
                ConsumptionRequest(p2.product_id, 1),
            ])

        assert await sql_inventory.get_ledger(p1.product_id) == p1
        assert await sql_inventory.consumption_history() == []


    @pytest.mark.asyncio
    async def test_batch_write_failure_rolls_back_every_product(self, sql_inventory):
        p1 = await _provision(sql_inventory, sealed=1, name="P1")
        p2 = await _provision(sql_inventory, sealed=1, name="P2")
        writes = []

        def fail_second_write(mapper, connection, target):
            writes.append(target.id)
            if len(writes) == 2:
                raise OperationalError("UPDATE products", {}, Exception("disk I/O error"))

        event.listen(Product, "before_update", fail_second_write)
        try:
            with pytest.raises(StorageFailure):
                await sql_inventory.engine.consume_batch([
                    ConsumptionRequest(p1.product_id, 100),
                    ConsumptionRequest(p2.product_id, 100),
                ])
        finally:
            event.remove(Product, "before_update", fail_second_write)

        assert len(writes) == 2
        assert await sql_inventory.get_ledger(p1.product_id) == p1
        assert await sql_inventory.get_ledger(p2.product_id) == p2
        assert await sql_inventory.consumption_history() == []

    @pytest.mark.asyncio
    async def test_batch_commits_every_product(self, sql_inventory):
        p1 = await _provision(sql_inventory, sealed=1, name="P1")
        p2 = await _provision(sql_inventory, sealed=2, name="P2")
        sale = Correlation(sale_id="sale-3")

        await sql_inventory.engine.consume_batch([
            ConsumptionRequest(p1.product_id, 100, sale),
            ConsumptionRequest(p2.product_id, 1500, sale),
        ])

        assert (await sql_inventory.get_ledger(p1.product_id)).total_available_ml == 900
        assert (await sql_inventory.get_ledger(p2.product_id)).total_available_ml == 500
        assert len(await sql_inventory.sale_usage("sale-3")) == 2

    @pytest.mark.asyncio
    async def test_concurrent_consumes_that_fit(self, sql_inventory):
        p = await _provision(sql_inventory, sealed=3)
        amounts = [120, 700, 35, 999, 410, 6]

        results = await asyncio.gather(*(sql_inventory.engine.consume(p.product_id, a) for a in amounts))

        assert all(r.success for r in results)
        assert (await sql_inventory.get_ledger(p.product_id)).total_available_ml == 3000 - sum(amounts)
        assert len(await sql_inventory.consumption_history(p.product_id)) == len(amounts)

    @pytest.mark.asyncio
    async def test_concurrent_consumes_never_oversell(self, sql_inventory):
        p = await _provision(sql_inventory, sealed=1)

        outcomes = await asyncio.gather(
            *(sql_inventory.engine.consume(p.product_id, 300) for _ in range(5)),
            return_exceptions=True,
        )

        succeeded = [o for o in outcomes if not isinstance(o, Exception)]
        failed = [o for o in outcomes if isinstance(o, Exception)]
        assert len(succeeded) == 3
        assert len(failed) == 2 and all(isinstance(e, InsufficientStock) for e in failed)
        assert (await sql_inventory.get_ledger(p.product_id)).total_available_ml == 100
        assert len(await sql_inventory.consumption_history(p.product_id)) == 3


def test_row_lock_is_only_emitted_where_supported():
    # SQLite has no row locks; there the in-process product lock is the only guard
    q = select(Product).where(Product.id == uuid.uuid4()).with_for_update()

    assert "FOR UPDATE" in str(q.compile(dialect=postgresql.dialect()))
    assert "FOR UPDATE" not in str(q.compile(dialect=sqlite.dialect()))


class TestRestockAndCatalog:
    @pytest.mark.asyncio
    async def test_restock_persists_and_logs(self, sql_inventory):
        p = await _provision(sql_inventory, sealed=1)

        result = await sql_inventory.engine.restock(
            p.product_id,
            3,
            supplier="L'Oréal Pro",
            invoice_number="F-2024-118",
            cost_per_container=Decimal("12.50"),
            actor_id="manager",
        )

        assert result.sealed_containers == 4
        assert result.audit_warning is None
        assert (await sql_inventory.get_ledger(p.product_id)).sealed_containers == 4

        history = await sql_inventory.restock_history(p.product_id)
        assert len(history) == 1
        assert history[0].supplier == "L'Oréal Pro"
        assert (history[0].sealed_containers_before, history[0].sealed_containers_after) == (1, 4)
        assert history[0].cost_per_container == Decimal("12.50")

    @pytest.mark.asyncio
    async def test_service_requirements_upsert(self, sql_inventory):
        color = await _provision(sql_inventory, sealed=0, name="Coloration")
        oxidant = await _provision(sql_inventory, sealed=1, name="Oxydant")
        await sql_inventory.services.set_requirement("coloration", color.product_id, 40)
        await sql_inventory.services.set_requirement("coloration", color.product_id, 60)
        await sql_inventory.services.set_requirement("coloration", oxidant.product_id, 90)

        requirements = await sql_inventory.service_requirements("coloration")
        report = await sql_inventory.check_service_availability("coloration")

        assert {(r.product_id, r.required_ml) for r in requirements} == {
            (color.product_id, 60),
            (oxidant.product_id, 90),
        }
        assert report.all_satisfiable is False
        assert [s.product_id for s in report.shortfalls] == [color.product_id]

    @pytest.mark.asyncio
    async def test_deactivate_hides_from_status_but_keeps_quantities(self, sql_inventory):
        p = await _provision(sql_inventory, sealed=0, name="Ancien Gel")
        await _provision(sql_inventory, sealed=3, threshold=1, name="Gel Fixant")

        await sql_inventory.engine.deactivate(p.product_id)

        status = await sql_inventory.inventory_status()
        assert [(l.name, s) for l, s in status] == [("Gel Fixant", StockStatus.GOOD)]
        assert await sql_inventory.alerts() == []
        stored = await sql_inventory.get_ledger(p.product_id)
        assert stored.is_active is False
