import pytest

from salon_inventory.core.errors import InsufficientStock
from salon_inventory.services.ledger import (
    StockStatus,
    classify,
    classify_all,
    plan_batch,
    plan_consumption,
    plan_deactivation,
    plan_restock,
)

from .conftest import make_ledger

# Best to worst
SEVERITY = [StockStatus.GOOD, StockStatus.LOW, StockStatus.CRITICAL, StockStatus.OUT]


class TestPlanConsumption:
    def test_opens_one_bottle_when_open_remainder_is_short(self):
        ledger = make_ledger(sealed=2, open_ml=300)

        plan = plan_consumption(ledger, 400)

        assert plan.containers_opened == 1
        assert plan.after.sealed_containers == 1
        assert plan.after.open_container_remaining_ml == 900
        assert plan.after.total_available_ml == 1900
        assert plan.consumed_ml == 400

    def test_exact_drain_of_open_bottle_opens_nothing(self):
        ledger = make_ledger(sealed=0, open_ml=150)

        plan = plan_consumption(ledger, 150)

        assert plan.containers_opened == 0
        assert plan.after.sealed_containers == 0
        assert plan.after.open_container_remaining_ml == 0

    def test_insufficient_stock_raises_with_amounts(self):
        ledger = make_ledger(sealed=0, open_ml=100)

        with pytest.raises(InsufficientStock) as exc:
            plan_consumption(ledger, 150)

        assert exc.value.required_ml == 150
        assert exc.value.available_ml == 100
        assert "Shampoing Premium" in str(exc.value)
        assert "Available: 100ml, Required: 150ml" in str(exc.value)

    def test_request_within_open_bottle_opens_nothing(self):
        ledger = make_ledger(sealed=5, open_ml=250)

        plan = plan_consumption(ledger, 249)

        assert plan.containers_opened == 0
        assert plan.after.sealed_containers == 5
        assert plan.after.open_container_remaining_ml == 1

    def test_opens_several_bottles_for_large_request(self):
        ledger = make_ledger(sealed=4, open_ml=200)

        plan = plan_consumption(ledger, 2500)

        # 200 from the open bottle, then 1000 + 1000 + 300
        assert plan.containers_opened == 3
        assert plan.after.sealed_containers == 1
        assert plan.after.open_container_remaining_ml == 700

    def test_new_bottle_fully_used_leaves_no_open_remainder(self):
        ledger = make_ledger(sealed=2, open_ml=0)

        plan = plan_consumption(ledger, 1000)

        assert plan.containers_opened == 1
        assert plan.after.sealed_containers == 1
        assert plan.after.open_container_remaining_ml == 0

        # A following request starts by opening a fresh bottle
        nxt = plan_consumption(plan.after, 1)
        assert nxt.containers_opened == 1
        assert nxt.after.open_container_remaining_ml == 999

    def test_consume_everything(self):
        ledger = make_ledger(sealed=2, open_ml=50)

        plan = plan_consumption(ledger, 2050)

        assert plan.after.sealed_containers == 0
        assert plan.after.open_container_remaining_ml == 0
        assert plan.after.total_available_ml == 0

    def test_zero_is_a_no_op(self):
        ledger = make_ledger(sealed=0, open_ml=0)

        plan = plan_consumption(ledger, 0)

        assert plan.after == ledger
        assert plan.containers_opened == 0

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            plan_consumption(make_ledger(sealed=1), -1)

    def test_fractional_amount_rejected(self):
        ledger = make_ledger(sealed=1, open_ml=10)

        with pytest.raises(ValueError):
            plan_consumption(ledger, 0.9)
        with pytest.raises(ValueError):
            plan_consumption(ledger, -0.5)

    def test_integral_float_accepted(self):
        plan = plan_consumption(make_ledger(sealed=1, open_ml=10), 10.0)

        assert plan.consumed_ml == 10
        assert plan.after.open_container_remaining_ml == 0

    def test_conservation_over_a_sequence(self):
        ledger = make_ledger(sealed=3, open_ml=420)
        start = ledger.total_available_ml
        amounts = [30, 500, 999, 1, 1000, 640]

        for amount in amounts:
            ledger = plan_consumption(ledger, amount).after
            assert ledger.total_available_ml >= 0
            assert 0 <= ledger.open_container_remaining_ml <= ledger.container_capacity_ml

        assert ledger.total_available_ml == start - sum(amounts)

    def test_input_snapshot_is_not_modified(self):
        ledger = make_ledger(sealed=2, open_ml=300)

        plan_consumption(ledger, 400)

        assert ledger.sealed_containers == 2
        assert ledger.open_container_remaining_ml == 300


class TestLedgerInvariants:
    def test_open_remainder_cannot_exceed_capacity(self):
        with pytest.raises(ValueError):
            make_ledger(sealed=1, open_ml=1001)

    def test_negative_sealed_rejected(self):
        with pytest.raises(ValueError):
            make_ledger(sealed=-1)

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            make_ledger(capacity=0)


class TestRestockAndDeactivate:
    def test_restock_only_touches_sealed(self):
        ledger = make_ledger(sealed=1, open_ml=400)

        plan = plan_restock(ledger, 3)

        assert plan.after.sealed_containers == 4
        assert plan.after.open_container_remaining_ml == 400
        assert plan.containers_added == 3

    def test_restock_requires_positive_count(self):
        with pytest.raises(ValueError):
            plan_restock(make_ledger(sealed=1), 0)

    def test_deactivation_keeps_quantities(self):
        ledger = make_ledger(sealed=2, open_ml=10)

        update = plan_deactivation(ledger)

        assert update.after.is_active is False
        assert update.after.total_available_ml == ledger.total_available_ml


class TestClassify:
    def test_low_when_sealed_at_or_below_threshold(self):
        assert classify(make_ledger(sealed=2, open_ml=0, threshold=2)) is StockStatus.LOW
        assert classify(make_ledger(sealed=1, open_ml=500, threshold=2)) is StockStatus.LOW

    def test_one_above_threshold_is_good(self):
        assert classify(make_ledger(sealed=3, open_ml=0, threshold=2)) is StockStatus.GOOD

    def test_out_when_nothing_left(self):
        assert classify(make_ledger(sealed=0, open_ml=0)) is StockStatus.OUT

    def test_critical_when_only_open_bottle_left(self):
        assert classify(make_ledger(sealed=0, open_ml=5, threshold=2)) is StockStatus.CRITICAL

    def test_good(self):
        assert classify(make_ledger(sealed=10, open_ml=0, threshold=2)) is StockStatus.GOOD

    def test_zero_threshold_never_low(self):
        assert classify(make_ledger(sealed=1, open_ml=0, threshold=0)) is StockStatus.GOOD

    def test_idempotent(self):
        ledger = make_ledger(sealed=1, open_ml=300, threshold=1)
        assert classify(ledger) is classify(ledger)

    def test_never_improves_while_consuming(self):
        ledger = make_ledger(sealed=4, open_ml=0, threshold=2)
        previous = classify(ledger)

        while ledger.total_available_ml > 0:
            ledger = plan_consumption(ledger, min(350, ledger.total_available_ml)).after
            current = classify(ledger)
            assert SEVERITY.index(current) >= SEVERITY.index(previous)
            previous = current

        assert previous is StockStatus.OUT

    def test_classify_all_drops_good(self):
        good = make_ledger(sealed=5, threshold=1, name="A")
        low = make_ledger(sealed=1, threshold=1, name="B")
        out = make_ledger(sealed=0, open_ml=0, name="C")

        alerts = classify_all([good, low, out])

        assert [(l.name, s) for l, s in alerts] == [("B", StockStatus.LOW), ("C", StockStatus.OUT)]


class TestPlanBatch:
    def test_lines_for_one_product_are_applied_in_order(self):
        p = make_ledger(sealed=1, open_ml=100)

        batch = plan_batch({p.product_id: p}, [(p.product_id, 60), (p.product_id, 60)])

        assert [plan.containers_opened for plan in batch.plans] == [0, 1]
        assert batch.plans[1].before == batch.plans[0].after
        assert batch.after[p.product_id].total_available_ml == 980

    def test_summed_shortfall_reports_the_total(self):
        p = make_ledger(sealed=0, open_ml=100, name="Laque")

        with pytest.raises(InsufficientStock) as exc:
            plan_batch({p.product_id: p}, [(p.product_id, 60), (p.product_id, 60)])

        assert (exc.value.required_ml, exc.value.available_ml) == (120, 100)

    def test_first_short_product_is_reported(self):
        a = make_ledger(sealed=1, name="A")
        b = make_ledger(sealed=0, open_ml=5, name="B")
        c = make_ledger(sealed=0, open_ml=0, name="C")
        ledgers = {l.product_id: l for l in (a, b, c)}

        with pytest.raises(InsufficientStock) as exc:
            plan_batch(ledgers, [(a.product_id, 10), (b.product_id, 10), (c.product_id, 10)])

        assert exc.value.product_id == b.product_id

    def test_untouched_inputs(self):
        a = make_ledger(sealed=2, open_ml=0, name="A")
        b = make_ledger(sealed=0, open_ml=400, name="B")

        batch = plan_batch({a.product_id: a, b.product_id: b}, [(a.product_id, 1500), (b.product_id, 0)])

        assert batch.after[a.product_id].sealed_containers == 0
        assert batch.after[a.product_id].open_container_remaining_ml == 500
        assert batch.after[b.product_id] == b
        assert a.sealed_containers == 2

    def test_fractional_line_rejected(self):
        p = make_ledger(sealed=1)

        with pytest.raises(ValueError):
            plan_batch({p.product_id: p}, [(p.product_id, 2.5)])
