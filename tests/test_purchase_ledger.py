"""
Tests for services.purchase_ledger: FIFO allocation over purchase orders.
"""

from datetime import datetime
from types import SimpleNamespace

import pytest

from services.errors import InsufficientRemainingVolume
from services.purchase_ledger import (
    Allocation,
    OpenOrder,
    allocate,
    apply_allocations,
    build_snapshot,
    load_remaining,
)
from models import ApprovalStatus


def _orders(*remaining):
    return [OpenOrder(id=i + 1, purchase_volume=r, delivered_volume=0.0) for i, r in enumerate(remaining)]


class TestAllocate:
    def test_oldest_first(self):
        allocations = allocate(120.0, _orders(100.0, 50.0))
        assert allocations == [Allocation(1, 100.0), Allocation(2, 20.0)]

    def test_single_order_covers_all(self):
        assert allocate(40.0, _orders(100.0, 50.0)) == [Allocation(1, 40.0)]

    def test_exact_total_allowed(self):
        allocations = allocate(150.0, _orders(100.0, 50.0))
        assert sum(a.volume_deducted for a in allocations) == pytest.approx(150.0)

    def test_insufficient_rejected_up_front(self):
        with pytest.raises(InsufficientRemainingVolume, match="short by 40") as exc:
            allocate(120.0, _orders(80.0), product_name="Solar")
        assert exc.value.shortfall == pytest.approx(40.0)
        assert "Solar" in exc.value.message


class TestBuildSnapshot:
    def test_closed_orders_dropped_from_list_but_kept_in_totals(self):
        rows = [
            SimpleNamespace(id=1, purchase_volume=100.0, delivered_volume=100.0),
            SimpleNamespace(id=2, purchase_volume=50.0, delivered_volume=20.0),
        ]
        snapshot = build_snapshot(9, rows)
        assert [o.id for o in snapshot.orders] == [2]
        assert snapshot.total_remaining == pytest.approx(30.0)
        assert snapshot.total_purchase_volume == pytest.approx(150.0)
        assert snapshot.total_delivered_volume == pytest.approx(120.0)


class TestLedgerDatabase:
    async def test_remaining_only_approved_orders_oldest_first(self, seed, session_maker):
        product = await seed.product()
        newer = await seed.purchase_order(product, 50.0, date=datetime(2026, 2, 1))
        older = await seed.purchase_order(product, 100.0, date=datetime(2026, 1, 1))
        await seed.purchase_order(product, 999.0, status=ApprovalStatus.PENDING)

        async with session_maker() as db:
            snapshot = await load_remaining(db, product.gas_station_id, product.id)

        assert [o.id for o in snapshot.orders] == [older.id, newer.id]
        assert snapshot.total_remaining == pytest.approx(150.0)

    async def test_apply_allocations_leaves_thirty(self, seed, session_maker):
        product = await seed.product()
        await seed.purchase_order(product, 100.0, date=datetime(2026, 1, 1))
        await seed.purchase_order(product, 50.0, date=datetime(2026, 1, 2))

        async with session_maker() as db:
            snapshot = await load_remaining(db, product.gas_station_id, product.id)
            await apply_allocations(db, allocate(120.0, snapshot.orders))
            await db.commit()

        assert await seed.delivered_volumes() == [100.0, 20.0]
        async with session_maker() as db:
            snapshot = await load_remaining(db, product.gas_station_id, product.id)
        assert [o.remaining_volume for o in snapshot.orders] == [30.0]
