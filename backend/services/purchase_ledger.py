# services/purchase_ledger.py
"""
Purchase-order ("LO") ledger with FIFO allocation.

remaining() lists approved orders with volume still to deliver, oldest
first. allocate() spreads a delivered volume across them in that order
and either covers the full amount or refuses up front.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from constants.station_config import VOLUME_EPSILON
from models import ApprovalStatus, PurchaseOrderDB
from services.errors import InconsistentState, InsufficientRemainingVolume

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpenOrder:
    id: int
    purchase_volume: float
    delivered_volume: float

    @property
    def remaining_volume(self) -> float:
        return self.purchase_volume - self.delivered_volume

    def as_dict(self):
        return {
            "id": self.id,
            "purchase_volume": self.purchase_volume,
            "delivered_volume": self.delivered_volume,
            "remaining_volume": self.remaining_volume,
        }


@dataclass(frozen=True)
class LedgerSnapshot:
    product_id: int
    orders: List[OpenOrder]
    total_purchase_volume: float = 0.0
    total_delivered_volume: float = 0.0

    @property
    def total_remaining(self) -> float:
        return sum(o.remaining_volume for o in self.orders)

    def as_dict(self):
        return {
            "product_id": self.product_id,
            "total_remaining": self.total_remaining,
            "orders": [o.as_dict() for o in self.orders],
        }


@dataclass(frozen=True)
class Allocation:
    order_id: int
    volume_deducted: float


# ==========================================================
#  PURE FIFO
# ==========================================================

def build_snapshot(product_id: int, rows: Sequence[PurchaseOrderDB]) -> LedgerSnapshot:
    """rows must already be ordered oldest first."""
    orders = []
    total_purchase = 0.0
    total_delivered = 0.0
    for row in rows:
        purchase = float(row.purchase_volume or 0)
        delivered = float(row.delivered_volume or 0)
        total_purchase += purchase
        total_delivered += delivered
        if purchase - delivered > VOLUME_EPSILON:
            orders.append(OpenOrder(id=row.id, purchase_volume=purchase, delivered_volume=delivered))
    return LedgerSnapshot(
        product_id=product_id,
        orders=orders,
        total_purchase_volume=total_purchase,
        total_delivered_volume=total_delivered,
    )


def allocate(delivered_volume: float, orders: Sequence[OpenOrder], product_name: str = None) -> List[Allocation]:
    total_remaining = sum(o.remaining_volume for o in orders)
    if delivered_volume - total_remaining > VOLUME_EPSILON:
        raise InsufficientRemainingVolume(delivered_volume, total_remaining, product_name)

    allocations = []
    to_allocate = delivered_volume
    for order in orders:
        if to_allocate <= VOLUME_EPSILON:
            break
        take = min(to_allocate, order.remaining_volume)
        if take > 0:
            allocations.append(Allocation(order_id=order.id, volume_deducted=take))
            to_allocate -= take
    return allocations


# ==========================================================
#  DATABASE ACCESS
# ==========================================================

async def load_remaining(db: AsyncSession, gas_station_id: int, product_id: int) -> LedgerSnapshot:
    stmt = (
        select(PurchaseOrderDB)
        .where(PurchaseOrderDB.gas_station_id == gas_station_id)
        .where(PurchaseOrderDB.product_id == product_id)
        .where(PurchaseOrderDB.approval_status == ApprovalStatus.APPROVED.value)
        .order_by(PurchaseOrderDB.date.asc(), PurchaseOrderDB.id.asc())
    )
    rows = (await db.execute(stmt)).scalars().all()
    return build_snapshot(product_id, rows)


async def apply_allocations(db: AsyncSession, allocations: Sequence[Allocation]) -> None:
    """
    Increment delivered_volume on each order.

    The UPDATE only matches while the order still has enough volume
    left, so a concurrent writer that got there first makes this fail
    instead of overdrawing the order.
    """
    for a in allocations:
        stmt = (
            update(PurchaseOrderDB)
            .where(PurchaseOrderDB.id == a.order_id)
            .where(
                PurchaseOrderDB.purchase_volume - PurchaseOrderDB.delivered_volume
                >= a.volume_deducted - VOLUME_EPSILON
            )
            .values(delivered_volume=PurchaseOrderDB.delivered_volume + a.volume_deducted)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.rowcount != 1:
            raise InconsistentState(
                f"Purchase order {a.order_id} no longer has {a.volume_deducted:,.0f} L remaining"
            )
        logger.info(f"   ➖ LO {a.order_id}: delivered += {a.volume_deducted:.2f} L")
