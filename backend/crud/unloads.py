# backend/crud/unloads.py
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models import ApprovalStatus, PurchaseOrderDB, TankDB, UnloadDB
from utils.datetime_utc import utc_now


async def get_unload(db: AsyncSession, unload_id: int, for_update: bool = False) -> Optional[UnloadDB]:
    stmt = (
        select(UnloadDB)
        .options(selectinload(UnloadDB.tank).selectinload(TankDB.product))
        .where(UnloadDB.id == unload_id)
    )
    if for_update:
        # row lock on engines that support it, ignored by SQLite
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_purchase_order(db: AsyncSession, order_id: int) -> Optional[PurchaseOrderDB]:
    return (
        await db.execute(select(PurchaseOrderDB).where(PurchaseOrderDB.id == order_id))
    ).scalar_one_or_none()


async def insert_unload(db: AsyncSession, **fields) -> UnloadDB:
    unload = UnloadDB(status=ApprovalStatus.PENDING.value, **fields)
    db.add(unload)
    await db.flush()
    await db.refresh(unload)
    return unload


async def transition_status(db: AsyncSession, unload_id: int, new_status: ApprovalStatus, manager_id: int) -> bool:
    """
    PENDING -> new_status as a compare-and-set.
    Returns False when the row is no longer PENDING.
    """
    stmt = (
        update(UnloadDB)
        .where(UnloadDB.id == unload_id)
        .where(UnloadDB.status == ApprovalStatus.PENDING.value)
        .values(
            status=new_status.value,
            manager_id=manager_id,
            updated_by_id=manager_id,
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def set_order_reference(db: AsyncSession, unload_id: int, purchase_transaction_id: int,
                              initial_order_volume: Optional[float] = None) -> None:
    values = {"purchase_transaction_id": purchase_transaction_id}
    if initial_order_volume is not None:
        values["initial_order_volume"] = initial_order_volume
    await db.execute(
        update(UnloadDB)
        .where(UnloadDB.id == unload_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


async def list_by_gas_station(db: AsyncSession, gas_station_id: int, pending: bool):
    stmt = (
        select(UnloadDB)
        .join(TankDB, UnloadDB.tank_id == TankDB.id)
        .where(TankDB.gas_station_id == gas_station_id)
    )
    if pending:
        stmt = stmt.where(UnloadDB.status == ApprovalStatus.PENDING.value)
    else:
        stmt = stmt.where(UnloadDB.status != ApprovalStatus.PENDING.value)
    stmt = stmt.order_by(UnloadDB.created_at.desc(), UnloadDB.id.desc())
    return (await db.execute(stmt)).scalars().all()


async def tanks_by_ids(db: AsyncSession, gas_station_id: int, tank_ids):
    stmt = (
        select(TankDB)
        .where(TankDB.id.in_(list(tank_ids)))
        .where(TankDB.gas_station_id == gas_station_id)
    )
    return (await db.execute(stmt)).scalars().all()


async def update_pending(db: AsyncSession, unload_id: int, updated_by_id: int, changes: dict) -> bool:
    """Apply edits only while the unload is still PENDING."""
    stmt = (
        update(UnloadDB)
        .where(UnloadDB.id == unload_id)
        .where(UnloadDB.status == ApprovalStatus.PENDING.value)
        .values(updated_by_id=updated_by_id, updated_at=utc_now(), **changes)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1
