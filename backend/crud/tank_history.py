# backend/crud/tank_history.py
from collections import defaultdict
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models import (
    ApprovalStatus,
    NozzleDB,
    NozzleReadingDB,
    OperatorShiftDB,
    ShiftStatus,
    TankDB,
    TankReadingDB,
    UnloadDB,
)
from services.stock_reconciler import (
    NozzleReadingPoint,
    ReadingPoint,
    ShiftSales,
    TankHistory,
    UnloadPoint,
    shift_sales_volume,
)


async def get_tank(db: AsyncSession, tank_id: int) -> Optional[TankDB]:
    stmt = (
        select(TankDB)
        .options(selectinload(TankDB.product))
        .where(TankDB.id == tank_id)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def approved_readings(db: AsyncSession, tank_id: int):
    stmt = (
        select(TankReadingDB.liter_value, TankReadingDB.created_at)
        .where(TankReadingDB.tank_id == tank_id)
        .where(TankReadingDB.approval_status == ApprovalStatus.APPROVED.value)
        .order_by(TankReadingDB.created_at.asc())
    )
    rows = (await db.execute(stmt)).all()
    return [ReadingPoint(liter_value=float(r[0]), created_at=r[1]) for r in rows]


async def approved_unloads(db: AsyncSession, tank_id: int, exclude_unload_id: Optional[int] = None):
    stmt = (
        select(UnloadDB.liter_amount, UnloadDB.created_at)
        .where(UnloadDB.tank_id == tank_id)
        .where(UnloadDB.status == ApprovalStatus.APPROVED.value)
    )
    if exclude_unload_id is not None:
        stmt = stmt.where(UnloadDB.id != exclude_unload_id)
    rows = (await db.execute(stmt)).all()
    return [UnloadPoint(liter_amount=float(r[0]), created_at=r[1]) for r in rows]


async def completed_shift_sales(db: AsyncSession, tank_id: int):
    """Sales per completed shift, counting only nozzles attached to this tank."""
    stmt = (
        select(NozzleReadingDB, OperatorShiftDB)
        .join(OperatorShiftDB, NozzleReadingDB.shift_id == OperatorShiftDB.id)
        .join(NozzleDB, NozzleReadingDB.nozzle_id == NozzleDB.id)
        .where(NozzleDB.tank_id == tank_id)
        .where(OperatorShiftDB.status == ShiftStatus.COMPLETED.value)
        .order_by(NozzleReadingDB.created_at.asc(), NozzleReadingDB.id.asc())
    )
    rows = (await db.execute(stmt)).all()

    readings_by_shift = defaultdict(list)
    shifts = {}
    for reading, shift in rows:
        shifts[shift.id] = shift
        readings_by_shift[shift.id].append(
            NozzleReadingPoint(
                nozzle_id=reading.nozzle_id,
                reading_type=reading.reading_type,
                totalizer_reading=float(reading.totalizer_reading or 0),
                pump_test=float(reading.pump_test or 0),
            )
        )

    return [
        ShiftSales(
            shift_id=shift_id,
            shift_date=shifts[shift_id].shift_date,
            created_at=shifts[shift_id].created_at,
            volume=shift_sales_volume(points),
        )
        for shift_id, points in readings_by_shift.items()
    ]


async def load_tank_history(db: AsyncSession, tank: TankDB, exclude_unload_id: Optional[int] = None) -> TankHistory:
    return TankHistory(
        tank_id=tank.id,
        capacity=float(tank.capacity),
        initial_stock=float(tank.initial_stock or 0),
        readings=await approved_readings(db, tank.id),
        unloads=await approved_unloads(db, tank.id, exclude_unload_id),
        shifts=await completed_shift_sales(db, tank.id),
    )
