from datetime import datetime

import pytest
from sqlalchemy import func, select

import models  # noqa: F401
from database import Base, make_engine, make_session_maker
from models import (
    AccountCategory,
    AccountDB,
    ApprovalStatus,
    JournalEntryDB,
    JournalTransactionDB,
    NozzleDB,
    NozzleReadingDB,
    OperatorShiftDB,
    ProductDB,
    PurchaseOrderDB,
    ShiftStatus,
    TankDB,
    TankReadingDB,
    UnloadDB,
    UnloadKind,
)
from services.unload_service import UnloadService

GAS_STATION_ID = 1
PURCHASE_PRICE = 10.0
SELLING_PRICE = 12.0


@pytest.fixture
async def engine(tmp_path):
    eng = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'station.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return make_session_maker(engine)


@pytest.fixture
def service(session_maker):
    return UnloadService(session_factory=session_maker)


class Seeder:
    """Inserts fixture rows directly, bypassing the service rules."""

    def __init__(self, session_maker):
        self.session_maker = session_maker

    async def _add(self, obj):
        async with self.session_maker() as db:
            db.add(obj)
            await db.commit()
            await db.refresh(obj)
        return obj

    async def product(self, name="Pertalite", purchase_price=PURCHASE_PRICE, selling_price=SELLING_PRICE):
        return await self._add(ProductDB(
            gas_station_id=GAS_STATION_ID,
            name=name,
            purchase_price=purchase_price,
            selling_price=selling_price,
        ))

    async def tank(self, product, capacity=10000.0, initial_stock=3000.0, name="Tank 1"):
        return await self._add(TankDB(
            gas_station_id=GAS_STATION_ID,
            product_id=product.id,
            name=name,
            capacity=capacity,
            initial_stock=initial_stock,
        ))

    async def purchase_order(self, product, purchase_volume, delivered_volume=0.0,
                             date=datetime(2026, 1, 1), status=ApprovalStatus.APPROVED,
                             gas_station_id=GAS_STATION_ID):
        return await self._add(PurchaseOrderDB(
            gas_station_id=gas_station_id,
            product_id=product.id,
            purchase_volume=purchase_volume,
            delivered_volume=delivered_volume,
            date=date,
            approval_status=status.value,
        ))

    async def account(self, name, category=AccountCategory.LIABILITY):
        return await self._add(AccountDB(gas_station_id=GAS_STATION_ID, name=name, category=category.value))

    async def pending_unload(self, tank, liter_amount, delivered_volume=None,
                             initial_order_volume=None, kind=UnloadKind.STANDARD, depositor_name=None):
        return await self._add(UnloadDB(
            tank_id=tank.id,
            unloader_id=7,
            kind=kind.value,
            depositor_name=depositor_name,
            liter_amount=liter_amount,
            delivered_volume=delivered_volume,
            initial_order_volume=initial_order_volume,
            status=ApprovalStatus.PENDING.value,
        ))

    async def reading(self, tank, liter_value, created_at, status=ApprovalStatus.APPROVED):
        return await self._add(TankReadingDB(
            tank_id=tank.id,
            liter_value=liter_value,
            approval_status=status.value,
            created_at=created_at,
        ))

    async def completed_shift(self, tank, open_reading, close_reading, shift_date, created_at, pump_test=0.0):
        nozzle = await self._add(NozzleDB(tank_id=tank.id, name="N1"))
        shift = await self._add(OperatorShiftDB(
            gas_station_id=GAS_STATION_ID,
            shift_date=shift_date,
            status=ShiftStatus.COMPLETED.value,
            created_at=created_at,
        ))
        await self._add(NozzleReadingDB(
            shift_id=shift.id, nozzle_id=nozzle.id, reading_type="OPEN",
            totalizer_reading=open_reading, created_at=created_at,
        ))
        await self._add(NozzleReadingDB(
            shift_id=shift.id, nozzle_id=nozzle.id, reading_type="CLOSE",
            totalizer_reading=close_reading, pump_test=pump_test, created_at=created_at,
        ))
        return shift

    # ------------------------------------------------------
    # read-back helpers
    # ------------------------------------------------------
    async def get(self, model, pk):
        async with self.session_maker() as db:
            return await db.get(model, pk)

    async def delivered_volumes(self):
        async with self.session_maker() as db:
            rows = await db.execute(select(PurchaseOrderDB.delivered_volume).order_by(PurchaseOrderDB.id))
            return [r[0] for r in rows.all()]

    async def count(self, model):
        async with self.session_maker() as db:
            return (await db.execute(select(func.count()).select_from(model))).scalar_one()

    async def journal_lines(self, unload_id):
        async with self.session_maker() as db:
            rows = await db.execute(
                select(AccountDB.name, JournalEntryDB.debit, JournalEntryDB.credit)
                .join(JournalTransactionDB, JournalEntryDB.transaction_id == JournalTransactionDB.id)
                .join(AccountDB, JournalEntryDB.account_id == AccountDB.id)
                .where(JournalTransactionDB.unload_id == unload_id)
                .order_by(JournalEntryDB.id)
            )
            return [(name, debit, credit) for name, debit, credit in rows.all()]


@pytest.fixture
def seed(session_maker):
    return Seeder(session_maker)


@pytest.fixture
async def station(seed):
    """One product, one 10,000 L tank holding 3,000 L (never read, never touched)."""
    product = await seed.product()
    tank = await seed.tank(product)
    return product, tank
