import enum

from sqlalchemy import (
    Column, Integer, String, Float, Date, DateTime, Text,
    Index, ForeignKey, Boolean
)
from sqlalchemy.orm import relationship

from database import Base
from utils.datetime_utc import utc_now

# ==========================================================
#  ENUMS
# ==========================================================

class ApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class UnloadKind(str, enum.Enum):
    STANDARD = "STANDARD"
    DEPOSIT_IN_KIND = "DEPOSIT_IN_KIND"


class ShiftStatus(str, enum.Enum):
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"


class ReadingType(str, enum.Enum):
    OPEN = "OPEN"
    CLOSE = "CLOSE"


class AccountCategory(str, enum.Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


# ==========================================================
#  SQLALCHEMY MODELS (Database Tables)
# ==========================================================

class ProductDB(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    gas_station_id = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    purchase_price = Column(Float, nullable=False, default=0)
    selling_price = Column(Float, nullable=False, default=0)

    tanks = relationship("TankDB", back_populates="product")


class TankDB(Base):
    __tablename__ = "tanks"

    id = Column(Integer, primary_key=True, index=True)
    gas_station_id = Column(Integer, nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    name = Column(String, nullable=False)
    code = Column(String, nullable=True)
    capacity = Column(Float, nullable=False)        # liters
    initial_stock = Column(Float, nullable=False, default=0)   # liters, before any reading

    product = relationship("ProductDB", back_populates="tanks")
    nozzles = relationship("NozzleDB", back_populates="tank")


class TankReadingDB(Base):
    __tablename__ = "tank_readings"

    id = Column(Integer, primary_key=True, index=True)
    tank_id = Column(Integer, ForeignKey("tanks.id"), nullable=False, index=True)
    liter_value = Column(Float, nullable=False)     # absolute gauge value, not a delta
    approval_status = Column(String, nullable=False, default=ApprovalStatus.PENDING.value)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_tank_readings_tank_status_created", "tank_id", "approval_status", "created_at"),
    )


class NozzleDB(Base):
    __tablename__ = "nozzles"

    id = Column(Integer, primary_key=True, index=True)
    tank_id = Column(Integer, ForeignKey("tanks.id"), nullable=False, index=True)
    name = Column(String, nullable=True)

    tank = relationship("TankDB", back_populates="nozzles")


class OperatorShiftDB(Base):
    __tablename__ = "operator_shifts"

    id = Column(Integer, primary_key=True, index=True)
    gas_station_id = Column(Integer, nullable=False, index=True)
    operator_id = Column(Integer, nullable=True)
    shift_date = Column(Date, nullable=False, index=True)
    status = Column(String, nullable=False, default=ShiftStatus.STARTED.value)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    nozzle_readings = relationship("NozzleReadingDB", back_populates="shift")


class NozzleReadingDB(Base):
    __tablename__ = "nozzle_readings"

    id = Column(Integer, primary_key=True, index=True)
    shift_id = Column(Integer, ForeignKey("operator_shifts.id"), nullable=False, index=True)
    nozzle_id = Column(Integer, ForeignKey("nozzles.id"), nullable=False, index=True)
    reading_type = Column(String, nullable=False)           # OPEN / CLOSE
    totalizer_reading = Column(Float, nullable=False)
    pump_test = Column(Float, nullable=False, default=0)    # only meaningful on CLOSE
    created_at = Column(DateTime, nullable=False, default=utc_now)

    shift = relationship("OperatorShiftDB", back_populates="nozzle_readings")
    nozzle = relationship("NozzleDB")


class PurchaseOrderDB(Base):
    """Purchase-type ledger transaction ("LO"). delivered_volume only grows."""
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True, index=True)
    gas_station_id = Column(Integer, nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    purchase_volume = Column(Float, nullable=False)
    delivered_volume = Column(Float, nullable=False, default=0)
    date = Column(DateTime, nullable=False, default=utc_now)
    approval_status = Column(String, nullable=False, default=ApprovalStatus.PENDING.value)
    reference_number = Column(String, nullable=True)

    __table_args__ = (
        Index("ix_purchase_orders_fifo", "gas_station_id", "product_id", "approval_status", "date"),
    )


class UnloadDB(Base):
    __tablename__ = "unloads"

    id = Column(Integer, primary_key=True, index=True)
    tank_id = Column(Integer, ForeignKey("tanks.id"), nullable=False, index=True)
    unloader_id = Column(Integer, nullable=False)
    manager_id = Column(Integer, nullable=True)

    kind = Column(String, nullable=False, default=UnloadKind.STANDARD.value)
    depositor_name = Column(String, nullable=True)

    liter_amount = Column(Float, nullable=False)            # physically poured
    delivered_volume = Column(Float, nullable=True)         # deducted from purchase orders
    initial_order_volume = Column(Float, nullable=True)     # legacy mode
    purchase_transaction_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=True)

    invoice_number = Column(String, nullable=True)
    status = Column(String, nullable=False, default=ApprovalStatus.PENDING.value, index=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=True, onupdate=utc_now)
    updated_by_id = Column(Integer, nullable=True)

    tank = relationship("TankDB")


class AccountDB(Base):
    """Chart-of-accounts row, looked up by name per gas station."""
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    gas_station_id = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    category = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utc_now)


class JournalTransactionDB(Base):
    __tablename__ = "journal_transactions"

    id = Column(Integer, primary_key=True, index=True)
    gas_station_id = Column(Integer, nullable=False, index=True)
    transaction_type = Column(String, nullable=False)
    description = Column(String, nullable=True)
    reference_number = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    unload_id = Column(Integer, ForeignKey("unloads.id"), nullable=True, index=True)
    created_by_id = Column(Integer, nullable=True)
    approver_id = Column(Integer, nullable=True)
    date = Column(DateTime, nullable=False, default=utc_now)

    entries = relationship("JournalEntryDB", back_populates="transaction")


class JournalEntryDB(Base):
    __tablename__ = "journal_entries"

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(Integer, ForeignKey("journal_transactions.id"), nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    debit = Column(Float, nullable=False, default=0)
    credit = Column(Float, nullable=False, default=0)
    description = Column(String, nullable=True)

    transaction = relationship("JournalTransactionDB", back_populates="entries")
    account = relationship("AccountDB")
