# services/stock_reconciler.py
"""
Tank stock reconciliation - pure computation, no database access.

There is no stored "current stock". It is rebuilt from the tank's
approved gauge readings, approved unloads and completed-shift sales
through an ordered chain of sources, each one a fallback for the
previous:

    1. today_close    - latest approved reading of today (2+ readings today)
    2. today_open     - the single/earliest reading of today + today's deltas
    3. last_reading   - latest historical reading + deltas since it
    4. initial_stock  - tank.initial_stock + all deltas ever

    stock = baseline + sum(unload liters) - sum(shift sales)
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from constants.station_config import LOW_STOCK_THRESHOLD_PERCENT
from models import ReadingType
from utils.datetime_utc import day_range_utc, is_same_utc_day

logger = logging.getLogger(__name__)


# ==========================================================
#  INPUT SNAPSHOTS
# ==========================================================

@dataclass(frozen=True)
class ReadingPoint:
    liter_value: float
    created_at: datetime


@dataclass(frozen=True)
class UnloadPoint:
    liter_amount: float
    created_at: datetime


@dataclass(frozen=True)
class ShiftSales:
    shift_id: int
    shift_date: date
    created_at: datetime
    volume: float


@dataclass(frozen=True)
class NozzleReadingPoint:
    nozzle_id: int
    reading_type: str
    totalizer_reading: float
    pump_test: float = 0.0


@dataclass
class TankHistory:
    """Everything the reconciler needs for one tank (approved / completed rows only)."""
    tank_id: int
    capacity: float
    initial_stock: float
    readings: List[ReadingPoint] = field(default_factory=list)
    unloads: List[UnloadPoint] = field(default_factory=list)
    shifts: List[ShiftSales] = field(default_factory=list)


@dataclass(frozen=True)
class StockResult:
    liters: float
    source: str
    baseline: float
    unloads: float = 0.0
    sales: float = 0.0
    clamped: bool = False


# ==========================================================
#  SHIFT SALES (TOTALIZER DIFFERENCES)
# ==========================================================

def sales_from_readings(open_reading: float, close_reading: float, pump_test: float = 0.0) -> float:
    """close - open - pump test, never negative (meter reset)."""
    return max(0.0, float(close_reading) - float(open_reading) - float(pump_test or 0))


def _pair_by_nozzle(readings: Iterable[NozzleReadingPoint]) -> Dict[int, Dict[str, NozzleReadingPoint]]:
    pairs: Dict[int, Dict[str, NozzleReadingPoint]] = {}
    for r in readings:
        slot = pairs.setdefault(r.nozzle_id, {})
        if r.reading_type == ReadingType.OPEN.value:
            slot["open"] = r
        elif r.reading_type == ReadingType.CLOSE.value:
            slot["close"] = r
    return pairs


def shift_sales_volume(readings: Iterable[NozzleReadingPoint]) -> float:
    """
    Sales of one shift over the given nozzles.

    Readings are grouped per nozzle into OPEN/CLOSE pairs; a nozzle
    without both sides contributes nothing. Pump test liters are
    taken from the CLOSE reading.
    """
    total = 0.0
    for pair in _pair_by_nozzle(readings).values():
        if "open" in pair and "close" in pair:
            total += sales_from_readings(
                pair["open"].totalizer_reading,
                pair["close"].totalizer_reading,
                pair["close"].pump_test,
            )
    return total


def shift_pump_test_volume(readings: Iterable[NozzleReadingPoint]) -> float:
    total = 0.0
    for pair in _pair_by_nozzle(readings).values():
        if "open" in pair and "close" in pair:
            total += float(pair["close"].pump_test or 0)
    return total


# ==========================================================
#  DELTAS
# ==========================================================

def stock_by_calculation(stock_open: float, unloads: float, sales: float, pump_test: float = 0.0) -> float:
    return stock_open + unloads - (sales + pump_test)


def _sum_unloads(unloads: Iterable[UnloadPoint], since: Optional[datetime] = None) -> float:
    return sum(u.liter_amount for u in unloads if since is None or u.created_at >= since)


def _sum_sales(shifts: Iterable[ShiftSales], keep: Callable[[ShiftSales], bool]) -> float:
    return sum(s.volume for s in shifts if keep(s))


# ==========================================================
#  SOURCE CHAIN
# ==========================================================

def _todays_readings(history: TankHistory, now: datetime) -> List[ReadingPoint]:
    start, end = day_range_utc(now)
    return sorted(
        (r for r in history.readings if start <= r.created_at <= end),
        key=lambda r: r.created_at,
    )


def from_today_close(history: TankHistory, now: datetime) -> Optional[StockResult]:
    today = _todays_readings(history, now)
    if len(today) < 2:
        return None
    latest = today[-1]
    return StockResult(liters=latest.liter_value, source="today_close", baseline=latest.liter_value)


def from_today_open(history: TankHistory, now: datetime) -> Optional[StockResult]:
    today = _todays_readings(history, now)
    if not today:
        return None
    opening = today[0]
    unloads = _sum_unloads(history.unloads, since=opening.created_at)
    sales = _sum_sales(history.shifts, lambda s: is_same_utc_day(s.shift_date, now))
    return StockResult(
        liters=stock_by_calculation(opening.liter_value, unloads, sales),
        source="today_open",
        baseline=opening.liter_value,
        unloads=unloads,
        sales=sales,
    )


def from_last_reading(history: TankHistory, now: datetime) -> Optional[StockResult]:
    past = [r for r in history.readings if r.created_at <= now]
    if not past:
        return None
    latest = max(past, key=lambda r: r.created_at)
    unloads = _sum_unloads(history.unloads, since=latest.created_at)
    sales = _sum_sales(history.shifts, lambda s: s.created_at >= latest.created_at)
    return StockResult(
        liters=stock_by_calculation(latest.liter_value, unloads, sales),
        source="last_reading",
        baseline=latest.liter_value,
        unloads=unloads,
        sales=sales,
    )


def from_initial_stock(history: TankHistory, now: datetime) -> Optional[StockResult]:
    baseline = float(history.initial_stock or 0)
    unloads = _sum_unloads(history.unloads)
    sales = _sum_sales(history.shifts, lambda s: True)
    return StockResult(
        liters=stock_by_calculation(baseline, unloads, sales),
        source="initial_stock",
        baseline=baseline,
        unloads=unloads,
        sales=sales,
    )


STOCK_SOURCES: Sequence[Callable[[TankHistory, datetime], Optional[StockResult]]] = (
    from_today_close,
    from_today_open,
    from_last_reading,
    from_initial_stock,
)


def compute_current_stock(history: TankHistory, now: datetime) -> StockResult:
    """
    Walk STOCK_SOURCES in order and return the first answer,
    bounded to [0, capacity].
    """
    for source in STOCK_SOURCES:
        result = source(history, now)
        if result is not None:
            break

    bounded = min(max(result.liters, 0.0), float(history.capacity))
    if bounded != result.liters:
        logger.warning(
            f"⚠ Tank {history.tank_id}: computed stock {result.liters:.2f} L "
            f"({result.source}) outside [0, {history.capacity:.0f}], clamped to {bounded:.2f} L"
        )
        result = StockResult(
            liters=bounded,
            source=result.source,
            baseline=result.baseline,
            unloads=result.unloads,
            sales=result.sales,
            clamped=True,
        )
    return result


# ==========================================================
#  DERIVED FIGURES
# ==========================================================

def fill_percentage(current_stock: float, capacity: float) -> float:
    if capacity <= 0:
        return 0.0
    return (current_stock / capacity) * 100


def is_critically_low(current_stock: float, capacity: float,
                      threshold: float = LOW_STOCK_THRESHOLD_PERCENT) -> bool:
    return fill_percentage(current_stock, capacity) < threshold


def variance(tank_reading: Optional[float], computed_stock: float) -> Optional[float]:
    """Physical minus system; negative means loss."""
    if tank_reading is None:
        return None
    return tank_reading - computed_stock
