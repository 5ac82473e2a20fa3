# services/unload_service.py
"""
Unload (fuel delivery) approval workflow

    PENDING --approve--> APPROVED
    PENDING --reject---> REJECTED

create/update validate against an advisory snapshot (stock + LO).
approve/reject re-check everything inside one TransactionCoordinator
unit: status compare-and-set, FIFO LO deduction, journal.
Capacity is gated at create/update only.
Every public method returns an ActionResult, never raises.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Union

from pydantic import ValidationError

from constants.station_config import DEPOSIT_IN_KIND_NOTE, VOLUME_EPSILON
from crud import tank_history, unloads as unload_crud
from database import AsyncSessionLocal
from models import ApprovalStatus, UnloadDB, UnloadKind
from schemas.result import ActionResult, field_errors
from schemas.unload import (
    DepositInKindCreate,
    LedgerRemainingOut,
    TankStockOut,
    UnloadCreate,
    UnloadOut,
    UnloadUpdate,
)
from services import purchase_ledger
from services.errors import (
    AlreadyProcessed,
    CapacityExceeded,
    DeliveredVolumeRequired,
    InconsistentState,
    InputValidationError,
    InsufficientRemainingVolume,
    JournalPostingError,
    NotFoundError,
    StationError,
)
from services.journal_posting import (
    DatabaseJournalPoster,
    JournalPostingService,
    PostingContext,
    delivery_entries,
    deposit_in_kind_entries,
    legacy_shrinkage_entries,
    require_deposit_account,
)
from services.stock_reconciler import compute_current_stock, fill_percentage, is_critically_low
from services.transaction_coordinator import TransactionContext, TransactionCoordinator
from utils.datetime_utc import utc_now

logger = logging.getLogger(__name__)


# ==========================================================
#  DELIVERY MODE
# ==========================================================

@dataclass(frozen=True)
class ByRemainingVolume:
    amount: float


@dataclass(frozen=True)
class LegacyByInitialOrder:
    amount: float


@dataclass(frozen=True)
class MissingDeliveredVolume:
    pass


DeliveryMode = Union[ByRemainingVolume, LegacyByInitialOrder, MissingDeliveredVolume]


def delivery_mode(unload: UnloadDB) -> DeliveryMode:
    if unload.delivered_volume and unload.delivered_volume > 0:
        return ByRemainingVolume(float(unload.delivered_volume))
    if unload.initial_order_volume and unload.initial_order_volume > 0:
        return LegacyByInitialOrder(float(unload.initial_order_volume))
    return MissingDeliveredVolume()


# ==========================================================
#  ENVELOPE
# ==========================================================

def returns_envelope(failure_message: str):
    """Turn domain errors into a failed ActionResult; log anything unexpected."""
    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> ActionResult:
            try:
                return await fn(*args, **kwargs)
            except ValidationError as e:
                return ActionResult.fail(InputValidationError("Validation failed", errors=field_errors(e)))
            except StationError as e:
                logger.warning(f"⚠ {fn.__name__}: {e.code} - {e.message}")
                return ActionResult.fail(e)
            except Exception:
                logger.exception(f"❌ {fn.__name__} failed")
                return ActionResult(success=False, message=failure_message)
        return wrapper
    return decorator


def _parse(schema, payload):
    return payload if isinstance(payload, schema) else schema.model_validate(payload)


def _unload_out(unload: UnloadDB) -> dict:
    return UnloadOut.model_validate(unload).model_dump()


class UnloadService:

    def __init__(
        self,
        session_factory=AsyncSessionLocal,
        journal: Optional[JournalPostingService] = None,
        coordinator: Optional[TransactionCoordinator] = None,
        clock=utc_now,
    ):
        self.session_factory = session_factory
        self.journal = journal or DatabaseJournalPoster()
        self.coordinator = coordinator or TransactionCoordinator(session_factory)
        self.clock = clock

    # ------------------------------------------------------
    # shared checks
    # ------------------------------------------------------
    async def _load_tank(self, db, tank_id: int):
        tank = await tank_history.get_tank(db, tank_id)
        if not tank:
            raise NotFoundError(f"Tank {tank_id} not found")
        return tank

    async def _check_capacity(self, db, tank, liter_amount: float, exclude_unload_id: Optional[int] = None):
        history = await tank_history.load_tank_history(db, tank, exclude_unload_id)
        stock = compute_current_stock(history, self.clock())
        if stock.liters + liter_amount > float(tank.capacity) + VOLUME_EPSILON:
            raise CapacityExceeded(stock.liters, liter_amount, float(tank.capacity))
        return stock

    async def _check_remaining(self, db, tank, delivered_volume: float):
        snapshot = await purchase_ledger.load_remaining(db, tank.gas_station_id, tank.product_id)
        if delivered_volume - snapshot.total_remaining > VOLUME_EPSILON:
            raise InsufficientRemainingVolume(delivered_volume, snapshot.total_remaining, tank.product.name)
        return snapshot

    # ------------------------------------------------------
    # read side
    # ------------------------------------------------------
    @returns_envelope("Failed to compute tank stock")
    async def tank_stock_summary(self, tank_id: int) -> ActionResult:
        async with self.session_factory() as db:
            tank = await self._load_tank(db, tank_id)
            history = await tank_history.load_tank_history(db, tank)
        stock = compute_current_stock(history, self.clock())
        capacity = float(tank.capacity)
        out = TankStockOut(
            tank_id=tank.id,
            capacity=capacity,
            current_stock=stock.liters,
            free_space=capacity - stock.liters,
            fill_percentage=round(fill_percentage(stock.liters, capacity), 2),
            is_low=is_critically_low(stock.liters, capacity),
            source=stock.source,
        )
        return ActionResult.ok("Tank stock computed", out.model_dump())

    @returns_envelope("Failed to load remaining LO")
    async def remaining(self, gas_station_id: int, product_id: int) -> ActionResult:
        async with self.session_factory() as db:
            snapshot = await purchase_ledger.load_remaining(db, gas_station_id, product_id)
        out = LedgerRemainingOut.model_validate(snapshot.as_dict())
        return ActionResult.ok("LO remaining retrieved successfully", out.model_dump())

    @returns_envelope("Failed to load remaining LO")
    async def lo_remaining_by_tank(self, gas_station_id: int, tank_id: int) -> ActionResult:
        async with self.session_factory() as db:
            tank = await self._load_tank(db, tank_id)
            if tank.gas_station_id != gas_station_id:
                raise NotFoundError(f"Tank {tank_id} not found in gas station {gas_station_id}")
            snapshot = await purchase_ledger.load_remaining(db, gas_station_id, tank.product_id)
        return ActionResult.ok("LO remaining retrieved successfully", {
            "remaining_lo": snapshot.total_remaining,
            "total_purchase_volume": snapshot.total_purchase_volume,
            "total_delivered_volume": snapshot.total_delivered_volume,
            "product_id": tank.product_id,
            "product_name": tank.product.name,
            "purchase_transactions": [o.as_dict() for o in snapshot.orders],
        })

    @returns_envelope("Failed to check purchase orders")
    async def has_approved_purchase_for_tanks(self, tank_ids: Iterable[int], gas_station_id: int) -> ActionResult:
        async with self.session_factory() as db:
            tanks = await unload_crud.tanks_by_ids(db, gas_station_id, tank_ids)
            remaining_by_product: Dict[int, float] = {}
            for product_id in {t.product_id for t in tanks}:
                snapshot = await purchase_ledger.load_remaining(db, gas_station_id, product_id)
                remaining_by_product[product_id] = snapshot.total_remaining
        result = {t.id: remaining_by_product.get(t.product_id, 0) > 0 for t in tanks}
        return ActionResult.ok("Purchase availability checked", result)

    @returns_envelope("Failed to retrieve pending unloads")
    async def pending_unloads(self, gas_station_id: int) -> ActionResult:
        async with self.session_factory() as db:
            rows = await unload_crud.list_by_gas_station(db, gas_station_id, pending=True)
        return ActionResult.ok("Pending unloads retrieved successfully", [_unload_out(u) for u in rows])

    @returns_envelope("Failed to retrieve unload history")
    async def unload_history(self, gas_station_id: int) -> ActionResult:
        async with self.session_factory() as db:
            rows = await unload_crud.list_by_gas_station(db, gas_station_id, pending=False)
        return ActionResult.ok("Unload history retrieved successfully", [_unload_out(u) for u in rows])

    # ------------------------------------------------------
    # create / update
    # ------------------------------------------------------
    @returns_envelope("Failed to create unload request")
    async def create(self, payload) -> ActionResult:
        data = _parse(UnloadCreate, payload)

        async with self.session_factory() as db:
            tank = await self._load_tank(db, data.tank_id)
            await self._check_capacity(db, tank, data.liter_amount)
            if data.delivered_volume and data.delivered_volume > 0:
                await self._check_remaining(db, tank, data.delivered_volume)

            initial_order_volume = data.initial_order_volume
            if data.purchase_transaction_id is not None:
                order = await unload_crud.get_purchase_order(db, data.purchase_transaction_id)
                if not order:
                    raise NotFoundError(f"Purchase order {data.purchase_transaction_id} not found")
                if order.gas_station_id != tank.gas_station_id:
                    raise InputValidationError(
                        "Purchase order belongs to another gas station",
                        errors={"purchase_transaction_id": ["belongs to another gas station"]},
                    )
                if order.product_id != tank.product_id:
                    raise InputValidationError(
                        "Purchase order product does not match tank product",
                        errors={"purchase_transaction_id": ["belongs to another product"]},
                    )
                if not initial_order_volume:
                    initial_order_volume = order.purchase_volume

            unload = await unload_crud.insert_unload(
                db,
                tank_id=tank.id,
                unloader_id=data.unloader_id,
                kind=UnloadKind.STANDARD.value,
                liter_amount=data.liter_amount,
                delivered_volume=data.delivered_volume,
                initial_order_volume=initial_order_volume,
                invoice_number=data.invoice_number or None,
                notes=data.notes or None,
            )
            if unload.tank_id != tank.id:
                await db.rollback()
                raise InconsistentState(f"Tank id mismatch after creating unload {unload.id}")
            await db.commit()

        logger.info(f"🛢 Unload {unload.id} created: {data.liter_amount:.0f} L into tank {tank.id} (PENDING)")
        return ActionResult.ok(
            "Unload request created successfully. Waiting for manager approval.",
            _unload_out(unload),
        )

    @returns_envelope("Failed to create deposit-in-kind unload")
    async def create_deposit_in_kind(self, payload) -> ActionResult:
        data = _parse(DepositInKindCreate, payload)

        async with self.session_factory() as db:
            tank = await self._load_tank(db, data.tank_id)
            await require_deposit_account(db, tank.gas_station_id, data.depositor_name)
            await self._check_capacity(db, tank, data.liter_amount)

            marker = DEPOSIT_IN_KIND_NOTE.format(name=data.depositor_name)
            notes = f"{marker} {data.notes}" if data.notes else marker
            unload = await unload_crud.insert_unload(
                db,
                tank_id=tank.id,
                unloader_id=data.unloader_id,
                kind=UnloadKind.DEPOSIT_IN_KIND.value,
                depositor_name=data.depositor_name,
                liter_amount=data.liter_amount,
                invoice_number=data.invoice_number or None,
                notes=notes,
            )
            await db.commit()

        logger.info(f"🛢 Deposit-in-kind unload {unload.id} created for {data.depositor_name} (PENDING)")
        return ActionResult.ok(
            f"Deposit in kind saved (waiting for manager approval). "
            f"{data.liter_amount:,.0f} L {tank.product.name} from {data.depositor_name}.",
            _unload_out(unload),
        )

    @returns_envelope("Failed to update unload")
    async def update(self, unload_id: int, payload) -> ActionResult:
        data = _parse(UnloadUpdate, payload)
        changes = data.model_dump(exclude_unset=True, exclude_none=True, exclude={"updated_by_id"})

        async with self.session_factory() as db:
            unload = await unload_crud.get_unload(db, unload_id)
            if not unload:
                raise NotFoundError(f"Unload {unload_id} not found")
            if unload.status != ApprovalStatus.PENDING.value:
                raise AlreadyProcessed(unload.id, unload.status)

            if unload.kind == UnloadKind.DEPOSIT_IN_KIND.value:
                ledger_fields = sorted({"delivered_volume", "initial_order_volume"} & set(changes))
                if ledger_fields:
                    raise InputValidationError(
                        "Deposit-in-kind unloads do not draw down purchase orders",
                        errors={f: ["not allowed for deposit in kind"] for f in ledger_fields},
                    )

            tank = unload.tank
            if data.liter_amount is not None:
                await self._check_capacity(db, tank, data.liter_amount, exclude_unload_id=unload.id)
            if data.delivered_volume:
                await self._check_remaining(db, tank, data.delivered_volume)

            updated = await unload_crud.update_pending(db, unload.id, data.updated_by_id, changes)
            if not updated:
                raise AlreadyProcessed(unload.id, "processed")
            await db.commit()
            await db.refresh(unload)

        logger.info(f"✏️  Unload {unload_id} updated: {sorted(changes)}")
        return ActionResult.ok("Unload updated successfully", _unload_out(unload))

    # ------------------------------------------------------
    # approve / reject
    # ------------------------------------------------------
    async def _precheck(self, unload_id: int) -> None:
        async with self.session_factory() as db:
            unload = await unload_crud.get_unload(db, unload_id)
        if not unload:
            raise NotFoundError(f"Unload {unload_id} not found")
        if unload.status != ApprovalStatus.PENDING.value:
            raise AlreadyProcessed(unload.id, unload.status)

    async def _lock_pending(self, ctx: TransactionContext, unload_id: int,
                            new_status: ApprovalStatus, approver_id: int) -> UnloadDB:
        unload = await unload_crud.get_unload(ctx.db, unload_id, for_update=True)
        if not unload:
            raise NotFoundError(f"Unload {unload_id} not found")
        if unload.status != ApprovalStatus.PENDING.value:
            raise AlreadyProcessed(unload.id, unload.status)
        if not await unload_crud.transition_status(ctx.db, unload_id, new_status, approver_id):
            raise AlreadyProcessed(unload_id, "processed")
        return unload

    async def _post(self, entries, posting: PostingContext):
        try:
            return await self.journal.post(entries, posting)
        except StationError:
            raise
        except Exception as e:
            raise JournalPostingError(f"Journal posting failed for unload {posting.unload_id}: {e}") from e

    @returns_envelope("Failed to process unload approval")
    async def approve(self, unload_id: int, approver_id: int) -> ActionResult:
        await self._precheck(unload_id)

        async def work(ctx: TransactionContext):
            unload = await self._lock_pending(ctx, unload_id, ApprovalStatus.APPROVED, approver_id)
            tank = unload.tank

            posting = PostingContext(
                db=ctx.db,
                gas_station_id=tank.gas_station_id,
                description="",
                unload_id=unload.id,
                created_by_id=unload.unloader_id,
                approver_id=approver_id,
                reference_number=unload.invoice_number,
            )
            if unload.kind == UnloadKind.DEPOSIT_IN_KIND.value:
                return await self._approve_deposit_in_kind(ctx, unload, posting)
            return await self._approve_standard(ctx, unload, posting)

        outcome = await self.coordinator.run(f"approve unload {unload_id}", work)
        logger.info(f"✅ Unload {unload_id} approved by {approver_id}: {outcome}")
        return ActionResult.ok("Unload approved successfully", outcome)

    async def _approve_deposit_in_kind(self, ctx: TransactionContext, unload: UnloadDB, posting: PostingContext):
        product = unload.tank.product
        if not unload.depositor_name:
            raise InconsistentState(f"Deposit-in-kind unload {unload.id} has no depositor")
        await require_deposit_account(ctx.db, posting.gas_station_id, unload.depositor_name)

        posting.description = f"Deposit in kind {product.name} from {unload.depositor_name}"
        journal_id = await self._post(
            deposit_in_kind_entries(
                product.name, unload.depositor_name, float(unload.liter_amount),
                float(product.purchase_price or 0), float(product.selling_price or 0),
            ),
            posting,
        )
        return {"unload_id": unload.id, "mode": "deposit_in_kind", "journal_transaction_id": journal_id}

    async def _approve_standard(self, ctx: TransactionContext, unload: UnloadDB, posting: PostingContext):
        tank = unload.tank
        product = tank.product
        price = float(product.purchase_price or 0)
        mode = delivery_mode(unload)

        if isinstance(mode, MissingDeliveredVolume):
            raise DeliveredVolumeRequired()

        if isinstance(mode, LegacyByInitialOrder):
            posting.description = f"Transit shrinkage {product.name}"
            journal_id = await self._post(
                legacy_shrinkage_entries(product.name, price, mode.amount, float(unload.liter_amount)),
                posting,
            )
            return {"unload_id": unload.id, "mode": "legacy_initial_order", "journal_transaction_id": journal_id}

        # fresh snapshot inside the transaction, not the one seen at creation
        snapshot = await purchase_ledger.load_remaining(ctx.db, tank.gas_station_id, tank.product_id)
        allocations = purchase_ledger.allocate(mode.amount, snapshot.orders, product.name)
        if not allocations:
            raise InsufficientRemainingVolume(mode.amount, snapshot.total_remaining, product.name)
        await purchase_ledger.apply_allocations(ctx.db, allocations)

        first = allocations[0]
        first_order = next(o for o in snapshot.orders if o.id == first.order_id)
        await unload_crud.set_order_reference(
            ctx.db,
            unload.id,
            first.order_id,
            None if unload.initial_order_volume else first_order.purchase_volume,
        )

        real_volume = float(unload.liter_amount)
        posting.description = f"Unload {product.name} - {mode.amount:,.0f} L (real: {real_volume:,.0f} L)"
        journal_id = await self._post(
            delivery_entries(product.name, price, mode.amount, real_volume),
            posting,
        )
        return {
            "unload_id": unload.id,
            "mode": "by_remaining_volume",
            "purchase_transaction_id": first.order_id,
            "allocations": [{"order_id": a.order_id, "volume_deducted": a.volume_deducted} for a in allocations],
            "journal_transaction_id": journal_id,
        }

    @returns_envelope("Failed to process unload rejection")
    async def reject(self, unload_id: int, approver_id: int) -> ActionResult:
        await self._precheck(unload_id)

        async def work(ctx: TransactionContext):
            await self._lock_pending(ctx, unload_id, ApprovalStatus.REJECTED, approver_id)
            return {"unload_id": unload_id}

        outcome = await self.coordinator.run(f"reject unload {unload_id}", work)
        logger.info(f"🚫 Unload {unload_id} rejected by {approver_id}")
        return ActionResult.ok("Unload rejected successfully", outcome)
