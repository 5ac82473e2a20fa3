# services/journal_posting.py
"""
Journal posting for unload approvals.

JournalPostingService is the contract the approval workflow calls;
DatabaseJournalPoster is the default implementation writing
journal_transactions / journal_entries through the caller's
transaction so a failed approval leaves no entries behind.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from constants.station_config import (
    BALANCE_TOLERANCE,
    DEPOSIT_ACCOUNT,
    DEPOSIT_ADJUSTMENT_ACCOUNT,
    INVENTORY_ACCOUNT,
    LO_ACCOUNT,
    TRANSIT_GAIN_ACCOUNT,
    TRANSIT_SHRINKAGE_ACCOUNT,
    UNLOAD_TRANSACTION_TYPE,
    VOLUME_EPSILON,
)
from models import AccountCategory, AccountDB, JournalEntryDB, JournalTransactionDB
from services.errors import InconsistentState, NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JournalLine:
    account: str
    category: AccountCategory
    debit: float = 0.0
    credit: float = 0.0
    description: Optional[str] = None


@dataclass
class PostingContext:
    db: AsyncSession
    gas_station_id: int
    description: str
    unload_id: Optional[int] = None
    created_by_id: Optional[int] = None
    approver_id: Optional[int] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None


def is_balanced(entries: Sequence[JournalLine]) -> bool:
    debit = sum(e.debit for e in entries)
    credit = sum(e.credit for e in entries)
    return abs(debit - credit) <= BALANCE_TOLERANCE


class JournalPostingService(ABC):

    @abstractmethod
    async def post(self, entries: Sequence[JournalLine], context: PostingContext) -> Optional[int]:
        """Record a balanced entry set; any exception aborts the caller's transaction."""


# ==========================================================
#  ACCOUNTS
# ==========================================================

async def find_account(db: AsyncSession, gas_station_id: int, name: str,
                       category: Optional[AccountCategory] = None) -> Optional[AccountDB]:
    stmt = (
        select(AccountDB)
        .where(AccountDB.gas_station_id == gas_station_id)
        .where(AccountDB.name == name)
        .where(AccountDB.is_active.is_(True))
    )
    if category is not None:
        stmt = stmt.where(AccountDB.category == category.value)
    return (await db.execute(stmt)).scalars().first()


async def find_or_create_account(db: AsyncSession, gas_station_id: int, name: str,
                                 category: AccountCategory) -> AccountDB:
    account = await find_account(db, gas_station_id, name, category)
    if account:
        return account
    account = AccountDB(gas_station_id=gas_station_id, name=name, category=category.value)
    db.add(account)
    await db.flush()
    logger.info(f"   ➕ Created account: {name} ({category.value})")
    return account


async def require_deposit_account(db: AsyncSession, gas_station_id: int, depositor_name: str) -> AccountDB:
    name = DEPOSIT_ACCOUNT.format(name=depositor_name.strip())
    account = await find_account(db, gas_station_id, name, AccountCategory.LIABILITY)
    if not account:
        raise NotFoundError(f"Account '{name}' is not registered for this gas station")
    return account


class DatabaseJournalPoster(JournalPostingService):

    async def post(self, entries: Sequence[JournalLine], context: PostingContext) -> Optional[int]:
        lines = [e for e in entries if e.debit > VOLUME_EPSILON or e.credit > VOLUME_EPSILON]
        if not lines:
            return None
        if not is_balanced(lines):
            raise InconsistentState(
                f"Unbalanced journal for '{context.description}': "
                f"debit {sum(e.debit for e in lines):.2f} != credit {sum(e.credit for e in lines):.2f}"
            )

        db = context.db
        transaction = JournalTransactionDB(
            gas_station_id=context.gas_station_id,
            transaction_type=UNLOAD_TRANSACTION_TYPE,
            description=context.description,
            reference_number=context.reference_number,
            notes=context.notes,
            unload_id=context.unload_id,
            created_by_id=context.created_by_id,
            approver_id=context.approver_id,
        )
        db.add(transaction)
        await db.flush()

        for line in lines:
            account = await find_or_create_account(db, context.gas_station_id, line.account, line.category)
            db.add(JournalEntryDB(
                transaction_id=transaction.id,
                account_id=account.id,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
            ))
        await db.flush()

        logger.info(f"📒 Posted journal {transaction.id}: {context.description} ({len(lines)} lines)")
        return transaction.id


# ==========================================================
#  ENTRY SETS
# ==========================================================

def delivery_entries(product_name: str, purchase_price: float,
                     delivered_volume: float, real_volume: float) -> List[JournalLine]:
    """
    Dr Inventory (real liters), Cr LO (delivered liters).
    The delivered/real difference goes to transit shrinkage or gain.
    """
    product = product_name.strip()
    difference = delivered_volume - real_volume
    entries = [
        JournalLine(
            account=INVENTORY_ACCOUNT.format(product=product),
            category=AccountCategory.ASSET,
            debit=real_volume * purchase_price,
            description=f"{product} into tank: {real_volume:,.0f} L",
        )
    ]
    if difference > VOLUME_EPSILON:
        entries.append(JournalLine(
            account=TRANSIT_SHRINKAGE_ACCOUNT,
            category=AccountCategory.EXPENSE,
            debit=difference * purchase_price,
            description=f"Transit shrinkage {product}: {delivered_volume:,.0f} L - {real_volume:,.0f} L",
        ))
    elif difference < -VOLUME_EPSILON:
        entries.append(JournalLine(
            account=TRANSIT_GAIN_ACCOUNT,
            category=AccountCategory.REVENUE,
            credit=-difference * purchase_price,
            description=f"Transit gain {product}: {real_volume:,.0f} L - {delivered_volume:,.0f} L",
        ))
    entries.append(JournalLine(
        account=LO_ACCOUNT.format(product=product),
        category=AccountCategory.ASSET,
        credit=delivered_volume * purchase_price,
        description=f"LO {product} drawn down: {delivered_volume:,.0f} L",
    ))
    return entries


def legacy_shrinkage_entries(product_name: str, purchase_price: float,
                             initial_order_volume: float, liter_amount: float) -> List[JournalLine]:
    """Legacy mode: only the ordered-minus-poured loss is posted."""
    product = product_name.strip()
    shrinkage = initial_order_volume - liter_amount
    if shrinkage <= VOLUME_EPSILON:
        return []
    value = shrinkage * purchase_price
    return [
        JournalLine(
            account=TRANSIT_SHRINKAGE_ACCOUNT,
            category=AccountCategory.EXPENSE,
            debit=value,
            description=f"Transit shrinkage {product}: {initial_order_volume:,.0f} L - {liter_amount:,.0f} L",
        ),
        JournalLine(
            account=INVENTORY_ACCOUNT.format(product=product),
            category=AccountCategory.ASSET,
            credit=value,
            description=f"Inventory reduced by transit shrinkage {product}",
        ),
    ]


def deposit_in_kind_entries(product_name: str, depositor_name: str, liter_amount: float,
                            purchase_price: float, selling_price: float) -> List[JournalLine]:
    """
    Dr Inventory at purchase price, Cr Deposit <name> at selling price;
    the markup lands on Deposit Adjustment <name> on whichever side balances.
    """
    product = product_name.strip()
    depositor = depositor_name.strip()
    inventory_value = liter_amount * purchase_price
    deposit_value = liter_amount * selling_price
    markup = deposit_value - inventory_value

    entries = [
        JournalLine(
            account=INVENTORY_ACCOUNT.format(product=product),
            category=AccountCategory.ASSET,
            debit=inventory_value,
            description=f"{product} from deposit of {depositor}: {liter_amount:,.0f} L",
        )
    ]
    if abs(markup) > VOLUME_EPSILON:
        entries.append(JournalLine(
            account=DEPOSIT_ADJUSTMENT_ACCOUNT.format(name=depositor),
            category=AccountCategory.EXPENSE,
            debit=markup if markup > 0 else 0.0,
            credit=-markup if markup < 0 else 0.0,
            description=f"Deposit markup {depositor}: {liter_amount:,.0f} L {product}",
        ))
    entries.append(JournalLine(
        account=DEPOSIT_ACCOUNT.format(name=depositor),
        category=AccountCategory.LIABILITY,
        credit=deposit_value,
        description=f"Owed to {depositor}: {liter_amount:,.0f} L {product}",
    ))
    return entries
