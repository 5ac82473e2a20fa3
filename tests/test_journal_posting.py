"""
Tests for services.journal_posting: entry sets and the database poster.
"""

import pytest
from sqlalchemy import select

from models import AccountCategory, AccountDB, JournalEntryDB
from services.errors import InconsistentState, NotFoundError
from services.journal_posting import (
    DatabaseJournalPoster,
    JournalLine,
    PostingContext,
    delivery_entries,
    deposit_in_kind_entries,
    is_balanced,
    legacy_shrinkage_entries,
    require_deposit_account,
)


def _by_account(entries):
    return {e.account: (e.debit, e.credit) for e in entries}


class TestDeliveryEntries:
    def test_shrinkage(self):
        entries = delivery_entries("Solar", 10.0, delivered_volume=120.0, real_volume=118.0)
        assert is_balanced(entries)
        assert _by_account(entries) == {
            "Inventory Solar": (1180.0, 0.0),
            "Transit Shrinkage Expense": (20.0, 0.0),
            "LO Solar": (0.0, 1200.0),
        }

    def test_gain(self):
        entries = delivery_entries("Solar", 10.0, delivered_volume=100.0, real_volume=103.0)
        assert is_balanced(entries)
        assert _by_account(entries)["Transit Gain"] == (0.0, 30.0)

    def test_exact_delivery_has_two_lines(self):
        entries = delivery_entries("Solar", 10.0, 100.0, 100.0)
        assert len(entries) == 2
        assert is_balanced(entries)


class TestLegacyEntries:
    def test_ordered_more_than_poured(self):
        entries = legacy_shrinkage_entries("Solar", 10.0, initial_order_volume=1000.0, liter_amount=990.0)
        assert _by_account(entries) == {
            "Transit Shrinkage Expense": (100.0, 0.0),
            "Inventory Solar": (0.0, 100.0),
        }

    def test_nothing_when_poured_covers_order(self):
        assert legacy_shrinkage_entries("Solar", 10.0, 1000.0, 1000.0) == []


class TestDepositInKindEntries:
    def test_markup_debited_when_selling_above_purchase(self):
        entries = deposit_in_kind_entries("Solar", "Budi", 100.0, purchase_price=10.0, selling_price=12.0)
        assert is_balanced(entries)
        assert _by_account(entries) == {
            "Inventory Solar": (1000.0, 0.0),
            "Deposit Adjustment Budi": (200.0, 0.0),
            "Deposit Budi": (0.0, 1200.0),
        }

    def test_markup_credited_when_selling_below_purchase(self):
        entries = deposit_in_kind_entries("Solar", "Budi", 100.0, purchase_price=12.0, selling_price=10.0)
        assert is_balanced(entries)
        assert _by_account(entries)["Deposit Adjustment Budi"] == (0.0, 200.0)


class TestDatabaseJournalPoster:
    async def test_posts_and_creates_accounts(self, session_maker):
        async with session_maker() as db:
            context = PostingContext(db=db, gas_station_id=1, description="test delivery")
            journal_id = await DatabaseJournalPoster().post(delivery_entries("Solar", 10.0, 100.0, 98.0), context)
            await db.commit()

        async with session_maker() as db:
            entries = (await db.execute(
                select(JournalEntryDB).where(JournalEntryDB.transaction_id == journal_id)
            )).scalars().all()
            names = (await db.execute(select(AccountDB.name))).scalars().all()

        assert len(entries) == 3
        assert sum(e.debit for e in entries) == pytest.approx(sum(e.credit for e in entries))
        assert set(names) == {"Inventory Solar", "Transit Shrinkage Expense", "LO Solar"}

    async def test_unbalanced_set_refused(self, session_maker):
        lines = [
            JournalLine("Inventory Solar", AccountCategory.ASSET, debit=100.0),
            JournalLine("LO Solar", AccountCategory.ASSET, credit=90.0),
        ]
        async with session_maker() as db:
            context = PostingContext(db=db, gas_station_id=1, description="broken")
            with pytest.raises(InconsistentState, match="Unbalanced"):
                await DatabaseJournalPoster().post(lines, context)

    async def test_empty_set_posts_nothing(self, session_maker):
        async with session_maker() as db:
            context = PostingContext(db=db, gas_station_id=1, description="nothing")
            assert await DatabaseJournalPoster().post([], context) is None

    async def test_deposit_account_must_exist(self, seed, session_maker):
        async with session_maker() as db:
            with pytest.raises(NotFoundError, match="Deposit Budi"):
                await require_deposit_account(db, 1, "Budi")

        await seed.account("Deposit Budi")
        async with session_maker() as db:
            account = await require_deposit_account(db, 1, " Budi ")
        assert account.name == "Deposit Budi"
