# services/transaction_coordinator.py
"""
All-or-nothing boundary for the mutating half of an approval.

The work function receives a TransactionContext and must do every read
and write through ctx.db. Any exception, or running past the timeout,
rolls the whole unit back.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from constants.station_config import APPROVAL_TIMEOUT_SECONDS
from services.errors import TransactionTimeout
from utils.datetime_utc import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class TransactionContext:
    db: AsyncSession
    label: str
    started_at: datetime


class TransactionCoordinator:

    def __init__(self, session_factory, timeout: float = APPROVAL_TIMEOUT_SECONDS):
        self.session_factory = session_factory
        self.timeout = timeout

    async def run(self, label: str, work: Callable[[TransactionContext], Awaitable[T]]) -> T:
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    ctx = TransactionContext(db=session, label=label, started_at=utc_now())
                    return await asyncio.wait_for(work(ctx), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning(f"⏱ {label}: rolled back after {self.timeout:g}s timeout")
                raise TransactionTimeout(self.timeout)
            except OperationalError as e:
                if "locked" in str(e).lower():
                    logger.warning(f"⏱ {label}: database busy, rolled back")
                    raise TransactionTimeout(self.timeout) from e
                raise
