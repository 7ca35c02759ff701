"""
Exchange rate ledger.

Rates are appended, never edited. A lookup for a date returns the most recent
rate effective on or before it. The fallback constant is only used while a
ledger has no history at all; once any rate exists, a date that predates every
recorded rate resolves to None so derived figures stay unknown instead of
silently using a made-up rate.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import Settings, get_settings
from marketsync.core.enums import Ledger
from marketsync.core.exceptions import ExchangeRateError, ValidationError
from marketsync.core.utils import as_naive_utc, utc_now
from marketsync.models.exchange_rate import ExchangeRate

logger = logging.getLogger(__name__)


def _ledger_value(ledger: Union[Ledger, str]) -> str:
    try:
        return Ledger(ledger).value
    except ValueError:
        raise ValidationError(f"Unknown exchange rate ledger '{ledger}'")


class ExchangeRateService:
    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    async def has_history(self, ledger: Union[Ledger, str]) -> bool:
        stmt = select(func.count(ExchangeRate.id)).where(ExchangeRate.ledger == _ledger_value(ledger))
        result = await self.db.execute(stmt)
        return (result.scalar() or 0) > 0

    async def find_for_date(self, ledger: Union[Ledger, str], on_date: datetime) -> Optional[ExchangeRate]:
        stmt = (
            select(ExchangeRate)
            .where(
                ExchangeRate.ledger == _ledger_value(ledger),
                ExchangeRate.effective_date <= as_naive_utc(on_date),
            )
            .order_by(ExchangeRate.effective_date.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def rate_for_date(self, ledger: Union[Ledger, str], on_date: Optional[datetime]) -> Optional[Decimal]:
        """Rate effective at ``on_date``; fallback only for an empty ledger."""
        if on_date is None:
            return None

        row = await self.find_for_date(ledger, on_date)
        if row is not None:
            return Decimal(str(row.rate))

        if not await self.has_history(ledger):
            logger.debug(f"No {_ledger_value(ledger)} rate history; using fallback {self.settings.FALLBACK_EXCHANGE_RATE}")
            return Decimal(str(self.settings.FALLBACK_EXCHANGE_RATE))

        logger.info(f"No {_ledger_value(ledger)} rate effective on {on_date}; derived fields left unknown")
        return None

    async def current(self, ledger: Union[Ledger, str] = Ledger.EBAY) -> Optional[ExchangeRate]:
        stmt = (
            select(ExchangeRate)
            .where(ExchangeRate.ledger == _ledger_value(ledger))
            .order_by(ExchangeRate.effective_date.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def history(self, ledger: Union[Ledger, str] = Ledger.EBAY, limit: int = 50) -> List[ExchangeRate]:
        stmt = (
            select(ExchangeRate)
            .where(ExchangeRate.ledger == _ledger_value(ledger))
            .order_by(ExchangeRate.effective_date.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def record(
        self,
        ledger: Union[Ledger, str],
        rate: Union[Decimal, float, str],
        effective_date: datetime,
        created_by: str = "system",
        notes: Optional[str] = None,
    ) -> ExchangeRate:
        """
        Append a rate. An existing rate for the same ledger and effective date
        is never overwritten.

        Raises:
            ValidationError: non-positive rate or unknown ledger
            ExchangeRateError: a rate already exists for that ledger and date
        """
        ledger_value = _ledger_value(ledger)
        rate = Decimal(str(rate))
        if rate <= 0:
            raise ValidationError("Exchange rate must be positive")
        effective_date = as_naive_utc(effective_date)

        stmt = select(ExchangeRate).where(
            ExchangeRate.ledger == ledger_value,
            ExchangeRate.effective_date == effective_date,
        )
        existing = (await self.db.execute(stmt)).scalars().first()
        if existing is not None:
            raise ExchangeRateError(
                f"A {ledger_value} rate effective {effective_date.isoformat()} already exists ({existing.rate})"
            )

        row = ExchangeRate(
            ledger=ledger_value,
            rate=rate,
            effective_date=effective_date,
            created_by=created_by or "system",
            notes=notes,
            created_at=utc_now(),
        )
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)

        logger.info(f"Recorded {ledger_value} exchange rate {rate} effective {effective_date.isoformat()} by {row.created_by}")
        if not self.settings.RECOMPUTE_ON_RATE_CHANGE:
            logger.debug("Existing orders keep their previously computed balances")
        return row
