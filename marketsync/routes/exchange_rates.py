"""Exchange rate ledger routes."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import Settings, get_settings
from marketsync.core.enums import Ledger
from marketsync.core.exceptions import ExchangeRateError, ValidationError
from marketsync.core.utils import utc_now
from marketsync.database import get_db
from marketsync.schemas.exchange_rate import ExchangeRateCreate, ExchangeRateRead
from marketsync.services.finance.exchange_rates import ExchangeRateService
from marketsync.services.order_service import OrderService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/exchange-rates", tags=["exchange-rates"])


def _fallback(ledger: Ledger, effective_date: datetime, settings: Settings) -> ExchangeRateRead:
    return ExchangeRateRead(
        ledger=ledger.value,
        rate=Decimal(str(settings.FALLBACK_EXCHANGE_RATE)),
        effective_date=effective_date,
        is_fallback=True,
    )


@router.get("/current", response_model=ExchangeRateRead)
async def get_current_rate(
    ledger: Ledger = Query(Ledger.EBAY),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    row = await ExchangeRateService(db, settings).current(ledger)
    if row is None:
        return _fallback(ledger, utc_now(), settings)
    return ExchangeRateRead.from_orm_model(row)


@router.get("/history", response_model=List[ExchangeRateRead])
async def get_rate_history(
    ledger: Ledger = Query(Ledger.EBAY),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    rows = await ExchangeRateService(db).history(ledger, limit)
    return [ExchangeRateRead.from_orm_model(row) for row in rows]


@router.get("/for-date", response_model=ExchangeRateRead)
async def get_rate_for_date(
    date: datetime = Query(..., description="Target date (ISO 8601)"),
    ledger: Ledger = Query(Ledger.EBAY),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    service = ExchangeRateService(db, settings)
    row = await service.find_for_date(ledger, date)
    if row is not None:
        return ExchangeRateRead.from_orm_model(row)
    if not await service.has_history(ledger):
        return _fallback(ledger, date, settings)
    raise HTTPException(status_code=404, detail=f"No {ledger.value} rate effective on or before {date.isoformat()}")


@router.post("/", status_code=201)
async def create_rate(
    payload: ExchangeRateCreate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    service = ExchangeRateService(db, settings)
    try:
        row = await service.record(
            payload.ledger,
            payload.rate,
            payload.effective_date,
            created_by=payload.created_by or "system",
            notes=payload.notes,
        )
    except ExchangeRateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    recomputed = 0
    if settings.RECOMPUTE_ON_RATE_CHANGE:
        recomputed = await OrderService(db, settings).recompute_sold_since(row.effective_date)

    return {
        "message": "Rate created",
        "rate": ExchangeRateRead.from_orm_model(row).model_dump(mode="json"),
        "recomputed_orders": recomputed,
    }
