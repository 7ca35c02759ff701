"""Order financial routes: recompute hook and manual overrides."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.exceptions import OrderNotFoundError, ValidationError
from marketsync.database import get_db
from marketsync.schemas.order import AdFeeUpdate, EarningsUpdate, OrderFinancials, SecondaryCostsUpdate
from marketsync.services.order_service import OrderService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/orders", tags=["orders"])


async def _handle(coro) -> OrderFinancials:
    try:
        order = await coro
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return OrderFinancials.from_orm_model(order)


@router.get("/{order_id}/financials", response_model=OrderFinancials)
async def get_order_financials(order_id: str, db: AsyncSession = Depends(get_db)):
    return await _handle(OrderService(db).get_order(order_id))


@router.post("/{order_id}/recompute", response_model=OrderFinancials)
async def recompute_order(order_id: str, db: AsyncSession = Depends(get_db)):
    return await _handle(OrderService(db).recompute_order(order_id))


@router.patch("/{order_id}/ad-fee", response_model=OrderFinancials)
async def update_ad_fee(order_id: str, payload: AdFeeUpdate, db: AsyncSession = Depends(get_db)):
    return await _handle(OrderService(db).set_ad_fee(order_id, payload.ad_fee))


@router.patch("/{order_id}/earnings", response_model=OrderFinancials)
async def update_earnings(order_id: str, payload: EarningsUpdate, db: AsyncSession = Depends(get_db)):
    return await _handle(OrderService(db).set_earnings(order_id, payload.earnings))


@router.patch("/{order_id}/secondary-costs", response_model=OrderFinancials)
async def update_secondary_costs(order_id: str, payload: SecondaryCostsUpdate, db: AsyncSession = Depends(get_db)):
    return await _handle(
        OrderService(db).set_secondary_costs(
            order_id,
            before_tax_usd=payload.before_tax_usd,
            estimated_tax_usd=payload.estimated_tax_usd,
        )
    )
