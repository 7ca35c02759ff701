"""Seller account connection routes (eBay consent flow)."""
import logging
from datetime import datetime
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import Settings, get_settings
from marketsync.core.exceptions import EbayAPIError
from marketsync.core.utils import as_naive_utc, utc_now
from marketsync.database import get_db
from marketsync.models.account import SellerAccount
from marketsync.services.ebay.auth import EbayOAuthClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/accounts", tags=["accounts"])


class AccountCreate(BaseModel):
    name: str
    marketplaces: List[str] = []
    initial_sync_date: Optional[datetime] = None


def _serialize(account: SellerAccount) -> dict:
    return {
        "id": account.id,
        "name": account.name,
        "marketplaces": account.marketplaces or [],
        "is_active": account.is_active,
        "connected": account.is_connected,
        "token_issued_at": account.token_issued_at.isoformat() if account.token_issued_at else None,
        "initial_sync_date": account.initial_sync_date.isoformat() if account.initial_sync_date else None,
        "latest_creation_watermark": (
            account.latest_creation_watermark.isoformat() if account.latest_creation_watermark else None
        ),
        "last_modified_sync_at": account.last_modified_sync_at.isoformat() if account.last_modified_sync_at else None,
        "last_fee_backfill_at": account.last_fee_backfill_at.isoformat() if account.last_fee_backfill_at else None,
    }


@router.get("/")
async def list_accounts(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(SellerAccount).order_by(SellerAccount.id))
    return [_serialize(a) for a in result.scalars().all()]


@router.post("/", status_code=201)
async def create_account(
    payload: AccountCreate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    existing = await db.execute(select(SellerAccount).where(SellerAccount.name == payload.name))
    if existing.scalars().first() is not None:
        raise HTTPException(status_code=409, detail=f"Account '{payload.name}' already exists")

    account = SellerAccount(
        name=payload.name,
        marketplaces=payload.marketplaces,
        initial_sync_date=as_naive_utc(payload.initial_sync_date or settings.DEFAULT_INITIAL_SYNC_DATE),
    )
    db.add(account)
    await db.commit()
    await db.refresh(account)
    logger.info(f"Created seller account {account.name} ({account.id})")
    return _serialize(account)


@router.get("/{account_id}/connect-url")
async def get_connect_url(account_id: int, settings: Settings = Depends(get_settings)):
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as client:
        oauth = EbayOAuthClient(client, settings)
        try:
            url = oauth.generate_user_authorization_url(state=str(account_id))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return {"account_id": account_id, "authorization_url": url}


@router.post("/{account_id}/authorize")
async def authorize_account(
    account_id: int,
    code: str = Query(..., description="Authorization code from the eBay consent redirect"),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    account = await db.get(SellerAccount, account_id)
    if account is None:
        raise HTTPException(status_code=404, detail=f"Seller account {account_id} not found")

    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as client:
        try:
            token_data = await EbayOAuthClient(client, settings).exchange_authorization_code(code)
        except EbayAPIError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except httpx.HTTPError as e:
            raise HTTPException(status_code=502, detail=f"eBay token endpoint unreachable: {e}")

    account.access_token = token_data.get("access_token")
    account.refresh_token = token_data.get("refresh_token")
    account.expires_in = token_data.get("expires_in")
    account.refresh_token_expires_in = token_data.get("refresh_token_expires_in")
    account.token_type = token_data.get("token_type")
    account.scope = token_data.get("scope")
    account.token_issued_at = utc_now()
    await db.commit()
    await db.refresh(account)

    logger.info(f"[account {account.name}] connected to eBay")
    return _serialize(account)
