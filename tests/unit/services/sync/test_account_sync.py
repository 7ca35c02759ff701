# tests/unit/services/sync/test_account_sync.py
from datetime import datetime, timedelta
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import select

from marketsync.core.enums import SyncMode
from marketsync.core.utils import utc_now
from marketsync.models.account import SellerAccount
from marketsync.models.fee_transaction import FeeTransaction
from marketsync.models.order import MarketplaceOrder
from marketsync.models.sync_event import SyncEvent
from marketsync.services.sync.account_sync import AccountSynchronizer
from tests.mocks.ebay_payloads import ad_fee_transaction, build_order

NOW = datetime(2025, 11, 10, 12, 0, 0)

ORDER_A = dict(order_id="A-1", creation_date="2025-11-03T10:15:00.000Z", last_modified="2025-11-03T10:20:00.000Z")
ORDER_B = dict(order_id="B-2", creation_date="2025-11-05T09:00:00.000Z", last_modified="2025-11-05T09:05:00.000Z")


class FakeEbay:
    """Routes MockTransport requests to canned Fulfillment/Finances responses."""

    def __init__(self, new_orders=None, modified_orders=None, transactions=None):
        self.new_orders = new_orders or []
        self.modified_orders = modified_orders or []
        self.transactions = transactions or []
        self.status_overrides = {}
        self.tracking_failures = {}
        self.requests = []

    def fail(self, kind, status_code, from_offset=0):
        self.status_overrides[kind] = (status_code, from_offset)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        filter_expression = request.url.params.get("filter", "")

        if "/shipping_fulfillment/" in path:
            if path in self.tracking_failures:
                return httpx.Response(self.tracking_failures[path], text="fulfillment failure")
            return httpx.Response(200, json={"shipmentTrackingNumber": "1Z999"})

        if path.endswith("/transaction"):
            kind, items, key = "transactions", self.transactions, "transactions"
        elif filter_expression.startswith("creationdate"):
            kind, items, key = "new", self.new_orders, "orders"
        elif filter_expression.startswith("lastmodifieddate"):
            kind, items, key = "modified", self.modified_orders, "orders"
        else:
            return httpx.Response(404, text="unexpected request")

        offset = int(request.url.params.get("offset", 0))
        limit = int(request.url.params.get("limit", 200))
        if kind in self.status_overrides:
            status_code, from_offset = self.status_overrides[kind]
            if offset >= from_offset:
                return httpx.Response(status_code, text=f"{kind} failure")

        return httpx.Response(200, json={key: items[offset:offset + limit], "total": len(items)})


@pytest.fixture
async def account(make_account):
    return await make_account(token_issued_at=utc_now())


def _synchronizer(db_session, fake, settings, fake_sleep):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
    return AccountSynchronizer(db_session, http_client, "run-1", settings, sleep=fake_sleep)


async def _orders(db_session):
    return {o.order_id: o for o in (await db_session.execute(select(MarketplaceOrder))).scalars().all()}


"""
1. Sync Pass Tests
"""

@pytest.mark.asyncio
async def test_full_pass_inserts_updates_and_checkpoints(db_session, account, settings, fake_sleep):
    shipped_a = build_order(**{**ORDER_A, "last_modified": "2025-11-08T00:00:00.000Z"}, fulfillment_status="FULFILLED")
    fake = FakeEbay(
        new_orders=[build_order(**ORDER_A), build_order(**ORDER_B)],
        modified_orders=[shipped_a, build_order(**ORDER_B)],
    )

    result = await _synchronizer(db_session, fake, settings, fake_sleep).run(account.id, SyncMode.ALL, now=NOW)

    assert result.success is True
    assert result.account_name == "seller-one"
    assert result.new_orders == 2
    assert result.updated_orders == 1
    assert result.notifiable_changes == 1
    assert result.failed_records == 0
    assert result.new_orders_complete is True
    assert result.modified_orders_complete is True

    orders = await _orders(db_session)
    assert orders["A-1"].order_fulfillment_status == "FULFILLED"

    events = (await db_session.execute(select(SyncEvent))).scalars().all()
    assert [(e.order_id, e.change_type) for e in events] == [("A-1", "fulfillment")]

    stored = await db_session.get(SellerAccount, account.id)
    await db_session.refresh(stored)
    assert stored.latest_creation_watermark == datetime(2025, 11, 5, 9, 0)
    assert stored.last_modified_sync_at == NOW - timedelta(seconds=5)


@pytest.mark.asyncio
async def test_new_only_mode_leaves_modified_watermark(db_session, account, settings, fake_sleep):
    fake = FakeEbay(new_orders=[build_order(**ORDER_A)])

    result = await _synchronizer(db_session, fake, settings, fake_sleep).run(account.id, SyncMode.NEW, now=NOW)

    assert result.new_orders == 1
    assert result.modified_orders_complete is None
    stored = await db_session.get(SellerAccount, account.id)
    assert stored.last_modified_sync_at is None
    assert all(r.url.params["filter"].startswith("creationdate") for r in fake.requests)


@pytest.mark.asyncio
async def test_second_pass_starts_after_newest_order(db_session, account, settings, fake_sleep):
    fake = FakeEbay(new_orders=[build_order(**ORDER_A)])
    synchronizer = _synchronizer(db_session, fake, settings, fake_sleep)
    await synchronizer.run(account.id, SyncMode.NEW, now=NOW)

    fake.requests.clear()
    await synchronizer.run(account.id, SyncMode.NEW, now=NOW + timedelta(hours=1))

    assert fake.requests[0].url.params["filter"].startswith("creationdate:[2025-11-03T10:15:01.000Z..")


@pytest.mark.asyncio
async def test_incomplete_modified_scan_does_not_advance_poll_time(db_session, account, settings, fake_sleep):
    fake = FakeEbay(new_orders=[build_order(**ORDER_A)])
    fake.fail("modified", 503)

    result = await _synchronizer(db_session, fake, settings, fake_sleep).run(account.id, SyncMode.ALL, now=NOW)

    assert result.success is True
    assert result.modified_orders_complete is False
    stored = await db_session.get(SellerAccount, account.id)
    await db_session.refresh(stored)
    assert stored.last_modified_sync_at is None
    assert stored.latest_creation_watermark == datetime(2025, 11, 3, 10, 15)


@pytest.mark.asyncio
async def test_bad_record_is_counted_and_does_not_move_watermark(db_session, account, settings, fake_sleep):
    broken = build_order(order_id="C-3", creation_date="2025-11-09T00:00:00.000Z")
    broken["orderId"] = None
    fake = FakeEbay(new_orders=[build_order(**ORDER_A), broken, build_order(**ORDER_B)])

    result = await _synchronizer(db_session, fake, settings, fake_sleep).run(account.id, SyncMode.NEW, now=NOW)

    assert result.new_orders == 2
    assert result.failed_records == 1
    assert set(await _orders(db_session)) == {"A-1", "B-2"}
    stored = await db_session.get(SellerAccount, account.id)
    await db_session.refresh(stored)
    assert stored.latest_creation_watermark == datetime(2025, 11, 5, 9, 0)


@pytest.mark.asyncio
async def test_creation_watermark_never_moves_backwards(make_account, db_session, settings, fake_sleep):
    account = await make_account(token_issued_at=utc_now(), latest_creation_watermark=datetime(2025, 11, 1, 6, 0))
    # Order older than the stored watermark (e.g. reached through the modified window)
    old = build_order(order_id="OLD-1", creation_date="2025-10-20T00:00:00.000Z",
                      last_modified="2025-11-09T00:00:00.000Z")
    fake = FakeEbay(modified_orders=[old])

    await _synchronizer(db_session, fake, settings, fake_sleep).run(account.id, SyncMode.MODIFIED, now=NOW)

    stored = await db_session.get(SellerAccount, account.id)
    await db_session.refresh(stored)
    assert stored.latest_creation_watermark == datetime(2025, 11, 1, 6, 0)


@pytest.mark.asyncio
async def test_authorization_failure_fails_the_account(db_session, account, settings, fake_sleep):
    fake = FakeEbay()
    fake.fail("new", 401)

    result = await _synchronizer(db_session, fake, settings, fake_sleep).run(account.id, SyncMode.ALL, now=NOW)

    assert result.success is False
    assert "authorization" in result.error
    assert await _orders(db_session) == {}


@pytest.mark.asyncio
async def test_rolled_back_window_reports_no_orders(db_session, account, settings, fake_sleep):
    base = "https://api.ebay.com/sell/fulfillment/v1/order"
    fake = FakeEbay(new_orders=[
        build_order(**ORDER_A, hrefs=[f"{base}/A-1/shipping_fulfillment/F-1"]),
        build_order(**ORDER_B, hrefs=[f"{base}/B-2/shipping_fulfillment/F-2"]),
    ])
    fake.tracking_failures["/sell/fulfillment/v1/order/B-2/shipping_fulfillment/F-2"] = 401
    account_id = account.id

    result = await _synchronizer(db_session, fake, settings, fake_sleep).run(account_id, SyncMode.NEW, now=NOW)

    assert result.success is False
    assert result.new_orders == 0
    assert result.notifiable_changes == 0
    assert await _orders(db_session) == {}
    stored = await db_session.get(SellerAccount, account_id)
    await db_session.refresh(stored)
    assert stored.latest_creation_watermark is None


@pytest.mark.asyncio
async def test_cached_fee_map_feeds_new_orders(db_session, account, settings, fake_sleep):
    db_session.add_all([
        FeeTransaction(account_id=account.id, transaction_id="t-1", order_id="A-1", fee_type="AD_FEE",
                       booking_entry="DEBIT", amount=Decimal("6.00"), transaction_date=datetime(2025, 11, 4)),
        FeeTransaction(account_id=account.id, transaction_id="t-2", order_id="A-1", fee_type="AD_FEE",
                       booking_entry="CREDIT", amount=Decimal("1.00"), transaction_date=datetime(2025, 11, 5)),
    ])
    await db_session.commit()
    fake = FakeEbay(new_orders=[build_order(**ORDER_A)])

    await _synchronizer(db_session, fake, settings, fake_sleep).run(account.id, SyncMode.NEW, now=NOW)

    order = (await _orders(db_session))["A-1"]
    assert order.ad_fee_general == Decimal("5.00")
    assert order.earnings == Decimal("110.00")


"""
2. Fee Backfill Tests
"""

@pytest.mark.asyncio
async def test_backfill_caches_fees_and_updates_orders(db_session, account, settings, fake_sleep):
    fake = FakeEbay(
        new_orders=[build_order(**ORDER_A), build_order(**ORDER_B)],
        transactions=[
            ad_fee_transaction("t-1", "A-1", "4.00"),
            ad_fee_transaction("t-2", "A-1", "0.50", booking_entry="CREDIT"),
            ad_fee_transaction("t-3", "ZZ-9", "2.00"),
        ],
    )
    synchronizer = _synchronizer(db_session, fake, settings, fake_sleep)
    await synchronizer.run(account.id, SyncMode.NEW, now=NOW)

    result = await synchronizer.backfill_fees(account.id, since=datetime(2025, 11, 1))

    assert result.success is True
    assert result.complete is True
    assert result.transactions == 3
    assert result.orders_with_fees == 2
    assert result.orders_updated == 1

    orders = await _orders(db_session)
    assert orders["A-1"].ad_fee_general == Decimal("3.50")
    assert orders["A-1"].earnings == Decimal("111.50")
    assert orders["B-2"].ad_fee_general is None

    cached = (await db_session.execute(select(FeeTransaction))).scalars().all()
    assert sorted(t.transaction_id for t in cached) == ["t-1", "t-2", "t-3"]
    stored = await db_session.get(SellerAccount, account.id)
    assert stored.last_fee_backfill_at is not None


@pytest.mark.asyncio
async def test_backfill_rerun_replaces_cache(db_session, account, settings, fake_sleep):
    fake = FakeEbay(transactions=[ad_fee_transaction("t-1", "A-1", "4.00")])
    synchronizer = _synchronizer(db_session, fake, settings, fake_sleep)

    await synchronizer.backfill_fees(account.id, since=datetime(2025, 11, 1))
    await synchronizer.backfill_fees(account.id, since=datetime(2025, 11, 1))

    cached = (await db_session.execute(select(FeeTransaction))).scalars().all()
    assert [t.transaction_id for t in cached] == ["t-1"]


@pytest.mark.asyncio
async def test_backfill_skips_fully_refunded_orders(db_session, account, settings, fake_sleep):
    fake = FakeEbay(
        new_orders=[build_order(**ORDER_A, payment_status="FULLY_REFUNDED")],
        transactions=[ad_fee_transaction("t-1", "A-1", "4.00")],
    )
    synchronizer = _synchronizer(db_session, fake, settings, fake_sleep)
    await synchronizer.run(account.id, SyncMode.NEW, now=NOW)

    result = await synchronizer.backfill_fees(account.id, since=datetime(2025, 11, 1))

    assert result.orders_updated == 0
    assert (await _orders(db_session))["A-1"].ad_fee_general == Decimal("0")


@pytest.mark.asyncio
async def test_incomplete_fee_feed_leaves_cache_and_orders_alone(db_session, account, settings, fake_sleep):
    db_session.add(FeeTransaction(account_id=account.id, transaction_id="t-0", order_id="A-1", fee_type="AD_FEE",
                                  booking_entry="DEBIT", amount=Decimal("6.00"), transaction_date=datetime(2025, 11, 4)))
    await db_session.commit()
    settings.FEE_PAGE_SIZE = 1
    fake = FakeEbay(
        new_orders=[build_order(**ORDER_A)],
        transactions=[
            ad_fee_transaction("t-1", "A-1", "4.00"),
            ad_fee_transaction("t-2", "A-1", "3.00", booking_entry="CREDIT"),
        ],
    )
    fake.fail("transactions", 503, from_offset=1)
    synchronizer = _synchronizer(db_session, fake, settings, fake_sleep)
    await synchronizer.run(account.id, SyncMode.NEW, now=NOW)

    result = await synchronizer.backfill_fees(account.id, since=datetime(2025, 11, 1))

    assert result.success is False
    assert result.complete is False
    assert "incomplete" in result.error
    assert result.orders_updated == 0
    assert (await _orders(db_session))["A-1"].ad_fee_general == Decimal("6.00")
    cached = (await db_session.execute(select(FeeTransaction))).scalars().all()
    assert [t.transaction_id for t in cached] == ["t-0"]
    stored = await db_session.get(SellerAccount, account.id)
    await db_session.refresh(stored)
    assert stored.last_fee_backfill_at is None
