# tests/unit/services/sync/test_reconciler.py
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

from marketsync.core.exceptions import ValidationError
from marketsync.models.order import MarketplaceOrder
from marketsync.models.sync_event import SyncEvent
from marketsync.services.ebay.credentials import AccountSyncState
from marketsync.services.finance.exchange_rates import ExchangeRateService
from marketsync.services.finance.pipeline import FinancialPipeline
from marketsync.services.sync.reconciler import OrderReconciler
from tests.mocks.ebay_payloads import build_order

HREF = "https://api.ebay.com/sell/fulfillment/v1/order/12-34567-89012/shipping_fulfillment/1"


class FakeTrackingClient:
    def __init__(self, tracking=None):
        self.tracking = tracking
        self.lookups = []

    async def get_tracking_number(self, token, href):
        self.lookups.append(href)
        return self.tracking


@pytest.fixture
async def state(make_account):
    account = await make_account()
    return AccountSyncState.from_account(account)


@pytest.fixture
def tracking_client():
    return FakeTrackingClient()


@pytest.fixture
def reconciler(db_session, tracking_client, settings):
    pipeline = FinancialPipeline(ExchangeRateService(db_session, settings), settings)
    return OrderReconciler(db_session, tracking_client, pipeline, "run-1", settings)


async def _events(db_session):
    return list((await db_session.execute(select(SyncEvent))).scalars().all())


"""
1. New Order Tests
"""

@pytest.mark.asyncio
async def test_new_order_is_inserted_with_financials(reconciler, state, db_session):
    result = await reconciler.reconcile(build_order(), state, "tok")

    assert result.is_new and result.written
    order = result.order
    assert order.account_id == state.account_id
    assert order.earnings == Decimal("115.00")
    assert order.withholding == Decimal("1.15")
    assert order.fixed_fee == Decimal("0.24")
    assert order.net == Decimal("113.61")
    # Empty ledger, fallback rate
    assert order.exchange_rate == Decimal("82.0")
    assert order.balance == Decimal("9316.02")
    assert order.recalculated_at is not None
    assert await _events(db_session) == []


@pytest.mark.asyncio
async def test_new_order_uses_fee_map_and_tracking(reconciler, state, tracking_client):
    tracking_client.tracking = "1Z999"

    result = await reconciler.reconcile(
        build_order(hrefs=[HREF]), state, "tok", fee_map={"12-34567-89012": Decimal("5.00")}
    )

    assert tracking_client.lookups == [HREF]
    assert result.order.tracking_number == "1Z999"
    assert result.order.ad_fee_general == Decimal("5.00")
    assert result.order.earnings == Decimal("110.00")


@pytest.mark.asyncio
async def test_first_seen_partially_refunded_needs_manual_earnings(reconciler, state):
    result = await reconciler.reconcile(build_order(payment_status="PARTIALLY_REFUNDED"), state, "tok")

    assert result.order.earnings is None
    assert result.order.net is None
    assert result.order.subtotal_usd == Decimal("120.00")


@pytest.mark.asyncio
async def test_first_seen_fully_refunded_is_zeroed(reconciler, state):
    result = await reconciler.reconcile(build_order(payment_status="FULLY_REFUNDED"), state, "tok")

    assert result.order.subtotal_usd == Decimal("0")
    assert result.order.earnings == Decimal("0")
    assert result.order.balance == Decimal("0.00")


"""
2. Update Tests
"""

@pytest.mark.asyncio
async def test_replay_of_same_payload_is_a_no_op(reconciler, state, db_session, tracking_client):
    payload = build_order(hrefs=[HREF])
    await reconciler.reconcile(payload, state, "tok")

    result = await reconciler.reconcile(payload, state, "tok")

    assert not result.written
    assert not result.is_new
    assert len(tracking_client.lookups) == 1
    assert await _events(db_session) == []


@pytest.mark.asyncio
async def test_older_payload_is_ignored(reconciler, state):
    await reconciler.reconcile(build_order(last_modified="2025-11-05T00:00:00.000Z"), state, "tok")

    stale = build_order(last_modified="2025-11-04T00:00:00.000Z", payment_status="FULLY_REFUNDED")
    result = await reconciler.reconcile(stale, state, "tok")

    assert not result.written
    assert result.order.order_payment_status == "PAID"


@pytest.mark.asyncio
async def test_silent_change_is_written_without_event(reconciler, state, db_session):
    await reconciler.reconcile(build_order(), state, "tok")

    newer = build_order(last_modified="2025-11-04T08:00:00.000Z")
    newer["buyerCheckoutNotes"] = "Please gift wrap"
    result = await reconciler.reconcile(newer, state, "tok")

    assert result.written
    assert not result.notifiable
    assert result.order.buyer_checkout_notes == "Please gift wrap"
    assert result.order.last_modified_date == datetime(2025, 11, 4, 8, 0)
    assert await _events(db_session) == []


@pytest.mark.asyncio
async def test_tracking_change_creates_sync_event(reconciler, state, db_session, tracking_client):
    await reconciler.reconcile(build_order(), state, "tok")

    tracking_client.tracking = "1Z999"
    shipped = build_order(last_modified="2025-11-04T08:00:00.000Z", hrefs=[HREF])
    result = await reconciler.reconcile(shipped, state, "tok")

    assert result.notifiable
    events = await _events(db_session)
    assert len(events) == 1
    event = events[0]
    assert event.sync_run_id == "run-1"
    assert event.order_id == "12-34567-89012"
    assert event.change_type == "tracking"
    assert event.change_data == {"tracking_number": {"old": None, "new": "1Z999"}}
    assert event.status == "pending"


@pytest.mark.asyncio
async def test_internal_fields_survive_updates(reconciler, state):
    first = await reconciler.reconcile(build_order(), state, "tok")
    first.order.notes = "Bubble wrap twice"
    first.order.messaging_status = "Sent"

    newer = build_order(last_modified="2025-11-04T08:00:00.000Z", city="Dallas")
    result = await reconciler.reconcile(newer, state, "tok")

    assert result.order.shipping_city == "Dallas"
    assert result.order.notes == "Bubble wrap twice"
    assert result.order.messaging_status == "Sent"
    assert result.change.change_type == "address"


@pytest.mark.asyncio
async def test_full_refund_zeroes_and_notifies(reconciler, state, db_session):
    await reconciler.reconcile(build_order(), state, "tok")

    refunded = build_order(last_modified="2025-11-06T00:00:00.000Z", payment_status="FULLY_REFUNDED")
    result = await reconciler.reconcile(refunded, state, "tok")

    order = result.order
    assert order.order_payment_status == "FULLY_REFUNDED"
    assert order.subtotal == Decimal("0")
    assert order.subtotal_usd == Decimal("0")
    assert order.transaction_fees_usd == Decimal("0")
    assert order.earnings == Decimal("0")
    assert order.net == Decimal("0.00")
    assert order.balance == Decimal("0.00")

    events = await _events(db_session)
    assert [e.change_type for e in events] == ["payment_status"]
    assert events[0].change_data["order_payment_status"] == {"old": "PAID", "new": "FULLY_REFUNDED"}

    # Later edits from eBay never bring the money back while still refunded
    later = build_order(last_modified="2025-11-07T00:00:00.000Z", payment_status="FULLY_REFUNDED", subtotal="999.00")
    result = await reconciler.reconcile(later, state, "tok")
    assert result.order.subtotal == Decimal("0")
    assert result.order.earnings == Decimal("0")


@pytest.mark.asyncio
async def test_partial_refund_clears_earnings(reconciler, state):
    await reconciler.reconcile(build_order(), state, "tok")

    partial = build_order(last_modified="2025-11-06T00:00:00.000Z", payment_status="PARTIALLY_REFUNDED")
    result = await reconciler.reconcile(partial, state, "tok")

    assert result.order.earnings is None
    assert result.order.balance is None
    assert result.order.earnings_override is False


@pytest.mark.asyncio
async def test_manual_earnings_override_survives_monetary_change(reconciler, state):
    first = await reconciler.reconcile(build_order(), state, "tok")
    first.order.earnings = Decimal("200.00")
    first.order.earnings_override = True

    repriced = build_order(last_modified="2025-11-06T00:00:00.000Z", subtotal="150.00")
    result = await reconciler.reconcile(repriced, state, "tok")

    assert result.order.subtotal_usd == Decimal("150.00")
    assert result.order.earnings == Decimal("200.00")
    assert result.order.net == Decimal("197.76")


@pytest.mark.asyncio
async def test_monetary_change_recomputes_earnings(reconciler, state):
    await reconciler.reconcile(build_order(), state, "tok")

    repriced = build_order(last_modified="2025-11-06T00:00:00.000Z", subtotal="150.00")
    result = await reconciler.reconcile(repriced, state, "tok")

    assert result.order.earnings == Decimal("145.00")
    assert not result.notifiable


@pytest.mark.asyncio
async def test_order_without_id_is_rejected(reconciler, state):
    payload = build_order()
    payload["orderId"] = None
    with pytest.raises(ValidationError):
        await reconciler.reconcile(payload, state, "tok")


@pytest.mark.asyncio
async def test_orders_are_persisted_per_account(reconciler, state, db_session):
    await reconciler.reconcile(build_order(order_id="A-1"), state, "tok")
    await reconciler.reconcile(build_order(order_id="A-2"), state, "tok")

    stmt = select(MarketplaceOrder.order_id).where(MarketplaceOrder.account_id == state.account_id)
    assert sorted((await db_session.execute(stmt)).scalars().all()) == ["A-1", "A-2"]
