# tests/unit/services/finance/test_financial_pipeline.py
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from marketsync.core.enums import Ledger
from marketsync.services.finance.pipeline import (
    FinancialInputs,
    FinancialPipeline,
    compute_derived,
    compute_earnings,
)

SOLD = datetime(2025, 11, 3, 10, 15)


def _inputs(earnings=None, before_tax=None, estimated_tax=None, status="PAID", date_sold=SOLD):
    return FinancialInputs(
        earnings=Decimal(earnings) if earnings is not None else None,
        before_tax_usd=Decimal(before_tax) if before_tax is not None else None,
        estimated_tax_usd=Decimal(estimated_tax) if estimated_tax is not None else None,
        date_sold=date_sold,
        payment_status=status,
    )


class FixedRates:
    def __init__(self, **rates):
        self.rates = rates
        self.calls = []

    async def rate_for_date(self, ledger, on_date):
        self.calls.append((Ledger(ledger), on_date))
        return self.rates.get(Ledger(ledger).value)


"""
1. Earnings Tests
"""

def test_earnings_subtracts_fees_and_ad_fee():
    order = SimpleNamespace(
        subtotal_usd=Decimal("120.00"),
        shipping_usd=Decimal("10.00"),
        transaction_fees_usd=Decimal("15.00"),
        ad_fee_general=Decimal("4.40"),
    )
    assert compute_earnings(order) == Decimal("110.60")


def test_earnings_treats_missing_ad_fee_as_zero():
    order = SimpleNamespace(
        subtotal_usd=Decimal("120.00"),
        shipping_usd=Decimal("10.00"),
        transaction_fees_usd=Decimal("15.00"),
        ad_fee_general=None,
    )
    assert compute_earnings(order) == Decimal("115.00")


def test_earnings_unknown_without_usd_inputs():
    order = SimpleNamespace(subtotal_usd=None, shipping_usd=Decimal("1"), transaction_fees_usd=Decimal("1"), ad_fee_general=None)
    assert compute_earnings(order) is None


"""
2. Derived Field Tests
"""

def test_sale_side_chain(settings):
    derived = compute_derived(_inputs(earnings="100.00"), Decimal("86.00"), None, settings)

    assert derived.withholding == Decimal("1.00")
    assert derived.fixed_fee == Decimal("0.24")
    assert derived.net == Decimal("98.76")
    assert derived.balance == Decimal("8493.36")
    assert derived.profit is None


def test_hundred_dollar_sale_at_85(settings):
    derived = compute_derived(_inputs(earnings="100.00"), Decimal("85.0"), None, settings)

    assert (derived.withholding, derived.net, derived.balance) == (
        Decimal("1.00"), Decimal("98.76"), Decimal("8394.60")
    )


def test_sale_side_with_fallback_rate(settings):
    derived = compute_derived(_inputs(earnings="100.00"), Decimal("82"), None, settings)

    assert derived.balance == Decimal("8098.32")


def test_zero_earnings_skip_fixed_fee(settings):
    derived = compute_derived(_inputs(earnings="0"), None, None, settings)

    assert derived.withholding == Decimal("0.00")
    assert derived.fixed_fee == Decimal("0")
    assert derived.net == Decimal("0.00")
    assert derived.balance == Decimal("0")


def test_negative_earnings_still_withheld(settings):
    derived = compute_derived(_inputs(earnings="-20.00"), Decimal("80"), None, settings)

    assert derived.withholding == Decimal("-0.20")
    assert derived.fixed_fee == Decimal("0")
    assert derived.net == Decimal("-19.80")
    assert derived.balance == Decimal("-1584.00")


def test_unknown_rate_leaves_balance_unknown(settings):
    derived = compute_derived(_inputs(earnings="100.00"), None, None, settings)

    assert derived.net == Decimal("98.76")
    assert derived.balance is None


def test_purchase_side_and_profit(settings):
    derived = compute_derived(
        _inputs(earnings="100.00", before_tax="50.00", estimated_tax="4.00"),
        Decimal("86"),
        Decimal("85"),
        settings,
    )

    assert derived.secondary_total == Decimal("4590.00")
    # 4590 * 3.5% * 1.18
    assert derived.secondary_fee_total == Decimal("189.57")
    assert derived.profit == Decimal("8493.36") - Decimal("4590.00") - Decimal("189.57")


def test_purchase_side_needs_secondary_rate(settings):
    derived = compute_derived(_inputs(earnings="100.00", before_tax="50.00"), Decimal("86"), None, settings)

    assert derived.secondary_total is None
    assert derived.profit is None


def test_card_fee_tax_dropped_for_refunds_after_policy_date(settings):
    after_policy = datetime(2025, 12, 5)
    refunded = _inputs(before_tax="100.00", status="FULLY_REFUNDED", date_sold=after_policy)
    paid = _inputs(before_tax="100.00", status="PAID", date_sold=after_policy)
    refunded_before = _inputs(before_tax="100.00", status="PARTIALLY_REFUNDED", date_sold=datetime(2025, 11, 30))

    assert compute_derived(refunded, None, Decimal("85"), settings).secondary_fee_total == Decimal("297.50")
    assert compute_derived(paid, None, Decimal("85"), settings).secondary_fee_total == Decimal("351.05")
    assert compute_derived(refunded_before, None, Decimal("85"), settings).secondary_fee_total == Decimal("351.05")


"""
3. Pipeline Tests
"""

@pytest.mark.asyncio
async def test_pipeline_looks_up_rates_at_sale_date(settings):
    rates = FixedRates(EBAY=Decimal("86"), AMAZON=Decimal("85"))
    order = SimpleNamespace(
        order_id="o-1",
        earnings=Decimal("100.00"),
        before_tax_usd=Decimal("50.00"),
        estimated_tax_usd=None,
        date_sold=SOLD,
        creation_date=SOLD,
        order_payment_status="PAID",
        recalculated_at=None,
    )

    derived = await FinancialPipeline(rates, settings).recalculate_and_apply(order)

    assert rates.calls == [(Ledger.EBAY, SOLD), (Ledger.AMAZON, SOLD)]
    assert order.balance == derived.balance == Decimal("8493.36")
    assert order.secondary_total == Decimal("4250.00")
    assert order.exchange_rate == Decimal("86")
    assert order.recalculated_at is not None


@pytest.mark.asyncio
async def test_pipeline_skips_lookups_without_inputs(settings):
    rates = FixedRates(EBAY=Decimal("86"))
    order = SimpleNamespace(
        order_id="o-2",
        earnings=None,
        before_tax_usd=None,
        estimated_tax_usd=None,
        date_sold=SOLD,
        creation_date=SOLD,
        order_payment_status="PARTIALLY_REFUNDED",
        recalculated_at=None,
    )

    derived = await FinancialPipeline(rates, settings).recalculate(order)

    assert rates.calls == []
    assert derived.net is None
    assert derived.balance is None
    assert derived.profit is None
