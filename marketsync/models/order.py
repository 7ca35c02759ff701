from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    Boolean,
    JSON,
    ForeignKey,
    Text,
    Index,
)

from marketsync.core.utils import utc_now
from marketsync.database import Base

MONEY = Numeric(14, 2)
RATE = Numeric(18, 8)


class MarketplaceOrder(Base):
    __tablename__ = "marketplace_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String, nullable=False, unique=True)
    account_id = Column(Integer, ForeignKey("seller_accounts.id"), nullable=False, index=True)
    legacy_order_id = Column(String)
    seller_user_id = Column(String)
    creation_date = Column(DateTime)
    last_modified_date = Column(DateTime)
    order_fulfillment_status = Column(String)
    order_payment_status = Column(String)
    cancel_state = Column(String)
    sales_record_reference = Column(String)
    ebay_collect_and_remit_tax = Column(Boolean)

    # Raw nested payloads
    buyer = Column(JSON)
    buyer_checkout_notes = Column(Text)
    pricing_summary = Column(JSON)
    cancel_status = Column(JSON)
    payment_summary = Column(JSON)
    fulfillment_start_instructions = Column(JSON)
    fulfillment_hrefs = Column(JSON)
    line_items = Column(JSON)
    refunds = Column(JSON)
    total_fee_basis_amount = Column(JSON)
    total_marketplace_fee = Column(JSON)

    # Denormalized
    date_sold = Column(DateTime)
    ship_by_date = Column(DateTime)
    estimated_delivery = Column(DateTime)
    product_name = Column(String)
    item_number = Column(String)
    quantity = Column(Integer)
    purchase_marketplace_id = Column(String)
    buyer_address = Column(String)
    shipping_full_name = Column(String)
    shipping_address_line1 = Column(String)
    shipping_address_line2 = Column(String)
    shipping_city = Column(String)
    shipping_state = Column(String)
    shipping_postal_code = Column(String)
    shipping_country = Column(String)
    shipping_phone = Column(String)
    tracking_number = Column(String)
    manual_tracking_number = Column(String)

    # Source currency
    subtotal = Column(MONEY)
    shipping = Column(MONEY)
    sales_tax = Column(MONEY)
    discount = Column(MONEY)
    transaction_fees = Column(MONEY)
    ad_fee = Column(MONEY)
    conversion_rate = Column(RATE)

    # USD mirrors
    subtotal_usd = Column(MONEY)
    shipping_usd = Column(MONEY)
    sales_tax_usd = Column(MONEY)
    discount_usd = Column(MONEY)
    transaction_fees_usd = Column(MONEY)
    ad_fee_usd = Column(MONEY)
    refund_total_usd = Column(MONEY)

    # Fee map / manual ad fee (USD)
    ad_fee_general = Column(MONEY)

    # Secondary ledger (purchase side) inputs, USD
    before_tax_usd = Column(MONEY)
    estimated_tax_usd = Column(MONEY)

    # Derived
    earnings = Column(MONEY)
    earnings_override = Column(Boolean, nullable=False, default=False)
    withholding = Column(MONEY)
    fixed_fee = Column(MONEY)
    net = Column(MONEY)
    exchange_rate = Column(RATE)
    balance = Column(MONEY)
    secondary_exchange_rate = Column(RATE)
    secondary_total = Column(MONEY)
    secondary_fee_total = Column(MONEY)
    profit = Column(MONEY)
    recalculated_at = Column(DateTime)

    # Internal, never surfaced as changes
    notes = Column(Text)
    fulfillment_notes = Column(Text)
    messaging_status = Column(String, default="Not Yet Started")
    item_status = Column(String, default="None")

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("ix_marketplace_orders_account_creation", "account_id", "creation_date"),
        Index("ix_marketplace_orders_account_modified", "account_id", "last_modified_date"),
        Index("ix_marketplace_orders_date_sold", "date_sold"),
    )

    def __repr__(self):
        return (f"<MarketplaceOrder(order_id='{self.order_id}', account_id={self.account_id}, "
                f"payment='{self.order_payment_status}')>")
