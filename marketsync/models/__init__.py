from .account import SellerAccount
from .order import MarketplaceOrder
from .exchange_rate import ExchangeRate
from .fee_transaction import FeeTransaction
from .sync_event import SyncEvent

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'SellerAccount',
    'MarketplaceOrder',
    'ExchangeRate',
    'FeeTransaction',
    'SyncEvent',
]
