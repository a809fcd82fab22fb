from .tenancy import Business
from .tax import TaxRule
from .catalog import CatalogItem, Option
from .discounts import Discount, DiscountEligibility
from .gift_cards import GiftCard
from .reservations import Reservation, ReservationService
from .orders import Order, OrderLine, Payment
from .inventory import StockItem, StockMovement

__all__ = [
    'Business',
    'TaxRule',
    'CatalogItem', 'Option',
    'Discount', 'DiscountEligibility',
    'GiftCard',
    'Reservation', 'ReservationService',
    'Order', 'OrderLine', 'Payment',
    'StockItem', 'StockMovement',
]
