from .auth import User, SessionToken, ROLES
from .inventory import Category, InventoryItem
from .discounts import DiscountVoucher
from .documents import TransactionVoucher, TransactionLine, ReturnRecord, DocumentSequence

__all__ = [
    'User', 'SessionToken', 'ROLES',
    'Category', 'InventoryItem',
    'DiscountVoucher',
    'TransactionVoucher', 'TransactionLine', 'ReturnRecord', 'DocumentSequence',
]
