from .auth import User, SessionToken, ROLE_ADMIN, ROLE_STAFF, ROLES
from .catalog import Category, Product
from .locations import Zone, Chamber, Shelf
from .stock import StockLevel, Purchase, Sale

__all__ = [
    'User', 'SessionToken', 'ROLE_ADMIN', 'ROLE_STAFF', 'ROLES',
    'Category', 'Product',
    'Zone', 'Chamber', 'Shelf',
    'StockLevel', 'Purchase', 'Sale',
]
