from .catalog import Product, DEFAULT_LOW_STOCK_THRESHOLD
from .users import User, ROLE_USER, ROLE_ADMIN, VALID_ROLES
from .orders import Order
from .activity import ActivityLogEntry

# Logical table name -> model; the document store addresses tables by name.
TABLES = {
    "products": Product,
    "users": User,
    "orders": Order,
    "activity_log": ActivityLogEntry,
}

__all__ = [
    'Product', 'User', 'Order', 'ActivityLogEntry', 'TABLES',
    'DEFAULT_LOW_STOCK_THRESHOLD', 'ROLE_USER', 'ROLE_ADMIN', 'VALID_ROLES',
]
