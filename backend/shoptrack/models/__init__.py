from .catalog import Category, Supplier, SupplierPerformance, Product
from .accounts import Profile, UserRole
from .orders import CartLine, Order, OrderLine, Payment, Return
from .ledger import InventoryLogEntry, AuditLogEntry

__all__ = [
    'Category', 'Supplier', 'SupplierPerformance', 'Product',
    'Profile', 'UserRole',
    'CartLine', 'Order', 'OrderLine', 'Payment', 'Return',
    'InventoryLogEntry', 'AuditLogEntry',
]
