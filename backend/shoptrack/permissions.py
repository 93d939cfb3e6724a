# Overview: Action catalogue and role policy table for the access control gate.

"""
Every mutating or protected read operation names one action code here.
The gate (services/access_service.py) evaluates them in this precedence:

1. PUBLIC_ACTIONS     - anyone, including anonymous callers
2. ADMIN_ACTIONS      - admin role only
3. OWNER_ACTIONS      - any account holder, only on resources whose
                        user_id equals the caller's id (admins may also
                        read, never write, other users' resources)
4. anything else      - denied

Stock is never writable by customers: the only customer path to a stock
change is through cart/checkout/return actions, which the reservation
engine translates into deltas itself.
"""

# -- PUBLIC --
CATALOG_READ = "catalog.read"

# -- OWNER-SCOPED --
CART_READ = "cart.read"
CART_WRITE = "cart.write"
ORDER_CREATE = "order.create"
ORDER_READ = "order.read"
RETURN_CREATE = "return.create"
RETURN_READ = "return.read"
PAYMENT_READ = "payment.read"

# -- ADMIN --
CATALOG_WRITE = "catalog.write"
SUPPLIER_READ = "supplier.read"
SUPPLIER_WRITE = "supplier.write"
STOCK_ADJUST = "stock.adjust"
ORDER_LIST_ALL = "order.list_all"
ORDER_UPDATE_STATUS = "order.update_status"
RETURN_LIST_ALL = "return.list_all"
RETURN_UPDATE_STATUS = "return.update_status"
PAYMENT_WRITE = "payment.write"
INVENTORY_LOG_READ = "inventory_log.read"
AUDIT_LOG_READ = "audit_log.read"
ROLE_MANAGE = "role.manage"
ACCOUNT_LIST = "account.list"
FORECAST_READ = "forecast.read"
CART_RELEASE_STALE = "cart.release_stale"

PUBLIC_ACTIONS = frozenset({CATALOG_READ})

OWNER_ACTIONS = frozenset({
    CART_READ,
    CART_WRITE,
    ORDER_CREATE,
    ORDER_READ,
    RETURN_CREATE,
    RETURN_READ,
    PAYMENT_READ,
})

# Owner-scoped reads an admin may perform on anyone's resources
ADMIN_READABLE_OWNER_ACTIONS = frozenset({
    CART_READ,
    ORDER_READ,
    RETURN_READ,
    PAYMENT_READ,
})

ADMIN_ACTIONS = frozenset({
    CATALOG_WRITE,
    SUPPLIER_READ,
    SUPPLIER_WRITE,
    STOCK_ADJUST,
    ORDER_LIST_ALL,
    ORDER_UPDATE_STATUS,
    RETURN_LIST_ALL,
    RETURN_UPDATE_STATUS,
    PAYMENT_WRITE,
    INVENTORY_LOG_READ,
    AUDIT_LOG_READ,
    ROLE_MANAGE,
    ACCOUNT_LIST,
    FORECAST_READ,
    CART_RELEASE_STALE,
})

ALL_ACTIONS = PUBLIC_ACTIONS | OWNER_ACTIONS | ADMIN_ACTIONS
