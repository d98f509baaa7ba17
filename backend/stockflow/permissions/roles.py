# Overview: Operations granted to each role.
#
# admin   - everything, at every location
# manager - all stock, purchase, transfer and ledger work at granted locations;
#           cannot delete sales or permanently delete products
# staff   - sales at granted locations plus read access to them

from .helpers import get_all_permission_codes


_MANAGER_EXCLUDED = {"DELETE_SALE", "DELETE_PRODUCTS"}

STAFF_PERMISSIONS = {
    "VIEW_INVENTORY",
    "CREATE_SALE",
    "VIEW_SALES",
    "VIEW_PURCHASES",
    "VIEW_TRANSFERS",
    "VIEW_PRODUCTS",
    "VIEW_ALERTS",
    "SUBSCRIBE_EVENTS",
}

DEFAULT_ROLE_PERMISSIONS = {
    "admin": frozenset(get_all_permission_codes()),
    "manager": frozenset(set(get_all_permission_codes()) - _MANAGER_EXCLUDED),
    "staff": frozenset(STAFF_PERMISSIONS),
}
