# Overview: Operation/permission catalog.
# Re-exports the public API used by the authorization service.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    INVENTORY_PERMISSIONS,
    SALES_PERMISSIONS,
    LEDGER_PERMISSIONS,
    PURCHASE_PERMISSIONS,
    TRANSFER_PERMISSIONS,
    CATALOG_PERMISSIONS,
    SYSTEM_PERMISSIONS,
    LOCATION_SCOPE,
    GLOBAL_SCOPE,
)
from .helpers import (
    get_all_permission_codes,
    get_permission_definition,
    is_location_scoped,
)
from .roles import DEFAULT_ROLE_PERMISSIONS

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "INVENTORY_PERMISSIONS",
    "SALES_PERMISSIONS",
    "LEDGER_PERMISSIONS",
    "PURCHASE_PERMISSIONS",
    "TRANSFER_PERMISSIONS",
    "CATALOG_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "LOCATION_SCOPE",
    "GLOBAL_SCOPE",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_all_permission_codes",
    "get_permission_definition",
    "is_location_scoped",
]
