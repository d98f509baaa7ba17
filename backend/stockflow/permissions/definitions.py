# Overview: All operation definitions organized by category.
# Each operation is defined as: (code, name, description, category, scope)
# scope is "location" when the caller must also hold the target location(s),
# "global" when the role grant alone decides.

from .categories import PermissionCategory


LOCATION_SCOPE = "location"
GLOBAL_SCOPE = "global"


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "View stock rows and their movement history",
        PermissionCategory.INVENTORY,
        LOCATION_SCOPE,
    ),
    (
        "CREATE_STOCK_ROW",
        "Add Product To Location",
        "Create the stock row for a product at a location",
        PermissionCategory.INVENTORY,
        LOCATION_SCOPE,
    ),
    (
        "ADJUST_STOCK",
        "Adjust Stock",
        "Apply manual corrections to a stock row",
        PermissionCategory.INVENTORY,
        LOCATION_SCOPE,
    ),
    (
        "UPDATE_STOCK_SETTINGS",
        "Update Stock Settings",
        "Change min stock, notify threshold and expiry of a stock row",
        PermissionCategory.INVENTORY,
        LOCATION_SCOPE,
    ),
]


# -- SALES --

SALES_PERMISSIONS = [
    (
        "CREATE_SALE",
        "Create Sale",
        "Record a completed sale at a location",
        PermissionCategory.SALES,
        LOCATION_SCOPE,
    ),
    (
        "VIEW_SALES",
        "View Sales",
        "View sales made at a location",
        PermissionCategory.SALES,
        LOCATION_SCOPE,
    ),
    (
        "DELETE_SALE",
        "Delete Sale",
        "Delete a sale, returning its stock and removing its income",
        PermissionCategory.SALES,
        LOCATION_SCOPE,
    ),
]


# -- LEDGER --

LEDGER_PERMISSIONS = [
    (
        "VIEW_INCOMES",
        "View Incomes",
        "View income entries",
        PermissionCategory.LEDGER,
        GLOBAL_SCOPE,
    ),
    (
        "MANAGE_INCOMES",
        "Manage Incomes",
        "Record, edit and delete non-sale income entries",
        PermissionCategory.LEDGER,
        LOCATION_SCOPE,
    ),
    (
        "VIEW_EXPENSES",
        "View Expenses",
        "View expense entries",
        PermissionCategory.LEDGER,
        GLOBAL_SCOPE,
    ),
    (
        "MANAGE_EXPENSES",
        "Manage Expenses",
        "Record, edit and delete expense entries",
        PermissionCategory.LEDGER,
        LOCATION_SCOPE,
    ),
]


# -- PURCHASES --

PURCHASE_PERMISSIONS = [
    (
        "VIEW_PURCHASES",
        "View Purchases",
        "View purchases delivered to a warehouse",
        PermissionCategory.PURCHASES,
        LOCATION_SCOPE,
    ),
    (
        "CREATE_PURCHASE",
        "Create Purchase",
        "Create purchase orders for a warehouse",
        PermissionCategory.PURCHASES,
        LOCATION_SCOPE,
    ),
    (
        "RECEIVE_PURCHASE",
        "Receive Purchase",
        "Receive purchased goods into warehouse stock",
        PermissionCategory.PURCHASES,
        LOCATION_SCOPE,
    ),
    (
        "RECORD_PURCHASE_PAYMENT",
        "Record Purchase Payment",
        "Record supplier payments against a purchase",
        PermissionCategory.PURCHASES,
        LOCATION_SCOPE,
    ),
    (
        "CANCEL_PURCHASE",
        "Cancel Purchase",
        "Cancel a purchase before it is received",
        PermissionCategory.PURCHASES,
        LOCATION_SCOPE,
    ),
]


# -- TRANSFERS --

TRANSFER_PERMISSIONS = [
    (
        "VIEW_TRANSFERS",
        "View Transfers",
        "View transfers touching a location",
        PermissionCategory.TRANSFERS,
        LOCATION_SCOPE,
    ),
    (
        "REQUEST_TRANSFER",
        "Request Transfer",
        "Request stock to move out of a location",
        PermissionCategory.TRANSFERS,
        LOCATION_SCOPE,
    ),
    (
        "SHIP_TRANSFER",
        "Ship Transfer",
        "Ship a pending transfer from its source location",
        PermissionCategory.TRANSFERS,
        LOCATION_SCOPE,
    ),
    (
        "RECEIVE_TRANSFER",
        "Receive Transfer",
        "Receive a shipped transfer at its destination",
        PermissionCategory.TRANSFERS,
        LOCATION_SCOPE,
    ),
    (
        "CANCEL_TRANSFER",
        "Cancel Transfer",
        "Cancel a pending transfer",
        PermissionCategory.TRANSFERS,
        LOCATION_SCOPE,
    ),
]


# -- CATALOG --

CATALOG_PERMISSIONS = [
    (
        "VIEW_PRODUCTS",
        "View Products",
        "View product definitions",
        PermissionCategory.CATALOG,
        GLOBAL_SCOPE,
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create, edit and deactivate products",
        PermissionCategory.CATALOG,
        GLOBAL_SCOPE,
    ),
    (
        "DELETE_PRODUCTS",
        "Delete Products",
        "Permanently delete products that never held stock",
        PermissionCategory.CATALOG,
        GLOBAL_SCOPE,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "VIEW_ACTIVITY",
        "View Activity Trail",
        "View the global activity trail",
        PermissionCategory.SYSTEM,
        GLOBAL_SCOPE,
    ),
    (
        "VIEW_ALERTS",
        "View Alerts",
        "View critical events and stock alerts for accessible locations",
        PermissionCategory.SYSTEM,
        GLOBAL_SCOPE,
    ),
    (
        "SUBSCRIBE_EVENTS",
        "Subscribe To Events",
        "Open the real-time event stream",
        PermissionCategory.SYSTEM,
        GLOBAL_SCOPE,
    ),
]


PERMISSION_DEFINITIONS = (
    INVENTORY_PERMISSIONS
    + SALES_PERMISSIONS
    + LEDGER_PERMISSIONS
    + PURCHASE_PERMISSIONS
    + TRANSFER_PERMISSIONS
    + CATALOG_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
