# Overview: Permission category constants for grouping related operations.


class PermissionCategory:
    """Operation categories for grouping and display."""
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    PURCHASES = "PURCHASES"
    TRANSFERS = "TRANSFERS"
    LEDGER = "LEDGER"
    CATALOG = "CATALOG"
    SYSTEM = "SYSTEM"
