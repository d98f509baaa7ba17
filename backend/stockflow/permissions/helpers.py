# Overview: Utility functions for operation lookups and validation.

from .definitions import PERMISSION_DEFINITIONS, LOCATION_SCOPE


def get_all_permission_codes():
    """Get list of all operation codes."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def get_permission_definition(code):
    """Get full definition for an operation code, or None."""
    for perm in PERMISSION_DEFINITIONS:
        if perm[0] == code:
            return {
                "code": perm[0],
                "name": perm[1],
                "description": perm[2],
                "category": perm[3],
                "scope": perm[4],
            }
    return None


def is_location_scoped(code):
    definition = get_permission_definition(code)
    return definition is not None and definition["scope"] == LOCATION_SCOPE
