"""
Grant Roles Configuration
Defines how a role stored on a permission-table row maps to what the
researcher can see. Rows are managed by administrators outside this service.
"""

ADMIN_ROLE = "admin"
READ_ROLE = "read"

# Role definitions
ROLE_TYPES = {
    ADMIN_ROLE: {
        "access_level": "admin",
        "scope": "table",
        "description": "Every experiment currently present in the referenced table (or dataset)"
    },
    READ_ROLE: {
        "access_level": "read",
        "scope": "experiment",
        "description": "The single experiment named on the grant"
    }
}

# Roles not listed above are treated as read-only
DEFAULT_ROLE = READ_ROLE


def get_role_config(role):
    """Return the role definition for a grant role (case-insensitive)"""
    key = (role or "").strip().lower()
    return ROLE_TYPES.get(key, ROLE_TYPES[DEFAULT_ROLE])


def get_access_level(role) -> str:
    return get_role_config(role)["access_level"]


def is_table_scoped(role) -> bool:
    """True when a grant covers the whole table instead of one experiment"""
    return get_role_config(role)["scope"] == "table"
