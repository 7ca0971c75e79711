"""User role enum for role-based access control."""

from enum import Enum as PyEnum


class UserRole(str, PyEnum):
    """
    Platform roles.

    - ADMIN - Never bound to a tenant; may act on any tenant or across all
      of them, and manages tenants and user assignments.
    - SELLER - Bound to exactly one tenant; every operation is confined to it.
      A seller without a tenant cannot perform any tenant-scoped operation.
    """

    ADMIN = "ADMIN"
    SELLER = "SELLER"
