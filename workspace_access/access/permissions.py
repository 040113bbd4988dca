"""
Capability bitmask algebra.

A capability is a single named bit in a fixed-width (64-bit) unsigned mask.
Masks are plain ``int`` values combined with the usual bitwise operators;
they are persisted in BIGINT columns through ``db.base.UnsignedMask``.
All helpers here are pure.

Two independent flag spaces exist:

* ``Capability`` - what a member may do inside one tenant (role mask and
  per-membership override mask).
* ``GlobalCapability`` - platform-wide flags stored on the user, checked only
  by operations that are not scoped to a tenant.
"""

from __future__ import annotations

import enum
from typing import Iterable

MASK_WIDTH = 64
MAX_MASK = (1 << MASK_WIDTH) - 1


class Capability(enum.IntFlag):
    # Dashboard & core
    VIEW_DASHBOARD = 1 << 0
    VIEW_ANALYTICS = 1 << 1

    # Orders
    VIEW_ORDERS = 1 << 2
    CREATE_ORDERS = 1 << 3
    UPDATE_ORDERS = 1 << 4
    CANCEL_ORDERS = 1 << 5
    REFUND_ORDERS = 1 << 6
    DELETE_ORDERS = 1 << 7

    # Tables
    VIEW_TABLES = 1 << 8
    MANAGE_TABLES = 1 << 9

    # Menu
    VIEW_MENU = 1 << 10
    EDIT_MENU = 1 << 11

    # Inventory
    VIEW_INVENTORY = 1 << 12
    MANAGE_INVENTORY = 1 << 13

    # Reports
    VIEW_REPORTS = 1 << 14
    EXPORT_REPORTS = 1 << 15

    # Members & roles
    VIEW_MEMBERS = 1 << 16
    INVITE_MEMBERS = 1 << 17
    MANAGE_MEMBERS = 1 << 18
    REMOVE_MEMBERS = 1 << 19
    MANAGE_ROLES = 1 << 20

    # Settings & billing
    VIEW_SETTINGS = 1 << 21
    EDIT_SETTINGS = 1 << 22
    VIEW_BILLING = 1 << 23
    MANAGE_BILLING = 1 << 24

    # Administrative
    VIEW_AUDIT_LOG = 1 << 25
    MANAGE_INTEGRATIONS = 1 << 26
    DELETE_TENANT = 1 << 27

    # Kitchen
    VIEW_KITCHEN_DISPLAY = 1 << 28
    UPDATE_ORDER_STATUS = 1 << 29
    MANAGE_KITCHEN_STATIONS = 1 << 30

    # Payments
    PROCESS_PAYMENTS = 1 << 31
    VIEW_PAYMENT_DETAILS = 1 << 32

    # Staff
    VIEW_SCHEDULES = 1 << 33
    MANAGE_SCHEDULES = 1 << 34
    VIEW_TIMESHEETS = 1 << 35

    # Customers
    VIEW_CUSTOMERS = 1 << 36
    MANAGE_CUSTOMERS = 1 << 37
    VIEW_LOYALTY_PROGRAM = 1 << 38

    # Reservations
    VIEW_RESERVATIONS = 1 << 39
    MANAGE_RESERVATIONS = 1 << 40

    # Multi-location
    VIEW_ALL_LOCATIONS = 1 << 41
    MANAGE_LOCATIONS = 1 << 42


class GlobalCapability(enum.IntFlag):
    CREATE_TENANT = 1 << 0
    SYSTEM_ADMIN = 1 << 1
    IMPERSONATE = 1 << 2


for _flag_type in (Capability, GlobalCapability):
    _highest = max(int(member) for member in _flag_type)
    if _highest.bit_length() > MASK_WIDTH:
        raise RuntimeError(f"{_flag_type.__name__} exceeds the {MASK_WIDTH}-bit mask width")


# ---- Algebra -------------------------------------------------------------------------


def has(mask: int, capability: int) -> bool:
    """True iff every bit of ``capability`` is set in ``mask``."""
    return (int(mask) & int(capability)) == int(capability)


def has_all(mask: int, capabilities: Iterable[int]) -> bool:
    return all(has(mask, c) for c in capabilities)


def has_any(mask: int, capabilities: Iterable[int]) -> bool:
    return any(has(mask, c) for c in capabilities)


def grant(mask: int, capability: int) -> int:
    return int(mask) | int(capability)


def revoke(mask: int, capability: int) -> int:
    return int(mask) & ~int(capability) & MAX_MASK


def toggle(mask: int, capability: int) -> int:
    return int(mask) ^ int(capability)


def combine(*capabilities: int) -> int:
    mask = 0
    for c in capabilities:
        mask |= int(c)
    return mask


def ensure_mask(value: int) -> int:
    """Validate that ``value`` fits an unsigned 64-bit mask."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"mask must be an integer, got {type(value).__name__}")
    if value < 0 or value > MAX_MASK:
        raise ValueError(f"mask {value} is outside the unsigned {MASK_WIDTH}-bit range")
    return value


def names(mask: int, flag_type: type[enum.IntFlag] = Capability) -> list[str]:
    """Names of the defined flags set in ``mask``, in bit order."""
    return [member.name for member in flag_type if member.name and has(mask, member)]


def from_names(flag_names: Iterable[str], flag_type: type[enum.IntFlag] = Capability) -> int:
    """Combine flag names into a mask. Unknown names raise ``ValueError``."""
    mask = 0
    for raw in flag_names:
        name = str(raw).strip().upper()
        try:
            mask |= int(flag_type[name])
        except KeyError as exc:
            raise ValueError(f"unknown {flag_type.__name__} {raw!r}") from exc
    return mask


# ---- Role presets --------------------------------------------------------------------

OWNER = combine(*Capability)

ADMIN = revoke(OWNER, Capability.DELETE_TENANT)

MANAGER = combine(
    Capability.VIEW_DASHBOARD,
    Capability.VIEW_ANALYTICS,
    Capability.VIEW_ORDERS,
    Capability.CREATE_ORDERS,
    Capability.UPDATE_ORDERS,
    Capability.CANCEL_ORDERS,
    Capability.VIEW_TABLES,
    Capability.MANAGE_TABLES,
    Capability.VIEW_MENU,
    Capability.VIEW_INVENTORY,
    Capability.MANAGE_INVENTORY,
    Capability.VIEW_REPORTS,
    Capability.EXPORT_REPORTS,
    Capability.VIEW_MEMBERS,
    Capability.VIEW_KITCHEN_DISPLAY,
    Capability.UPDATE_ORDER_STATUS,
    Capability.VIEW_SCHEDULES,
    Capability.MANAGE_SCHEDULES,
    Capability.VIEW_CUSTOMERS,
    Capability.VIEW_RESERVATIONS,
    Capability.MANAGE_RESERVATIONS,
)

CHEF = combine(
    Capability.VIEW_DASHBOARD,
    Capability.VIEW_ORDERS,
    Capability.VIEW_MENU,
    Capability.VIEW_INVENTORY,
    Capability.VIEW_KITCHEN_DISPLAY,
    Capability.UPDATE_ORDER_STATUS,
    Capability.MANAGE_KITCHEN_STATIONS,
)

SERVER = combine(
    Capability.VIEW_DASHBOARD,
    Capability.VIEW_ORDERS,
    Capability.CREATE_ORDERS,
    Capability.UPDATE_ORDERS,
    Capability.VIEW_TABLES,
    Capability.VIEW_MENU,
    Capability.VIEW_CUSTOMERS,
    Capability.VIEW_RESERVATIONS,
)

CASHIER = combine(
    Capability.VIEW_DASHBOARD,
    Capability.VIEW_ORDERS,
    Capability.PROCESS_PAYMENTS,
    Capability.VIEW_PAYMENT_DETAILS,
)

VIEWER = combine(
    Capability.VIEW_DASHBOARD,
    Capability.VIEW_ORDERS,
    Capability.VIEW_TABLES,
    Capability.VIEW_MENU,
    Capability.VIEW_REPORTS,
)

ROLE_PRESETS: dict[str, int] = {
    "owner": OWNER,
    "admin": ADMIN,
    "manager": MANAGER,
    "chef": CHEF,
    "server": SERVER,
    "cashier": CASHIER,
    "viewer": VIEWER,
}

DEFAULT_GLOBAL_FLAGS = 0
DEFAULT_MEMBER_FLAGS = int(Capability.VIEW_DASHBOARD)
