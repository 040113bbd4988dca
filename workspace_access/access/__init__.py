"""
Authorization and session core.

This package has no dependency on FastAPI. ``permissions``, ``hierarchy`` and
``errors`` are pure; the resolver, session manager, throttle and guard read
and write through a SQLAlchemy ``Session`` handed in by the caller.
"""

from .context import AccessContext
from .errors import AccessError
from .permissions import Capability, GlobalCapability

__all__ = [
    "AccessContext",
    "AccessError",
    "Capability",
    "GlobalCapability",
]
