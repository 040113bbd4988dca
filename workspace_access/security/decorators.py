from __future__ import annotations

from collections.abc import Callable


def require_capabilities(*capabilities: int, mode: str = "all") -> Callable:
    """
    Decorator-style API, the in-code alternative to a policy route rule.

    - It does NOT check anything itself.
    - It attaches metadata that the global security dependency reads after
      routing and checks alongside the matched policy rule; each
      requirement is evaluated on its own, with its own mode.
    """

    if mode not in ("all", "any"):
        raise ValueError(f"mode must be 'all' or 'any', got {mode!r}")

    def decorator(fn: Callable) -> Callable:
        existing = tuple(getattr(fn, "__access_capabilities__", ()))
        added = tuple(int(c) for c in capabilities if int(c) not in existing)
        setattr(fn, "__access_capabilities__", existing + added)
        setattr(fn, "__access_mode__", mode)
        return fn

    return decorator


def public() -> Callable:
    """
    Mark an endpoint as reachable without a session, whatever the policy default.
    """

    def decorator(fn: Callable) -> Callable:
        setattr(fn, "__access_public__", True)
        return fn

    return decorator
