from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class AccessContext:
    """
    Explicit per-request identity, threaded through every call.

    Built once the bearer session has been validated; ``tenant_id``, ``mask``
    and ``priority`` are filled in when the request targets a tenant.
    """

    user_id: int
    session_id: int
    global_mask: int = 0
    tenant_id: int | None = None
    mask: int = 0
    priority: int = -1

    def for_tenant(self, tenant_id: int, mask: int, priority: int) -> AccessContext:
        return replace(self, tenant_id=tenant_id, mask=mask, priority=priority)
