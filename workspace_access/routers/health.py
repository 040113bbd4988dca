from __future__ import annotations

from fastapi import APIRouter

from workspace_access.security.decorators import public

router = APIRouter(tags=["health"])


@router.get("/health")
@public()
def health() -> dict[str, str]:
    return {"status": "ok"}
