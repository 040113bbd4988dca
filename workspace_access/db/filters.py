from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import Session, with_loader_criteria

from workspace_access.db.base import SoftDeleteMixin


@event.listens_for(Session, "do_orm_execute")
def _exclude_soft_deleted(execute_state) -> None:
    """
    Transparent soft-delete scoping.

    Every ORM SELECT (including relationship loads) skips rows whose
    ``deleted_at`` is set, so a removed membership or role can never feed an
    authorization decision. Pass ``execution_options(include_deleted=True)``
    to see them (audit / restore paths).
    """

    if not execute_state.is_select:
        return
    if execute_state.execution_options.get("include_deleted", False):
        return

    execute_state.statement = execute_state.statement.options(
        with_loader_criteria(
            SoftDeleteMixin,
            lambda cls: cls.deleted_at.is_(None),
            include_aliases=True,
        )
    )
