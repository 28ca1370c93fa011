from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import ColumnElement, or_
from sqlalchemy.sql import Select

from salesdesk.core.context import CallerContext
from salesdesk.core.errors import AuthorizationError
from salesdesk.metrics import observe_scope_denied


def scoped_filters(
    caller: CallerContext,
    requested: Mapping[str, Any],
    owner_keys: Iterable[str],
) -> dict[str, Any]:
    """Return the filters a caller is allowed to apply.

    Admins keep every requested filter, including owner/assignee ones. For
    agents the owner filters are dropped without error: their scope is forced
    by :func:`ownership_predicate` instead.
    """

    if caller.is_admin:
        return dict(requested)
    blocked = set(owner_keys)
    return {key: value for key, value in requested.items() if key not in blocked}


def ownership_predicate(caller: CallerContext, *owner_columns: Any) -> ColumnElement[bool] | None:
    """Predicate restricting rows to those the caller owns or is assigned to.

    ``None`` means unrestricted (admin).
    """

    if caller.is_admin:
        return None
    if not owner_columns:
        raise ValueError("at least one owner column is required")
    return or_(*(column == caller.user_id for column in owner_columns))


def apply_scope(stmt: Select[Any], caller: CallerContext, *owner_columns: Any) -> Select[Any]:
    predicate = ownership_predicate(caller, *owner_columns)
    if predicate is None:
        return stmt
    return stmt.where(predicate)


def ensure_record_access(caller: CallerContext, resource: str, *owner_ids: uuid.UUID | None) -> None:
    """Post-fetch check for detail views and mutations of a single record."""

    if caller.is_admin:
        return
    if any(owner_id is not None and owner_id == caller.user_id for owner_id in owner_ids):
        return
    observe_scope_denied(resource)
    raise AuthorizationError("Access denied")
