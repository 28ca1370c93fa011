from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from fastapi import Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from salesdesk.core.config import get_settings
from salesdesk.core.schemas import Pagination

MAX_PAGE_SIZE = 100


@dataclass(frozen=True, slots=True)
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=MAX_PAGE_SIZE),
) -> PageParams:
    return PageParams(page=page, limit=limit or get_settings().default_page_size)


def count_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def paginate(session: Session, stmt: Select[Any], params: PageParams) -> tuple[list[Any], int]:
    """Run ``stmt`` for one page and count the full result set with the same filters."""

    total = session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    rows = session.scalars(stmt.offset(params.offset).limit(params.limit)).all()
    return list(rows), int(total)


def pagination_for(params: PageParams, total: int) -> Pagination:
    return Pagination(page=params.page, limit=params.limit, total=total, pages=count_pages(total, params.limit))
