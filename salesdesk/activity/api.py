from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from salesdesk.activity.schemas import ActivityRead, EntityType, UserActivitySummary
from salesdesk.activity.service import activity_log
from salesdesk.core.auth import get_current_user
from salesdesk.core.context import CallerContext
from salesdesk.core.database import get_db
from salesdesk.core.pagination import PageParams, page_params, pagination_for
from salesdesk.core.schemas import DataResponse, ListResponse


router = APIRouter(prefix="/api/activity", tags=["activity"])


@router.get("", response_model=ListResponse[ActivityRead])
def list_activity(
    user: uuid.UUID | None = Query(default=None),
    entity_type: EntityType | None = Query(default=None, alias="entityType"),
    entity_id: uuid.UUID | None = Query(default=None, alias="entityId"),
    action: str | None = Query(default=None, max_length=100),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> ListResponse[ActivityRead]:
    items, total = activity_log.list_activities(
        db,
        caller,
        filters={"user_id": user, "entity_type": entity_type, "entity_id": entity_id, "action": action},
        params=params,
    )
    return ListResponse[ActivityRead](
        data=items,
        pagination=pagination_for(params, total),
    )


@router.get("/recent", response_model=DataResponse[list[ActivityRead]])
def recent_activity(
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> DataResponse[list[ActivityRead]]:
    return DataResponse[list[ActivityRead]](data=activity_log.recent(db, caller))


@router.get("/entity/{entity_type}/{entity_id}", response_model=ListResponse[ActivityRead])
def entity_activity(
    entity_type: EntityType,
    entity_id: uuid.UUID,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> ListResponse[ActivityRead]:
    items, total = activity_log.for_entity(db, caller, entity_type, entity_id, params)
    return ListResponse[ActivityRead](
        data=items,
        pagination=pagination_for(params, total),
    )


@router.get("/user/{user_id}/summary", response_model=DataResponse[UserActivitySummary])
def user_activity_summary(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> DataResponse[UserActivitySummary]:
    return DataResponse[UserActivitySummary](data=activity_log.user_summary(db, caller, user_id))
