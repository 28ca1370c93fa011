from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from salesdesk.core.auth import client_ip, get_current_user
from salesdesk.core.context import CallerContext
from salesdesk.core.database import get_db
from salesdesk.core.pagination import PageParams, page_params, pagination_for
from salesdesk.core.rbac import require_admin
from salesdesk.core.schemas import DataResponse, ListResponse, MessageResponse, MutationResponse
from salesdesk.identity.schemas import (
    LoginRequest,
    LoginResult,
    ProfileUpdate,
    RefreshRequest,
    RegisterRequest,
    RoleName,
    TokenPair,
    UserRead,
    UserUpdate,
)
from salesdesk.identity.service import auth_service, user_service


auth_router = APIRouter(prefix="/api/auth", tags=["auth"])
users_router = APIRouter(prefix="/api/users", tags=["users"])


@auth_router.post("/login", response_model=MutationResponse[LoginResult])
def login(request: Request, dto: LoginRequest, db: Session = Depends(get_db)) -> MutationResponse[LoginResult]:
    result = auth_service.login(
        db,
        dto.email,
        dto.password,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return MutationResponse[LoginResult](message="Login successful", data=result)


@auth_router.post("/refresh", response_model=MutationResponse[TokenPair])
def refresh(dto: RefreshRequest, db: Session = Depends(get_db)) -> MutationResponse[TokenPair]:
    return MutationResponse[TokenPair](message="Token refreshed", data=auth_service.refresh(db, dto.refresh_token))


@auth_router.post("/logout", response_model=MessageResponse)
def logout(caller: CallerContext = Depends(get_current_user)) -> MessageResponse:
    # Tokens are stateless; the client discards them.
    return MessageResponse(message="Logout successful")


@auth_router.post("/register", response_model=MutationResponse[UserRead], status_code=status.HTTP_201_CREATED)
def register(
    dto: RegisterRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_admin),
) -> MutationResponse[UserRead]:
    return MutationResponse[UserRead](message="User registered successfully", data=auth_service.register(db, caller, dto))


@users_router.get("/profile/me", response_model=DataResponse[UserRead])
def get_profile(
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> DataResponse[UserRead]:
    return DataResponse[UserRead](data=user_service.get_profile(db, caller))


@users_router.patch("/profile/me", response_model=MutationResponse[UserRead])
def update_profile(
    dto: ProfileUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> MutationResponse[UserRead]:
    return MutationResponse[UserRead](
        message="Profile updated successfully",
        data=user_service.update_profile(db, caller, dto),
    )


@users_router.get("", response_model=ListResponse[UserRead])
def list_users(
    role: RoleName | None = Query(default=None),
    is_active: bool | None = Query(default=None, alias="isActive"),
    search: str | None = Query(default=None, max_length=100),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_admin),
) -> ListResponse[UserRead]:
    items, total = user_service.list_users(
        db,
        filters={"role": role, "is_active": is_active, "search": search},
        params=params,
    )
    return ListResponse[UserRead](data=items, pagination=pagination_for(params, total))


@users_router.get("/{user_id}", response_model=DataResponse[UserRead])
def get_user(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_admin),
) -> DataResponse[UserRead]:
    return DataResponse[UserRead](data=user_service.get_user(db, user_id))


@users_router.patch("/{user_id}", response_model=MutationResponse[UserRead])
def update_user(
    user_id: uuid.UUID,
    dto: UserUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_admin),
) -> MutationResponse[UserRead]:
    return MutationResponse[UserRead](
        message="User updated successfully",
        data=user_service.update_user(db, caller, user_id, dto),
    )


@users_router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_admin),
) -> MessageResponse:
    user_service.delete_user(db, caller, user_id)
    return MessageResponse(message="User deleted successfully")
