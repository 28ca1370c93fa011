from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Generic, TypeVar

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, EmailStr
from pydantic.alias_generators import to_camel

from salesdesk.core.clock import as_utc


T = TypeVar("T")


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


Email = Annotated[EmailStr, BeforeValidator(_strip), AfterValidator(lambda value: value.lower())]
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class ApiModel(BaseModel):
    """Base for every wire model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


class Pagination(ApiModel):
    page: int
    limit: int
    total: int
    pages: int


class ListResponse(ApiModel, Generic[T]):
    success: bool = True
    data: list[T]
    pagination: Pagination


class DataResponse(ApiModel, Generic[T]):
    success: bool = True
    data: T


class MutationResponse(ApiModel, Generic[T]):
    success: bool = True
    message: str
    data: T


class MessageResponse(ApiModel):
    success: bool = True
    message: str
