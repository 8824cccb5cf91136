from datetime import datetime, timezone
from typing import Generic, List, TypeVar

from pydantic import BaseModel


T = TypeVar("T")


def to_naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class PaginationOut(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class Page(BaseModel, Generic[T]):
    data: List[T]
    pagination: PaginationOut
