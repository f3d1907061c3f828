import math
from datetime import datetime
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, computed_field

from workspace_booking.utils.clock import utcnow

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope every endpoint answers with, on success and on failure."""

    success: bool
    message: Optional[str] = None
    data: Optional[T] = None
    errors: List[Any] = Field(default_factory=list)
    code: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    @classmethod
    def ok(cls, data, message: str = "Operation completed successfully"):
        return cls(success=True, message=message, data=data)


class PagedResponse(BaseModel, Generic[T]):
    items: List[T] = Field(default_factory=list)
    page_number: int
    page_size: int
    total_count: int

    @computed_field
    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.page_size else 0

    @computed_field
    @property
    def has_previous_page(self) -> bool:
        return self.page_number > 1

    @computed_field
    @property
    def has_next_page(self) -> bool:
        return self.page_number < self.total_pages
