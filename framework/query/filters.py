from typing import Optional
from pydantic import Field, model_validator
from framework.config import settings
from framework.entity import EntityStatus
from framework.response import CamelModel


class BasePaginationFilter(CamelModel):
    """Paging, sorting and common constraints shared by every list query."""

    page: int = Field(default=1, description="1-based page number")
    page_size: int = Field(default=settings.DEFAULT_PAGE_SIZE)
    search: Optional[str] = Field(default=None, description="Case-insensitive substring over the entity's text fields")
    status: Optional[EntityStatus] = None
    sort_by: Optional[str] = None
    is_ascending: Optional[bool] = None

    @model_validator(mode="after")
    def _clamp_paging(self):
        if self.page < 1:
            self.page = 1
        if self.page_size < 1:
            self.page_size = settings.DEFAULT_PAGE_SIZE
        elif self.page_size > settings.MAX_PAGE_SIZE:
            self.page_size = settings.MAX_PAGE_SIZE
        return self
