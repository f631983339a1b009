from __future__ import annotations
from datetime import date
from typing import Optional
from pydantic import BaseModel, Field

from patent_search.services.search.query import SearchFilter


class FilterModel(BaseModel):
    keyword: str = Field(default="", description="Free text, min 2 chars to search title/abstract/assignee")
    assignee: str = Field(default="", description="Exact assignee name, empty for all")
    from_date: Optional[date] = Field(default=None, description="Inclusive lower filing date bound")
    to_date: Optional[date] = Field(default=None, description="Inclusive upper filing date bound")

    def to_filter(self) -> SearchFilter:
        return SearchFilter(
            keyword=self.keyword,
            assignee=self.assignee,
            from_date=self.from_date.isoformat() if self.from_date else "",
            to_date=self.to_date.isoformat() if self.to_date else "",
        )


class SearchRequest(BaseModel):
    filter: FilterModel = Field(default_factory=FilterModel)
    page: int = Field(default=1, ge=1)


class ExportRequest(BaseModel):
    filter: FilterModel = Field(default_factory=FilterModel)
