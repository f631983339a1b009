from __future__ import annotations
from typing import List, Optional
from pydantic import BaseModel, Field

from patent_search.services.search.display import format_date
from patent_search.services.storage.base import PatentRecord


class PatentItem(BaseModel):
    id: str
    patent_number: Optional[str] = None
    title: Optional[str] = None
    abstract: Optional[str] = None
    assignee: Optional[str] = None
    filing_date: Optional[str] = None
    display_date: str = Field(default="", description="filing_date as YYYY-MM-DD, empty when unknown")

    @classmethod
    def from_record(cls, record: PatentRecord) -> "PatentItem":
        return cls(**record.as_dict(), display_date=format_date(record.filing_date))


class SearchResponse(BaseModel):
    rows: List[PatentItem] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1
    total_pages: int = 1
    can_go_prev: bool = False
    can_go_next: bool = False
    no_results: bool = False
    summary: str = Field(..., description="Human readable list of active filters")
    label: str = Field(..., description="e.g. 'Page 1 of 3 • 25 results'")


class AssigneesResponse(BaseModel):
    assignees: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    detail: str
