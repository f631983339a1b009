from __future__ import annotations

import math

from patent_search.services.search.policies import DEFAULT_POLICY
from patent_search.services.search.query import RowRange


class Paginator:
    """
    Page bookkeeping for one interactive search.

    `page` and `total_count` only move through `commit`, which the session
    calls after a fetch for that page succeeded.
    """

    def __init__(self, page_size: int = DEFAULT_POLICY.page_size):
        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        self.page_size = page_size
        self.page = 1
        self.total_count = 0

    def reset(self) -> None:
        self.page = 1
        self.total_count = 0

    def range_for(self, page: int) -> RowRange:
        if page < 1:
            raise ValueError("page must be >= 1")
        start = (page - 1) * self.page_size
        return RowRange(start, page * self.page_size - 1)

    def pages_for(self, total_count: int) -> int:
        return max(1, math.ceil(total_count / self.page_size))

    def total_pages(self) -> int:
        return self.pages_for(self.total_count)

    def can_go_prev(self) -> bool:
        return self.page > 1

    def can_go_next(self) -> bool:
        return self.page < self.total_pages()

    def is_valid_target(self, page: int) -> bool:
        return 1 <= page <= self.total_pages()

    def commit(self, page: int, total_count: int) -> None:
        self.page = page
        self.total_count = max(0, total_count)
