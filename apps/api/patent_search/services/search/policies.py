from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SearchPolicy:
    """Fixed sizes shared by interactive search and bulk export.

    page_size is what one interactive page shows. export_chunk_size bounds a
    single backend request during bulk export and is independent of the page
    size, since it is driven by the backend's payload limit. assignee_limit
    caps the rows read when populating the assignee dropdown.
    """
    page_size: int = 10
    export_chunk_size: int = 1000
    assignee_limit: int = 500
    min_keyword_length: int = 2


DEFAULT_POLICY = SearchPolicy()
