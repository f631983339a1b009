from __future__ import annotations

from typing import Optional


class QueryExecutionError(RuntimeError):
    """Raised by a query executor when the backend rejects or fails a query."""

    def __init__(self, message: str, *, backend: str = "unknown"):
        super().__init__(message)
        self.backend = backend


class QueryFailed(Exception):
    """A search or page fetch failed. Kept on the session for display."""

    user_message = "Search failed. Please try again."

    def __init__(self, detail: str, *, page: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.page = page


class ExportFailed(Exception):
    """The count query or one of the chunk fetches of a bulk export failed."""

    user_message = "Export failed. Please try again."

    def __init__(self, detail: str, *, chunk: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.chunk = chunk


class ExportInProgress(ExportFailed):
    """A second export was requested while one is still running."""

    user_message = "An export is already running."
