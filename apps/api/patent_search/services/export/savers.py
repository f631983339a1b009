from __future__ import annotations

from pathlib import Path
from typing import Dict, Protocol, Union

import anyio

from patent_search.core.logging import get_logger

log = get_logger(__name__)


class FileSaver(Protocol):
    """Turns CSV text into a downloadable artifact."""

    async def save(self, filename: str, text: str) -> None:
        ...


class DirectorySaver:
    """Writes each artifact as a UTF-8 file under a fixed directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    async def save(self, filename: str, text: str) -> None:
        # Only the base name is honoured
        target = self.directory / Path(filename).name
        await anyio.Path(self.directory).mkdir(parents=True, exist_ok=True)
        await anyio.Path(target).write_text(text, encoding="utf-8")
        log.info(f"[EXPORT] Saved {target} ({len(text)} chars)")


class MemorySaver:
    """Keeps artifacts in a dict; handy when the caller streams them itself."""

    def __init__(self):
        self.files: Dict[str, str] = {}

    async def save(self, filename: str, text: str) -> None:
        self.files[filename] = text
