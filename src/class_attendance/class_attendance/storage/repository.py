from __future__ import annotations

from typing import Protocol


class FileStorage(Protocol):
    def store(self, data: bytes, filename: str, content_type: str) -> str:
        """Persist `data` and return a URL the UI can link to."""

        raise NotImplementedError
