from __future__ import annotations

import logging
import uuid
from pathlib import Path

from werkzeug.utils import secure_filename

from .repository import FileStorage

logger = logging.getLogger(__name__)


class LocalFileStorage(FileStorage):
    """Writes uploads under `upload_dir` with sanitized, unique names."""

    def __init__(self, upload_dir, *, url_prefix: str = "/uploads"):
        self._dir = Path(upload_dir)
        self._url_prefix = url_prefix.rstrip("/")

    def store(self, data: bytes, filename: str, content_type: str) -> str:
        safe = secure_filename(filename or "") or "upload"
        name = f"{uuid.uuid4().hex}_{safe}"

        self._dir.mkdir(parents=True, exist_ok=True)
        (self._dir / name).write_bytes(data)
        logger.info("Stored upload %s (%s, %d bytes)", name, content_type, len(data))
        return f"{self._url_prefix}/{name}"
