"""Prebuilt frontend bundle: static asset lookup and entry-document fallback."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from fastapi.responses import FileResponse

from ..errors import EntryDocumentMissing, StaticAssetError

logger = logging.getLogger(__name__)


class StaticBundle:
    """Serves files from the bundle directory.

    Security: resolves symlinks and verifies the final path is inside the
    bundle directory, so `..` segments never escape it.
    """

    def __init__(self, directory: str | Path, *, entry_document: str = "index.html", cache_control: str = "public, max-age=0"):
        self._directory = Path(directory).resolve()
        self._entry_document = entry_document
        self._cache_control = cache_control

    @property
    def directory(self) -> Path:
        return self._directory

    def resolve(self, path: str) -> Optional[Path]:
        """Return the bundle file for a URL path, or None (StaticAssetMissing)."""
        relative = path.lstrip("/")
        try:
            file_path = (self._directory / relative).resolve() if relative else self._directory
            if not file_path.is_relative_to(self._directory):
                return None
            if file_path.is_dir():
                file_path = file_path / self._entry_document
            if not file_path.is_file():
                return None
        except (OSError, ValueError):
            # Embedded NUL bytes, overlong names and the like.
            return None
        return file_path

    def entry_document(self) -> Path:
        file_path = self._directory / self._entry_document
        if not file_path.is_file():
            raise EntryDocumentMissing(f"{file_path} not found; build the frontend bundle first")
        return file_path

    def file_response(self, file_path: Path) -> FileResponse:
        # FileResponse streams lazily, after the status line is sent. Check
        # readability up front so a broken file becomes a clean 500.
        if not os.access(file_path, os.R_OK):
            raise StaticAssetError(str(file_path), "permission denied")
        try:
            stat_result = file_path.stat()
        except OSError as e:
            raise StaticAssetError(str(file_path), str(e)) from e
        return FileResponse(
            file_path,
            stat_result=stat_result,
            headers={"Cache-Control": self._cache_control},
        )
