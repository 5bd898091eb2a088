from __future__ import annotations

import logging
import re
import secrets
import time
from pathlib import Path

from translate_glue.errors import StorageError
from translate_glue.types import MediaHandle, StorageArea, UploadedMedia

logger = logging.getLogger(__name__)


def _sanitize_extension(filename: str | None) -> str:
    suffix = Path(filename or "").suffix.lower()
    clean = re.sub(r"[^a-z0-9]+", "", suffix)
    return f".{clean[:10]}" if clean else ""


def _unique_name(prefix: str, suffix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{suffix}"


class MediaStore:
    """Scratch storage for one request's upload and its converted audio."""

    def __init__(self, data_dir: Path, max_bytes: int = 100 * 1024 * 1024) -> None:
        self.data_dir = data_dir
        self.max_bytes = max_bytes
        self.roots: dict[str, Path] = {
            "uploads": data_dir / "uploads",
            "converted": data_dir / "converted",
        }
        for root in self.roots.values():
            root.mkdir(parents=True, exist_ok=True)

    def store(self, media: UploadedMedia) -> MediaHandle:
        size = len(media.data)
        if size > self.max_bytes or media.size > self.max_bytes:
            raise StorageError(
                f"Upload of {max(size, media.size)} bytes exceeds the {self.max_bytes} byte limit"
            )

        handle = self.allocate(
            "uploads",
            _sanitize_extension(media.filename),
            prefix="media",
            original_filename=media.filename,
        )
        try:
            handle.path.write_bytes(media.data)
        except OSError as exc:
            self.release(handle)
            raise StorageError(f"Could not write upload to {handle.path.parent}: {exc}", cause=exc) from exc

        logger.info("Stored upload %s (%d bytes) as %s", media.filename, size, handle.name)
        return handle

    def allocate(
        self,
        area: StorageArea,
        suffix: str = "",
        prefix: str = "converted",
        original_filename: str | None = None,
    ) -> MediaHandle:
        """Reserve a unique path in ``area`` without creating the file."""
        root = self.roots[area]
        name = _unique_name(prefix, suffix)
        return MediaHandle(name=name, path=root / name, area=area, original_filename=original_filename)

    def read(self, handle: MediaHandle) -> bytes:
        try:
            return handle.path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Could not read stored file {handle.name}: {exc}", cause=exc) from exc

    def release(self, handle: MediaHandle | None) -> None:
        if handle is None:
            return
        handle.path.unlink(missing_ok=True)
        logger.info("Released %s/%s", handle.area, handle.name)

    def residual_files(self) -> list[Path]:
        return sorted(path for root in self.roots.values() for path in root.iterdir() if path.is_file())
