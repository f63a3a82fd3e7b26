"""Scratch storage for media that passes through the transcoder."""

import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from loguru import logger


class MediaManager:
    """Manages temporary media files for a single command execution.

    Directory layout::

        base_dir/
        ├── temp_1738934400123_ab12cd.jpg     (downloaded source)
        ├── sticker_1738934400456_ef34ab.webp (transcoder output)
        └── meta_1738934400789_0a1b2c.exif    (sticker metadata)
    """

    def __init__(self, base_dir: Path):
        self._base_dir = base_dir

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def new_path(self, prefix: str, ext: str) -> Path:
        """Return a fresh, not-yet-existing path like ``{prefix}_{millis}_{rand}.{ext}``."""
        self._base_dir.mkdir(parents=True, exist_ok=True)
        ext = ext.lstrip(".")
        filename = f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}.{ext}"
        return self._unique_path(self._base_dir / filename)

    def save(self, prefix: str, ext: str, data: bytes) -> Path:
        path = self.new_path(prefix, ext)
        path.write_bytes(data)
        logger.debug(f"Saved media: {path}")
        return path

    @contextmanager
    def workspace(self) -> Iterator[list[Path]]:
        """Collect paths created during a block and delete them on exit.

        Usage::

            with media.workspace() as scratch:
                src = media.save("temp", "jpg", data)
                scratch.append(src)
        """
        created: list[Path] = []
        try:
            yield created
        finally:
            for path in created:
                self.remove(path)

    @staticmethod
    def remove(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove temp file {path}: {e}")

    @staticmethod
    def _unique_path(path: Path) -> Path:
        """Append _1, _2, etc. if the path already exists."""
        if not path.exists():
            return path

        stem = path.stem
        suffix = path.suffix
        parent = path.parent
        counter = 1
        while True:
            candidate = parent / f"{stem}_{counter}{suffix}"
            if not candidate.exists():
                return candidate
            counter += 1
