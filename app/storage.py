"""Object storage backed by a local directory tree (one folder per bucket)."""
from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path

from app.errors import DocumentNotFound

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass
class StoredObject:
    content: bytes
    content_type: str
    filename: str


class LocalObjectStorage:
    """Read and write objects under ``root/<bucket>/<path>``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _resolve(self, bucket: str, path: str) -> Path:
        root = self.root.resolve()
        bucket_dir = (root / bucket).resolve()
        if bucket_dir.parent != root:
            raise DocumentNotFound(f"{bucket}/{path}")
        target = (bucket_dir / path).resolve()
        # Keys may not climb out of their bucket.
        if bucket_dir not in target.parents:
            raise DocumentNotFound(f"{bucket}/{path}")
        return target

    def upload(self, bucket: str, path: str, content: bytes) -> Path:
        target = self._resolve(bucket, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        return target

    def download(self, bucket: str, path: str) -> StoredObject:
        target = self._resolve(bucket, path)
        if not target.is_file():
            raise DocumentNotFound(f"{bucket}/{path}")
        content_type, _ = mimetypes.guess_type(target.name)
        return StoredObject(
            content=target.read_bytes(),
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            filename=target.name,
        )
