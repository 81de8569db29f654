from __future__ import annotations

from pathlib import Path
from typing import Protocol


class BlobStorage(Protocol):
    def download(self, storage_path: str) -> bytes: ...


class LocalBlobStorage:
    """Reads uploaded documents from a directory mirroring the bucket layout."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def download(self, storage_path: str) -> bytes:
        target = self.resolve(storage_path)
        if not target.is_file():
            raise FileNotFoundError(f"Blob not found: {storage_path}")
        return target.read_bytes()

    def resolve(self, storage_path: str) -> Path:
        relative = storage_path.lstrip("/")
        root = self.root.resolve()
        target = (root / relative).resolve()
        if not target.is_relative_to(root):
            raise ValueError(f"Storage path escapes blob root: {storage_path}")
        return target
