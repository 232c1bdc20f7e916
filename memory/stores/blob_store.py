"""Filesystem object store."""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path

from memory.stores.object_store import BlobInfo, ObjectStore

_META_DIR = ".meta"


class FileBlobStore(ObjectStore):
    """Stores blobs inside a workspace-local directory.

    Metadata lives in a parallel ``.meta/`` tree as JSON sidecars so that
    listings never need to open blob bodies.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def initialize(self) -> None:
        (self.root / _META_DIR).mkdir(parents=True, exist_ok=True)

    def _blob_path(self, path: str) -> Path:
        clean = path.strip("/")
        if not clean or ".." in Path(clean).parts or clean.startswith(_META_DIR):
            raise ValueError(f"Invalid blob path: {path!r}")
        return self.root / clean

    def _meta_path(self, path: str) -> Path:
        return self.root / _META_DIR / (path.strip("/") + ".json")

    @staticmethod
    def _atomic_write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def put(self, path: str, data: bytes, metadata: dict[str, str] | None = None) -> None:
        blob = self._blob_path(path)
        self._atomic_write(blob, data)
        meta = json.dumps(metadata or {}, ensure_ascii=True).encode("utf-8")
        self._atomic_write(self._meta_path(path), meta)

    def get(self, path: str) -> bytes | None:
        blob = self._blob_path(path)
        if not blob.is_file():
            return None
        return blob.read_bytes()

    def exists(self, path: str) -> bool:
        return self._blob_path(path).is_file()

    def delete(self, path: str) -> bool:
        blob = self._blob_path(path)
        if not blob.is_file():
            return False
        blob.unlink()
        self._meta_path(path).unlink(missing_ok=True)
        return True

    def _read_meta(self, path: str) -> dict[str, str]:
        meta = self._meta_path(path)
        if not meta.is_file():
            return {}
        try:
            data = json.loads(meta.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return {}
        return {str(k): str(v) for k, v in data.items()} if isinstance(data, dict) else {}

    def list_by_prefix(self, prefix: str) -> Iterator[BlobInfo]:
        if not self.root.exists():
            return
        meta_root = self.root / _META_DIR
        # Narrow the walk to the deepest directory named by the prefix.
        base = self.root / prefix.rsplit("/", 1)[0] if "/" in prefix else self.root
        if not base.is_dir():
            return
        paths: list[str] = []
        for file in base.rglob("*"):
            if not file.is_file() or file.name.startswith(".tmp-"):
                continue
            if meta_root in file.parents:
                continue
            rel = file.relative_to(self.root).as_posix()
            if rel.startswith(prefix):
                paths.append(rel)
        for rel in sorted(paths):
            yield BlobInfo(path=rel, metadata=self._read_meta(rel))
