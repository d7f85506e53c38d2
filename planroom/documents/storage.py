"""
Blob storage for revision artifacts.

The core only ever sees an opaque ``artifact_ref``. ``LocalBlobStore`` keeps
bytes on disk under ``{root}/{yyyy}/{mm}/{uuid}``; other backends implement
the same three calls.
"""

from __future__ import annotations

import hashlib
import io
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Protocol, Union, runtime_checkable

from planroom.engine.errors import NotFoundError

logger = logging.getLogger("planroom.documents.storage")

CHUNK_SIZE = 8192

BlobData = Union[bytes, BinaryIO]


@runtime_checkable
class BlobStore(Protocol):
    def put(self, data: BlobData, content_type: str) -> str:
        """Store bytes, return an artifact reference."""

    def get(self, artifact_ref: str) -> bytes:
        """Return the bytes for a reference."""

    def delete(self, artifact_ref: str) -> bool:
        """Remove an artifact. Returns False if it did not exist."""


class LocalBlobStore:
    """Filesystem blob store. The root directory is created on the first put."""

    def __init__(self, root: Union[str, Path]):
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def put(self, data: BlobData, content_type: str) -> str:
        now = datetime.now(timezone.utc)
        ref = f"{now:%Y}/{now:%m}/{uuid.uuid4().hex}"
        target = self._resolve(ref)
        target.parent.mkdir(parents=True, exist_ok=True)

        stream = io.BytesIO(data) if isinstance(data, (bytes, bytearray)) else data
        digest = hashlib.sha256()
        written = 0
        with open(target, "wb") as f:
            while True:
                chunk = stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                f.write(chunk)
                digest.update(chunk)
                written += len(chunk)

        logger.info("Stored %s (%d bytes, %s, sha256=%s)", ref, written, content_type, digest.hexdigest()[:12])
        return ref

    def get(self, artifact_ref: str) -> bytes:
        path = self._resolve(artifact_ref)
        if not path.is_file():
            raise NotFoundError(f"Artifact {artifact_ref} not found", entity="artifact", entity_id=artifact_ref)
        return path.read_bytes()

    def delete(self, artifact_ref: str) -> bool:
        path = self._resolve(artifact_ref)
        if not path.is_file():
            return False
        path.unlink()
        logger.info("Deleted artifact %s", artifact_ref)
        return True

    def size_of(self, artifact_ref: str) -> int:
        return self._resolve(artifact_ref).stat().st_size

    def _resolve(self, artifact_ref: str) -> Path:
        path = (self._root / artifact_ref).resolve()
        if self._root.resolve() not in path.parents:
            raise NotFoundError(f"Artifact {artifact_ref} not found", entity="artifact", entity_id=artifact_ref)
        return path

    def __repr__(self) -> str:
        return f"<LocalBlobStore root='{self._root}'>"
