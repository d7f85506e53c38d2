"""
Upload pipeline — validate a drawing file, store it, record it.

Order of work:
1. Validate size and content type against the documents config, and the
   revision fields (label, metadata) against their record types
2. Write the bytes to the blob store
3. Create the sheet (or append a revision) through the registry
4. If step 3 fails, delete the blob again so nothing is left unreferenced
"""

from __future__ import annotations

import logging
import mimetypes
import os
from typing import List, Optional, Union

from planroom.documents.ledger import build_revision_input
from planroom.documents.models import Discipline, DocumentRecord, DocumentStatus, RevisionInput
from planroom.documents.registry import DocumentRegistry
from planroom.documents.storage import BlobData, BlobStore
from planroom.engine.errors import UploadRejectedError

logger = logging.getLogger("planroom.documents.uploads")

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Stands in for the artifact ref until the blob store hands out the real one
PENDING_REF = "pending"


def detect_content_type(file_name: str) -> str:
    """Guess a MIME type from the file name."""
    mime, _ = mimetypes.guess_type(file_name)
    return mime or DEFAULT_CONTENT_TYPE


def content_type_allowed(content_type: str, allowed: List[str]) -> bool:
    """
    Match against allowed patterns:
    exact ("application/pdf"), category wildcard ("image/*") or "*/*".
    """
    for pattern in allowed:
        if pattern in ("*/*", content_type):
            return True
        if pattern.endswith("/*") and content_type.startswith(pattern[:-1]):
            return True
    return False


def safe_filename(file_name: str) -> str:
    """
    Strip directories, control and reserved characters, and leading dots.
    Keeps the extension; caps the length at 200.
    """
    name = os.path.basename(file_name.replace("\\", "/"))
    name = "".join(c for c in name if c.isprintable() and c not in '<>:"/\\|?*')
    name = name.lstrip(".").strip()
    if not name:
        name = "unnamed_drawing"
    if len(name) > 200:
        base, ext = os.path.splitext(name)
        name = base[:200 - len(ext)] + ext
    return name


class UploadService:
    """Blob store + registry, composed with compensation on failure."""

    def __init__(
        self,
        registry: DocumentRegistry,
        blobs: BlobStore,
        max_upload_size_mb: int = 50,
        allowed_content_types: Optional[List[str]] = None,
    ):
        self._registry = registry
        self._blobs = blobs
        self._max_upload_size_mb = max_upload_size_mb
        self._allowed = allowed_content_types or ["*/*"]

    def validate_upload(self, file_name: str, size_bytes: int, content_type: str) -> None:
        """Raise UploadRejectedError when the file breaks a limit."""
        if size_bytes == 0:
            raise UploadRejectedError(f"'{file_name}' is empty", field="file")

        max_bytes = self._max_upload_size_mb * 1024 * 1024
        if size_bytes > max_bytes:
            raise UploadRejectedError(
                f"File size ({size_bytes / 1024 / 1024:.1f} MB) exceeds the "
                f"{self._max_upload_size_mb} MB limit",
                field="file",
                size_bytes=size_bytes,
            )

        if not content_type_allowed(content_type, self._allowed):
            raise UploadRejectedError(
                f"File type '{content_type}' is not allowed. Allowed: {self._allowed}",
                field="file",
                content_type=content_type,
            )

    def upload_new_document(
        self,
        owner_id: str,
        number: str,
        title: str,
        file_name: str,
        data: BlobData,
        discipline: Union[Discipline, str] = Discipline.GENERAL,
        status: Union[DocumentStatus, str] = DocumentStatus.DRAFT,
        content_type: Optional[str] = None,
        set_id: Optional[str] = None,
        version_label: str = "1",
        change_notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> DocumentRecord:
        """Store the file and create a sheet whose first revision points at it."""
        revision = self._store(file_name, data, content_type, version_label, change_notes, created_by)
        try:
            return self._registry.create_with_first_revision(
                owner_id, number, title, discipline, status, set_id,
                first_revision=revision,
            )
        except Exception:
            self._discard(revision.artifact_ref)
            raise

    def upload_revision(
        self,
        document_id: str,
        file_name: str,
        data: BlobData,
        version_label: str,
        content_type: Optional[str] = None,
        change_notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> DocumentRecord:
        """Store the file and append it as the sheet's new current revision."""
        revision = self._store(file_name, data, content_type, version_label, change_notes, created_by)
        try:
            return self._registry.add_revision(document_id, revision)
        except Exception:
            self._discard(revision.artifact_ref)
            raise

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _store(
        self,
        file_name: str,
        data: BlobData,
        content_type: Optional[str],
        version_label: str,
        change_notes: Optional[str],
        created_by: Optional[str],
    ) -> RevisionInput:
        payload = data if isinstance(data, (bytes, bytearray)) else data.read()
        name = safe_filename(file_name)
        content_type = content_type or detect_content_type(name)
        self.validate_upload(name, len(payload), content_type)

        # Validate every field before any bytes are written
        revision = build_revision_input(
            version_label=version_label,
            artifact_ref=PENDING_REF,
            artifact_meta={"name": name, "size_bytes": len(payload), "content_type": content_type},
            change_notes=change_notes,
            created_by=created_by,
        )
        ref = self._blobs.put(bytes(payload), content_type)
        return revision.model_copy(update={"artifact_ref": ref})

    def _discard(self, artifact_ref: str) -> None:
        if self._blobs.delete(artifact_ref):
            logger.info("Removed artifact %s after failed registration", artifact_ref)
