"""
Planroom Documents — drawing sheets with versioned revisions.

The registry owns sheet headers, the ledger owns revision history and the
current-revision pointer, the upload service ties both to a blob store.
"""

from planroom.documents.ledger import VersionLedger
from planroom.documents.models import (
    ArtifactMeta,
    Discipline,
    DocumentChanges,
    DocumentFilters,
    DocumentListing,
    DocumentRecord,
    DocumentStatus,
    RevisionInput,
    RevisionRecord,
)
from planroom.documents.registry import DocumentRegistry
from planroom.documents.storage import BlobStore, LocalBlobStore
from planroom.documents.uploads import UploadService

__all__ = [
    "ArtifactMeta",
    "BlobStore",
    "Discipline",
    "DocumentChanges",
    "DocumentFilters",
    "DocumentListing",
    "DocumentRecord",
    "DocumentRegistry",
    "DocumentStatus",
    "LocalBlobStore",
    "RevisionInput",
    "RevisionRecord",
    "UploadService",
    "VersionLedger",
]
