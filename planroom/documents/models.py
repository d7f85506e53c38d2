"""
Document records — pydantic views and inputs for drawing sheets and revisions.

Document: A drawing sheet header (number, title, discipline, status, set).
Revision: One uploaded file of a sheet; immutable once appended.

``Revision.is_current`` is derived from ``Document.current_revision_id`` when
the record is built. It is never stored.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class Discipline(str, Enum):
    ARCHITECTURAL = "Architectural"
    STRUCTURAL = "Structural"
    MECHANICAL = "Mechanical"
    ELECTRICAL = "Electrical"
    PLUMBING = "Plumbing"
    CIVIL = "Civil"
    LANDSCAPE = "Landscape"
    FIRE_PROTECTION = "Fire Protection"
    GENERAL = "General"


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    FOR_REVIEW = "for_review"
    APPROVED = "approved"


class ArtifactMeta(BaseModel):
    """What the blob store holds for a revision. Stored as JSON on the revision row."""

    name: str = Field(min_length=1, max_length=255)
    size_bytes: int = Field(ge=0)
    content_type: str = Field(default="application/octet-stream", max_length=100)


class RevisionInput(BaseModel):
    """Caller-supplied fields for a new revision."""

    version_label: str = Field(max_length=50)
    artifact_ref: str = Field(min_length=1, max_length=500)
    artifact_meta: ArtifactMeta
    change_notes: Optional[str] = None
    created_by: Optional[str] = None


class RevisionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    document_id: str
    sequence: int
    version_label: str
    artifact_ref: str
    artifact_meta: ArtifactMeta
    change_notes: Optional[str] = None
    created_at: datetime
    created_by: Optional[str] = None
    is_current: bool = False

    @classmethod
    def from_row(cls, row: Any, current_revision_id: Optional[str]) -> "RevisionRecord":
        return cls(
            id=row.id,
            document_id=row.document_id,
            sequence=row.sequence,
            version_label=row.version_label,
            artifact_ref=row.artifact_ref,
            artifact_meta=ArtifactMeta.model_validate(row.artifact_meta or {}),
            change_notes=row.change_notes,
            created_at=row.created_at,
            created_by=row.created_by,
            is_current=row.id == current_revision_id,
        )


class DocumentRecord(BaseModel):
    """A drawing sheet header."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    owner_id: str
    set_id: Optional[str] = None
    number: str
    title: str
    discipline: Discipline
    status: DocumentStatus
    current_revision_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None


class DocumentChanges(BaseModel):
    """
    Partial edit of a sheet's header. Only explicitly set fields apply.
    set_id and the current revision have their own operations.
    """

    number: Optional[str] = Field(default=None, max_length=100)
    title: Optional[str] = Field(default=None, max_length=255)
    discipline: Optional[Discipline] = None
    status: Optional[DocumentStatus] = None


class DocumentFilters(BaseModel):
    """Filters for document listings. None means "any"."""

    discipline: Optional[Discipline] = None
    status: Optional[DocumentStatus] = None
    set_id: Optional[str] = None
    search: Optional[str] = None


class DocumentListing(BaseModel):
    """
    One row of a document listing: the header plus its current revision.
    When the revision cannot be resolved, ``error`` describes why and
    ``current_revision`` is None.
    """

    document: DocumentRecord
    current_revision: Optional[RevisionRecord] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.error is None
