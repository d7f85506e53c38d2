"""
Query/Projection Layer — read-only shapes for selectors and list screens.

Nothing here writes. ``list_documents`` tolerates per-row failures: a sheet
whose current revision cannot be resolved, or whose stored values do not
validate, is returned with an ``error`` entry instead of failing the whole
listing.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy import or_, select

from planroom.db.models import DocumentRow, RevisionRow
from planroom.db.session import DEFAULT_CONNECTION, session_scope
from planroom.documents.models import (
    DocumentFilters,
    DocumentListing,
    DocumentRecord,
    RevisionRecord,
)
from planroom.engine.errors import (
    DanglingRevisionError,
    MalformedRecordError,
    NoRevisionsError,
    PlanroomError,
)
from planroom.engine.logging import report_defect
from planroom.hierarchy.models import NodeRecord
from planroom.hierarchy.paths import PathResolver

logger = logging.getLogger("planroom.query.projections")


def _malformed(document: DocumentRow, entity: str, exc: ValidationError, **context) -> MalformedRecordError:
    error = MalformedRecordError(
        f"Document {document.number} has a malformed {entity}: "
        + "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in exc.errors()),
        entity=entity,
        document_id=document.id,
        owner_id=document.owner_id,
        **context,
    )
    report_defect("documents", error)
    return error


def _raw_header(document: DocumentRow) -> DocumentRecord:
    """The header as stored, without validation, so a broken row still shows its number and title."""
    return DocumentRecord.model_construct(
        **{field: getattr(document, field) for field in DocumentRecord.model_fields}
    )


class SelectorOption(BaseModel):
    """An entry of a hierarchical dropdown."""

    model_config = ConfigDict(frozen=True)

    node: NodeRecord
    display_label: str
    depth: int


class ProjectionService:
    def __init__(self, paths: Optional[PathResolver] = None, connection: str = DEFAULT_CONNECTION):
        self._connection = connection
        self._paths = paths or PathResolver(connection)

    def list_for_selector(self, owner_id: str) -> List[SelectorOption]:
        """Flattened tree, parents before their descendants."""
        return [
            SelectorOption(node=row.node, display_label=row.display_label, depth=row.depth)
            for row in self._paths.flatten(owner_id)
        ]

    def list_documents(
        self,
        owner_id: str,
        filters: Optional[DocumentFilters] = None,
    ) -> List[DocumentListing]:
        """Sheets of an owner joined to their current revision, ordered by (number, title)."""
        filters = filters or DocumentFilters()
        stmt = select(DocumentRow).where(DocumentRow.owner_id == owner_id)
        if filters.discipline is not None:
            stmt = stmt.where(DocumentRow.discipline == filters.discipline.value)
        if filters.status is not None:
            stmt = stmt.where(DocumentRow.status == filters.status.value)
        if filters.set_id is not None:
            stmt = stmt.where(DocumentRow.set_id == filters.set_id)
        if filters.search and filters.search.strip():
            term = filters.search.strip()
            pattern = "%" + term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
            stmt = stmt.where(or_(
                DocumentRow.number.ilike(pattern, escape="\\"),
                DocumentRow.title.ilike(pattern, escape="\\"),
            ))
        stmt = stmt.order_by(DocumentRow.number, DocumentRow.title)

        with session_scope(self._connection, operation="document.list") as session:
            documents = session.scalars(stmt).all()
            current_ids = {d.current_revision_id for d in documents if d.current_revision_id}
            revisions: Dict[str, RevisionRow] = {}
            if current_ids:
                revisions = {
                    r.id: r for r in session.scalars(select(RevisionRow).where(RevisionRow.id.in_(current_ids)))
                }
            listings = [self._listing(d, revisions) for d in documents]

        failed = sum(1 for row in listings if not row.ok)
        if failed:
            logger.warning("Listed %d document(s) for %s, %d without a current revision", len(listings), owner_id, failed)
        return listings

    @staticmethod
    def _listing(document: DocumentRow, revisions: Dict[str, RevisionRow]) -> DocumentListing:
        try:
            record = DocumentRecord.model_validate(document)
        except ValidationError as e:
            error = _malformed(document, "document", e)
            return DocumentListing(document=_raw_header(document), error=error.to_dict())

        try:
            if document.current_revision_id is None:
                raise NoRevisionsError(
                    f"Document {document.number} has no revisions",
                    document_id=document.id,
                    owner_id=document.owner_id,
                )
            revision = revisions.get(document.current_revision_id)
            if revision is None or revision.document_id != document.id:
                error = DanglingRevisionError(
                    f"Document {document.number} points at a missing revision",
                    document_id=document.id,
                    owner_id=document.owner_id,
                    revision_id=document.current_revision_id,
                )
                report_defect("documents", error)
                raise error
            try:
                current = RevisionRecord.from_row(revision, document.current_revision_id)
            except ValidationError as e:
                raise _malformed(document, "revision", e, revision_id=revision.id) from e
        except PlanroomError as e:
            return DocumentListing(document=record, error=e.to_dict())
        return DocumentListing(document=record, current_revision=current)
