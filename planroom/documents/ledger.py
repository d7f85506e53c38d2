"""
Version Ledger — append-only revision history with one current revision.

Appending a revision and pointing the document at it happen in the same
transaction: observers see either the old or the new current revision, never
a revision that exists without being promoted. If promotion fails the new
revision row is rolled back with it.

"Current" lives only in ``documents.current_revision_id``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from planroom.db.base import utcnow
from planroom.db.models import DocumentRow, RevisionRow
from planroom.db.session import DEFAULT_CONNECTION, session_scope
from planroom.engine.errors import (
    DanglingRevisionError,
    EmptyNameError,
    NoRevisionsError,
    NotFoundError,
    PlanroomValidationError,
)
from planroom.engine.logging import log, log_revision_appended, report_defect
from planroom.documents.models import ArtifactMeta, RevisionInput, RevisionRecord

logger = logging.getLogger("planroom.documents.ledger")


def load_document(session: Session, document_id: str, lock: bool = False) -> DocumentRow:
    """Fetch a document row, optionally locking it for the rest of the transaction."""
    stmt = select(DocumentRow).where(DocumentRow.id == document_id)
    if lock:
        stmt = stmt.with_for_update()
    row = session.scalars(stmt).one_or_none()
    if row is None:
        raise NotFoundError(
            f"Document {document_id} not found",
            entity="document",
            entity_id=document_id,
            document_id=document_id,
        )
    return row


def build_revision_input(**fields: Any) -> RevisionInput:
    """Validate raw revision fields, reporting problems as a Planroom validation error."""
    try:
        return RevisionInput(**fields)
    except ValidationError as e:
        raise PlanroomValidationError(
            "Invalid revision: " + "; ".join(err["msg"] for err in e.errors()),
            document_id=fields.get("document_id"),
            validation_errors=e.errors(),
        ) from e


def _aware(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class VersionLedger:
    """Revision history per document."""

    def __init__(self, connection: str = DEFAULT_CONNECTION):
        self._connection = connection

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------

    def append_revision(
        self,
        document_id: str,
        version_label: str,
        artifact_ref: str,
        artifact_meta: Union[ArtifactMeta, Dict[str, Any]],
        change_notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> RevisionRecord:
        """Append a revision and make it the document's current one."""
        revision = build_revision_input(
            version_label=version_label,
            artifact_ref=artifact_ref,
            artifact_meta=artifact_meta,
            change_notes=change_notes,
            created_by=created_by,
        )
        with session_scope(self._connection, operation="revision.append") as session:
            document = load_document(session, document_id, lock=True)
            previous_id = document.current_revision_id
            record = self.append_in(session, document, revision)

        self.announce(record, previous_id)
        return record

    def append_in(self, session: Session, document: DocumentRow, revision: RevisionInput) -> RevisionRecord:
        """
        Append inside the caller's transaction. The caller must hold a lock on
        ``document`` (or have just inserted it) and commit or roll back.
        """
        label = revision.version_label.strip()
        if not label:
            raise EmptyNameError(
                "Version label must not be blank",
                field="version_label",
                document_id=document.id,
            )

        last = session.execute(
            select(RevisionRow.sequence, RevisionRow.created_at)
            .where(RevisionRow.document_id == document.id)
            .order_by(RevisionRow.sequence.desc())
            .limit(1)
        ).first()

        # created_at never goes backwards within a document, so the
        # (created_at, sequence) order is always the append order.
        created_at = utcnow()
        sequence = 1
        if last is not None:
            sequence = last.sequence + 1
            created_at = max(created_at, _aware(last.created_at))

        row = RevisionRow(
            document_id=document.id,
            sequence=sequence,
            version_label=label,
            artifact_ref=revision.artifact_ref,
            artifact_meta=revision.artifact_meta.model_dump(),
            change_notes=revision.change_notes,
            created_at=created_at,
            created_by=revision.created_by,
        )
        session.add(row)
        session.flush()

        self._promote(session, document, row)
        return RevisionRecord.from_row(row, document.current_revision_id)

    @staticmethod
    def _promote(session: Session, document: DocumentRow, revision: RevisionRow) -> None:
        document.current_revision_id = revision.id
        session.flush()

    @staticmethod
    def announce(record: RevisionRecord, previous_revision_id: Optional[str] = None) -> None:
        """Log a committed append. Call only after the transaction commits."""
        logger.info(
            "Document %s: revision '%s' (#%d) is now current",
            record.document_id, record.version_label, record.sequence,
        )
        log(log_revision_appended(
            record.document_id, record.id, record.version_label, record.sequence,
            previous_revision_id=previous_revision_id,
            actor=record.created_by,
            size_bytes=record.artifact_meta.size_bytes,
        ))

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------

    def history(self, document_id: str) -> List[RevisionRecord]:
        """All revisions, oldest first."""
        with session_scope(self._connection, operation="revision.history") as session:
            document = load_document(session, document_id)
            rows = session.scalars(
                select(RevisionRow)
                .where(RevisionRow.document_id == document_id)
                .order_by(RevisionRow.created_at, RevisionRow.sequence)
            ).all()
            return [RevisionRecord.from_row(r, document.current_revision_id) for r in rows]

    def current(self, document_id: str) -> RevisionRecord:
        with session_scope(self._connection, operation="revision.current") as session:
            document = load_document(session, document_id)
            return self.current_in(session, document)

    def current_in(self, session: Session, document: DocumentRow) -> RevisionRecord:
        if document.current_revision_id is None:
            raise NoRevisionsError(
                f"Document {document.number} has no revisions",
                document_id=document.id,
                owner_id=document.owner_id,
            )

        row = session.get(RevisionRow, document.current_revision_id)
        if row is None or row.document_id != document.id:
            error = DanglingRevisionError(
                f"Document {document.number} points at revision "
                f"{document.current_revision_id}, which is not one of its revisions",
                document_id=document.id,
                owner_id=document.owner_id,
                revision_id=document.current_revision_id,
            )
            report_defect("documents", error)
            raise error
        return RevisionRecord.from_row(row, document.current_revision_id)

    def get_revision(self, revision_id: str) -> RevisionRecord:
        with session_scope(self._connection, operation="revision.get") as session:
            row = session.get(RevisionRow, revision_id)
            if row is None:
                raise NotFoundError(
                    f"Revision {revision_id} not found", entity="revision", entity_id=revision_id,
                )
            document = load_document(session, row.document_id)
            return RevisionRecord.from_row(row, document.current_revision_id)
