"""
Document Registry — drawing sheet headers and their lifecycle.

A sheet is created together with its first revision in one transaction, so a
document without revisions is never committed. Later uploads go through
``add_revision``, which delegates the append-and-promote step to the
VersionLedger.

Sheet numbers are not unique per owner. Two sheets may share "A-101"; the
listing screens show both and leave the clean-up to the user.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from planroom.db.base import new_id
from planroom.db.models import DocumentRow, NodeRow
from planroom.db.session import DEFAULT_CONNECTION, session_scope
from planroom.documents.ledger import VersionLedger, build_revision_input, load_document
from planroom.documents.models import (
    Discipline,
    DocumentChanges,
    DocumentRecord,
    DocumentStatus,
    RevisionInput,
)
from planroom.engine.errors import InvalidParentError, PlanroomValidationError
from planroom.engine.logging import log, log_document_operation
from planroom.hierarchy.store import clean_name

logger = logging.getLogger("planroom.documents.registry")

E = TypeVar("E", bound=Enum)

RevisionLike = Union[RevisionInput, Dict[str, Any]]


def _coerce(enum_type: Type[E], value: Any, field: str) -> E:
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_type)
        raise PlanroomValidationError(
            f"Invalid {field} '{value}'. Allowed: {allowed}", field=field,
        ) from None


def _as_revision(revision: RevisionLike) -> RevisionInput:
    if isinstance(revision, RevisionInput):
        return revision
    return build_revision_input(**revision)


class DocumentRegistry:
    """Create, file, edit and re-issue drawing sheets."""

    def __init__(self, ledger: Optional[VersionLedger] = None, connection: str = DEFAULT_CONNECTION):
        self._connection = connection
        self._ledger = ledger or VersionLedger(connection)

    @property
    def ledger(self) -> VersionLedger:
        return self._ledger

    def get(self, document_id: str) -> DocumentRecord:
        with session_scope(self._connection, operation="document.get") as session:
            return DocumentRecord.model_validate(load_document(session, document_id))

    def create_with_first_revision(
        self,
        owner_id: str,
        number: str,
        title: str,
        discipline: Union[Discipline, str] = Discipline.GENERAL,
        status: Union[DocumentStatus, str] = DocumentStatus.DRAFT,
        set_id: Optional[str] = None,
        *,
        first_revision: RevisionLike,
    ) -> DocumentRecord:
        """
        Create a sheet and its first revision as one unit.

        If anything fails after the header insert (revision validation,
        promotion, the database) the whole transaction rolls back and no
        document is left behind.
        """
        number = clean_name(number, "number")
        title = clean_name(title, "title")
        discipline = _coerce(Discipline, discipline, "discipline")
        status = _coerce(DocumentStatus, status, "status")
        revision = _as_revision(first_revision)

        with session_scope(self._connection, operation="document.create") as session:
            if set_id is not None:
                self._check_set(session, owner_id, set_id)

            row = DocumentRow(
                id=new_id(),
                owner_id=owner_id,
                set_id=set_id,
                number=number,
                title=title,
                discipline=discipline.value,
                status=status.value,
                created_by=revision.created_by,
            )
            session.add(row)
            session.flush()

            first = self._ledger.append_in(session, row, revision)
            record = DocumentRecord.model_validate(row)

        self._ledger.announce(first)
        logger.info("Created document %s '%s' with revision '%s'", record.id, number, first.version_label)
        log(log_document_operation("create", record.id, owner_id, actor=revision.created_by, set_id=set_id))
        return record

    def add_revision(self, document_id: str, revision: RevisionLike) -> DocumentRecord:
        """Append a revision; the returned document points at it."""
        revision = _as_revision(revision)
        with session_scope(self._connection, operation="document.add_revision") as session:
            row = load_document(session, document_id, lock=True)
            previous_id = row.current_revision_id
            appended = self._ledger.append_in(session, row, revision)
            record = DocumentRecord.model_validate(row)

        self._ledger.announce(appended, previous_id)
        return record

    def move_to_set(
        self,
        document_id: str,
        set_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> DocumentRecord:
        """File the sheet under a set of the same owner, or unfile it with set_id=None."""
        with session_scope(self._connection, operation="document.move") as session:
            row = load_document(session, document_id, lock=True)
            if set_id is not None:
                self._check_set(session, row.owner_id, set_id)
            row.set_id = set_id
            session.flush()
            record = DocumentRecord.model_validate(row)

        log(log_document_operation("move", document_id, record.owner_id, actor=actor, set_id=set_id))
        return record

    def update_details(
        self,
        document_id: str,
        changes: DocumentChanges,
        actor: Optional[str] = None,
    ) -> DocumentRecord:
        """Edit number, title, discipline or status."""
        fields = sorted(changes.model_fields_set)
        values: Dict[str, Any] = {}
        for field in fields:
            value = getattr(changes, field)
            if field in ("number", "title"):
                values[field] = clean_name(value, field)
            elif value is None:
                raise PlanroomValidationError(f"{field.capitalize()} is required", field=field)
            else:
                values[field] = value.value

        with session_scope(self._connection, operation="document.update") as session:
            row = load_document(session, document_id, lock=True)
            for field, value in values.items():
                setattr(row, field, value)
            session.flush()
            record = DocumentRecord.model_validate(row)

        if fields:
            log(log_document_operation("update", document_id, record.owner_id, actor=actor, fields_changed=fields))
        return record

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    @staticmethod
    def _check_set(session: Session, owner_id: str, set_id: str) -> None:
        """The set must exist and belong to the document's owner."""
        node = session.scalars(
            select(NodeRow).where(NodeRow.id == set_id).with_for_update(read=True)
        ).one_or_none()
        if node is None or node.owner_id != owner_id:
            raise InvalidParentError(
                f"Set {set_id} does not exist in owner {owner_id}",
                owner_id=owner_id,
                parent_id=set_id,
                field="set_id",
            )
