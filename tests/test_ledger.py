"""Unit tests for planroom.documents.ledger — VersionLedger."""

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from planroom.db.models import DocumentRow, RevisionRow
from planroom.db.session import session_scope
from planroom.documents.ledger import VersionLedger, build_revision_input
from planroom.engine.errors import (
    DanglingRevisionError,
    EmptyNameError,
    NoRevisionsError,
    NotFoundError,
    PlanroomRecordError,
    PlanroomValidationError,
)


def _append(ledger, document_id, label, **overrides):
    fields = {
        "artifact_ref": f"2026/10/{label}",
        "artifact_meta": {"name": f"{label}.pdf", "size_bytes": 2048},
    }
    fields.update(overrides)
    return ledger.append_revision(document_id, label, **fields)


def _revision_count(document_id):
    with session_scope() as session:
        return session.scalar(
            select(func.count()).select_from(RevisionRow).where(RevisionRow.document_id == document_id)
        )


class TestBuildRevisionInput:
    def test_valid(self, make_revision):
        revision = build_revision_input(**make_revision("A"))
        assert revision.artifact_meta.content_type == "application/pdf"

    def test_invalid_meta(self, make_revision):
        with pytest.raises(PlanroomValidationError, match="Invalid revision"):
            build_revision_input(**make_revision("A", artifact_meta={"name": "", "size_bytes": -1}))


class TestAppend:
    def test_first_revision_is_current(self, ledger, sheet):
        current = ledger.current(sheet.id)
        assert current.id == sheet.current_revision_id
        assert current.version_label == "1"
        assert current.sequence == 1
        assert current.is_current

    def test_append_promotes(self, ledger, registry, sheet):
        appended = _append(ledger, sheet.id, "2", change_notes="Revised per RFI 12", created_by="u-2")
        assert appended.is_current
        assert appended.sequence == 2
        assert appended.change_notes == "Revised per RFI 12"
        assert registry.get(sheet.id).current_revision_id == appended.id
        assert ledger.current(sheet.id).id == appended.id

    def test_label_trimmed(self, ledger, sheet):
        assert _append(ledger, sheet.id, "  B ").version_label == "B"

    def test_blank_label(self, ledger, sheet):
        with pytest.raises(EmptyNameError) as exc_info:
            _append(ledger, sheet.id, "   ")
        assert exc_info.value.field == "version_label"
        assert _revision_count(sheet.id) == 1

    def test_labels_may_repeat(self, ledger, sheet):
        _append(ledger, sheet.id, "1")
        assert [r.version_label for r in ledger.history(sheet.id)] == ["1", "1"]

    def test_unknown_document(self, ledger, db):
        with pytest.raises(NotFoundError):
            _append(ledger, "no-such-doc", "2")

    def test_promotion_failure_rolls_back(self, ledger, sheet, monkeypatch):
        def broken_promote(session, document, revision):
            raise OperationalError("UPDATE documents", {}, Exception("disk I/O error"))

        monkeypatch.setattr(VersionLedger, "_promote", staticmethod(broken_promote))
        with pytest.raises(PlanroomRecordError) as exc_info:
            _append(ledger, sheet.id, "2")
        assert exc_info.value.operation == "revision.append"

        monkeypatch.undo()
        assert _revision_count(sheet.id) == 1
        assert ledger.current(sheet.id).version_label == "1"


class TestHistory:
    def test_oldest_first(self, ledger, sheet):
        for label in ("2", "3", "4"):
            _append(ledger, sheet.id, label)
        history = ledger.history(sheet.id)
        assert [r.version_label for r in history] == ["1", "2", "3", "4"]
        assert [r.sequence for r in history] == [1, 2, 3, 4]
        assert [r.is_current for r in history] == [False, False, False, True]

    def test_current_is_latest_member_of_history(self, ledger, sheet):
        for label in ("B", "C", "D"):
            appended = _append(ledger, sheet.id, label)
            current = ledger.current(sheet.id)
            history = ledger.history(sheet.id)
            assert current.id == appended.id
            assert current.id in {r.id for r in history}
            assert history[-1].id == current.id

    def test_created_at_never_decreases(self, ledger, sheet):
        for label in ("2", "3"):
            _append(ledger, sheet.id, label)
        stamps = [r.created_at for r in ledger.history(sheet.id)]
        assert stamps == sorted(stamps)

    def test_get_revision(self, ledger, sheet):
        first = ledger.current(sheet.id)
        _append(ledger, sheet.id, "2")
        fetched = ledger.get_revision(first.id)
        assert fetched.version_label == "1"
        assert not fetched.is_current

    def test_get_unknown_revision(self, ledger, db):
        with pytest.raises(NotFoundError):
            ledger.get_revision("no-such-revision")


class TestCurrentPointerDefects:
    def test_no_revisions(self, ledger, db):
        with session_scope() as session:
            session.add(DocumentRow(id="d-bare", owner_id="proj-1", number="X-1", title="Bare"))
        with pytest.raises(NoRevisionsError):
            ledger.current("d-bare")

    def test_dangling_pointer(self, ledger, sheet):
        with session_scope() as session:
            session.execute(
                update(DocumentRow).where(DocumentRow.id == sheet.id).values(current_revision_id="bogus")
            )
        with pytest.raises(DanglingRevisionError) as exc_info:
            ledger.current(sheet.id)
        assert exc_info.value.revision_id == "bogus"

    def test_pointer_to_other_documents_revision(self, ledger, registry, sheet, make_revision):
        other = registry.create_with_first_revision("proj-1", "A-102", "Roof Plan", first_revision=make_revision("1"))
        with session_scope() as session:
            session.execute(
                update(DocumentRow).where(DocumentRow.id == sheet.id)
                .values(current_revision_id=other.current_revision_id)
            )
        with pytest.raises(DanglingRevisionError):
            ledger.current(sheet.id)
