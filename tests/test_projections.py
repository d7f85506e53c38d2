"""Unit tests for planroom.query.projections — ProjectionService."""

from sqlalchemy import update

from planroom.db.models import DocumentRow, RevisionRow
from planroom.db.session import session_scope
from planroom.documents.models import Discipline, DocumentFilters, DocumentStatus


def _seed(registry, store, make_revision):
    folder = store.create("proj-1", "Permit Set", kind="drawing_set")
    docs = {
        "a102": registry.create_with_first_revision(
            "proj-1", "A-102", "Second Floor Plan", discipline="Architectural",
            set_id=folder.id, first_revision=make_revision("1"),
        ),
        "a101": registry.create_with_first_revision(
            "proj-1", "A-101", "Ground Floor Plan", discipline="Architectural",
            status="approved", first_revision=make_revision("1"),
        ),
        "e201": registry.create_with_first_revision(
            "proj-1", "E-201", "Lighting 100%_final", discipline="Electrical",
            set_id=folder.id, first_revision=make_revision("3"),
        ),
    }
    registry.create_with_first_revision("proj-2", "A-101", "Other project", first_revision=make_revision("1"))
    return folder, docs


class TestListForSelector:
    def test_options_in_tree_order(self, projections, building):
        options = projections.list_for_selector("proj-1")
        assert [(o.node.name, o.depth) for o in options] == [
            ("Building A", 0), ("Floor 2", 1), ("Room 201", 2),
        ]
        assert options[2].display_label == "Building A > Floor 2 > Room 201"


class TestListDocuments:
    def test_ordered_by_number_with_current_revision(self, projections, registry, store, make_revision):
        _, docs = _seed(registry, store, make_revision)
        registry.add_revision(docs["a101"].id, make_revision("2"))

        rows = projections.list_documents("proj-1")
        assert [r.document.number for r in rows] == ["A-101", "A-102", "E-201"]
        assert all(r.ok for r in rows)
        assert rows[0].current_revision.version_label == "2"
        assert rows[0].current_revision.is_current
        assert rows[2].current_revision.artifact_meta.name == "sheet-3.pdf"

    def test_filters(self, projections, registry, store, make_revision):
        folder, _ = _seed(registry, store, make_revision)

        def numbers(**filters):
            return [r.document.number for r in projections.list_documents("proj-1", DocumentFilters(**filters))]

        assert numbers(discipline=Discipline.ELECTRICAL) == ["E-201"]
        assert numbers(status=DocumentStatus.APPROVED) == ["A-101"]
        assert numbers(set_id=folder.id) == ["A-102", "E-201"]
        assert numbers(search="floor") == ["A-101", "A-102"]
        assert numbers(search="e-2") == ["E-201"]
        assert numbers(search="   ") == ["A-101", "A-102", "E-201"]

    def test_search_wildcards_are_literal(self, projections, registry, store, make_revision):
        _seed(registry, store, make_revision)
        numbers = [r.document.number for r in projections.list_documents("proj-1", DocumentFilters(search="100%_"))]
        assert numbers == ["E-201"]
        assert projections.list_documents("proj-1", DocumentFilters(search="A%1")) == []

    def test_empty_owner(self, projections, db):
        assert projections.list_documents("proj-empty") == []

    def test_bad_row_reported_inline(self, projections, registry, store, make_revision):
        _, docs = _seed(registry, store, make_revision)
        with session_scope() as session:
            session.execute(
                update(DocumentRow).where(DocumentRow.id == docs["a102"].id).values(current_revision_id="bogus")
            )

        rows = projections.list_documents("proj-1")
        assert len(rows) == 3
        bad = rows[1]
        assert bad.document.number == "A-102"
        assert not bad.ok
        assert bad.current_revision is None
        assert bad.error["kind"] == "DanglingRevision"
        assert bad.error["document_id"] == docs["a102"].id
        assert rows[0].ok and rows[2].ok

    def test_missing_pointer_reported_inline(self, projections, registry, store, make_revision):
        _, docs = _seed(registry, store, make_revision)
        with session_scope() as session:
            session.execute(
                update(DocumentRow).where(DocumentRow.id == docs["e201"].id).values(current_revision_id=None)
            )

        rows = projections.list_documents("proj-1")
        assert rows[2].error["kind"] == "NoRevisions"
        assert rows[0].ok and rows[1].ok

    def test_unknown_discipline_reported_inline(self, projections, registry, store, make_revision):
        _, docs = _seed(registry, store, make_revision)
        with session_scope() as session:
            session.execute(
                update(DocumentRow).where(DocumentRow.id == docs["a101"].id).values(discipline="Interior")
            )

        rows = projections.list_documents("proj-1")
        assert len(rows) == 3
        bad = rows[0]
        assert bad.error["kind"] == "MalformedRecord"
        assert bad.error["context"]["entity"] == "document"
        assert bad.document.number == "A-101"
        assert bad.document.discipline == "Interior"
        assert bad.current_revision is None
        assert rows[1].ok and rows[2].ok

    def test_malformed_artifact_meta_reported_inline(self, projections, registry, store, make_revision):
        _, docs = _seed(registry, store, make_revision)
        with session_scope() as session:
            session.execute(
                update(RevisionRow)
                .where(RevisionRow.id == docs["e201"].current_revision_id)
                .values(artifact_meta={})
            )

        rows = projections.list_documents("proj-1")
        bad = rows[2]
        assert bad.error["kind"] == "MalformedRecord"
        assert bad.error["context"]["revision_id"] == docs["e201"].current_revision_id
        assert bad.document.discipline is Discipline.ELECTRICAL
        assert rows[0].ok and rows[1].ok
