"""
Planroom Tables — SQLAlchemy models for the backing store.

Tables:
1. nodes      — Self-referencing hierarchy (project locations, drawing sets)
2. documents  — Drawing sheet headers, each pointing at its current revision
3. revisions  — Append-only revision history per document

``documents.current_revision_id`` has no database foreign key: the two tables
would reference each other. The version ledger is the only writer of that
column and keeps it resolvable.
"""

from __future__ import annotations

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)

from planroom.db.base import AuditMixin, Base, new_id, utcnow


# ---------------------------------------------------------------------------
# 1. Nodes
# ---------------------------------------------------------------------------

class NodeRow(Base, AuditMixin):
    __tablename__ = "nodes"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)
    parent_id = Column(String(36), ForeignKey("nodes.id", ondelete="RESTRICT"), nullable=True)
    kind = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        CheckConstraint("parent_id IS NULL OR parent_id <> id", name="ck_nodes_no_self_parent"),
        Index("idx_nodes_owner_id", "owner_id"),
        Index("idx_nodes_parent_id", "parent_id"),
    )

    def __repr__(self) -> str:
        return f"<NodeRow(id={self.id}, name='{self.name}', parent_id={self.parent_id})>"


# ---------------------------------------------------------------------------
# 2. Documents
# ---------------------------------------------------------------------------

class DocumentRow(Base, AuditMixin):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(64), nullable=False)
    set_id = Column(String(36), ForeignKey("nodes.id", ondelete="SET NULL"), nullable=True)
    number = Column(String(100), nullable=False)
    title = Column(String(255), nullable=False)
    discipline = Column(String(50), nullable=False, default="General")
    status = Column(String(20), nullable=False, default="draft")
    current_revision_id = Column(String(36), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'for_review', 'approved')",
            name="ck_documents_status",
        ),
        Index("idx_documents_owner_id", "owner_id"),
        Index("idx_documents_set_id", "set_id"),
    )

    def __repr__(self) -> str:
        return f"<DocumentRow(id={self.id}, number='{self.number}')>"


# ---------------------------------------------------------------------------
# 3. Revisions
# ---------------------------------------------------------------------------

class RevisionRow(Base):
    __tablename__ = "revisions"

    id = Column(String(36), primary_key=True, default=new_id)
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="RESTRICT"), nullable=False)
    sequence = Column(Integer, nullable=False)
    version_label = Column(String(50), nullable=False)
    artifact_ref = Column(String(500), nullable=False)
    artifact_meta = Column(JSON, default=dict, nullable=False)
    change_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    created_by = Column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("document_id", "sequence", name="uq_revision_sequence"),
        Index("idx_revisions_document_id", "document_id"),
    )

    def __repr__(self) -> str:
        return f"<RevisionRow(id={self.id}, document_id={self.document_id}, label='{self.version_label}')>"
