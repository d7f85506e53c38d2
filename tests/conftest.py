"""
Planroom Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v

Every test that touches the database gets a fresh in-memory SQLite engine
registered under the default connection name.
"""

from __future__ import annotations

from typing import Any, Dict

import pytest


# ---------------------------------------------------------------------------
# Global singletons
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset config and structured-log singletons between tests."""
    import planroom.engine.config as cfg_mod
    from planroom.engine.logging import shutdown_logging

    cfg_mod._config = None
    shutdown_logging()
    yield
    shutdown_logging()
    cfg_mod._config = None


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
def db():
    """Fresh in-memory database with all tables. Yields the engine."""
    from planroom.db.base import engine_registry
    from planroom.db.session import DEFAULT_CONNECTION, init_db

    init_db("sqlite://", create_tables=True)
    yield engine_registry.get(DEFAULT_CONNECTION)
    engine_registry.dispose()


@pytest.fixture
def store(db):
    from planroom.hierarchy.store import TreeNodeStore

    return TreeNodeStore()


@pytest.fixture
def paths(db):
    from planroom.hierarchy.paths import PathResolver

    return PathResolver()


@pytest.fixture
def ledger(db):
    from planroom.documents.ledger import VersionLedger

    return VersionLedger()


@pytest.fixture
def registry(ledger):
    from planroom.documents.registry import DocumentRegistry

    return DocumentRegistry(ledger)


@pytest.fixture
def projections(paths):
    from planroom.query.projections import ProjectionService

    return ProjectionService(paths)


@pytest.fixture
def blobs(tmp_path):
    from planroom.documents.storage import LocalBlobStore

    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def uploads(registry, blobs):
    from planroom.documents.uploads import UploadService

    return UploadService(registry, blobs, max_upload_size_mb=1)


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------

def revision(label: str = "1", **overrides: Any) -> Dict[str, Any]:
    """Raw revision fields as a caller would submit them."""
    fields: Dict[str, Any] = {
        "version_label": label,
        "artifact_ref": f"2026/10/sheet-{label}",
        "artifact_meta": {"name": f"sheet-{label}.pdf", "size_bytes": 1024, "content_type": "application/pdf"},
        "created_by": "u-1",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def make_revision():
    return revision


@pytest.fixture
def building(store):
    """Building A > Floor 2 > Room 201 under owner proj-1."""
    a = store.create("proj-1", "Building A", kind="building")
    floor = store.create("proj-1", "Floor 2", parent_id=a.id, kind="floor")
    room = store.create("proj-1", "Room 201", parent_id=floor.id, kind="room")
    return {"a": a, "floor": floor, "room": room}


@pytest.fixture
def sheet(registry):
    """Document A-101 with revision "1"."""
    return registry.create_with_first_revision(
        "proj-1", "A-101", "Ground Floor Plan",
        discipline="Architectural",
        first_revision=revision("1"),
    )
