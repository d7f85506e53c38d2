"""
Planroom — construction project plan room core.

Two subsystems live here:

    hierarchy   — self-referential node trees (project locations, drawing sets)
    documents   — drawing sheets with an append-only revision ledger

Both are backed by SQLAlchemy tables and expose pydantic records to callers.
"""

__version__ = "1.0.0"
__all__ = ["engine", "db", "hierarchy", "documents", "query"]
