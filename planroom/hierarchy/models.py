"""
Hierarchy records — pydantic views of ``nodes`` rows handed to callers.

Records are detached copies: they stay valid after the session closes and
never write back to the database.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

PATH_SEPARATOR = " > "


class NodeRecord(BaseModel):
    """A location or drawing-set folder."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    owner_id: str
    name: str
    parent_id: Optional[str] = None
    kind: Optional[str] = None
    description: Optional[str] = None
    sort_order: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class NodeChanges(BaseModel):
    """
    Partial edit of a node's descriptive fields.

    Only fields the caller actually set are applied, so ``NodeChanges(kind=None)``
    clears the kind while ``NodeChanges()`` changes nothing. Name and parent
    have their own operations (rename / reparent) because they carry invariants.
    """

    kind: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None
    sort_order: Optional[int] = None

    def applied_fields(self) -> List[str]:
        return sorted(self.model_fields_set)


class FlatNode(BaseModel):
    """One row of a depth-first flattened tree."""

    model_config = ConfigDict(frozen=True)

    node: NodeRecord
    depth: int = Field(ge=0)
    display_label: str


class HierarchyAudit(BaseModel):
    """Integrity report for one owner's tree. Empty lists mean a clean forest."""

    owner_id: str
    node_count: int = 0
    cycles: List[List[str]] = Field(default_factory=list)
    dangling_parents: List[str] = Field(default_factory=list)
    cross_owner_parents: List[str] = Field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (self.cycles or self.dangling_parents or self.cross_owner_parents)
