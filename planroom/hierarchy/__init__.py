"""
Planroom Hierarchy — self-referencing node trees.

Used for project locations and drawing-set folders. The store owns writes and
forest invariants; the resolver derives paths, depths and flattened listings.
"""

from planroom.hierarchy.index import HierarchyIndex
from planroom.hierarchy.models import FlatNode, HierarchyAudit, NodeChanges, NodeRecord
from planroom.hierarchy.paths import PathResolver
from planroom.hierarchy.store import TreeNodeStore

__all__ = [
    "FlatNode",
    "HierarchyAudit",
    "HierarchyIndex",
    "NodeChanges",
    "NodeRecord",
    "PathResolver",
    "TreeNodeStore",
]
