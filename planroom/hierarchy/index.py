"""
HierarchyIndex — parent-indexed map of one owner's nodes.

Built once per operation from a single query, then walked in memory. Every walk
is bounded by the owner's node count so corrupted data (a parent loop, a
parent outside the owner) raises CorruptHierarchyError instead of looping.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

import networkx as nx

from planroom.engine.errors import CorruptHierarchyError
from planroom.hierarchy.models import NodeRecord


def sibling_key(node: NodeRecord) -> Tuple[int, str]:
    """Siblings sort by sort_order, then name."""
    return (node.sort_order, node.name)


class HierarchyIndex:
    """Adjacency view of a forest: id → node and parent id → ordered children."""

    def __init__(self, owner_id: str, nodes: Iterable[NodeRecord]):
        self.owner_id = owner_id
        self._nodes: Dict[str, NodeRecord] = {}
        self._children: Dict[Optional[str], List[NodeRecord]] = defaultdict(list)

        for node in nodes:
            self._nodes[node.id] = node
        for node in self._nodes.values():
            self._children[node.parent_id].append(node)
        for siblings in self._children.values():
            siblings.sort(key=sibling_key)

    @classmethod
    def from_rows(cls, owner_id: str, rows: Iterable) -> "HierarchyIndex":
        return cls(owner_id, (NodeRecord.model_validate(r) for r in rows))

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def get(self, node_id: str) -> Optional[NodeRecord]:
        return self._nodes.get(node_id)

    def nodes(self) -> List[NodeRecord]:
        return list(self._nodes.values())

    def children_of(self, parent_id: Optional[str]) -> List[NodeRecord]:
        return list(self._children.get(parent_id, ()))

    def has_children(self, node_id: str) -> bool:
        return bool(self._children.get(node_id))

    # -------------------------------------------------------------------
    # Upward walks
    # -------------------------------------------------------------------

    def chain_to_root(self, node_id: str) -> List[NodeRecord]:
        """
        Return [node, parent, grandparent, …, root].

        Raises CorruptHierarchyError if the walk exceeds the node count or
        reaches a parent that is not one of this owner's nodes.
        """
        chain: List[NodeRecord] = []
        current = self._nodes.get(node_id)
        if current is None:
            raise CorruptHierarchyError(
                f"Node {node_id} is not part of owner {self.owner_id}'s hierarchy",
                owner_id=self.owner_id,
                node_id=node_id,
            )

        limit = len(self._nodes)
        while current is not None:
            if len(chain) >= limit:
                raise CorruptHierarchyError(
                    f"Parent chain of {node_id} does not reach a root within {limit} steps",
                    owner_id=self.owner_id,
                    node_id=node_id,
                    chain=[n.id for n in chain],
                )
            chain.append(current)
            if current.parent_id is None:
                break
            parent = self._nodes.get(current.parent_id)
            if parent is None:
                raise CorruptHierarchyError(
                    f"Node {current.id} references parent {current.parent_id} outside owner {self.owner_id}",
                    owner_id=self.owner_id,
                    node_id=current.id,
                    parent_id=current.parent_id,
                )
            current = parent
        return chain

    def path(self, node_id: str) -> List[NodeRecord]:
        """Root → node inclusive."""
        return list(reversed(self.chain_to_root(node_id)))

    def depth(self, node_id: str) -> int:
        return len(self.chain_to_root(node_id)) - 1

    # -------------------------------------------------------------------
    # Downward walk
    # -------------------------------------------------------------------

    def walk(self) -> Iterator[Tuple[NodeRecord, int, List[NodeRecord]]]:
        """
        Depth-first, sibling-ordered traversal from the roots.

        Yields (node, depth, path) where path is root → node. Raises
        CorruptHierarchyError once the walk finishes if some nodes were never
        reached, i.e. they sit on a cycle or hang off a missing parent.
        """
        visited: Set[str] = set()
        stack: List[Tuple[NodeRecord, List[NodeRecord]]] = [
            (root, [root]) for root in reversed(self.children_of(None))
        ]
        while stack:
            node, path = stack.pop()
            if node.id in visited:
                continue
            visited.add(node.id)
            yield node, len(path) - 1, path
            for child in reversed(self.children_of(node.id)):
                stack.append((child, path + [child]))

        unreached = sorted(set(self._nodes) - visited)
        if unreached:
            raise CorruptHierarchyError(
                f"{len(unreached)} node(s) of owner {self.owner_id} are not reachable from a root",
                owner_id=self.owner_id,
                unreachable=unreached,
            )

    # -------------------------------------------------------------------
    # Integrity
    # -------------------------------------------------------------------

    def to_graph(self) -> "nx.DiGraph":
        """parent → child edges between nodes of this owner."""
        graph = nx.DiGraph()
        graph.add_nodes_from(self._nodes)
        for node in self._nodes.values():
            if node.parent_id in self._nodes:
                graph.add_edge(node.parent_id, node.id)
        return graph

    def find_cycles(self) -> List[List[str]]:
        return [sorted(cycle) for cycle in nx.simple_cycles(self.to_graph())]

    def foreign_parents(self) -> Dict[str, str]:
        """node id → parent id, for parents that are not in this index."""
        return {
            n.id: n.parent_id
            for n in self._nodes.values()
            if n.parent_id is not None and n.parent_id not in self._nodes
        }
