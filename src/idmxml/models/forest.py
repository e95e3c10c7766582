"""
ER Forest
==========
The mutable container passed between the editing, validation and codec
layers: an ordered list of root ERs plus the table linking diagram data
objects to ERs.

Lookup is a depth-first pre-order walk with an explicit stack (no depth
limit): each ER, then its information-unit subtrees, then its sub-ERs.
The first match wins when ids are duplicated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .exchange import ExchangeRequirement, InformationUnit

Node = Union[ExchangeRequirement, InformationUnit]
NodeKind = Literal["er", "iu"]


@dataclass
class NodeLocation:
    """Where a node lives: the list that owns it, its index and its ancestry."""
    node: Node
    siblings: list
    index: int
    ancestors: tuple[Node, ...] = ()

    @property
    def kind(self) -> NodeKind:
        return "er" if isinstance(self.node, ExchangeRequirement) else "iu"

    @property
    def parent(self) -> Node | None:
        return self.ancestors[-1] if self.ancestors else None

    @property
    def owner_er(self) -> ExchangeRequirement | None:
        """Nearest enclosing ER (for an ER, its parent ER)."""
        for ancestor in reversed(self.ancestors):
            if isinstance(ancestor, ExchangeRequirement):
                return ancestor
        return None

    @property
    def depth(self) -> int:
        return len(self.ancestors)


class ERForest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    roots: list[ExchangeRequirement] = Field(default_factory=list)
    data_object_links: dict[str, str] = Field(
        default_factory=dict,
        alias="dataObjectErMap",
        description="Diagram element id -> ER id (or guid)",
    )

    @classmethod
    def from_root(cls, root: ExchangeRequirement | None) -> "ERForest":
        return cls(roots=[root] if root is not None else [])

    @property
    def root(self) -> ExchangeRequirement | None:
        return self.roots[0] if self.roots else None

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def iter_locations(self) -> Iterator[NodeLocation]:
        stack: list[NodeLocation] = [
            NodeLocation(er, self.roots, i) for i, er in reversed(list(enumerate(self.roots)))
        ]
        while stack:
            loc = stack.pop()
            yield loc
            node = loc.node
            lineage = loc.ancestors + (node,)
            children: list[NodeLocation] = []
            if isinstance(node, ExchangeRequirement):
                children.extend(
                    NodeLocation(iu, node.information_units, i, lineage)
                    for i, iu in enumerate(node.information_units)
                )
                children.extend(
                    NodeLocation(sub, node.sub_ers, i, lineage)
                    for i, sub in enumerate(node.sub_ers)
                )
            else:
                children.extend(
                    NodeLocation(iu, node.sub_information_units, i, lineage)
                    for i, iu in enumerate(node.sub_information_units)
                )
            stack.extend(reversed(children))

    def iter_ers(self) -> Iterator[ExchangeRequirement]:
        for loc in self.iter_locations():
            if isinstance(loc.node, ExchangeRequirement):
                yield loc.node

    def iter_units(self) -> Iterator[InformationUnit]:
        for loc in self.iter_locations():
            if isinstance(loc.node, InformationUnit):
                yield loc.node

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def locate(self, node_id: str, kind: NodeKind | None = None) -> NodeLocation | None:
        """
        Resolve owner list, index and ancestry of a node.

        ERs match on ``id`` or ``guid``; IUs on ``id``. ``kind`` restricts
        the search to one node type.
        """
        for loc in self.iter_locations():
            if kind is not None and loc.kind != kind:
                continue
            node = loc.node
            if isinstance(node, ExchangeRequirement):
                if node.matches(node_id):
                    return loc
            elif node.id == node_id:
                return loc
        return None

    def find(self, node_id: str) -> Node | None:
        loc = self.locate(node_id)
        return loc.node if loc else None

    def find_er(self, key: str) -> ExchangeRequirement | None:
        loc = self.locate(key, kind="er")
        return loc.node if loc else None  # type: ignore[return-value]

    def find_unit(self, unit_id: str) -> InformationUnit | None:
        loc = self.locate(unit_id, kind="iu")
        return loc.node if loc else None  # type: ignore[return-value]

    def ancestors(self, node_id: str) -> list[Node]:
        loc = self.locate(node_id)
        return list(loc.ancestors) if loc else []

    def contains_er(self, er: ExchangeRequirement) -> bool:
        return any(candidate is er for candidate in self.iter_ers())

    def linked_er(self, element_id: str) -> ExchangeRequirement | None:
        """ER associated with a diagram data object, if any."""
        key = self.data_object_links.get(element_id)
        return self.find_er(key) if key else None

    def __repr__(self) -> str:
        return (
            f"ERForest(roots={len(self.roots)}, "
            f"links={len(self.data_object_links)})"
        )
