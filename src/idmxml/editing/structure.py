"""
Structural Editing
===================
In-place structural edits on an :class:`ERForest`.

Every operation locates its target by id (ERs also by guid) and returns a
truthy result on success. An unmet precondition (first sibling moved up,
unknown id, cycle attempt, ...) leaves the forest untouched and returns
``False`` / ``None``; nothing here raises for those cases, so repeated
UI-driven calls are always safe.

Example::

    from idmxml.editing.structure import indent, outdent

    indent(forest, "iu-b")     # IU_B becomes a sub-unit of IU_A
    outdent(forest, "iu-b")    # ...and returns to its original position
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..models.document import DiagramElement
from ..models.exchange import ExchangeRequirement, InformationUnit, generate_id
from ..models.forest import ERForest, NodeLocation

logger = logging.getLogger(__name__)


def _noop(operation: str, node_id: str, reason: str) -> bool:
    logger.debug("%s(%s) skipped: %s", operation, node_id, reason)
    return False


# ---------------------------------------------------------------------------
# Reordering
# ---------------------------------------------------------------------------

def move_up(forest: ERForest, node_id: str) -> bool:
    """Swap the node with its preceding sibling."""
    loc = forest.locate(node_id)
    if loc is None:
        return _noop("move_up", node_id, "not found")
    if loc.index == 0:
        return _noop("move_up", node_id, "already first")
    siblings, i = loc.siblings, loc.index
    siblings[i - 1], siblings[i] = siblings[i], siblings[i - 1]
    return True


def move_down(forest: ERForest, node_id: str) -> bool:
    """Swap the node with its following sibling."""
    loc = forest.locate(node_id)
    if loc is None:
        return _noop("move_down", node_id, "not found")
    if loc.index >= len(loc.siblings) - 1:
        return _noop("move_down", node_id, "already last")
    siblings, i = loc.siblings, loc.index
    siblings[i], siblings[i + 1] = siblings[i + 1], siblings[i]
    return True


# ---------------------------------------------------------------------------
# Nesting
# ---------------------------------------------------------------------------

def indent(forest: ERForest, node_id: str) -> bool:
    """
    Nest the node under its preceding sibling.

    An IU is appended to the sibling's ``sub_information_units``. An ER is
    re-parented onto the preceding sibling ER through
    :func:`attach_as_sub_er`.
    """
    loc = forest.locate(node_id)
    if loc is None:
        return _noop("indent", node_id, "not found")
    if loc.index == 0:
        return _noop("indent", node_id, "no preceding sibling")

    previous = loc.siblings[loc.index - 1]
    if isinstance(loc.node, ExchangeRequirement):
        target = NodeLocation(previous, loc.siblings, loc.index - 1, loc.ancestors)
        return _attach(loc, target, "indent", node_id)

    del loc.siblings[loc.index]
    previous.sub_information_units.append(loc.node)
    return True


def outdent(forest: ERForest, node_id: str) -> bool:
    """
    Move the node out of its parent, directly after the former parent.

    An IU whose parent is an ER has nowhere to go (the ER's sibling list
    holds ERs) and is left in place. An ER under a root ER becomes a root
    itself; use :func:`switch_root` to keep a single-root forest instead.
    """
    loc = forest.locate(node_id)
    if loc is None:
        return _noop("outdent", node_id, "not found")
    parent = loc.parent
    if parent is None:
        return _noop("outdent", node_id, "already at forest root")
    if isinstance(loc.node, InformationUnit) and isinstance(parent, ExchangeRequirement):
        return _noop("outdent", node_id, "parent is an exchange requirement")

    parent_loc = _location_of(forest, parent)
    if parent_loc is None:
        return _noop("outdent", node_id, "parent not resolvable")

    del loc.siblings[loc.index]
    parent_loc.siblings.insert(parent_loc.index + 1, loc.node)
    return True


def convert_to_sub_er(
    forest: ERForest,
    unit_id: str,
    name: str | None = None,
) -> ExchangeRequirement | None:
    """
    Wrap an IU (with its subtree) into a new ER appended to the nearest
    enclosing ER's ``sub_ers``. Returns the new ER.
    """
    loc = forest.locate(unit_id, kind="iu")
    if loc is None:
        logger.debug("convert_to_sub_er(%s) skipped: no such information unit", unit_id)
        return None
    owner = loc.owner_er
    if owner is None:
        logger.debug("convert_to_sub_er(%s) skipped: no enclosing exchange requirement", unit_id)
        return None

    unit = loc.node
    del loc.siblings[loc.index]
    new_er = ExchangeRequirement(
        id=generate_id("er"),
        name=name if name is not None else unit.name,
        information_units=[unit],
    )
    owner.sub_ers.append(new_er)
    return new_er


def attach_as_sub_er(forest: ERForest, er_id: str, target_id: str) -> bool:
    """
    Detach ER ``er_id`` and append it to ``target_id``'s ``sub_ers``.

    Rejected when the target is the ER itself or one of its descendants.
    """
    source = forest.locate(er_id, kind="er")
    if source is None:
        return _noop("attach_as_sub_er", er_id, "source not found")
    target = forest.locate(target_id, kind="er")
    if target is None:
        return _noop("attach_as_sub_er", er_id, f"target {target_id} not found")
    return _attach(source, target, "attach_as_sub_er", er_id)


def _attach(source: NodeLocation, target: NodeLocation, operation: str, er_id: str) -> bool:
    er = source.node
    # walk upward from the target looking for the moved ER
    if target.node is er or any(a is er for a in target.ancestors):
        return _noop(operation, er_id, "target is inside the moved subtree")

    del source.siblings[source.index]
    target.node.sub_ers.append(er)
    return True


# ---------------------------------------------------------------------------
# Removal and root management
# ---------------------------------------------------------------------------

def delete(forest: ERForest, node_id: str) -> bool:
    """
    Remove a node and everything it owns. Data-object links pointing at a
    removed ER are dropped with it.
    """
    loc = forest.locate(node_id)
    if loc is None:
        return _noop("delete", node_id, "not found")

    removed_keys: set[str] = set()
    if isinstance(loc.node, ExchangeRequirement):
        for er in ERForest(roots=[loc.node]).iter_ers():
            removed_keys.add(er.id)
            if er.guid:
                removed_keys.add(er.guid)

    del loc.siblings[loc.index]

    for element_id, key in list(forest.data_object_links.items()):
        if key in removed_keys:
            del forest.data_object_links[element_id]
            logger.debug("Dropped data-object link %s -> %s", element_id, key)
    return True


def switch_root(forest: ERForest, er_id: str, keep_old_root: bool = False) -> bool:
    """
    Promote a direct child of the first root ER to be the single root.

    With ``keep_old_root`` the old root (minus the promoted ER) becomes the
    new root's last sub-ER; otherwise the old root is dissolved and its
    remaining sub-ERs are appended to the new root.
    """
    loc = forest.locate(er_id, kind="er")
    if loc is None:
        return _noop("switch_root", er_id, "not found")
    old_root = forest.root
    if old_root is None or loc.parent is not old_root:
        return _noop("switch_root", er_id, "not a direct child of the root")

    new_root = loc.node
    del old_root.sub_ers[loc.index]
    if keep_old_root:
        new_root.sub_ers.append(old_root)
    else:
        new_root.sub_ers.extend(old_root.sub_ers)
        old_root.sub_ers = []
        if old_root.information_units:
            logger.debug(
                "switch_root: %d information unit(s) of dissolved root %s discarded",
                len(old_root.information_units),
                old_root.id,
            )
    forest.roots[0] = new_root
    return True


def refresh_data_object_links(
    forest: ERForest,
    elements: Iterable[DiagramElement],
) -> int:
    """
    Drop links whose diagram element no longer exists or whose ER is gone.
    Returns the number of links removed.
    """
    live_elements = {e.element_id for e in elements}
    removed = 0
    for element_id, key in list(forest.data_object_links.items()):
        if element_id not in live_elements or forest.find_er(key) is None:
            del forest.data_object_links[element_id]
            removed += 1
    if removed:
        logger.debug("Removed %d stale data-object link(s)", removed)
    return removed


def _location_of(forest: ERForest, node) -> NodeLocation | None:
    for loc in forest.iter_locations():
        if loc.node is node:
            return loc
    return None
