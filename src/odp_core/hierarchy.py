"""Hierarchy traversal and cycle detection.

Hierarchies (requirement refinement, taxonomy parents) are walked breadth
first with a visited set, so traversal depth is unbounded and cycles in
stored data cannot loop forever.
"""
import logging
from collections import deque
from typing import Callable, Iterable, Mapping, Optional

from .errors import ValidationError

logger = logging.getLogger("odp-core.hierarchy")

ParentLookup = Callable[[int], Iterable[int]]


class CircularHierarchyError(ValidationError):
    """Raised when a new parent link would close a cycle."""

    def __init__(self, cycle: list[int]):
        self.cycle = cycle
        path = " -> ".join(str(node) for node in cycle)
        super().__init__(f"Circular hierarchy detected: {path}")


def ascend(start_ids: Iterable[int], parents_of: Mapping[int, Iterable[int]]) -> set[int]:
    """
    Return the start ids together with every transitive parent.

    Args:
        start_ids: Ids to start from
        parents_of: Child id -> parent ids, already loaded in memory

    Returns:
        Set of reached ids (start ids included)
    """
    reached = set(start_ids)
    queue = deque(reached)
    while queue:
        node = queue.popleft()
        for parent in parents_of.get(node, ()):
            if parent not in reached:
                reached.add(parent)
                queue.append(parent)
    return reached


def find_cycle(
    child_id: int,
    new_parent_ids: Iterable[int],
    parents_of: ParentLookup,
) -> Optional[list[int]]:
    """
    Detect whether linking ``child_id`` to ``new_parent_ids`` creates a cycle.

    A cycle exists when ``child_id`` is one of the new parents or is reachable
    by walking up from any of them.

    Args:
        child_id: The node receiving new parents
        new_parent_ids: Proposed parent ids
        parents_of: Callable returning the current parents of a node

    Returns:
        The cycle path starting and ending at ``child_id``, or None
    """
    new_parent_ids = list(new_parent_ids)
    if child_id in new_parent_ids:
        return [child_id, child_id]

    # Breadth-first walk keeping the path back to child_id for the message
    came_from: dict[int, Optional[int]] = {parent: None for parent in new_parent_ids}
    queue = deque(new_parent_ids)
    while queue:
        node = queue.popleft()
        for parent in parents_of(node):
            if parent == child_id:
                path = [node]
                while came_from[path[-1]] is not None:
                    path.append(came_from[path[-1]])
                return [child_id] + list(reversed(path)) + [child_id]
            if parent not in came_from:
                came_from[parent] = node
                queue.append(parent)
    return None


def validate_no_cycle(child_id: int, new_parent_ids: Iterable[int], parents_of: ParentLookup) -> None:
    """
    Raise CircularHierarchyError if the new parents would close a cycle.

    Raises:
        CircularHierarchyError: On self-reference or a transitive cycle
    """
    cycle = find_cycle(child_id, new_parent_ids, parents_of)
    if cycle:
        logger.warning(f"Rejected hierarchy link creating cycle {cycle}")
        raise CircularHierarchyError(cycle)
