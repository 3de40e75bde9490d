import logging
from typing import Callable, Iterable, Optional

from schemas import CategoryOut, CategoryRef, CategoryWithChildren

logger = logging.getLogger(__name__)

MAX_PARENT_DEPTH = 10


def build_hierarchy(categories: Iterable[CategoryOut]) -> list[CategoryWithChildren]:
    """Arrange categories into a forest of roots, children sorted by name.

    A category whose parent is not in the input is an orphan: it is left out
    of the forest rather than treated as an error. ``orphaned_categories``
    lists them for callers that care.
    """
    ordered = sorted(categories, key=lambda c: c.name.lower())
    nodes: dict[str, CategoryWithChildren] = {
        cat.id: CategoryWithChildren(**cat.model_dump(include=set(CategoryOut.model_fields)))
        for cat in ordered
    }
    roots: list[CategoryWithChildren] = []
    for cat in ordered:
        node = nodes[cat.id]
        if cat.parent_id is None:
            roots.append(node)
            continue
        parent = nodes.get(cat.parent_id)
        if parent is not None and parent is not node:
            node.parent = CategoryRef.model_validate(parent, from_attributes=True)
            parent.children.append(node)
    return roots


def flatten(roots: Iterable[CategoryWithChildren]) -> list[CategoryWithChildren]:
    out: list[CategoryWithChildren] = []
    seen: set[str] = set()
    stack = list(reversed(list(roots)))
    while stack:
        node = stack.pop()
        if node.id in seen:
            continue
        seen.add(node.id)
        out.append(node)
        stack.extend(reversed(node.children))
    return out


def orphaned_categories(categories: Iterable[CategoryOut]) -> list[CategoryOut]:
    """Categories that ``build_hierarchy`` cannot reach from any root."""
    categories = list(categories)
    reachable = {node.id for node in flatten(build_hierarchy(categories))}
    return [cat for cat in categories if cat.id not in reachable]


def would_create_cycle(
    category_id: str,
    proposed_parent_id: Optional[str],
    get_parent_id: Callable[[str], Optional[str]],
) -> bool:
    """Walk up from the proposed parent looking for ``category_id``.

    ``get_parent_id`` returns the parent id of a category (``None`` at a
    root). The walk stops after ``MAX_PARENT_DEPTH`` steps. If the lookup
    fails the answer is ``True`` so the update is rejected.
    """
    if proposed_parent_id is None:
        return False
    current: Optional[str] = proposed_parent_id
    visited: set[str] = set()
    try:
        for _ in range(MAX_PARENT_DEPTH):
            if current is None:
                return False
            if current == category_id or current in visited:
                return True
            visited.add(current)
            current = get_parent_id(current)
    except Exception as exc:
        logger.warning(f"cycle_check_failed: category_id={category_id} error={exc}")
        return True
    return current == category_id
