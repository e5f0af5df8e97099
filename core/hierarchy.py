"""Parent/child graph helpers.

Pure domain logic over bean snapshots - no I/O, no backend calls.
"""

from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set

from .bean import VALID_PARENT_TYPES, Bean


@dataclass(frozen=True)
class HierarchyError:
    """Represents a parent-reference validation error."""

    bean_id: str
    error_type: str  # "missing", "cycle", "self", "type"
    details: str

    def __str__(self) -> str:
        return f"{self.bean_id}: {self.error_type} - {self.details}"


def build_children_index(beans: Iterable[Bean]) -> Dict[str, List[Bean]]:
    """Map parent id -> children, children sorted by id for deterministic traversal."""
    index: Dict[str, List[Bean]] = {}
    for bean in beans:
        if bean.parent:
            index.setdefault(bean.parent, []).append(bean)
    for children in index.values():
        children.sort(key=lambda b: b.id)
    return index


def find_dangling_parents(beans: Sequence[Bean]) -> List[Bean]:
    """Beans whose parent id does not resolve within the same set."""
    known = {bean.id for bean in beans}
    return [bean for bean in beans if bean.parent and bean.parent not in known]


def iter_descendants(root_id: str, children_index: Mapping[str, Sequence[Bean]]) -> Iterator[Bean]:
    """Yield descendants level by level.

    Uses an explicit worklist; any id already seen (the root included) is
    terminal, so a corrupted parent cycle cannot loop forever.
    """
    visited: Set[str] = {root_id}
    pending = deque([root_id])
    while pending:
        current = pending.popleft()
        for child in children_index.get(current, ()):
            if child.id in visited:
                continue
            visited.add(child.id)
            yield child
            pending.append(child.id)


def detect_parent_cycle(bean_id: str, new_parent: str, parent_of: Mapping[str, Optional[str]]) -> Optional[List[str]]:
    """Return the chain that would close a loop if ``bean_id`` moved under ``new_parent``."""
    chain = [bean_id]
    seen: Set[str] = {bean_id}
    current: Optional[str] = new_parent
    while current:
        chain.append(current)
        if current in seen:
            return chain
        seen.add(current)
        current = parent_of.get(current)
    return None


def validate_parent(
    bean_id: str,
    bean_type: str,
    parent_id: str,
    beans_by_id: Mapping[str, Bean],
) -> List[HierarchyError]:
    """Validate a proposed parent reference against the current snapshot."""
    if parent_id == bean_id:
        return [HierarchyError(bean_id, "self", "Bean cannot be its own parent")]
    parent = beans_by_id.get(parent_id)
    if parent is None:
        return [HierarchyError(bean_id, "missing", f"Parent '{parent_id}' not found")]
    errors: List[HierarchyError] = []
    allowed = VALID_PARENT_TYPES.get(bean_type)
    if allowed is not None and parent.type not in allowed:
        errors.append(
            HierarchyError(
                bean_id,
                "type",
                f"A {bean_type} cannot be placed under a {parent.type} (allowed: {', '.join(allowed)})",
            )
        )
    cycle = detect_parent_cycle(bean_id, parent_id, {b.id: b.parent for b in beans_by_id.values()})
    if cycle:
        errors.append(HierarchyError(bean_id, "cycle", " -> ".join(cycle)))
    return errors


__all__ = [
    "HierarchyError",
    "build_children_index",
    "find_dangling_parents",
    "iter_descendants",
    "detect_parent_cycle",
    "validate_parent",
]
