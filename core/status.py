from typing import Final, FrozenSet, Iterable, Optional

from .bean import BEAN_STATUSES

CASCADE_TARGETS: Final[FrozenSet[str]] = frozenset({"completed", "in-progress", "scrapped"})
CLOSED_STATUSES: Final[FrozenSet[str]] = frozenset({"completed", "scrapped"})


def normalize_status(value: str, allowed: Iterable[str] = BEAN_STATUSES, *, allow_unknown: bool = False) -> str:
    """Normalize status input to the canonical lowercase, dash-separated token.

    ``In Progress``, ``in_progress`` and ``IN-PROGRESS`` all map to ``in-progress``.
    When allow_unknown=True, returns the normalized token even if it is not allowed.
    """
    token = (value or "").strip().lower().replace("_", "-").replace(" ", "-")
    if not token:
        return token
    if token in set(allowed):
        return token
    if allow_unknown:
        return token
    raise ValueError(f"Invalid status: {value!r}")


def is_closed(status: Optional[str]) -> bool:
    return (status or "") in CLOSED_STATUSES


def triggers_cascade(previous: Optional[str], target: str) -> bool:
    """Whether setting ``target`` on a parent propagates to its descendants.

    Moving into completed/in-progress/scrapped always propagates; so does
    reopening, i.e. leaving completed/scrapped for an active status.
    Any other transition (e.g. draft -> todo) stays local.
    """
    if target in CASCADE_TARGETS:
        return True
    return is_closed(previous) and not is_closed(target)


__all__ = [
    "CASCADE_TARGETS",
    "CLOSED_STATUSES",
    "normalize_status",
    "is_closed",
    "triggers_cascade",
]
