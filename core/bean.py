from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

BEAN_STATUSES: Tuple[str, ...] = ("todo", "in-progress", "completed", "scrapped", "draft")
BEAN_TYPES: Tuple[str, ...] = ("milestone", "epic", "feature", "task", "bug")
BEAN_PRIORITIES: Tuple[str, ...] = ("critical", "high", "normal", "low", "deferred")

# Mirrors the CLI's parent rule: milestone -> epic -> feature -> task/bug.
# Types absent from the map (milestone) accept any parent.
VALID_PARENT_TYPES: Dict[str, Tuple[str, ...]] = {
    "epic": ("milestone",),
    "feature": ("milestone", "epic"),
    "task": ("milestone", "epic", "feature"),
    "bug": ("milestone", "epic", "feature"),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def unique(values: Iterable[Any]) -> List[str]:
    """De-duplicate while keeping first-seen order; drops empty entries."""
    seen: set = set()
    result: List[str] = []
    for value in values or []:
        text = str(value).strip() if value is not None else ""
        if not text or text in seen:
            continue
        seen.add(text)
        result.append(text)
    return result


def code_from_id(bean_id: str) -> str:
    """Short code: the trailing segment of the id after its final ``-``."""
    if not bean_id:
        return ""
    return bean_id.rsplit("-", 1)[-1]


@dataclass
class Bean:
    id: str
    title: str
    status: str
    type: str
    code: str = ""
    slug: str = ""
    path: str = ""
    body: str = ""
    priority: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    parent: Optional[str] = None
    blocking: List[str] = field(default_factory=list)
    blocked_by: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    etag: str = ""

    def __post_init__(self) -> None:
        if not self.code:
            self.code = code_from_id(self.id)
        self.parent = self.parent or None

    @property
    def label(self) -> str:
        return self.code or self.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "slug": self.slug,
            "path": self.path,
            "title": self.title,
            "body": self.body,
            "status": self.status,
            "type": self.type,
            "priority": self.priority,
            "tags": list(self.tags),
            "parent": self.parent,
            "blocking": list(self.blocking),
            "blockedBy": list(self.blocked_by),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "etag": self.etag,
        }


@dataclass(frozen=True)
class BeanFilter:
    statuses: Tuple[str, ...] = ()
    types: Tuple[str, ...] = ()
    search: str = ""
    parent: str = ""

    @classmethod
    def build(
        cls,
        statuses: Optional[Iterable[str]] = None,
        types: Optional[Iterable[str]] = None,
        search: str = "",
        parent: str = "",
    ) -> "BeanFilter":
        return cls(tuple(unique(statuses or [])), tuple(unique(types or [])), (search or "").strip(), (parent or "").strip())

    @property
    def is_empty(self) -> bool:
        return not (self.statuses or self.types or self.search or self.parent)

    def key(self) -> str:
        return "|".join([",".join(self.statuses), ",".join(self.types), self.search, self.parent])

    def to_backend(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.statuses:
            payload["status"] = list(self.statuses)
        if self.types:
            payload["type"] = list(self.types)
        if self.search:
            payload["search"] = self.search
        if self.parent:
            payload["parent"] = self.parent
        return payload

    def matches(self, bean: Bean) -> bool:
        if self.statuses and bean.status not in self.statuses:
            return False
        if self.types and bean.type not in self.types:
            return False
        if self.parent and bean.parent != self.parent:
            return False
        if self.search:
            haystack = " ".join(
                part for part in [bean.id, bean.code, bean.slug, bean.title, bean.body, *bean.tags] if part
            ).lower()
            if self.search.lower() not in haystack:
                return False
        return True

    def apply(self, beans: Iterable[Bean]) -> List[Bean]:
        return [bean for bean in beans if self.matches(bean)]


__all__ = [
    "BEAN_STATUSES",
    "BEAN_TYPES",
    "BEAN_PRIORITIES",
    "VALID_PARENT_TYPES",
    "Bean",
    "BeanFilter",
    "code_from_id",
    "unique",
]
