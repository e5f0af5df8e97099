"""Raw backend record -> canonical Bean."""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config import BeansConfig
from core.bean import Bean, code_from_id, unique
from core.errors import MalformedRecordError
from application.ports import Logger, RawRecord

REQUIRED_FIELDS: Tuple[str, ...] = ("id", "title", "status", "type")

# Logical field -> (candidate key, priority). Lower priority wins when several
# keys are present; newer backend spellings carry the lower numbers.
FIELD_ALIASES: Dict[str, Tuple[Tuple[str, int], ...]] = {
    "id": (("id", 0),),
    "title": (("title", 0),),
    "status": (("status", 0),),
    "type": (("type", 0),),
    "priority": (("priority", 0),),
    "slug": (("slug", 0),),
    "path": (("path", 0), ("filePath", 1), ("file_path", 2)),
    "body": (("body", 0), ("content", 1)),
    "tags": (("tags", 0),),
    "etag": (("etag", 0), ("eTag", 1)),
    "code": (("code", 0),),
    "parent": (("parent", 0), ("parentId", 1), ("parent_id", 2)),
    "blocking": (("blocking", 0), ("blockingIds", 1), ("blocking_ids", 2)),
    "blocked_by": (("blockedBy", 0), ("blockedByIds", 1), ("blocked_by", 2), ("blocked_by_ids", 3)),
    "created_at": (("createdAt", 0), ("created_at", 1), ("created", 2)),
    "updated_at": (("updatedAt", 0), ("updated_at", 1), ("updated", 2)),
}


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def resolve_field(raw: RawRecord, name: str) -> Any:
    """First present candidate for ``name`` by alias priority, else None."""
    candidates = FIELD_ALIASES.get(name, ((name, 0),))
    for key, _priority in sorted(candidates, key=lambda pair: pair[1]):
        value = raw.get(key)
        if _present(value):
            return value
    return None


def _text(value: Any) -> str:
    return str(value).strip() if _present(value) else ""


def _id_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return unique(part for part in value.split(","))
    if isinstance(value, dict):
        return unique([value.get("id")])
    items = []
    for item in value:
        # Newer backends return related beans as objects.
        items.append(item.get("id") if isinstance(item, dict) else item)
    return unique(items)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 text, datetime/date or epoch seconds -> aware datetime; None when unparsable."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = _text(value)
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class RecordIngestor:
    def __init__(self, config: Optional[BeansConfig] = None, logger: Optional[Logger] = None):
        self.config = config or BeansConfig()
        self.logger = logger or logging.getLogger("beans.ingest")

    def missing_fields(self, raw: RawRecord) -> List[str]:
        """Required fields that are absent, empty or outside the configured enumerations."""
        missing = [name for name in REQUIRED_FIELDS if not _text(resolve_field(raw, name))]
        status = _text(resolve_field(raw, "status"))
        if status and status not in self.config.statuses:
            missing.append("status")
        kind = _text(resolve_field(raw, "type"))
        if kind and kind not in self.config.types:
            missing.append("type")
        return missing

    def _timestamp(self, raw: RawRecord, name: str, bean_id: str) -> datetime:
        value = resolve_field(raw, name)
        parsed = parse_timestamp(value)
        if parsed is None:
            if value is not None:
                self.logger.warning("Bean %s has invalid %s %r; using current time", bean_id, name, value)
            return datetime.now(timezone.utc)
        return parsed

    def _priority(self, raw: RawRecord, bean_id: str) -> Optional[str]:
        priority = _text(resolve_field(raw, "priority"))
        if not priority:
            return None
        if priority not in self.config.priorities:
            self.logger.warning("Bean %s has unknown priority %r; ignoring it", bean_id, priority)
            return None
        return priority

    def ingest(self, raw: RawRecord) -> Bean:
        """Normalize ``raw``. Raises MalformedRecordError when a required field is unusable."""
        if not isinstance(raw, dict):
            raise MalformedRecordError(REQUIRED_FIELDS)
        missing = self.missing_fields(raw)
        bean_id = _text(resolve_field(raw, "id"))
        if missing:
            raise MalformedRecordError(missing, record_id=bean_id)
        tags = resolve_field(raw, "tags")
        return Bean(
            id=bean_id,
            title=_text(resolve_field(raw, "title")),
            status=_text(resolve_field(raw, "status")),
            type=_text(resolve_field(raw, "type")),
            code=_text(resolve_field(raw, "code")) or code_from_id(bean_id),
            slug=_text(resolve_field(raw, "slug")),
            path=_text(resolve_field(raw, "path")),
            body=str(resolve_field(raw, "body") or ""),
            priority=self._priority(raw, bean_id),
            tags=unique(tags if isinstance(tags, (list, tuple)) else _id_list(tags)),
            parent=_text(_first_id(resolve_field(raw, "parent"))) or None,
            blocking=_id_list(resolve_field(raw, "blocking")),
            blocked_by=_id_list(resolve_field(raw, "blocked_by")),
            created_at=self._timestamp(raw, "created_at", bean_id),
            updated_at=self._timestamp(raw, "updated_at", bean_id),
            etag=_text(resolve_field(raw, "etag")),
        )

    def try_ingest(self, raw: RawRecord) -> Tuple[Optional[Bean], Sequence[str]]:
        try:
            return self.ingest(raw), ()
        except MalformedRecordError as exc:
            return None, exc.missing


def _first_id(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("id")
    return value


__all__ = ["FIELD_ALIASES", "REQUIRED_FIELDS", "RecordIngestor", "parse_timestamp", "resolve_field"]
