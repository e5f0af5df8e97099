from datetime import datetime, timedelta, timezone

import pytest

from application import ingest
from application.ingest import RecordIngestor, parse_timestamp, resolve_field
from config import BeansConfig
from core.errors import MalformedRecordError


class RecordingLogger:
    def __init__(self):
        self.records = []

    def debug(self, msg, *args):
        self.records.append(("debug", msg % args))

    def info(self, msg, *args):
        self.records.append(("info", msg % args))

    def warning(self, msg, *args):
        self.records.append(("warning", msg % args))

    def error(self, msg, *args):
        self.records.append(("error", msg % args))


def _raw(**overrides):
    raw = {"id": "bean-ab12", "title": "Write docs", "status": "todo", "type": "task"}
    raw.update(overrides)
    return raw


def test_ingest_valid_record_derives_code():
    bean = RecordIngestor().ingest(_raw(tags=["a", "b", "a"], priority="high"))
    assert bean.id == "bean-ab12"
    assert bean.code == "ab12"
    assert bean.tags == ["a", "b"]
    assert bean.priority == "high"
    assert bean.parent is None


def test_newer_alias_wins_over_older_one():
    bean = RecordIngestor().ingest(
        _raw(parent="bean-new", parentId="bean-old", blockedBy=["x"], blockedByIds=["y"], blockingIds=["z", "z"])
    )
    assert bean.parent == "bean-new"
    assert bean.blocked_by == ["x"]
    assert bean.blocking == ["z"]


def test_empty_alias_falls_through_to_next_candidate():
    raw = _raw(parent="", parentId="bean-old")
    assert resolve_field(raw, "parent") == "bean-old"


def test_alias_resolution_uses_priority_not_declaration_order(monkeypatch):
    monkeypatch.setitem(ingest.FIELD_ALIASES, "parent", (("parent_id", 2), ("parent", 0)))
    assert resolve_field({"parent_id": "older", "parent": "newer"}, "parent") == "newer"


@pytest.mark.parametrize("field", ["id", "title", "status", "type"])
def test_missing_required_field_is_malformed(field):
    raw = _raw(**{field: ""})
    with pytest.raises(MalformedRecordError) as excinfo:
        RecordIngestor().ingest(raw)
    assert field in excinfo.value.missing


def test_status_outside_configured_enumeration_is_malformed():
    config = BeansConfig(statuses=("open", "closed"))
    with pytest.raises(MalformedRecordError) as excinfo:
        RecordIngestor(config).ingest(_raw(status="todo"))
    assert excinfo.value.missing == ("status",)
    assert RecordIngestor(config).ingest(_raw(status="open")).status == "open"


def test_unknown_priority_is_dropped_with_warning():
    logger = RecordingLogger()
    bean = RecordIngestor(logger=logger).ingest(_raw(priority="urgent"))
    assert bean.priority is None
    assert any(level == "warning" and "urgent" in text for level, text in logger.records)


def test_unparsable_timestamp_falls_back_to_now():
    logger = RecordingLogger()
    before = datetime.now(timezone.utc)
    bean = RecordIngestor(logger=logger).ingest(_raw(createdAt="not a date"))
    assert bean.created_at.tzinfo is not None
    assert before - timedelta(seconds=1) <= bean.created_at <= datetime.now(timezone.utc) + timedelta(seconds=1)
    assert any("createdAt" in text or "created_at" in text for _, text in logger.records)


def test_timestamp_formats():
    assert parse_timestamp("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert parse_timestamp("2024-01-02T03:04:05") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp(None) is None


def test_related_beans_as_objects():
    bean = RecordIngestor().ingest(_raw(parent={"id": "bean-p"}, blocking=[{"id": "bean-q"}, "bean-r"]))
    assert bean.parent == "bean-p"
    assert bean.blocking == ["bean-q", "bean-r"]


def test_to_dict_uses_camel_case():
    data = RecordIngestor().ingest(_raw(blockedBy=["bean-x"])).to_dict()
    assert data["blockedBy"] == ["bean-x"]
    assert "createdAt" in data and "updatedAt" in data
