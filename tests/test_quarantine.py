import pytest

from application.quarantine import OPEN_QUARANTINE_ACTION, QuarantineManager, extract_malformed_path
from core.errors import BackendCommandError, MalformedResponseError
from infrastructure.file_repository import BeanFileRepository


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def warn(self, message, actions=()):
        self.calls.append((message, list(actions)))


def _setup(tmp_path):
    (tmp_path / ".beans").mkdir()
    notifier = RecordingNotifier()
    manager = QuarantineManager(BeanFileRepository(tmp_path, ".beans"), notifier)
    return manager, notifier


@pytest.mark.parametrize(
    "text, expected",
    [
        (
            "Error: failed to parse /home/u/ws/.beans/bean-1--x.md: yaml: line 2",
            "/home/u/ws/.beans/bean-1--x.md",
        ),
        (
            "Error: C:\\Users\\me\\ws\\.beans\\bean-2--y.md is invalid",
            "C:\\Users\\me\\ws\\.beans\\bean-2--y.md",
        ),
        ("could not load .beans\\bean-3.md (bad header)", ".beans\\bean-3.md"),
        ("loading '.beans/sub/bean-4--z.md'", ".beans/sub/bean-4--z.md"),
        ("Error: connection refused", None),
        ("Error: bad config in .beans/config.yml", None),
        ("", None),
    ],
)
def test_extract_malformed_path(text, expected):
    assert extract_malformed_path(text) == expected


def test_extract_respects_custom_beans_dir():
    assert extract_malformed_path("broken: work/items/a.md", beans_dirname="items") == "work/items/a.md"
    assert extract_malformed_path("broken: .beans/a.md", beans_dirname="items") is None


def test_quarantine_moves_file_and_notifies_once(tmp_path):
    manager, notifier = _setup(tmp_path)
    source = tmp_path / ".beans" / "bean-1--x.md"
    source.write_text("---\ntitle: [\n---\n", encoding="utf-8")

    outcome = manager.quarantine_path("bean-1--x.md")

    assert outcome.moved
    assert not source.exists()
    assert outcome.target == tmp_path.resolve() / ".beans" / ".quarantine" / "bean-1--x.md.fixme"
    assert outcome.target.read_text(encoding="utf-8") == "---\ntitle: [\n---\n"
    assert len(notifier.calls) == 1
    message, actions = notifier.calls[0]
    assert "bean-1--x.md" in message
    assert str(tmp_path) not in message
    assert [a.label for a in actions] == [OPEN_QUARANTINE_ACTION]
    assert actions[0].target == manager.quarantine_dir


def test_collision_gets_numeric_infix_and_no_second_notification(tmp_path):
    manager, notifier = _setup(tmp_path)
    source = tmp_path / ".beans" / "bean-1--x.md"
    source.write_text("one", encoding="utf-8")
    manager.quarantine_path(source)
    source.write_text("two", encoding="utf-8")

    outcome = manager.quarantine_path(source)

    assert outcome.target.name == "bean-1--x.md.1.fixme"
    assert outcome.target.read_text(encoding="utf-8") == "two"
    assert len(notifier.calls) == 1


def test_traversal_is_refused(tmp_path):
    manager, notifier = _setup(tmp_path)
    outside = tmp_path / "outside.md"
    outside.write_text("keep me", encoding="utf-8")

    outcome = manager.quarantine_path("../outside.md")

    assert not outcome.moved
    assert "outside" in outcome.error
    assert outside.read_text(encoding="utf-8") == "keep me"
    assert not manager.quarantine_dir.exists()
    assert len(notifier.calls) == 1
    assert notifier.calls[0][1] == []


def test_already_quarantined_path_is_refused(tmp_path):
    manager, _ = _setup(tmp_path)
    manager.quarantine_dir.mkdir()
    inside = manager.quarantine_dir / "a.md"
    inside.write_text("x", encoding="utf-8")
    assert not manager.quarantine_path(".beans/.quarantine/a.md").moved
    assert inside.exists()


def test_record_without_any_locator_notifies_exactly_once(tmp_path):
    manager, notifier = _setup(tmp_path)
    raw = {"status": "todo", "type": "task"}

    outcome = manager.quarantine_record(raw)
    manager.quarantine_record(raw)

    assert not outcome.moved
    assert len(notifier.calls) == 1


def test_distinct_anonymous_records_each_notify_once(tmp_path):
    manager, notifier = _setup(tmp_path)
    first = {"status": "todo"}
    second = {"type": "task"}

    manager.quarantine_record(first)
    manager.quarantine_record(second)
    manager.quarantine_record(dict(first))

    assert len(notifier.calls) == 2
    assert all("unnamed bean" in call[0] for call in notifier.calls)


def test_record_located_by_id(tmp_path):
    manager, _ = _setup(tmp_path)
    source = tmp_path / ".beans" / "bean-9--nine.md"
    source.write_text("broken", encoding="utf-8")
    outcome = manager.quarantine_record({"id": "bean-9", "title": ""})
    assert outcome.moved
    assert not source.exists()


def test_recover_from_list_error_uses_stderr_detail(tmp_path):
    manager, notifier = _setup(tmp_path)
    source = tmp_path / ".beans" / "bean-9--z.md"
    source.write_text("---\ntitle: a: b\n---\n", encoding="utf-8")
    exc = BackendCommandError("yaml: mapping values", detail="Error: failed to load .beans/bean-9--z.md: mapping values")

    outcome = manager.recover_from_list_error(exc)

    assert outcome is not None and outcome.label == "bean-9--z.md"
    assert not source.exists()
    assert len(notifier.calls) == 1


def test_recover_from_list_error_without_path(tmp_path):
    manager, notifier = _setup(tmp_path)
    assert manager.recover_from_list_error(MalformedResponseError("bad json", output="{")) is None
    assert notifier.calls == []


def test_failed_move_is_reported_as_skipped(tmp_path, monkeypatch):
    from infrastructure import file_repository

    manager, notifier = _setup(tmp_path)
    source = tmp_path / ".beans" / "bean-1--x.md"
    source.write_text("broken", encoding="utf-8")

    def deny(src, dst):
        raise PermissionError("read-only")

    monkeypatch.setattr(file_repository.os, "replace", deny)
    outcome = manager.quarantine_path(source)

    assert not outcome.moved
    assert "read-only" in outcome.error
    assert source.exists()
    assert notifier.calls == [("Malformed bean skipped: bean-1--x.md. It could not be moved to quarantine.", [])]
