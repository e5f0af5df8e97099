import pytest

from application.cascade import StatusCascadeEngine
from core.bean import Bean
from core.errors import BackendTimeoutError


class DummyBackend:
    def __init__(self, fail_ids=()):
        self.updates = []
        self.fail_ids = set(fail_ids)

    def update_bean(self, bean_id, changes):
        if bean_id in self.fail_ids:
            raise BackendTimeoutError()
        self.updates.append((bean_id, changes["status"]))
        return {"id": bean_id}


def _bean(bean_id, bean_type="task", status="draft", parent=None):
    return Bean(id=bean_id, title=bean_id, status=status, type=bean_type, parent=parent)


def _tree(status="draft"):
    return [
        _bean("epic-1", "epic", status),
        _bean("feature-1", "feature", status, parent="epic-1"),
        _bean("task-1", "task", status, parent="feature-1"),
    ]


def test_descendants_receive_the_target_status():
    backend = DummyBackend()
    report = StatusCascadeEngine(backend).cascade("epic-1", "in-progress", _tree())

    assert backend.updates == [("feature-1", "in-progress"), ("task-1", "in-progress")]
    assert report.updated == ["feature-1", "task-1"]
    assert report.ok


def test_repeat_cascade_issues_no_writes():
    backend = DummyBackend()
    report = StatusCascadeEngine(backend).cascade("epic-1", "completed", _tree("completed"))

    assert backend.updates == []
    assert report.skipped == ["feature-1", "task-1"]


def test_matching_descendant_is_skipped_but_its_children_are_visited():
    beans = [
        _bean("root", "epic"),
        _bean("mid", "feature", status="scrapped", parent="root"),
        _bean("leaf", "task", status="todo", parent="mid"),
    ]
    backend = DummyBackend()
    report = StatusCascadeEngine(backend).cascade("root", "scrapped", beans)

    assert backend.updates == [("leaf", "scrapped")]
    assert report.skipped == ["mid"]


def test_breadth_first_order_with_sorted_siblings():
    beans = [
        _bean("root", "epic"),
        _bean("b", "feature", parent="root"),
        _bean("a", "feature", parent="root"),
        _bean("a-child", "task", parent="a"),
        _bean("b-child", "task", parent="b"),
    ]
    backend = DummyBackend()
    StatusCascadeEngine(backend).cascade("root", "completed", beans)
    assert [bean_id for bean_id, _ in backend.updates] == ["a", "b", "a-child", "b-child"]


def test_corrupted_cycle_terminates():
    beans = [_bean("x", parent="y"), _bean("y", parent="x")]
    backend = DummyBackend()
    report = StatusCascadeEngine(backend).cascade("x", "completed", beans)
    assert backend.updates == [("y", "completed")]
    assert report.updated == ["y"]


def test_partial_failure_is_reported_without_rollback():
    beans = _tree() + [_bean("feature-2", "feature", parent="epic-1")]
    backend = DummyBackend(fail_ids={"feature-1"})

    report = StatusCascadeEngine(backend).cascade("epic-1", "completed", beans)

    assert [f.bean_id for f in report.failed] == ["feature-1"]
    assert report.updated == ["feature-2", "task-1"]
    assert not report.ok
    assert "feature-1" in report.message()


@pytest.mark.parametrize(
    "previous, target, expected",
    [
        ("draft", "in-progress", True),
        ("todo", "completed", True),
        ("in-progress", "scrapped", True),
        ("completed", "todo", True),
        ("scrapped", "draft", True),
        ("draft", "todo", False),
        ("todo", "draft", False),
        ("completed", "scrapped", True),
        (None, "todo", False),
    ],
)
def test_should_cascade(previous, target, expected):
    assert StatusCascadeEngine.should_cascade(previous, target) is expected
