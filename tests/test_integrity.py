from application.ingest import RecordIngestor
from application.integrity import ReferentialIntegrityRepairer
from core.bean import Bean
from core.errors import BackendCommandError


class DummyBackend:
    def __init__(self, fail_ids=()):
        self.updates = []
        self.fail_ids = set(fail_ids)

    def update_bean(self, bean_id, changes):
        self.updates.append((bean_id, changes))
        if bean_id in self.fail_ids:
            raise BackendCommandError("bean is locked")
        return {"id": bean_id, "title": f"Title {bean_id}", "status": "todo", "type": "task", "parentId": ""}


class RecordingNotifier:
    def __init__(self):
        self.messages = []

    def warn(self, message, actions=()):
        self.messages.append(message)


def _bean(bean_id, parent=None, bean_type="task"):
    return Bean(id=bean_id, title=f"Title {bean_id}", status="todo", type=bean_type, parent=parent)


def test_dangling_parent_is_cleared_remotely_and_in_memory():
    backend = DummyBackend()
    notifier = RecordingNotifier()
    repairer = ReferentialIntegrityRepairer(backend, RecordIngestor(), notifier)
    beans = [_bean("bean-aaaa", parent="bean-gone"), _bean("bean-bbbb", parent="bean-aaaa"), _bean("bean-cccc")]

    report = repairer.repair(beans, quarantined=["bean-gone--old.md"])

    assert backend.updates == [("bean-aaaa", {"parent": ""})]
    by_id = {b.id: b for b in report.beans}
    assert by_id["bean-aaaa"].parent is None
    assert by_id["bean-bbbb"].parent == "bean-aaaa"
    assert [w.code for w in report.warnings] == ["aaaa"]
    assert len(notifier.messages) == 1
    assert "aaaa" in notifier.messages[0]
    assert "bean-gone" in notifier.messages[0]
    assert "bean-gone--old.md" in notifier.messages[0]


def test_all_orphans_reported_in_one_warning():
    notifier = RecordingNotifier()
    repairer = ReferentialIntegrityRepairer(DummyBackend(), RecordIngestor(), notifier)
    beans = [_bean("bean-a1", parent="bean-x"), _bean("bean-a2", parent="bean-y")]

    report = repairer.repair(beans)

    assert all(b.parent is None for b in report.beans)
    assert len(notifier.messages) == 1
    assert "a1" in notifier.messages[0] and "a2" in notifier.messages[0]


def test_failed_remote_clear_still_promotes_and_is_reported():
    backend = DummyBackend(fail_ids={"bean-aaaa"})
    notifier = RecordingNotifier()
    repairer = ReferentialIntegrityRepairer(backend, RecordIngestor(), notifier)

    report = repairer.repair([_bean("bean-aaaa", parent="bean-gone")])

    assert report.beans[0].parent is None
    assert [w.bean_id for w in report.failed] == ["bean-aaaa"]
    assert report.failed[0].error == "bean is locked"
    assert "Could not update 1 of 1" in notifier.messages[0]


def test_partial_backend_response_keeps_known_fields():
    class PartialBackend(DummyBackend):
        def update_bean(self, bean_id, changes):
            super().update_bean(bean_id, changes)
            return {"id": bean_id}

    repairer = ReferentialIntegrityRepairer(PartialBackend(), RecordIngestor(), RecordingNotifier())
    original = _bean("bean-aaaa", parent="bean-gone", bean_type="bug")

    report = repairer.repair([original])

    assert report.beans[0].type == "bug"
    assert report.beans[0].parent is None
    assert original.parent == "bean-gone"


def test_clean_set_is_untouched():
    backend = DummyBackend()
    notifier = RecordingNotifier()
    beans = [_bean("bean-p"), _bean("bean-c", parent="bean-p")]

    report = ReferentialIntegrityRepairer(backend, RecordIngestor(), notifier).repair(beans)

    assert report.beans == beans
    assert backend.updates == []
    assert notifier.messages == []
