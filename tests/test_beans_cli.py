import json
import subprocess

import pytest

from infrastructure import beans_cli
from infrastructure.beans_cli import BeansCliBackend, clean_cli_error
from core.errors import (
    BackendCommandError,
    BackendTimeoutError,
    BackendUnavailableError,
    BeansPermissionError,
    MalformedResponseError,
)


class FakeRun:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


def _done(stdout="", stderr="", returncode=0):
    return subprocess.CompletedProcess(["beans"], returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def no_sleep(monkeypatch):
    sleeps = []
    monkeypatch.setattr(beans_cli.time, "sleep", lambda seconds: sleeps.append(seconds))
    return sleeps


def _backend(tmp_path, monkeypatch, *results, **kwargs):
    fake = FakeRun(*results)
    monkeypatch.setattr(beans_cli.subprocess, "run", fake)
    return BeansCliBackend(tmp_path, **kwargs), fake


def test_list_unwraps_data_envelope(tmp_path, monkeypatch):
    stdout = json.dumps({"data": {"beans": [{"id": "bean-1", "title": "One"}]}})
    backend, fake = _backend(tmp_path, monkeypatch, _done(stdout))

    assert backend.list_beans() == [{"id": "bean-1", "title": "One"}]
    cmd, kwargs = fake.calls[0]
    assert cmd[:3] == ["beans", "graphql", "--json"]
    assert "--variables" not in cmd
    assert kwargs["cwd"] == str(tmp_path)
    assert kwargs["timeout"] == 30.0


def test_filter_is_passed_as_variables(tmp_path, monkeypatch):
    backend, fake = _backend(tmp_path, monkeypatch, _done(json.dumps({"beans": None})))

    assert backend.list_beans({"status": ["todo"]}) == []
    cmd, _ = fake.calls[0]
    assert json.loads(cmd[cmd.index("--variables") + 1]) == {"filter": {"status": ["todo"]}}


def test_update_returns_record(tmp_path, monkeypatch):
    record = {"id": "bean-1", "status": "completed"}
    backend, fake = _backend(tmp_path, monkeypatch, _done(json.dumps({"updateBean": record})))

    assert backend.update_bean("bean-1", {"status": "completed"}) == record
    cmd, _ = fake.calls[0]
    assert json.loads(cmd[-1]) == {"id": "bean-1", "input": {"status": "completed"}}


def test_show_missing_bean_returns_none(tmp_path, monkeypatch):
    backend, _ = _backend(tmp_path, monkeypatch, _done(json.dumps({"bean": None})))
    assert backend.show_bean("bean-x") is None


def test_missing_binary_is_unavailable(tmp_path, monkeypatch):
    backend, _ = _backend(tmp_path, monkeypatch, FileNotFoundError("beans"), cli_path="/opt/beans")
    with pytest.raises(BackendUnavailableError, match="/opt/beans"):
        backend.list_beans()


def test_permission_error(tmp_path, monkeypatch):
    backend, _ = _backend(tmp_path, monkeypatch, PermissionError("denied"))
    with pytest.raises(BeansPermissionError):
        backend.list_beans()


def test_timeout_is_retried_then_succeeds(tmp_path, monkeypatch, no_sleep):
    timeout = subprocess.TimeoutExpired(["beans"], 30)
    backend, fake = _backend(tmp_path, monkeypatch, timeout, _done(json.dumps({"beans": []})))

    assert backend.list_beans() == []
    assert len(fake.calls) == 2
    assert len(no_sleep) == 1


def test_timeout_exhausts_retries(tmp_path, monkeypatch, no_sleep):
    backend, fake = _backend(tmp_path, monkeypatch, subprocess.TimeoutExpired(["beans"], 30), max_retries=3)

    with pytest.raises(BackendTimeoutError):
        backend.list_beans()
    assert len(fake.calls) == 4
    assert len(no_sleep) == 3
    for slept, base in zip(no_sleep, (0.1, 0.2, 0.4)):
        assert base <= slept <= 2 * base


def test_nonzero_exit_carries_clean_message_and_raw_detail(tmp_path, monkeypatch):
    stderr = "Error: failed to parse .beans/bean-1--x.md: yaml: line 2\nUsage:\n  beans graphql [flags]\n"
    backend, _ = _backend(tmp_path, monkeypatch, _done(stderr=stderr, returncode=1))

    with pytest.raises(BackendCommandError) as info:
        backend.list_beans()
    assert info.value.message == "failed to parse .beans/bean-1--x.md: yaml: line 2"
    assert info.value.detail == stderr
    assert info.value.returncode == 1


def test_invalid_json_is_malformed_response(tmp_path, monkeypatch):
    backend, _ = _backend(tmp_path, monkeypatch, _done("not json"))
    with pytest.raises(MalformedResponseError) as info:
        backend.list_beans()
    assert info.value.output == "not json"


def test_graphql_errors_are_command_errors(tmp_path, monkeypatch):
    backend, _ = _backend(tmp_path, monkeypatch, _done(json.dumps({"errors": [{"message": "bean not found"}]})))
    with pytest.raises(BackendCommandError, match="bean not found"):
        backend.update_bean("bean-x", {"status": "todo"})


def test_non_list_beans_payload_is_rejected(tmp_path, monkeypatch):
    backend, _ = _backend(tmp_path, monkeypatch, _done(json.dumps({"beans": {"id": "x"}})))
    with pytest.raises(MalformedResponseError):
        backend.list_beans()


@pytest.mark.parametrize(
    "stderr, expected",
    [
        ("Error: bean not found\n", "bean not found"),
        ("Usage:\nFlags:\n  -h, --help\nsomething broke\n", "something broke"),
        ("Usage:\n  -h, --help\n", "Beans CLI command failed"),
        ("", "Beans CLI command failed"),
    ],
)
def test_clean_cli_error(stderr, expected):
    assert clean_cli_error(stderr) == expected
