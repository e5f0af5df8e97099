import json
import logging
import random
import subprocess
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from application.ports import Logger, RawRecord
from core.errors import (
    BackendCommandError,
    BackendTimeoutError,
    BackendUnavailableError,
    BeansPermissionError,
    MalformedResponseError,
)
from infrastructure import graphql

_BOILERPLATE_PREFIXES = ("usage:", "flags:", "global flags:", "use \"", "available commands:", "examples:", "-")


def clean_cli_error(text: str) -> str:
    """Reduce CLI stderr to the one line a human needs.

    Prefers the first ``Error: ...`` line (prefix stripped); otherwise the first
    line that is not usage/help/flag boilerplate.
    """
    lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
    for line in lines:
        if line.startswith("Error: "):
            return line[len("Error: ") :].strip()
    for line in lines:
        if not line.lower().startswith(_BOILERPLATE_PREFIXES):
            return line
    return "Beans CLI command failed"


class BeansCliBackend:
    """BeansBackend over ``beans graphql --json``."""

    def __init__(
        self,
        workspace_root: Path,
        cli_path: str = "beans",
        timeout: float = 30.0,
        max_retries: int = 3,
        base_delay: float = 0.1,
        logger: Optional[Logger] = None,
    ):
        self.workspace_root = Path(workspace_root)
        self.cli_path = cli_path
        self.timeout = timeout
        self.max_retries = max(0, int(max_retries))
        self.base_delay = base_delay
        self.logger = logger or logging.getLogger("beans.cli")

    @classmethod
    def from_settings(cls, settings: Any, logger: Optional[Logger] = None) -> "BeansCliBackend":
        return cls(
            settings.workspace_root,
            cli_path=settings.cli_path,
            timeout=settings.timeout_seconds,
            max_retries=settings.max_retries,
            logger=logger,
        )

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                [self.cli_path, *args],
                cwd=str(self.workspace_root),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise BackendUnavailableError(
                f"Beans CLI not found at: {self.cli_path}. Install beans or set BEANS_CLI_PATH.", cause=exc
            ) from exc
        except PermissionError as exc:
            raise BeansPermissionError(f"Permission denied running {self.cli_path}: {exc}", cause=exc) from exc

    def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        args = ["graphql", "--json", query]
        if variables:
            args += ["--variables", json.dumps(variables)]
        attempt = 0
        delay = self.base_delay
        while True:
            attempt += 1
            try:
                result = self._run(args)
            except subprocess.TimeoutExpired as exc:
                if attempt > self.max_retries:
                    raise BackendTimeoutError("Beans CLI operation timed out", cause=exc) from exc
                self.logger.warning(
                    "Transient error on attempt %d/%d, retrying in %.2fs", attempt, self.max_retries + 1, delay
                )
                time.sleep(delay + random.uniform(0, delay))
                delay *= 2
                continue
            break

        stderr = result.stderr or ""
        if stderr and "[INFO]" not in stderr:
            self.logger.warning("GraphQL CLI stderr: %s", stderr.strip())
        if result.returncode != 0:
            raise BackendCommandError(
                clean_cli_error(stderr or result.stdout or ""), detail=stderr, returncode=result.returncode
            )
        try:
            payload = json.loads(result.stdout or "")
        except ValueError as exc:
            raise MalformedResponseError(
                "Failed to parse beans GraphQL JSON output", output=result.stdout or "", cause=exc
            ) from exc
        if not isinstance(payload, dict):
            raise MalformedResponseError("Unexpected beans GraphQL output", output=result.stdout or "")
        errors = payload.get("errors")
        if errors:
            messages = ", ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
            raise BackendCommandError(f"GraphQL error: {messages}", detail=result.stdout or "")
        data = payload.get("data")
        return data if isinstance(data, dict) else payload

    def _record(self, data: Dict[str, Any], key: str) -> RawRecord:
        record = data.get(key)
        if not isinstance(record, dict):
            raise MalformedResponseError(f"Missing {key} in beans GraphQL output", output=json.dumps(data))
        return record

    def list_beans(self, filter: Optional[Dict[str, Any]] = None) -> List[RawRecord]:
        data = self.graphql(graphql.LIST_BEANS_QUERY, {"filter": filter} if filter else None)
        beans = data.get("beans")
        if beans is None:
            return []
        if not isinstance(beans, list):
            raise MalformedResponseError("Bean list is not an array", output=json.dumps(data))
        return beans

    def show_bean(self, bean_id: str) -> Optional[RawRecord]:
        data = self.graphql(graphql.SHOW_BEAN_QUERY, {"id": bean_id})
        record = data.get("bean")
        return record if isinstance(record, dict) else None

    def create_bean(self, data: Dict[str, Any]) -> RawRecord:
        return self._record(self.graphql(graphql.CREATE_BEAN_MUTATION, {"input": data}), "createBean")

    def update_bean(self, bean_id: str, changes: Dict[str, Any]) -> RawRecord:
        return self._record(
            self.graphql(graphql.UPDATE_BEAN_MUTATION, {"id": bean_id, "input": changes}), "updateBean"
        )

    def delete_bean(self, bean_id: str) -> None:
        self.graphql(graphql.DELETE_BEAN_MUTATION, {"id": bean_id})


__all__ = ["BeansCliBackend", "clean_cli_error"]
