from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

RawRecord = Dict[str, Any]


class BeansBackend(Protocol):
    """External system of record (the beans CLI)."""

    def list_beans(self, filter: Optional[Dict[str, Any]] = None) -> List[RawRecord]:
        ...

    def show_bean(self, bean_id: str) -> Optional[RawRecord]:
        ...

    def create_bean(self, data: Dict[str, Any]) -> RawRecord:
        ...

    def update_bean(self, bean_id: str, changes: Dict[str, Any]) -> RawRecord:
        ...

    def delete_bean(self, bean_id: str) -> None:
        ...


class HistoryProvider(Protocol):
    """Optional version-control view of a bean file."""

    def revisions(self, path: Path, limit: int) -> List[str]:
        ...

    def show(self, revision: str, path: Path) -> Optional[str]:
        ...


@dataclass(frozen=True)
class NotificationAction:
    label: str
    target: Path


class Notifier(Protocol):
    def warn(self, message: str, actions: Sequence[NotificationAction] = ()) -> None:
        ...


class Logger(Protocol):
    def debug(self, msg: str, *args: Any) -> None:
        ...

    def info(self, msg: str, *args: Any) -> None:
        ...

    def warning(self, msg: str, *args: Any) -> None:
        ...

    def error(self, msg: str, *args: Any) -> None:
        ...
