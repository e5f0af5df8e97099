"""Isolation of bean files that cannot be ingested or repaired."""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set, Union

from application.ingest import resolve_field
from application.ports import Logger, NotificationAction, Notifier, RawRecord
from core.errors import PathSafetyError, QuarantineError
from infrastructure.file_repository import QUARANTINE_DIRNAME, BeanFileRepository

OPEN_QUARANTINE_ACTION = "Open Quarantine Folder"

_STOP = r"""\s:'"`()\[\]<>,;"""


def extract_malformed_path(text: str, beans_dirname: str = ".beans") -> Optional[str]:
    """Pull the offending bean file path out of a backend error message.

    Recognizes Windows absolute paths (``C:\\...\\x.md``) and absolute or
    relative paths that run through the beans directory with either
    separator. Returns the path exactly as written, or None.
    """
    if not text:
        return None
    dirname = re.escape(beans_dirname.strip("/\\") or ".beans")
    patterns = (
        rf"[A-Za-z]:\\[^{_STOP}]+\.md",
        rf"(?:[^{_STOP}]*[/\\])?{dirname}[/\\][^{_STOP}]+\.md",
    )
    for pattern in patterns:
        match = re.search(pattern, text)
        if match:
            return match.group(0)
    return None


@dataclass
class QuarantineOutcome:
    label: str
    source: Optional[Path] = None
    target: Optional[Path] = None
    error: str = ""

    @property
    def moved(self) -> bool:
        return self.target is not None


class QuarantineManager:
    def __init__(
        self,
        files: BeanFileRepository,
        notifier: Notifier,
        logger: Optional[Logger] = None,
    ):
        self.files = files
        self.notifier = notifier
        self.logger = logger or logging.getLogger("beans.quarantine")
        self._notified: Set[str] = set()

    @property
    def quarantine_dir(self) -> Path:
        return self.files.quarantine_dir

    def _notify_once(self, key: str, outcome: QuarantineOutcome) -> None:
        if key in self._notified:
            return
        self._notified.add(key)
        if outcome.moved:
            message = (
                f"Bean file quarantined: {outcome.label}. "
                f"Open the {self.files.beans_dir}/{QUARANTINE_DIRNAME} folder to inspect or restore the file."
            )
            self.notifier.warn(message, [NotificationAction(OPEN_QUARANTINE_ACTION, self.quarantine_dir)])
        else:
            self.notifier.warn(f"Malformed bean skipped: {outcome.label}. It could not be moved to quarantine.")

    def _move(self, raw_path: Union[str, Path]) -> QuarantineOutcome:
        label = Path(str(raw_path).replace("\\", "/")).name or str(raw_path)
        try:
            source = self.files.resolve(raw_path)
        except PathSafetyError as exc:
            self.logger.error("Refusing to quarantine %s: %s", raw_path, exc)
            return QuarantineOutcome(label=label, error=str(exc))
        if not source.is_file():
            self.logger.warning("Quarantine target %s does not exist", source.name)
            return QuarantineOutcome(label=label, source=source, error="file not found")
        try:
            target = self.files.move_to_quarantine(source)
        except (QuarantineError, PathSafetyError) as exc:
            self.logger.warning("Failed to quarantine malformed bean file %s: %s", source.name, exc)
            return QuarantineOutcome(label=label, source=source, error=str(exc))
        self.logger.warning("Quarantined malformed bean file %s -> %s", source.name, target.name)
        return QuarantineOutcome(label=label, source=source, target=target)

    def quarantine_path(self, raw_path: Union[str, Path]) -> QuarantineOutcome:
        outcome = self._move(raw_path)
        key = str(outcome.source) if outcome.source else str(raw_path)
        self._notify_once(key, outcome)
        return outcome

    def quarantine_record(self, raw: RawRecord) -> QuarantineOutcome:
        """Move the record's file aside. Records without a locatable file are only reported."""
        raw_path = resolve_field(raw, "path")
        bean_id = str(resolve_field(raw, "id") or "").strip()
        slug = str(resolve_field(raw, "slug") or "").strip()
        if not raw_path and (bean_id or slug):
            found = self.files.find_bean_file(bean_id=bean_id, slug=slug)
            raw_path = str(found) if found else None
        if raw_path:
            return self.quarantine_path(raw_path)
        label = bean_id or slug or str(resolve_field(raw, "title") or "") or "unnamed bean"
        outcome = QuarantineOutcome(label=label, error="no file path")
        self.logger.warning("Malformed bean %s has no file to quarantine", label)
        # anonymous records are keyed by content
        key = json.dumps(raw, sort_keys=True, default=str) if label == "unnamed bean" else label
        self._notify_once(f"record:{key}", outcome)
        return outcome

    def recover_from_list_error(self, exc: BaseException) -> Optional[QuarantineOutcome]:
        """Quarantine the file a failed listing names. Returns the outcome when a file was moved."""
        parts: List[str] = [str(exc)]
        for attr in ("detail", "output"):
            value = getattr(exc, attr, "")
            if value:
                parts.append(str(value))
        candidate = extract_malformed_path("\n".join(parts), self.files.beans_dir)
        if not candidate:
            return None
        outcome = self.quarantine_path(candidate)
        return outcome if outcome.moved else None


__all__ = [
    "OPEN_QUARANTINE_ACTION",
    "QuarantineManager",
    "QuarantineOutcome",
    "extract_malformed_path",
]
