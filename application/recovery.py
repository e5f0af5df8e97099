"""Field recovery for malformed bean records.

Strategies run in a fixed order and stop as soon as every required field is
known:

1. the record's own file header, re-read from disk;
2. version history: the newest revision whose header carries every field;
3. version history: per-field merge across revisions (newest first);
4. the filename (``<id>--<slug>.md``) plus workspace defaults.

A recovered record is written back to its file before it is returned. When
that write fails the record is reported unrecoverable so the caller can
quarantine it; nothing is ever patched only in memory.
"""

import hashlib
import logging
import os
import re
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from config import BeansConfig
from application.ingest import REQUIRED_FIELDS, resolve_field
from application.ports import HistoryProvider, Logger, RawRecord
from core.errors import PathSafetyError
from infrastructure.file_repository import BeanFileRepository
from infrastructure.frontmatter import quote_title_line, read_fields, rewrite_fields

RECOVERABLE_FIELDS: Tuple[str, ...] = REQUIRED_FIELDS + ("priority",)
DEFAULT_HISTORY_DEPTH = 20


def generate_bean_id(prefix: str = "bean", id_length: int = 4, seed: Optional[str] = None) -> str:
    """``<prefix>-<hex>``; the hex part is clamped to 4..16 characters."""
    normalized_prefix = (prefix or "").strip().rstrip("-") or "bean"
    try:
        length = int(id_length)
    except (TypeError, ValueError):
        length = 4
    length = min(16, max(4, length))
    material = seed if seed is not None else f"{time.time_ns()}-{os.urandom(8).hex()}"
    suffix = hashlib.sha256(material.encode("utf-8")).hexdigest()[:length]
    return f"{normalized_prefix}-{suffix}"


def id_from_filename(path: Path) -> Optional[str]:
    stem = Path(path).stem
    if "--" not in stem:
        return None
    return stem.split("--", 1)[0].strip() or None


def title_from_slug(text: str) -> Optional[str]:
    normalized = re.sub(r"[-_]+", " ", text or "").strip()
    return normalized or None


def title_from_filename(path: Path) -> Optional[str]:
    stem = Path(path).stem
    remainder = stem.split("--", 1)[1] if "--" in stem else stem
    return title_from_slug(remainder)


class FieldRecoveryEngine:
    def __init__(
        self,
        files: BeanFileRepository,
        config: Optional[BeansConfig] = None,
        history: Optional[HistoryProvider] = None,
        history_depth: int = DEFAULT_HISTORY_DEPTH,
        logger: Optional[Logger] = None,
        id_factory: Optional[Callable[[str, int], str]] = None,
    ):
        self.files = files
        self.config = config or BeansConfig()
        self.history = history
        self.history_depth = max(0, int(history_depth))
        self.logger = logger or logging.getLogger("beans.recovery")
        self.id_factory = id_factory or generate_bean_id

    # ------------------------------------------------------------------ fields

    def _valid(self, name: str, value: Optional[str]) -> Optional[str]:
        text = str(value).strip() if value is not None else ""
        if not text:
            return None
        if name == "status" and text not in self.config.statuses:
            return None
        if name == "type" and text not in self.config.types:
            return None
        if name == "priority" and text not in self.config.priorities:
            return None
        return text

    def _usable(self, values: Dict[str, str]) -> Dict[str, str]:
        result: Dict[str, str] = {}
        for name in RECOVERABLE_FIELDS:
            value = self._valid(name, values.get(name))
            if value:
                result[name] = value
        return result

    def _missing(self, known: Dict[str, str]) -> List[str]:
        return [name for name in REQUIRED_FIELDS if name not in known]

    def _fill(self, known: Dict[str, str], source: Dict[str, str], fields) -> List[str]:
        filled = []
        for name in fields:
            if name not in known and name in source:
                known[name] = source[name]
                filled.append(name)
        return filled

    # ---------------------------------------------------------------- location

    def locate(self, raw: RawRecord) -> Optional[Path]:
        """The record's file: its ``path`` if safe and present, else a lookup by id or slug."""
        raw_path = resolve_field(raw, "path")
        if raw_path:
            try:
                path = self.files.resolve(raw_path)
            except PathSafetyError as exc:
                self.logger.warning("Refusing to recover %s: %s", raw_path, exc)
                return None
            return path if path.is_file() else None
        bean_id = str(resolve_field(raw, "id") or "").strip()
        slug = str(resolve_field(raw, "slug") or "").strip()
        if not (bean_id or slug):
            return None
        return self.files.find_bean_file(bean_id=bean_id, slug=slug)

    # ------------------------------------------------------------------ history

    def _history_headers(self, path: Path) -> List[Tuple[str, Dict[str, str]]]:
        if self.history is None or self.history_depth == 0:
            return []
        try:
            revisions = self.history.revisions(path, self.history_depth)
        except Exception as exc:  # history is best effort
            self.logger.debug("History unavailable for %s: %s", path.name, exc)
            return []
        headers: List[Tuple[str, Dict[str, str]]] = []
        for revision in revisions[: self.history_depth]:
            try:
                content = self.history.show(revision, path)
            except Exception as exc:
                self.logger.debug("Skipping revision %s of %s: %s", revision[:8], path.name, exc)
                continue
            if not content:
                continue
            headers.append((revision, self._usable(read_fields(content, RECOVERABLE_FIELDS))))
        return headers

    def _from_history(self, path: Path, known: Dict[str, str]) -> None:
        headers = self._history_headers(path)
        if not headers:
            return
        for revision, values in headers:
            if all(name in values for name in REQUIRED_FIELDS):
                filled = self._fill(known, values, RECOVERABLE_FIELDS)
                self.logger.info(
                    "Recovered %s from history (revision %s) for %s",
                    ", ".join(filled) or "nothing",
                    revision[:8],
                    path.name,
                )
                return
        filled: List[str] = []
        for name in RECOVERABLE_FIELDS:
            for _revision, values in headers:
                if name not in known and name in values:
                    known[name] = values[name]
                    filled.append(name)
                    break
        if filled:
            self.logger.info("Partially recovered %s from history for %s", ", ".join(filled), path.name)

    # ------------------------------------------------------------------ recover

    def recover(self, raw: RawRecord) -> Optional[RawRecord]:
        """Return a repaired copy of ``raw`` (already persisted), or None when unrecoverable."""
        path = self.locate(raw)
        if path is None:
            self.logger.warning("Cannot recover bean %s: no usable file path", raw.get("id") or "<unknown>")
            return None

        known = self._usable({name: resolve_field(raw, name) for name in RECOVERABLE_FIELDS})
        try:
            original = self.files.read_text(path)
        except OSError as exc:
            self.logger.warning("Cannot read %s: %s", path.name, exc)
            return None

        if self._missing(known):
            self._fill(known, self._usable(read_fields(original, RECOVERABLE_FIELDS)), RECOVERABLE_FIELDS)
        if self._missing(known):
            self._from_history(path, known)
        if self._missing(known):
            inferred = {
                "id": id_from_filename(path),
                "title": title_from_filename(path),
                "status": self.config.default_status,
                "type": self.config.default_type,
            }
            self._fill(known, self._usable(inferred), REQUIRED_FIELDS)
            if "id" not in known and "title" in known:
                known["id"] = self.id_factory(self.config.prefix, self.config.id_length)
                self.logger.info("Generated fallback bean id %s for %s", known["id"], path.name)

        if self._missing(known):
            self.logger.warning("Cannot recover %s: missing %s", path.name, ", ".join(self._missing(known)))
            return None

        header_values = {name: known[name] for name in REQUIRED_FIELDS}
        if "priority" in known and not resolve_field(raw, "priority"):
            header_values["priority"] = known["priority"]
        try:
            self._persist(path, original, header_values)
        except OSError as exc:
            self.logger.warning("Failed to persist repaired header for %s: %s; escalating to quarantine", path.name, exc)
            return None

        repaired = dict(raw)
        repaired.update(known)
        repaired["path"] = self.files.relative_to_root(path)
        return repaired

    def _persist(self, path: Path, original: str, values: Dict[str, str]) -> bool:
        updated = rewrite_fields(original, values)
        if updated == original:
            return False
        self.files.write_text(path, updated)
        self.logger.info("Repaired header of %s", path.name)
        return True

    def ensure_title_quoted(self, raw_path: str) -> bool:
        """Quote an unsafe ``title:`` header line in place. Returns True when the file changed."""
        try:
            path = self.files.resolve(raw_path)
            content = self.files.read_text(path)
        except (PathSafetyError, OSError) as exc:
            self.logger.warning("Could not check title quoting for %s: %s", raw_path, exc)
            return False
        updated = quote_title_line(content)
        if updated is None:
            return False
        try:
            self.files.write_text(path, updated)
        except OSError as exc:
            self.logger.warning("Could not write %s: %s", path.name, exc)
            return False
        self.logger.debug("Quoted title in %s", path.name)
        return True


__all__ = [
    "DEFAULT_HISTORY_DEPTH",
    "FieldRecoveryEngine",
    "RECOVERABLE_FIELDS",
    "generate_bean_id",
    "id_from_filename",
    "title_from_filename",
    "title_from_slug",
]
