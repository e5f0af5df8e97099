"""BeansStore: the facade consumers use to list and change beans.

Listing pipeline::

    backend.list_beans -> ingest -> (recover | quarantine) -> unlisted files
        -> referential integrity repair -> cache

Every list result satisfies: ids are non-empty and unique, status/type come
from the workspace enumerations, and (for unfiltered listings) every parent
reference resolves inside the same result.
"""

import dataclasses
import logging
import time
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from config import BeansConfig, load_workspace_config
from application.cascade import CascadeReport, StatusCascadeEngine
from application.ingest import RecordIngestor
from application.integrity import IntegrityReport, ReferentialIntegrityRepairer
from application.ports import BeansBackend, HistoryProvider, Logger, Notifier, RawRecord
from application.quarantine import QuarantineManager
from application.recovery import DEFAULT_HISTORY_DEPTH, FieldRecoveryEngine, id_from_filename
from core.bean import Bean, BeanFilter, unique
from core.errors import (
    BackendCommandError,
    BackendTimeoutError,
    BackendUnavailableError,
    BeanValidationError,
    MalformedRecordError,
    MalformedResponseError,
    user_message,
)
from core.hierarchy import validate_parent
from core.status import normalize_status
from infrastructure.file_repository import BeanFileRepository
from util.request_dedup import InFlightRequests

DEFAULT_CACHE_TTL = 300.0
DEFAULT_CONFIG_TTL = 5.0
OFFLINE_WARNING = "Beans CLI unavailable. Using cached data (may be stale)."

UPDATE_FIELDS = ("status", "type", "priority", "parent", "clear_parent", "blocking", "blocked_by")
CREATE_FIELDS = ("title", "type", "status", "priority", "body", "parent")


class _NullNotifier:
    def __init__(self, logger: Logger):
        self.logger = logger

    def warn(self, message: str, actions=()) -> None:
        self.logger.warning("%s", message)


class BeansStore:
    def __init__(
        self,
        backend: BeansBackend,
        workspace_root: Path,
        history: Optional[HistoryProvider] = None,
        notifier: Optional[Notifier] = None,
        logger: Optional[Logger] = None,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        config_ttl: float = DEFAULT_CONFIG_TTL,
        history_depth: int = DEFAULT_HISTORY_DEPTH,
        config_loader: Callable[[Path], BeansConfig] = load_workspace_config,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.backend = backend
        self.workspace_root = Path(workspace_root)
        self.history = history
        self.logger = logger or logging.getLogger("beans.store")
        self.notifier = notifier or _NullNotifier(self.logger)
        self.cache_ttl = cache_ttl
        self.config_ttl = config_ttl
        self.history_depth = history_depth
        self._config_loader = config_loader
        self._clock = clock

        self._lock = Lock()
        self._inflight: InFlightRequests[List[Bean]] = InFlightRequests()
        self._cache: Optional[List[Bean]] = None
        self._cache_at = 0.0
        self._offline = False
        self.last_integrity: Optional[IntegrityReport] = None
        self.last_cascade: Optional[CascadeReport] = None

        self._config = config_loader(self.workspace_root)
        self._config_at = clock()
        self.quarantine: QuarantineManager
        self._wire(self._config)

    # ------------------------------------------------------------------ wiring

    def _wire(self, config: BeansConfig) -> None:
        self.files = BeanFileRepository(self.workspace_root, config.path)
        self.ingestor = RecordIngestor(config, logger=self.logger)
        self.recovery = FieldRecoveryEngine(
            self.files,
            config,
            history=self.history,
            history_depth=self.history_depth,
            logger=self.logger,
        )
        if getattr(self, "quarantine", None) is None:
            self.quarantine = QuarantineManager(self.files, self.notifier, logger=self.logger)
        else:
            # keep the notification history across config reloads
            self.quarantine.files = self.files
        self.integrity = ReferentialIntegrityRepairer(self.backend, self.ingestor, self.notifier, logger=self.logger)
        self.cascader = StatusCascadeEngine(self.backend, logger=self.logger)

    def _refresh_config(self) -> BeansConfig:
        with self._lock:
            if self._clock() - self._config_at < self.config_ttl:
                return self._config
            fresh = self._config_loader(self.workspace_root)
            self._config_at = self._clock()
            if fresh != self._config:
                self.logger.info("Workspace configuration changed; reloading")
                self._config = fresh
                self._wire(fresh)
            return self._config

    @property
    def config(self) -> BeansConfig:
        return self._refresh_config()

    @property
    def is_offline(self) -> bool:
        return self._offline

    # ------------------------------------------------------------------- cache

    def _cache_valid(self) -> bool:
        return self._cache is not None and (self._clock() - self._cache_at) < self.cache_ttl

    def _store_cache(self, beans: List[Bean]) -> None:
        with self._lock:
            self._cache = list(beans)
            self._cache_at = self._clock()

    def _patch_cache(self, beans: Iterable[Bean] = (), statuses: Optional[Dict[str, str]] = None, removed: str = "") -> None:
        with self._lock:
            if self._cache is None:
                return
            by_id = {bean.id: bean for bean in self._cache}
            for bean in beans:
                by_id[bean.id] = bean
            for bean_id, status in (statuses or {}).items():
                if bean_id in by_id:
                    by_id[bean_id] = dataclasses.replace(by_id[bean_id], status=status)
            by_id.pop(removed, None)
            self._cache = list(by_id.values())

    def clear_cache(self) -> None:
        with self._lock:
            self._cache = None
            self._cache_at = 0.0

    # ----------------------------------------------------------------- listing

    def list_beans(self, filters: Optional[BeanFilter] = None) -> List[Bean]:
        """Return the validated bean list. Concurrent identical calls share one backend call."""
        active = filters or BeanFilter()
        return list(self._inflight.run(active.key(), lambda: self._list(active)))

    def _list(self, filters: BeanFilter, retried: bool = False, moved: Sequence[str] = ()) -> List[Bean]:
        self._refresh_config()
        try:
            raws = self.backend.list_beans(filters.to_backend() or None)
        except (BackendUnavailableError, BackendTimeoutError) as exc:
            return self._serve_offline(filters, exc)
        except (BackendCommandError, MalformedResponseError) as exc:
            outcome = None if retried else self.quarantine.recover_from_list_error(exc)
            if outcome is not None:
                self.logger.info("Quarantined %s named by the list error; retrying list", outcome.label)
                return self._list(filters, retried=True, moved=[outcome.label])
            if isinstance(exc, MalformedResponseError):
                raise
            raise MalformedResponseError(exc.message, output=exc.detail, cause=exc)

        if self._offline:
            self.logger.info("Beans CLI reachable again; leaving offline mode")
        self._offline = False

        beans, quarantined = self._ingest_all(raws or [])
        quarantined = list(moved) + quarantined
        if not filters.is_empty:
            return beans
        self._adopt_unlisted_files(beans, quarantined)
        report = self.integrity.repair(beans, quarantined)
        self.last_integrity = report
        self._store_cache(report.beans)
        return list(report.beans)

    def _serve_offline(self, filters: BeanFilter, exc: Exception) -> List[Bean]:
        with self._lock:
            cached = list(self._cache) if self._cache_valid() else None
        if cached is not None:
            if not self._offline:
                self._offline = True
                self.logger.warning("CLI unavailable, using cached data (offline mode): %s", user_message(exc))
                self.notifier.warn(OFFLINE_WARNING)
            return filters.apply(cached)
        if not self._offline:
            self._offline = True
            self.logger.error("CLI unavailable and no cached data available")
        raise BackendUnavailableError(
            "Beans CLI is not available and no cached data exists. "
            "Please ensure the beans CLI is installed and accessible.",
            cause=exc,
        )

    def _ingest_one(self, raw: RawRecord) -> Optional[Bean]:
        bean, missing = self.ingestor.try_ingest(raw)
        if bean is not None:
            return bean
        self.logger.warning(
            "Malformed bean %s (missing or invalid: %s); attempting recovery",
            raw.get("id") or raw.get("path") or "<unknown>",
            ", ".join(missing),
        )
        repaired = self.recovery.recover(raw)
        if repaired is None:
            return None
        try:
            return self.ingestor.ingest(repaired)
        except MalformedRecordError as exc:
            self.logger.warning("Recovered bean still invalid: %s", exc)
            return None

    def _ingest_all(self, raws: Iterable[RawRecord]) -> Tuple[List[Bean], List[str]]:
        beans: List[Bean] = []
        quarantined: List[str] = []
        seen: Set[str] = set()
        for raw in raws:
            if not isinstance(raw, dict):
                self.logger.warning("Ignoring non-object bean payload: %r", raw)
                continue
            bean = self._ingest_one(raw)
            if bean is None:
                quarantined.append(self.quarantine.quarantine_record(raw).label)
                continue
            if bean.id in seen:
                self.logger.warning("Duplicate bean id %s in listing; keeping the first", bean.id)
                continue
            seen.add(bean.id)
            beans.append(bean)
        return beans, quarantined

    def _adopt_unlisted_files(self, beans: List[Bean], quarantined: List[str]) -> None:
        """Route ``*.md`` files the backend silently skipped through recovery/quarantine."""
        known_ids = {bean.id for bean in beans}
        known_paths: Set[Path] = set()
        for bean in beans:
            resolved = self.files.try_resolve(bean.path) if bean.path else None
            if resolved is not None:
                known_paths.add(resolved)
        for file in self.files.list_markdown():
            derived = id_from_filename(file)
            if (derived and derived in known_ids) or file.resolve() in known_paths:
                continue
            self.logger.warning("Detected bean file not returned by CLI: %s", file.name)
            hint: RawRecord = {"path": self.files.relative_to_root(file)}
            bean = self._ingest_one(hint)
            if bean is None or bean.id in known_ids:
                quarantined.append(self.quarantine.quarantine_path(file).label)
                continue
            known_ids.add(bean.id)
            beans.append(bean)

    # -------------------------------------------------------------- validation

    def _check_enum(self, name: str, value: Any, allowed: Tuple[str, ...]) -> str:
        text = str(value or "").strip()
        if text not in allowed:
            raise BeanValidationError(f"Invalid {name}: {value!r}. Allowed: {', '.join(allowed)}")
        return text

    def _check_parent(self, bean_id: str, bean_type: str, parent_id: str, snapshot: List[Bean]) -> None:
        errors = validate_parent(bean_id, bean_type, parent_id, {b.id: b for b in snapshot})
        if errors:
            raise BeanValidationError("; ".join(e.details for e in errors))

    def _ingest_written(self, raw: Any, bean_id: str) -> Bean:
        if isinstance(raw, dict):
            try:
                return self.ingestor.ingest(raw)
            except MalformedRecordError:
                pass
        self.logger.warning("Partial bean payload received for %s; fetching full bean", bean_id)
        bean = self.show_bean(bean_id)
        if bean is None:
            raise MalformedResponseError(f"Bean {bean_id} could not be read back after the write")
        return bean

    # ---------------------------------------------------------------- mutation

    def update_bean(self, bean_id: str, changes: Dict[str, Any]) -> Bean:
        """Apply a sparse change set; status changes cascade to descendants.

        Raises BeanValidationError for invalid input. Backend failures propagate;
        writes never fall back to the offline cache.
        """
        bean_id = (bean_id or "").strip()
        if not bean_id:
            raise BeanValidationError("Bean id is required")
        unknown = sorted(set(changes) - set(UPDATE_FIELDS))
        if unknown:
            raise BeanValidationError(f"Unsupported update field(s): {', '.join(unknown)}")
        config = self.config
        payload: Dict[str, Any] = {}
        status = None
        if changes.get("status"):
            try:
                status = normalize_status(str(changes["status"]), config.statuses)
            except ValueError as exc:
                raise BeanValidationError(str(exc)) from exc
            payload["status"] = status
        if changes.get("type"):
            payload["type"] = self._check_enum("type", changes["type"], config.types)
        if changes.get("priority"):
            payload["priority"] = self._check_enum("priority", changes["priority"], config.priorities)
        parent = changes.get("parent")
        if parent is not None and changes.get("clear_parent"):
            raise BeanValidationError("Cannot set parent and clear parent in the same update")
        if changes.get("clear_parent"):
            payload["parent"] = ""
        for key, field_name in (("blocking", "addBlocking"), ("blocked_by", "addBlockedBy")):
            if changes.get(key):
                payload[field_name] = unique(changes[key])
        if not payload and parent is None:
            raise BeanValidationError("No changes given")

        snapshot: List[Bean] = []
        if status is not None or parent:
            snapshot = self.list_beans()
        current = next((b for b in snapshot if b.id == bean_id), None)
        if parent is not None:
            parent = str(parent).strip()
            if parent:
                bean_type = payload.get("type") or (current.type if current else config.default_type)
                self._check_parent(bean_id, bean_type, parent, snapshot)
            payload["parent"] = parent

        raw = self.backend.update_bean(bean_id, payload)
        updated = self._ingest_written(raw, bean_id)
        self._patch_cache([updated])

        if status is not None and self.cascader.should_cascade(current.status if current else None, status):
            report = self.cascader.cascade(bean_id, status, snapshot)
            self.last_cascade = report
            self._patch_cache(statuses={child: status for child in report.updated})
            if not report.ok:
                self.notifier.warn(report.message())
        return updated

    def show_bean(self, bean_id: str) -> Optional[Bean]:
        raw = self.backend.show_bean(bean_id)
        if not raw:
            return None
        bean = self._ingest_one(raw)
        if bean is None:
            self.quarantine.quarantine_record(raw)
        return bean

    def create_bean(self, data: Dict[str, Any]) -> Bean:
        unknown = sorted(set(data) - set(CREATE_FIELDS))
        if unknown:
            raise BeanValidationError(f"Unsupported field(s): {', '.join(unknown)}")
        title = str(data.get("title") or "").strip()
        if not title:
            raise BeanValidationError("Bean title is required")
        config = self.config
        payload: Dict[str, Any] = {
            "title": title,
            "type": self._check_enum("type", data.get("type") or config.default_type, config.types),
            "status": self._check_enum("status", data.get("status") or config.default_status, config.statuses),
        }
        if data.get("priority"):
            payload["priority"] = self._check_enum("priority", data["priority"], config.priorities)
        if data.get("body"):
            payload["body"] = str(data["body"])
        parent = str(data.get("parent") or "").strip()
        if parent:
            # new bean has no id yet
            self._check_parent("", payload["type"], parent, self.list_beans())
            payload["parent"] = parent
        raw = self.backend.create_bean(payload)
        try:
            bean = self.ingestor.ingest(raw)
        except MalformedRecordError as exc:
            raise MalformedResponseError(f"Invalid bean returned after create: {exc}", output=repr(raw)) from exc
        if bean.path and self.recovery.ensure_title_quoted(bean.path):
            self.logger.info("Quoted unsafe title in %s", bean.path)
        self._patch_cache([bean])
        return bean

    def delete_bean(self, bean_id: str) -> None:
        self.backend.delete_bean(bean_id)
        self._patch_cache(removed=bean_id)


__all__ = ["BeansStore", "OFFLINE_WARNING", "UPDATE_FIELDS", "CREATE_FIELDS"]
