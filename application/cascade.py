"""Status propagation from a parent bean to all of its descendants."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from application.ports import BeansBackend, Logger
from core.bean import Bean
from core.errors import BeansError, user_message
from core.hierarchy import build_children_index, iter_descendants
from core.status import triggers_cascade


@dataclass(frozen=True)
class CascadeFailure:
    bean_id: str
    error: str


@dataclass
class CascadeReport:
    root_id: str
    status: str
    updated: List[str] = field(default_factory=list)
    failed: List[CascadeFailure] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def message(self) -> str:
        if self.ok:
            return ""
        ids = ", ".join(f.bean_id for f in self.failed)
        return (
            f"Set {self.root_id} to {self.status}, but {len(self.failed)} descendant(s) could not be updated: {ids}. "
            f"{len(self.updated)} descendant(s) were updated."
        )


class StatusCascadeEngine:
    def __init__(self, backend: BeansBackend, logger: Optional[Logger] = None):
        self.backend = backend
        self.logger = logger or logging.getLogger("beans.cascade")

    @staticmethod
    def should_cascade(previous: Optional[str], target: str) -> bool:
        return triggers_cascade(previous, target)

    def cascade(self, root_id: str, status: str, beans: Sequence[Bean]) -> CascadeReport:
        """Write ``status`` to every descendant of ``root_id`` that does not already have it.

        ``beans`` is a snapshot of the whole set; the root itself is never
        written here. Writes are sequential, breadth first, siblings by id.
        A failed write is recorded and the walk continues; nothing is rolled back.
        """
        report = CascadeReport(root_id=root_id, status=status)
        index = build_children_index(beans)
        for bean in iter_descendants(root_id, index):
            if bean.status == status:
                report.skipped.append(bean.id)
                continue
            try:
                self.backend.update_bean(bean.id, {"status": status})
            except BeansError as exc:
                self.logger.warning("Cascade of %s to %s failed: %s", status, bean.id, user_message(exc))
                report.failed.append(CascadeFailure(bean.id, user_message(exc)))
                continue
            report.updated.append(bean.id)
        if report.updated or report.failed:
            self.logger.info(
                "Cascaded %s from %s: %d updated, %d failed, %d already matching",
                status,
                root_id,
                len(report.updated),
                len(report.failed),
                len(report.skipped),
            )
        return report


__all__ = ["CascadeFailure", "CascadeReport", "StatusCascadeEngine"]
