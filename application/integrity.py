import dataclasses
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from application.ingest import RecordIngestor
from application.ports import BeansBackend, Logger, Notifier
from core.bean import Bean
from core.errors import BeansError, MalformedRecordError, user_message
from core.hierarchy import find_dangling_parents


@dataclass(frozen=True)
class IntegrityWarning:
    """One bean whose parent reference no longer resolved."""

    bean_id: str
    code: str
    missing_parent: str
    cleared: bool = True
    error: str = ""


@dataclass
class IntegrityReport:
    beans: List[Bean]
    warnings: List[IntegrityWarning] = field(default_factory=list)
    quarantined: List[str] = field(default_factory=list)

    @property
    def failed(self) -> List[IntegrityWarning]:
        return [w for w in self.warnings if not w.cleared]

    @property
    def changed(self) -> bool:
        return bool(self.warnings)

    def message(self) -> str:
        if not self.warnings:
            return ""
        codes = ", ".join(w.code for w in self.warnings)
        parents = ", ".join(sorted({w.missing_parent for w in self.warnings}))
        text = f"Bean(s) {codes} moved to the top level because their parent ({parents}) no longer exists."
        if self.quarantined:
            text += f" Quarantined: {', '.join(self.quarantined)}."
        if self.failed:
            text += (
                f" Could not update {len(self.failed)} of {len(self.warnings)} on the backend;"
                " see the log for details."
            )
        return text


class ReferentialIntegrityRepairer:
    """Clears parent references that point outside the current bean set."""

    def __init__(
        self,
        backend: BeansBackend,
        ingestor: RecordIngestor,
        notifier: Notifier,
        logger: Optional[Logger] = None,
    ):
        self.backend = backend
        self.ingestor = ingestor
        self.notifier = notifier
        self.logger = logger or logging.getLogger("beans.integrity")

    def _clear_parent(self, bean: Bean) -> Bean:
        raw = self.backend.update_bean(bean.id, {"parent": ""})
        try:
            updated = self.ingestor.ingest(raw) if isinstance(raw, dict) else None
        except MalformedRecordError:
            updated = None
        if updated is None or updated.id != bean.id:
            return dataclasses.replace(bean, parent=None)
        updated.parent = None
        return updated

    def repair(self, beans: Sequence[Bean], quarantined: Sequence[str] = ()) -> IntegrityReport:
        result = list(beans)
        report = IntegrityReport(beans=result, quarantined=list(quarantined))
        dangling = {id(bean) for bean in find_dangling_parents(result)}
        for idx, bean in enumerate(result):
            if id(bean) not in dangling:
                continue
            missing_parent = bean.parent or ""
            try:
                result[idx] = self._clear_parent(bean)
            except BeansError as exc:
                self.logger.warning("Failed to clear dangling parent for bean %s: %s", bean.id, user_message(exc))
                result[idx] = dataclasses.replace(bean, parent=None)
                report.warnings.append(
                    IntegrityWarning(bean.id, bean.label, missing_parent, cleared=False, error=user_message(exc))
                )
                continue
            self.logger.info("Cleared dangling parent reference on %s (parent %s not found)", bean.label, missing_parent)
            report.warnings.append(IntegrityWarning(bean.id, bean.label, missing_parent))
        if report.changed:
            self.notifier.warn(report.message())
        return report


__all__ = ["IntegrityReport", "IntegrityWarning", "ReferentialIntegrityRepairer"]
