import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from core.errors import PathSafetyError, QuarantineError

QUARANTINE_DIRNAME = ".quarantine"
QUARANTINE_SUFFIX = ".fixme"

logger = logging.getLogger("beans.files")


class BeanFileRepository:
    """Filesystem access to bean files, confined to the beans root."""

    def __init__(self, workspace_root: Path, beans_dir: str = ".beans"):
        self.workspace_root = Path(workspace_root).resolve()
        self.beans_dir = beans_dir
        self.root = (self.workspace_root / beans_dir).resolve()

    @property
    def quarantine_dir(self) -> Path:
        return self.root / QUARANTINE_DIRNAME

    def _candidate(self, raw_path: Union[str, Path]) -> Path:
        text = str(raw_path).strip().replace("\\", "/")
        if not text:
            raise PathSafetyError("Empty bean path")
        path = Path(text)
        if path.is_absolute():
            return path
        head = path.parts[0] if path.parts else ""
        if head == Path(self.beans_dir).parts[0]:
            return self.workspace_root / path
        return self.root / path

    def resolve(self, raw_path: Union[str, Path]) -> Path:
        """Resolve a bean path reported by the backend or found in an error message.

        Raises PathSafetyError when the result escapes the beans root or points
        into the quarantine folder.
        """
        resolved = self._candidate(raw_path).resolve()
        # SEC: everything we touch must stay under the beans root
        if not resolved.is_relative_to(self.root):
            raise PathSafetyError(f"Path traversal detected: {resolved} is outside {self.root}")
        if resolved == self.quarantine_dir or resolved.is_relative_to(self.quarantine_dir.resolve()):
            raise PathSafetyError(f"Refusing to touch quarantined file: {resolved}")
        return resolved

    def try_resolve(self, raw_path: Optional[Union[str, Path]]) -> Optional[Path]:
        if not raw_path:
            return None
        try:
            return self.resolve(raw_path)
        except PathSafetyError as exc:
            logger.warning("%s", exc)
            return None

    def relative_to_root(self, path: Path) -> str:
        """Beans-root-relative POSIX path (the form the backend reports)."""
        try:
            return Path(path).resolve().relative_to(self.root).as_posix()
        except ValueError:
            return Path(path).as_posix()

    def read_text(self, path: Path) -> str:
        return Path(path).read_text(encoding="utf-8")

    def write_text(self, path: Path, content: str) -> None:
        # newline="" keeps CRLF headers byte-for-byte
        with open(path, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)

    def list_markdown(self) -> List[Path]:
        if not self.root.is_dir():
            return []
        files: List[Path] = []
        for file in sorted(self.root.rglob("*.md")):
            rel_parts = file.relative_to(self.root).parts
            if any(part.startswith(".") for part in rel_parts[:-1]):
                continue
            files.append(file)
        return files

    def find_bean_file(self, bean_id: str = "", slug: str = "") -> Optional[Path]:
        """Locate a bean file by id or slug using the ``<id>--<slug>.md`` naming scheme."""
        for file in self.list_markdown():
            stem = file.stem
            if bean_id and (stem == bean_id or stem.startswith(f"{bean_id}--")):
                return file
            if slug and stem.endswith(f"--{slug}"):
                return file
        return None

    def quarantine_target(self, path: Path) -> Path:
        target = self.quarantine_dir / f"{path.name}{QUARANTINE_SUFFIX}"
        counter = 1
        while target.exists():
            target = self.quarantine_dir / f"{path.name}.{counter}{QUARANTINE_SUFFIX}"
            counter += 1
        return target

    def move_to_quarantine(self, path: Path) -> Path:
        """Atomically move ``path`` into the quarantine folder; returns the new location."""
        source = self.resolve(path)
        try:
            self.quarantine_dir.mkdir(parents=True, exist_ok=True)
            target = self.quarantine_target(source)
            os.replace(source, target)
        except OSError as exc:
            raise QuarantineError(f"Could not move {source.name} to quarantine: {exc}", cause=exc) from exc
        return target


__all__ = ["BeanFileRepository", "QUARANTINE_DIRNAME", "QUARANTINE_SUFFIX"]
