import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from application.ports import Logger

DEFAULT_TIMEOUT = 10.0


class GitHistory:
    """HistoryProvider backed by the ``git`` binary. Every failure reads as "no history"."""

    def __init__(self, workspace_root: Path, git_path: str = "git", timeout: float = DEFAULT_TIMEOUT, logger: Optional[Logger] = None):
        self.workspace_root = Path(workspace_root).resolve()
        self.git_path = git_path
        self.timeout = timeout
        self.logger = logger or logging.getLogger("beans.history")

    def _relative(self, path: Path) -> Optional[str]:
        try:
            return Path(path).resolve().relative_to(self.workspace_root).as_posix()
        except ValueError:
            return None

    def _git(self, *args: str) -> Optional[str]:
        try:
            result = subprocess.run(
                [self.git_path, *args],
                cwd=str(self.workspace_root),
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
            )
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as exc:
            self.logger.debug("git %s failed: %s", args[0] if args else "", exc)
            return None
        return result.stdout

    def revisions(self, path: Path, limit: int) -> List[str]:
        """Commit ids touching ``path``, newest first, following renames."""
        rel = self._relative(path)
        if rel is None or limit <= 0:
            return []
        output = self._git("log", "--follow", "-n", str(int(limit)), "--format=%H", "--", rel)
        if not output:
            return []
        return [line.strip() for line in output.splitlines() if line.strip()]

    def show(self, revision: str, path: Path) -> Optional[str]:
        rel = self._relative(path)
        if rel is None or not revision:
            return None
        return self._git("show", f"{revision}:{rel}")


__all__ = ["GitHistory"]
