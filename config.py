from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

import yaml

from core.bean import BEAN_PRIORITIES, BEAN_STATUSES, BEAN_TYPES

CONFIG_FILENAME = ".beans.yml"
logger = logging.getLogger("beans.config")


@dataclass(frozen=True)
class BeansConfig:
    """Workspace configuration (``.beans.yml``) merged over defaults."""

    path: str = ".beans"
    prefix: str = "bean"
    id_length: int = 4
    default_status: str = "draft"
    default_type: str = "task"
    statuses: Tuple[str, ...] = BEAN_STATUSES
    types: Tuple[str, ...] = BEAN_TYPES
    priorities: Tuple[str, ...] = BEAN_PRIORITIES

    def beans_root(self, workspace_root: Path) -> Path:
        return (Path(workspace_root) / self.path).resolve()


def _load_config(workspace_root: Path) -> Dict[str, Any]:
    config_path = Path(workspace_root) / CONFIG_FILENAME
    if not config_path.exists():
        return {}
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (yaml.YAMLError, OSError) as exc:
        logger.error("Failed to read %s: %s", config_path, exc)
        return {}
    if not isinstance(data, dict):
        return {}
    # The beans CLI nests its settings under a top-level ``beans:`` key.
    nested = data.get("beans")
    if isinstance(nested, dict):
        merged = dict(data)
        merged.pop("beans", None)
        merged.update(nested)
        return merged
    return data


def _as_tuple(value: Any, fallback: Tuple[str, ...]) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return fallback
    items = tuple(str(v).strip() for v in value if str(v or "").strip())
    return items or fallback


def _pick(value: Any, allowed: Iterable[str], fallback: str) -> str:
    text = str(value or "").strip()
    allowed = tuple(allowed)
    if text in allowed:
        return text
    if fallback in allowed:
        return fallback
    return allowed[0] if allowed else fallback


def load_workspace_config(workspace_root: Path) -> BeansConfig:
    data = _load_config(workspace_root)
    defaults = BeansConfig()
    statuses = _as_tuple(data.get("statuses"), defaults.statuses)
    types = _as_tuple(data.get("types"), defaults.types)
    priorities = _as_tuple(data.get("priorities"), defaults.priorities)
    try:
        id_length = int(data.get("id_length", defaults.id_length) or defaults.id_length)
    except (TypeError, ValueError):
        id_length = defaults.id_length
    prefix = str(data.get("prefix") or defaults.prefix).strip().rstrip("-") or defaults.prefix
    return BeansConfig(
        path=str(data.get("path") or defaults.path),
        prefix=prefix,
        id_length=id_length,
        default_status=_pick(data.get("default_status"), statuses, defaults.default_status),
        default_type=_pick(data.get("default_type"), types, defaults.default_type),
        statuses=statuses,
        types=types,
        priorities=priorities,
    )


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", name, raw)
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, float(default)))


@dataclass(frozen=True)
class Settings:
    """Process-level runtime settings (environment driven)."""

    workspace_root: Path
    cli_path: str = "beans"
    timeout_seconds: float = 30.0
    cache_ttl_seconds: float = 300.0
    config_ttl_seconds: float = 5.0
    history_depth: int = 20
    max_retries: int = 3

    @classmethod
    def from_env(cls, workspace_root: Optional[Path] = None) -> "Settings":
        env_root = os.environ.get("BEANS_WORKSPACE_ROOT")
        root = Path(workspace_root or env_root or Path.cwd()).expanduser().resolve()
        return cls(
            workspace_root=root,
            cli_path=os.environ.get("BEANS_CLI_PATH", "").strip() or "beans",
            timeout_seconds=_env_float("BEANS_TIMEOUT_SECONDS", 30.0),
            cache_ttl_seconds=_env_float("BEANS_CACHE_TTL_SECONDS", 300.0),
            history_depth=max(0, _env_int("BEANS_HISTORY_DEPTH", 20)),
            max_retries=max(0, _env_int("BEANS_MAX_RETRIES", 3)),
        )


__all__ = ["BeansConfig", "Settings", "CONFIG_FILENAME", "load_workspace_config"]
