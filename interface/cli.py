"""Command line front end for the beans store (JSON output)."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from config import Settings
from application.store import BeansStore
from core.bean import BeanFilter
from core.errors import BeansError, user_message
from infrastructure.beans_cli import BeansCliBackend
from infrastructure.git_history import GitHistory
from infrastructure.notifications import LoggingNotifier
from interface.cli_io import structured_error, structured_response

logger = logging.getLogger("beans.cli")


def build_store(settings: Settings) -> BeansStore:
    backend = BeansCliBackend.from_settings(settings)
    return BeansStore(
        backend,
        settings.workspace_root,
        history=GitHistory(settings.workspace_root),
        notifier=LoggingNotifier(),
        cache_ttl=settings.cache_ttl_seconds,
        config_ttl=settings.config_ttl_seconds,
        history_depth=settings.history_depth,
    )


def _split(values: Optional[List[str]]) -> List[str]:
    items: List[str] = []
    for value in values or []:
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


def cmd_list(store: BeansStore, args: argparse.Namespace) -> int:
    filters = BeanFilter.build(_split(args.status), _split(args.type), args.search or "", args.parent or "")
    beans = store.list_beans(filters)
    payload = {"beans": [b.to_dict() for b in beans], "count": len(beans), "offline": store.is_offline}
    return structured_response("list", message=f"{len(beans)} bean(s)", payload=payload)


def cmd_show(store: BeansStore, args: argparse.Namespace) -> int:
    bean = store.show_bean(args.bean_id)
    if bean is None:
        return structured_error("show", f"Bean {args.bean_id} not found", code="NOT_FOUND")
    return structured_response("show", payload={"bean": bean.to_dict()})


def cmd_update(store: BeansStore, args: argparse.Namespace) -> int:
    changes: Dict[str, Any] = {}
    for key in ("status", "type", "priority", "parent"):
        value = getattr(args, key)
        if value is not None:
            changes[key] = value
    if args.clear_parent:
        changes["clear_parent"] = True
    if args.blocking:
        changes["blocking"] = _split(args.blocking)
    if args.blocked_by:
        changes["blocked_by"] = _split(args.blocked_by)
    bean = store.update_bean(args.bean_id, changes)
    payload: Dict[str, Any] = {"bean": bean.to_dict()}
    report = store.last_cascade
    if report is not None and report.root_id == bean.id and "status" in changes:
        payload["cascade"] = {
            "updated": report.updated,
            "failed": [{"id": f.bean_id, "error": f.error} for f in report.failed],
            "skipped": report.skipped,
        }
    return structured_response("update", message=f"Updated {bean.id}", payload=payload)


def cmd_create(store: BeansStore, args: argparse.Namespace) -> int:
    data = {"title": args.title}
    for key in ("type", "status", "priority", "parent", "body"):
        value = getattr(args, key)
        if value:
            data[key] = value
    bean = store.create_bean(data)
    return structured_response("create", message=f"Created {bean.id}", payload={"bean": bean.to_dict()})


def cmd_delete(store: BeansStore, args: argparse.Namespace) -> int:
    store.delete_bean(args.bean_id)
    return structured_response("delete", message=f"Deleted {args.bean_id}", payload={"id": args.bean_id})


def cmd_check(store: BeansStore, args: argparse.Namespace) -> int:
    """Run one full listing and report what integrity recovery did."""
    beans = store.list_beans()
    report = store.last_integrity
    payload: Dict[str, Any] = {"count": len(beans), "offline": store.is_offline, "orphaned": [], "quarantined": []}
    if report is not None and not store.is_offline:
        payload["orphaned"] = [
            {"id": w.bean_id, "missingParent": w.missing_parent, "cleared": w.cleared, "error": w.error}
            for w in report.warnings
        ]
        payload["quarantined"] = list(report.quarantined)
    issues = len(payload["orphaned"]) + len(payload["quarantined"])
    message = "No integrity issues" if not issues else f"Repaired {issues} integrity issue(s)"
    return structured_response("check", message=message, payload=payload)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="beans-guard",
        description="Validated access to a beans workspace: list, update with status cascade, integrity check.",
    )
    parser.add_argument("--workspace", "-w", help="workspace root (default: BEANS_WORKSPACE_ROOT or cwd)")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command")

    lp = sub.add_parser("list", help="List beans")
    lp.add_argument("--status", action="append", help="status filter (repeatable or comma separated)")
    lp.add_argument("--type", action="append", help="type filter (repeatable or comma separated)")
    lp.add_argument("--search", help="full-text search")
    lp.add_argument("--parent", help="only children of this bean")
    lp.set_defaults(func=cmd_list)

    sp = sub.add_parser("show", help="Show one bean")
    sp.add_argument("bean_id")
    sp.set_defaults(func=cmd_show)

    up = sub.add_parser("update", help="Update a bean; status changes cascade to descendants")
    up.add_argument("bean_id")
    up.add_argument("--status")
    up.add_argument("--type")
    up.add_argument("--priority")
    parent_group = up.add_mutually_exclusive_group()
    parent_group.add_argument("--parent")
    parent_group.add_argument("--clear-parent", action="store_true")
    up.add_argument("--blocking", action="append", help="ids this bean blocks (added)")
    up.add_argument("--blocked-by", action="append", help="ids blocking this bean (added)")
    up.set_defaults(func=cmd_update)

    cp = sub.add_parser("create", help="Create a bean")
    cp.add_argument("title")
    cp.add_argument("--type")
    cp.add_argument("--status")
    cp.add_argument("--priority")
    cp.add_argument("--parent")
    cp.add_argument("--body", "-d")
    cp.set_defaults(func=cmd_create)

    dp = sub.add_parser("delete", help="Delete a bean")
    dp.add_argument("bean_id")
    dp.set_defaults(func=cmd_delete)

    kp = sub.add_parser("check", help="Run integrity recovery and report the result")
    kp.set_defaults(func=cmd_check)
    return parser


def main(argv: Optional[List[str]] = None, store_factory: Callable[[Settings], BeansStore] = build_store) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if not getattr(args, "command", None):
        parser.print_help()
        return 1
    settings = Settings.from_env(Path(args.workspace) if args.workspace else None)
    try:
        store = store_factory(settings)
        return args.func(store, args)
    except BeansError as exc:
        logger.debug("%s failed", args.command, exc_info=True)
        return structured_error(args.command, user_message(exc), code=exc.code)


if __name__ == "__main__":
    sys.exit(main())
