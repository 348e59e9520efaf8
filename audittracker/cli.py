#!/usr/bin/env python3
"""
Audit Tracker CLI - review-state tracking for manual code audits

Usage:
    audittracker init                      Load state (and SCOPE.txt/SCOPE.md when scope is empty)
    audittracker add <path>...             Add files or folders to scope
    audittracker remove <path>...          Remove files or folders from scope
    audittracker files                     List visible files
    audittracker functions [path]          List visible functions
    audittracker mark read <function>      Mark a function read (also: reviewed, entrypoint, admin, hidden)
    audittracker progress                  Show the progress report
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import AuditTrackerConfig, load_config
from .core.errors import AuditTrackerError
from .core.models import FunctionStatus, FunctionTag
from .report import describe_filters, render_files, render_functions, render_progress, render_status
from .session import AuditSession
from .workspace import find_workspace_root

FLAGS = ("read", "reviewed", "entrypoint", "admin", "hidden")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="audittracker",
        description="Audit Tracker: track which functions have been read and reviewed during a code audit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    audittracker add src/
    audittracker exclude src/mocks/MockToken.sol
    audittracker mark read "src/Vault.sol::Vault.withdraw"
    audittracker filter set --status unread --tag entrypoint
    audittracker progress --days 7
        """,
    )
    parser.add_argument("--root", "-r", help="Workspace root (default: $AUDIT_TRACKER_ROOT or marker discovery from cwd)")
    parser.add_argument("--log-level", help="Logging level (default: config log_level)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    init_parser = subparsers.add_parser("init", help="Load state; seed scope from SCOPE.txt/SCOPE.md when empty")
    init_parser.add_argument("--force", action="store_true", help="Load the scope file even if scope is not empty")

    for name, help_text in (
        ("add", "Add files or folders to scope"),
        ("remove", "Remove files or folders from scope"),
        ("exclude", "Exclude files (or every tracked file under a folder)"),
        ("include", "Lift an exclusion"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("paths", nargs="+", help="Paths, relative to the workspace root or absolute")

    subparsers.add_parser("refresh", help="Re-extract functions for every in-scope file")

    files_parser = subparsers.add_parser("files", help="List files with visible functions")
    files_parser.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    fn_parser = subparsers.add_parser("functions", help="List visible functions")
    fn_parser.add_argument("path", nargs="?", help="Only this file")
    fn_parser.add_argument("--show-hidden", action="store_true", help="Also list hidden functions")
    fn_parser.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    for name in ("mark", "unmark"):
        p = subparsers.add_parser(name, help=f"{name.capitalize()} a function flag")
        p.add_argument("flag", choices=FLAGS)
        p.add_argument("functions", nargs="+", help="Function id or path::name")

    filter_parser = subparsers.add_parser("filter", help="Show or change function filters")
    filter_sub = filter_parser.add_subparsers(dest="filter_command")
    set_parser = filter_sub.add_parser("set", help="Replace the filters")
    set_parser.add_argument("--status", "-s", action="append", default=[], choices=[s.value for s in FunctionStatus])
    set_parser.add_argument("--tag", "-t", action="append", default=[], choices=[t.value for t in FunctionTag])
    filter_sub.add_parser("clear", help="Reset to all statuses, no tags")
    filter_sub.add_parser("show", help="Show the current filters")

    progress_parser = subparsers.add_parser("progress", help="Show the progress report")
    progress_parser.add_argument("--days", "-d", type=int, default=None, help="Only the most recent N days")
    progress_parser.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    status_parser = subparsers.add_parser("status", help="Show workspace, scope and totals")
    status_parser.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    clear_parser = subparsers.add_parser("clear", help="Clear all audit tracking state")
    clear_parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    root = Path(args.root).absolute() if args.root else find_workspace_root()
    config = load_config(root)
    level = (args.log_level or config.log_level).upper()
    if not isinstance(logging.getLevelName(level), int):
        level = "WARNING"
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command == "clear" and not args.yes:
        answer = input("Clear all audit tracking state? This cannot be undone. [y/N]: ").strip().lower()
        if answer not in ("y", "yes"):
            print("Aborted.")
            return 1

    try:
        return asyncio.run(_run(args, root, config))
    except AuditTrackerError as e:
        print(f"Error: {e.reason}", file=sys.stderr)
        return 1


async def _run(args: argparse.Namespace, root: Path, config: AuditTrackerConfig) -> int:
    session = await AuditSession.open(root, config=config)
    try:
        return await _dispatch(session, args)
    finally:
        await session.close()


async def _dispatch(session: AuditSession, args: argparse.Namespace) -> int:
    if args.command == "init":
        return await cmd_init(session, args)
    elif args.command == "add":
        return await cmd_add(session, args)
    elif args.command == "remove":
        return await cmd_remove(session, args)
    elif args.command == "exclude":
        return await cmd_exclude(session, args)
    elif args.command == "include":
        return await cmd_include(session, args)
    elif args.command == "refresh":
        count = await session.refresh_all()
        print(f"Refreshed {count} file(s)")
        return 0
    elif args.command == "files":
        return cmd_files(session, args)
    elif args.command == "functions":
        return cmd_functions(session, args)
    elif args.command in ("mark", "unmark"):
        return await cmd_mark(session, args)
    elif args.command == "filter":
        return await cmd_filter(session, args)
    elif args.command == "progress":
        return cmd_progress(session, args)
    elif args.command == "status":
        return cmd_status(session, args)
    elif args.command == "clear":
        await session.clear_all()
        print("Audit tracking state cleared")
        return 0
    return 1


async def cmd_init(session: AuditSession, args: argparse.Namespace) -> int:
    result = await session.load_scope_file(force=args.force)
    if result is None:
        if session.store.get_scope_paths() and not args.force:
            print(f"Scope already set ({len(session.store.get_scope_paths())} path(s)); scope file not loaded")
        else:
            print("No scope file found")
            await session.store.save()
        return 0

    print(f"Loaded {result.source.name}: {len(result.added_files)} file(s) added")
    for err in result.errors:
        print(f"  line {err.line_no}: {err.line}: {err.reason}", file=sys.stderr)
    return 0


async def cmd_add(session: AuditSession, args: argparse.Namespace) -> int:
    failures = 0
    for path in args.paths:
        try:
            files = await session.add_to_scope(path)
        except AuditTrackerError as e:
            print(f"Error: {e.reason}", file=sys.stderr)
            failures += 1
            continue
        functions = sum(len(f.functions) for f in session.store.get_all_files())
        print(f"Added {len(files)} file(s) to scope ({functions} functions tracked)")
    return 1 if failures else 0


async def cmd_remove(session: AuditSession, args: argparse.Namespace) -> int:
    failures = 0
    for path in args.paths:
        try:
            dropped = await session.remove_from_scope(path)
        except AuditTrackerError as e:
            print(f"Error: {e.reason}", file=sys.stderr)
            failures += 1
            continue
        print(f"Removed {path} from scope ({len(dropped)} file(s) dropped)")
    return 1 if failures else 0


async def cmd_exclude(session: AuditSession, args: argparse.Namespace) -> int:
    failures = 0
    for path in args.paths:
        try:
            excluded = await session.exclude(path)
        except AuditTrackerError as e:
            print(f"Error: {e.reason}", file=sys.stderr)
            failures += 1
            continue
        print(f"Excluded {len(excluded)} file(s)")
    return 1 if failures else 0


async def cmd_include(session: AuditSession, args: argparse.Namespace) -> int:
    missing = 0
    for path in args.paths:
        try:
            lifted = await session.include(path)
        except AuditTrackerError as e:
            print(f"Error: {e.reason}", file=sys.stderr)
            missing += 1
            continue
        if lifted:
            print(f"Re-included {path}")
        else:
            print(f"Not excluded: {path}", file=sys.stderr)
            missing += 1
    return 1 if missing else 0


def cmd_files(session: AuditSession, args: argparse.Namespace) -> int:
    files = session.list_visible_files()
    if args.json:
        print(json.dumps([f.to_dict() for f in files], indent=2))
        return 0
    print(render_files(files, session.store.get_function_filters()))
    return 0


def cmd_functions(session: AuditSession, args: argparse.Namespace) -> int:
    if args.path:
        tracked = session.store.get_file(str(session.resolve(args.path, must_exist=False)))
        if tracked is None:
            print(f"Not tracked: {args.path}", file=sys.stderr)
            return 1
        files = [tracked]
    else:
        files = session.list_visible_files()

    if args.json:
        out = {}
        for f in files:
            fns = session.list_visible_functions(f)
            if args.show_hidden:
                fns = fns + [fn for fn in f.functions if fn.is_hidden]
            out[f.relative_path] = [fn.to_dict() for fn in fns]
        print(json.dumps(out, indent=2))
        return 0

    sections = []
    for f in files:
        hidden = [fn for fn in f.functions if fn.is_hidden] if args.show_hidden else []
        sections.append(render_functions(f, session.list_visible_functions(f), include_hidden=hidden))
    print("\n\n".join(sections) if sections else "No files match the current filters.")
    return 0


async def cmd_mark(session: AuditSession, args: argparse.Namespace) -> int:
    value = args.command == "mark"
    failures = 0
    for selector in args.functions:
        try:
            if args.flag == "read":
                changed = await (session.mark_read(selector) if value else session.unmark_read(selector))
            elif args.flag == "reviewed":
                changed = await (session.mark_reviewed(selector) if value else session.unmark_reviewed(selector))
            elif args.flag == "entrypoint":
                changed = await session.set_entrypoint(selector, value)
            elif args.flag == "admin":
                changed = await session.set_admin(selector, value)
            else:
                changed = await session.set_hidden(selector, value)
        except AuditTrackerError as e:
            print(f"Error: {e.reason}", file=sys.stderr)
            failures += 1
            continue
        state = "" if changed else " (unchanged)"
        print(f"{args.command} {args.flag}: {selector}{state}")
    return 1 if failures else 0


async def cmd_filter(session: AuditSession, args: argparse.Namespace) -> int:
    if args.filter_command == "set":
        filters = await session.set_filters(args.status, args.tag)
    elif args.filter_command == "clear":
        filters = await session.clear_filters()
    else:
        filters = session.store.get_function_filters()
    print(f"Filters: {describe_filters(filters)}")
    return 0


def cmd_progress(session: AuditSession, args: argparse.Namespace) -> int:
    report = session.get_progress_report()
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
        return 0
    print(render_progress(report, max_days=args.days))
    return 0


def cmd_status(session: AuditSession, args: argparse.Namespace) -> int:
    status = session.status()
    if args.json:
        print(json.dumps(status, indent=2))
        return 0
    print(render_status(status))
    return 0


if __name__ == "__main__":
    sys.exit(main())
