"""CLI interface for Reclaim."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click

from reclaim.core.cancel import ScanCancelled
from reclaim.core.engine import ReclaimEngine, ScanSession
from reclaim.core.guard import PathSafetyGuard
from reclaim.core.tracker import PERIODS, Tracker
from reclaim.models.category import Category
from reclaim.models.clean_result import CleanResult
from reclaim.models.duplicate import DuplicateOptions
from reclaim.models.file_tree import FileTreeNode
from reclaim.models.scan_result import ScanResult, SortOrder
from reclaim.settings import Settings
from reclaim.utils import bytes_to_human, format_elapsed, format_relative_time


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _wait(session: ScanSession) -> Any:
    """Block on a session; Ctrl-C cancels it and waits for the worker to stop."""
    try:
        return session.result()
    except KeyboardInterrupt:
        click.echo("\nCancelling...", err=True)
        session.cancel()
        return session.result()


def _parse_categories(names: tuple[str, ...]) -> list[Category]:
    try:
        return [Category.from_slug(name) for name in names]
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="CATEGORIES") from None


def _item_json(item) -> dict[str, Any]:
    return {
        "id": item.id,
        "path": str(item.path),
        "size_bytes": item.safe_size,
        "category": item.category.slug,
        "modified": item.modified.isoformat() if item.modified else None,
    }


def _outcomes_json(result: CleanResult) -> dict[str, Any]:
    return {
        "deleted": result.deleted_count,
        "protected": result.protected_count,
        "missing": result.missing_count,
        "failed": result.failed_count,
        "freed_bytes": result.freed_bytes,
        "cancelled": result.cancelled,
        "errors": result.errors,
    }


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug)")
def main(verbose: int) -> None:
    """Reclaim — find and safely remove reclaimable storage."""
    _setup_logging(verbose)


# ── categories ───────────────────────────────────────────────────────────

@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def categories(as_json: bool) -> None:
    """List scan categories and the paths they cover."""
    if as_json:
        data = [
            {
                "id": c.slug,
                "name": c.value,
                "description": c.description,
                "destructive": c.destructive,
                "paths": [str(p) for p in c.paths()],
            }
            for c in Category
        ]
        click.echo(json.dumps(data, indent=2))
        return

    for category in Category:
        tag = click.style(" [review carefully]", fg="yellow") if category.destructive else ""
        click.echo(f"  {click.style(category.slug, fg='cyan', bold=True):30s}  {category.value}{tag}")
        click.echo(f"    {category.description}")
        for path in category.paths():
            marker = "" if path.exists() else click.style(" (missing)", fg="bright_black")
            click.echo(f"      {path}{marker}")


# ── scan ─────────────────────────────────────────────────────────────────

@main.command()
@click.argument("category_names", metavar="CATEGORIES", nargs=-1)
@click.option("--sort", "sort_name", default="size_descending", show_default=True,
              type=click.Choice([s.name.lower() for s in SortOrder]), help="Item order in detailed output")
@click.option("--details", "-d", is_flag=True, help="List every item, not just per-category totals")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def scan(category_names: tuple[str, ...], sort_name: str, details: bool, as_json: bool) -> None:
    """Scan categories for reclaimable storage (preview only, never deletes)."""
    sort_order = SortOrder[sort_name.upper()]
    settings = Settings.instance()
    selected = _parse_categories(category_names) if category_names else settings.enabled_categories()

    if not as_json:
        click.echo(f"\n{click.style('🔍', bold=True)} Scanning {len(selected)} categories...\n")

    with ReclaimEngine() as engine:
        result: ScanResult = _wait(engine.scan_categories(selected, settings.scan_options()))

    if as_json:
        data = {
            "total_bytes": result.total_size,
            "duration": result.duration,
            "cancelled": result.cancelled,
            "per_category": {c.slug: size for c, size in result.size_by_category().items()},
            "items": [_item_json(i) for i in sort_order.sort(result.items)],
            "skipped": [
                {"path": str(s.path), "reason": s.reason.value, "message": s.message} for s in result.skipped
            ],
        }
        click.echo(json.dumps(data, indent=2))
        return

    by_category = result.items_by_category()
    for category in selected:
        items = by_category.get(category, [])
        if items:
            size = sum(i.safe_size for i in items)
            click.echo(
                f"  {click.style('✓', fg='green')} {category.value:30s} — "
                f"{click.style(bytes_to_human(size), fg='green', bold=True)} ({len(items):,} items)"
            )
            if details:
                for item in sort_order.sort(items):
                    click.echo(f"      {bytes_to_human(item.safe_size):>10s}  {item.path}")
        else:
            click.echo(f"  {click.style('·', fg='bright_black')} {category.value:30s} — nothing found")

    if result.protected_count or result.error_count:
        click.echo(
            f"\n  {click.style('!', fg='yellow')} skipped {result.protected_count} protected "
            f"and {result.error_count} unreadable paths"
        )
    suffix = click.style(" (cancelled, partial)", fg="yellow") if result.cancelled else ""
    click.echo(
        f"\nTotal reclaimable: {click.style(bytes_to_human(result.total_size), fg='green', bold=True)}"
        f" in {format_elapsed(result.duration)}{suffix}\n"
    )


# ── analyze ──────────────────────────────────────────────────────────────

@main.command()
@click.argument("root", type=click.Path(exists=True, file_okay=True, path_type=Path), default=Path.home)
@click.option("--depth", "max_depth", type=click.IntRange(min=0), default=None,
              help="Keep tree nodes only down to this depth (sizes still include everything)")
@click.option("--show-depth", type=click.IntRange(min=0), default=1, show_default=True, help="Levels to print")
@click.option("--top", type=click.IntRange(min=1), default=10, show_default=True, help="Children shown per directory")
@click.option("--skip-hidden", is_flag=True, help="Ignore dot-files and dot-directories")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def analyze(root: Path, max_depth: int | None, show_depth: int, top: int, skip_hidden: bool, as_json: bool) -> None:
    """Show where space goes under ROOT (defaults to the home directory)."""
    settings = Settings.instance()
    with ReclaimEngine() as engine:
        session = engine.analyze(root, max_depth=max_depth, skip_hidden=skip_hidden, exclusions=settings.exclusions())
        try:
            tree: FileTreeNode = _wait(session)
        except ScanCancelled:
            click.echo("Analysis cancelled.", err=True)
            sys.exit(130)

    if as_json:
        click.echo(json.dumps(tree.to_dict(max_depth=show_depth), indent=2))
        return

    click.echo(f"\n  {click.style(bytes_to_human(tree.size), fg='green', bold=True)}  {tree.path}")
    _print_tree(tree, show_depth, top, indent="    ")
    if session.skipped:
        click.echo(f"\n  {click.style('!', fg='yellow')} {len(session.skipped)} paths skipped")
    click.echo()


def _print_tree(node: FileTreeNode, levels: int, top: int, indent: str) -> None:
    if levels <= 0 or not node.children:
        return
    for child in node.children[:top]:
        tag = click.style(" [protected]", fg="yellow") if child.protected else ""
        pct = f"{child.percent_of_parent:5.1f}%"
        click.echo(f"{indent}{bytes_to_human(child.size):>10s}  {pct}  {child.name}{'/' if child.is_dir else ''}{tag}")
        _print_tree(child, levels - 1, top, indent + "    ")
    hidden = len(node.children) - top
    if hidden > 0:
        click.echo(f"{indent}{click.style(f'… {hidden} more', fg='bright_black')}")


# ── duplicates ───────────────────────────────────────────────────────────

@main.command()
@click.argument("roots", nargs=-1, type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--min-size", type=click.IntRange(min=0), default=None, help="Ignore files smaller than this (bytes)")
@click.option("--keep", type=click.Choice(["oldest", "newest", "shallowest"]), default=None,
              help="Which copy of each group to keep")
@click.option("--delete", "do_delete", is_flag=True, help="Move the extra copies to the trash")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def duplicates(
    roots: tuple[Path, ...], min_size: int | None, keep: str | None, do_delete: bool, yes: bool, as_json: bool
) -> None:
    """Find files with identical content under ROOTS (defaults to the home directory)."""
    defaults = Settings.instance().duplicate_options()
    options = DuplicateOptions(
        minimum_size=defaults.minimum_size if min_size is None else min_size,
        keep_policy=keep or defaults.keep_policy,
        max_workers=defaults.max_workers,
    )
    search = list(roots) or [Path.home()]

    with ReclaimEngine(tracker=Tracker()) as engine:
        try:
            groups = _wait(engine.find_duplicates(search, options))
        except ScanCancelled:
            click.echo("Duplicate search cancelled.", err=True)
            sys.exit(130)

        wasted = sum(g.wasted_space for g in groups)
        if as_json and not do_delete:
            data = [
                {
                    "hash": g.fingerprint,
                    "size_bytes": g.size_bytes,
                    "wasted_bytes": g.wasted_space,
                    "keep": str(g.original.path) if g.original else None,
                    "files": [str(f.path) for f in g.files],
                }
                for g in groups
            ]
            click.echo(json.dumps({"wasted_bytes": wasted, "groups": data}, indent=2))
            return

        if not as_json:
            for group in groups:
                click.echo(
                    f"\n  {click.style(bytes_to_human(group.wasted_space), fg='yellow', bold=True)} wasted "
                    f"({len(group.files)} × {bytes_to_human(group.size_bytes)})"
                )
                for member in group.files:
                    mark = click.style("keep", fg="green") if member.is_original else click.style("dup ", fg="red")
                    click.echo(f"    {mark}  {member.path}")
            click.echo(
                f"\n{len(groups)} groups, {click.style(bytes_to_human(wasted), fg='yellow', bold=True)} reclaimable\n"
            )

        if not do_delete or not groups:
            return
        if not yes and not as_json and not click.confirm("Move the duplicate copies to the trash?", default=False):
            click.echo("Aborted.")
            return
        result = _wait(engine.delete_duplicates(groups))

    _report_clean(result, as_json)


# ── clean ────────────────────────────────────────────────────────────────

@main.command()
@click.argument("category_names", metavar="CATEGORIES", nargs=-1)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.option("--dry-run", is_flag=True, help="Show what would be removed without doing it")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def clean(category_names: tuple[str, ...], yes: bool, dry_run: bool, as_json: bool) -> None:
    """Scan and remove reclaimable items.

    Without CATEGORIES only categories that are safe to clear in bulk are
    cleaned; categories holding user data must be named explicitly.
    """
    settings = Settings.instance()
    if category_names:
        selected = _parse_categories(category_names)
    else:
        selected = [c for c in settings.enabled_categories() if not c.destructive]

    if not as_json:
        click.echo(f"\n{click.style('🔍', bold=True)} Scanning...\n")

    with ReclaimEngine(tracker=Tracker()) as engine:
        scan_result: ScanResult = _wait(engine.scan_categories(selected, settings.scan_options()))
        if scan_result.cancelled:
            click.echo("Scan cancelled, nothing removed.", err=True)
            sys.exit(130)

        items = scan_result.selected_items
        if not items:
            if as_json:
                click.echo(json.dumps({"status": "nothing_to_clean"}))
            else:
                click.echo("Nothing to clean.")
            return

        if not as_json:
            for category, size in scan_result.size_by_category().items():
                click.echo(
                    f"  {click.style('✓', fg='green')} {category.value:30s} — "
                    f"{click.style(bytes_to_human(size), fg='green', bold=True)}"
                )
            click.echo(f"\nTotal: {click.style(bytes_to_human(scan_result.selected_size), fg='green', bold=True)}\n")

        if dry_run:
            if as_json:
                click.echo(json.dumps({"status": "dry_run", "items": [_item_json(i) for i in items]}, indent=2))
            else:
                click.echo("(dry run — nothing was removed)")
            return

        if not yes and not as_json and not click.confirm(f"Remove {len(items):,} items?", default=False):
            click.echo("Aborted.")
            return

        if not as_json:
            click.echo(f"{click.style('🧹', bold=True)} Cleaning...\n")
        result = _wait(engine.delete_items(items))

    _report_clean(result, as_json)


def _report_clean(result: CleanResult, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps({"status": "cleaned", **_outcomes_json(result)}, indent=2))
        return
    click.echo(
        f"  {click.style(str(result.deleted_count), fg='green', bold=True)} deleted, "
        f"{click.style(str(result.protected_count), fg='yellow')} protected, "
        f"{result.missing_count} missing, "
        f"{click.style(str(result.failed_count), fg='red' if result.failed_count else None)} failed"
    )
    for error in result.errors:
        click.echo(f"    {click.style('!', fg='red')} {error}")
    click.echo(f"\nTotal freed: {click.style(bytes_to_human(result.freed_bytes), fg='green', bold=True)}\n")


# ── check ────────────────────────────────────────────────────────────────

@main.command()
@click.argument("paths", nargs=-1, required=True)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def check(paths: tuple[str, ...], as_json: bool) -> None:
    """Report whether each path could ever be deleted."""
    guard = PathSafetyGuard()
    verdicts = [guard.evaluate(p) for p in paths]

    if as_json:
        data = [
            {
                "path": v.path,
                "resolved": v.resolved,
                "forbidden": v.forbidden,
                "rule": v.rule.value,
                "matched": v.matched,
            }
            for v in verdicts
        ]
        click.echo(json.dumps(data, indent=2))
    else:
        for v in verdicts:
            status = click.style("forbidden", fg="red") if v.forbidden else click.style("allowed", fg="green")
            matched = f" ({v.matched})" if v.matched else ""
            click.echo(f"  {status:20s} {v.path}  — {v.rule.value}{matched}")

    if any(v.forbidden for v in verdicts):
        sys.exit(1)


# ── stats ────────────────────────────────────────────────────────────────

@main.command()
@click.option("--period", "-p", default="all", type=click.Choice(list(PERIODS)))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def stats(period: str, as_json: bool) -> None:
    """Show space freed statistics."""
    tracker = Tracker()
    data = tracker.get_stats(period)

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    click.echo(f"\n{click.style('📊', bold=True)} Statistics ({period})\n")
    click.echo(f"  Bytes freed:    {click.style(bytes_to_human(data['bytes_freed']), fg='green', bold=True)}")
    click.echo(f"  Items removed:  {data['items_removed']:,}")
    click.echo(f"  Sessions:       {data['session_count']}")
    click.echo(f"  Lifetime total: {click.style(bytes_to_human(data['lifetime_bytes_freed']), fg='cyan', bold=True)}")
    last = tracker.get_last_clean_time()
    if last:
        click.echo(f"  Last cleaned:   {format_relative_time(last)}")

    if data["per_category"]:
        click.echo("\n  Per-category breakdown:")
        for name, cstats in sorted(data["per_category"].items(), key=lambda x: x[1]["bytes_freed"], reverse=True):
            click.echo(
                f"    {name:25s} {bytes_to_human(cstats['bytes_freed']):>10s}  ({cstats['items_removed']:,} items)"
            )
    click.echo()


# ── service ──────────────────────────────────────────────────────────────

@main.group()
def service() -> None:
    """D-Bus service management."""


@service.command("start")
def service_start() -> None:
    """Start the D-Bus service in foreground."""
    from reclaim.dbus_service import start_service

    click.echo("Starting Reclaim D-Bus service...")
    start_service()
