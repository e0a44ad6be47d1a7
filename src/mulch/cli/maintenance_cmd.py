"""CLI commands: mulch validate / doctor / prune / compact."""
from __future__ import annotations

import argparse

from rich.markup import escape

from mulch.cli.context import CommandContext
from mulch.expertise.doctor import diagnose, validate_domain_file
from mulch.expertise.formatter import get_record_summary
from mulch.expertise.operations import compact_domains, prune_domains


def add_parsers(sub: argparse._SubParsersAction) -> None:
    sub.add_parser("validate", help="Check every stored record against the schema.")

    doctor_p = sub.add_parser("doctor", help="Diagnose (and optionally repair) the store.")
    doctor_p.add_argument("--fix", action="store_true", default=False, help="Attempt repairs.")

    prune_p = sub.add_parser("prune", help="Remove records past their shelf life.")
    prune_p.add_argument("--dry-run", action="store_true", default=False, help="Show what would be pruned.")

    compact_p = sub.add_parser("compact", help="Collapse duplicate records, keeping the newest.")
    compact_p.add_argument("--dry-run", action="store_true", default=False, help="Show what could be compacted.")


def cmd_validate(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = ctx.load_config()
    store = ctx.store

    total_records = 0
    errors = []
    for domain in config.domains:
        result = validate_domain_file(store.path_for(domain))
        total_records += len(result.records) + len(result.errors)
        errors.extend((domain, e) for e in result.errors)

    if ctx.json:
        ctx.emit({
            "success": not errors,
            "command": "validate",
            "valid": not errors,
            "total_records": total_records,
            "total_errors": len(errors),
            "errors": [{"domain": d, "line": e.line, "message": e.message} for d, e in errors],
        })
    else:
        for domain, error in errors:
            ctx.console.print(
                f"[red]{escape(domain)}:{error.line} - Schema validation failed: {escape(error.message)}[/red]"
            )
        color = "red" if errors else "green"
        ctx.console.print(f"[{color}]{total_records} records validated, {len(errors)} errors found[/{color}]")
    return 1 if errors else 0


def cmd_doctor(args: argparse.Namespace, ctx: CommandContext) -> int:
    report = diagnose(ctx.resolver, fix=args.fix)

    if ctx.json:
        ctx.emit({
            "success": report.ok,
            "command": "doctor",
            "issues": [issue.to_dict() for issue in report.issues],
            "fixed": report.fixed,
        })
        return 0 if report.ok or args.fix else 1

    console = ctx.console
    console.print("[green]  Config: OK[/green]" if report.config_ok else "[red]  Config: unreadable[/red]")
    for domain, count in report.domain_counts.items():
        if not any(i.domain == domain for i in report.issues):
            console.print(f"[green]  {escape(domain)}: {count} records OK[/green]")
    for issue in report.issues:
        location = issue.domain or issue.path or issue.check
        if issue.line is not None:
            location = f"{location}:{issue.line}"
        style = "yellow" if issue.check == "orphan" else "red"
        console.print(f"[{style}]  {escape(location)}: {escape(issue.message)}[/{style}]")
    for fix in report.fixed:
        console.print(f"[green]    Fixed: {escape(fix)}[/green]")

    if report.ok:
        console.print("[green]No issues found.[/green]")
    elif args.fix:
        console.print(f"Found {len(report.issues)} issue(s), fixed {len(report.fixed)}.")
    else:
        console.print(f"Found {len(report.issues)} issue(s). Run with --fix to attempt repairs.")
    return 0 if report.ok or args.fix else 1


def cmd_prune(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = ctx.load_config()
    results = prune_domains(ctx.store, config.domains, config.shelf_life, dry_run=args.dry_run)
    results = [r for r in results if r.pruned]
    total = sum(len(r.pruned) for r in results)

    if ctx.json:
        ctx.emit({
            "success": True,
            "command": "prune",
            "dry_run": args.dry_run,
            "total_pruned": total,
            "domains": [
                {"domain": r.domain, "pruned": len(r.pruned), "ids": [rec.id for rec in r.pruned]}
                for r in results
            ],
        })
        return 0

    console = ctx.console
    for result in results:
        verb = "would be pruned" if args.dry_run else "pruned"
        console.print(f"  {escape(result.domain)}: {len(result.pruned)} stale record(s) {verb}")
        if args.dry_run:
            for record in result.pruned:
                console.print(
                    f"    {escape(record.id or '?')} {record.TYPE.value} ({escape(get_record_summary(record))})"
                )

    if total == 0:
        console.print("[green]No stale records found.[/green]")
    elif args.dry_run:
        console.print(f"[yellow]{total} stale record(s) would be pruned. Run without --dry-run to remove.[/yellow]")
    else:
        console.print(f"[green]Pruned {total} stale record(s).[/green]")
    return 0


def cmd_compact(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = ctx.load_config()
    results = compact_domains(ctx.store, config.domains, dry_run=args.dry_run)
    total = sum(r.merged for r in results)

    if ctx.json:
        ctx.emit({
            "success": True,
            "command": "compact",
            "dry_run": args.dry_run,
            "total_merged": total,
            "domains": [
                {
                    "domain": r.domain,
                    "merged": r.merged,
                    "groups": {t.value: n for t, n in r.groups.items()},
                }
                for r in results
                if r.merged or (args.dry_run and r.groups)
            ],
        })
        return 0

    console = ctx.console
    for result in results:
        if args.dry_run:
            for rtype, count in result.groups.items():
                console.print(f"  {escape(result.domain)}: {count} {rtype.value} records could be compacted")
            if result.merged:
                console.print(f"  {escape(result.domain)}: {result.merged} duplicate(s) would be removed")
        elif result.merged:
            console.print(f"  {escape(result.domain)}: compacted {result.merged} duplicate record(s)")

    if args.dry_run:
        if total or any(r.groups for r in results):
            console.print("[yellow]Dry run complete. Run without --dry-run to apply.[/yellow]")
        else:
            console.print("[green]No records to compact.[/green]")
    elif total == 0:
        console.print("[green]No duplicate records found to compact.[/green]")
    else:
        console.print(f"[green]Compacted {total} record(s) total.[/green]")
    return 0
