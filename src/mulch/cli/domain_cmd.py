"""CLI commands: mulch init / add / remove / status."""
from __future__ import annotations

import argparse

from rich.markup import escape
from rich.table import Table

from mulch.cli.context import CommandContext
from mulch.config import init_mulch_dir
from mulch.expertise.health import calculate_domain_health, governance_message, governance_status
from mulch.expertise.operations import add_domain, remove_domain


def add_parsers(sub: argparse._SubParsersAction) -> None:
    sub.add_parser("init", help="Create .mulch/ in the current project.")

    add_p = sub.add_parser("add", help="Register a new expertise domain.")
    add_p.add_argument("domain", help="Domain name.")

    remove_p = sub.add_parser("remove", help="Unregister a domain and delete its records.")
    remove_p.add_argument("domain", help="Domain name.")
    remove_p.add_argument(
        "--force", action="store_true", default=False,
        help="Remove even if the domain still has records.",
    )

    sub.add_parser("status", help="Domain statistics and health.")


def cmd_init(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = init_mulch_dir(ctx.resolver)
    if ctx.json:
        ctx.emit({
            "success": True,
            "command": "init",
            "path": str(ctx.resolver.mulch_dir),
            "domains": list(config.domains),
        })
    else:
        ctx.console.print(f"[green]Initialized[/green] {escape(str(ctx.resolver.mulch_dir))}")
    return 0


def cmd_add(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = ctx.load_config()
    add_domain(ctx.resolver, config, args.domain)
    if ctx.json:
        ctx.emit({"success": True, "command": "add", "domain": args.domain})
    else:
        ctx.console.print(f"[green]Added domain[/green] {escape(args.domain)}")
    return 0


def cmd_remove(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = ctx.load_config()
    remove_domain(ctx.resolver, config, args.domain, force=args.force)
    if ctx.json:
        ctx.emit({"success": True, "command": "remove", "domain": args.domain})
    else:
        ctx.console.print(f"[green]Removed domain[/green] {escape(args.domain)}")
    return 0


def cmd_status(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = ctx.load_config()
    store = ctx.store

    rows = []
    for domain in config.domains:
        records = store.read_domain(domain)
        health = calculate_domain_health(records, config.governance.max_entries, config.shelf_life)
        status = governance_status(len(records), config.governance)
        rows.append((domain, health, status))

    if ctx.json:
        ctx.emit({
            "success": True,
            "command": "status",
            "domains": [
                {
                    "domain": domain,
                    "count": health.record_count,
                    "last_updated": health.newest_timestamp,
                    "governance_utilization": health.governance_utilization,
                    "governance_status": status.value,
                    "stale_count": health.stale_count,
                    "types": {t.value: n for t, n in health.type_distribution.items()},
                    "classifications": {
                        c.value: n for c, n in health.classification_distribution.items()
                    },
                }
                for domain, health, status in rows
            ],
        })
        return 0

    if not rows:
        ctx.console.print("[yellow]No domains configured. Run `mulch add <domain>` to get started.[/yellow]")
        return 0

    table = Table(title="Mulch Status", show_lines=False)
    table.add_column("Domain", style="cyan")
    table.add_column("Records", justify="right")
    table.add_column("Limit %", justify="right")
    table.add_column("Stale", justify="right")
    table.add_column("By Type", no_wrap=False, max_width=40)
    table.add_column("Updated", style="dim")
    table.add_column("Governance", style="yellow")

    for domain, health, status in rows:
        by_type = ", ".join(f"{t.value}:{n}" for t, n in health.type_distribution.items())
        table.add_row(
            escape(domain),
            str(health.record_count),
            f"{health.governance_utilization}%",
            str(health.stale_count),
            by_type or "-",
            escape(health.newest_timestamp or "never"),
            governance_message(status),
        )

    ctx.console.print(table)
    return 0
