"""CLI commands: mulch query / search / prime / ready."""
from __future__ import annotations

import argparse

from rich.markup import escape
from rich.table import Table

from mulch.cli.context import (
    CLASSIFICATION_CHOICES,
    OUTCOME_STATUS_CHOICES,
    RECORD_TYPE_CHOICES,
    CommandContext,
    parse_csv,
)
from mulch.config import PathResolver
from mulch.expertise.budget import DomainRecords, apply_budget, format_budget_summary
from mulch.expertise.filters import filter_by_paths
from mulch.expertise.formatter import PrimeFormatter, format_time_ago, get_record_summary, render_record_markdown
from mulch.expertise.models import Classification, OutcomeStatus, RecordType, record_to_dict
from mulch.expertise.recent import parse_since, recent_records
from mulch.expertise.scoring import compute_confirmation_score, sort_by_confirmation_score
from mulch.expertise.search import Bm25Params, SearchFilters, search_domains


def add_parsers(sub: argparse._SubParsersAction) -> None:
    query_p = sub.add_parser("query", help="List records, optionally filtered.")
    query_p.add_argument("domain", nargs="?", default=None, help="Domain (default: all).")
    query_p.add_argument("--type", dest="type_", choices=RECORD_TYPE_CHOICES, default=None, help="Filter by type.")
    query_p.add_argument("--classification", choices=CLASSIFICATION_CHOICES, default=None, help="Filter by classification.")
    query_p.add_argument("--tag", default=None, help="Filter by tag (case-insensitive).")
    query_p.add_argument("--file", default=None, help="Filter by related file (substring).")
    query_p.add_argument("--outcome-status", choices=OUTCOME_STATUS_CHOICES, default=None, help="Filter by outcome status.")
    query_p.add_argument(
        "--sort-by-score", action="store_true", default=False,
        help="Order each domain's records by confirmation score.",
    )

    search_p = sub.add_parser("search", help="Rank records against a query (BM25).")
    search_p.add_argument("query", help="Search query string.")
    search_p.add_argument("--domain", default=None, help="Limit to one domain.")
    search_p.add_argument("--type", dest="type_", choices=RECORD_TYPE_CHOICES, default=None, help="Filter by type.")
    search_p.add_argument("--tag", default=None, help="Filter by tag (case-insensitive).")
    search_p.add_argument("--file", default=None, help="Filter by related file (substring).")
    search_p.add_argument("--classification", choices=CLASSIFICATION_CHOICES, default=None, help="Filter by classification.")
    search_p.add_argument("--outcome-status", choices=OUTCOME_STATUS_CHOICES, default=None, help="Filter by outcome status.")
    search_p.add_argument(
        "--sort-by-score", action="store_true", default=False,
        help="Order hits by confirmation score, using relevance only to break ties.",
    )

    prime_p = sub.add_parser("prime", help="Print expertise as a priming prompt.")
    prime_p.add_argument("domains", nargs="*", help="Domains to include (default: all).")
    prime_p.add_argument("--budget", type=int, default=None, help="Token budget (default: from config).")
    prime_p.add_argument("--no-limit", action="store_true", default=False, help="Ignore the token budget.")
    prime_p.add_argument("--full", action="store_true", default=False, help="Include classification, evidence and tags.")
    prime_p.add_argument(
        "--files", default=None,
        help="Comma-separated paths; keep records about these files (records without files always stay).",
    )
    prime_p.add_argument(
        "--exclude-domain", dest="exclude_domain", default=None, help="Comma-separated domains to leave out.",
    )

    ready_p = sub.add_parser("ready", help="Show the most recently recorded records.")
    ready_p.add_argument("--limit", type=int, default=10, help="Maximum records to show (default: 10).")
    ready_p.add_argument("--domain", default=None, help="Limit to one domain.")
    ready_p.add_argument("--since", default=None, help="Only records from this window, e.g. 24h, 7d, 2w.")


def _filters_from_args(args: argparse.Namespace) -> SearchFilters:
    return SearchFilters(
        rtype=RecordType(args.type_) if args.type_ else None,
        classification=Classification(args.classification) if args.classification else None,
        tag=args.tag,
        file=args.file,
        outcome_status=OutcomeStatus(args.outcome_status) if args.outcome_status else None,
    )


def _parse_paths(value: str | None) -> list[str]:
    """Split a comma- or whitespace-separated path list."""
    return [path for part in parse_csv(value) or [] for path in part.split()]


def cmd_query(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = ctx.load_config()
    domains = ctx.select_domains(config, [args.domain] if args.domain else None)
    filters = _filters_from_args(args)
    store = ctx.store

    results = [(domain, filters.apply(store.read_domain(domain))) for domain in domains]
    if args.sort_by_score:
        results = [(domain, sort_by_confirmation_score(records)) for domain, records in results]

    if ctx.json:
        ctx.emit({
            "success": True,
            "command": "query",
            "domains": [
                {"domain": domain, "records": [record_to_dict(r) for r in records]}
                for domain, records in results
            ],
        })
        return 0

    total = sum(len(records) for _, records in results)
    if total == 0:
        ctx.console.print("[yellow]No records found.[/yellow]")
        return 0

    table = Table(title=f"Expertise Records ({total})", show_lines=False)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Type", style="cyan")
    table.add_column("Domain", style="magenta")
    table.add_column("Class")
    table.add_column("Score", justify="right")
    table.add_column("Summary", no_wrap=False, max_width=60)

    for domain, records in results:
        for record in records:
            table.add_row(
                escape(record.id or "-"),
                record.TYPE.value,
                escape(domain),
                record.classification.value,
                f"{compute_confirmation_score(record):g}",
                escape(get_record_summary(record)),
            )

    ctx.console.print(table)
    return 0


def cmd_search(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = ctx.load_config()
    domains = ctx.select_domains(config, [args.domain] if args.domain else None)

    matches = search_domains(
        ctx.store,
        domains,
        args.query,
        filters=_filters_from_args(args),
        params=Bm25Params(k1=config.search.k1, b=config.search.b),
        confirmation_boost=config.search.confirmation_boost,
        sort_by_score=args.sort_by_score,
    )
    total = sum(len(m.results) for m in matches)

    if ctx.json:
        ctx.emit({
            "success": True,
            "command": "search",
            "query": args.query,
            "total": total,
            "domains": [
                {
                    "domain": m.domain,
                    "matches": [
                        {
                            "score": round(r.score, 4),
                            "matched_fields": r.matched_fields,
                            "record": record_to_dict(r.record),
                        }
                        for r in m.results
                    ],
                }
                for m in matches
            ],
        })
        return 0

    if total == 0:
        ctx.console.print(f'[yellow]No records matching "{escape(args.query)}" found.[/yellow]')
        return 0

    table = Table(title=f"Search Results: '{escape(args.query)}' ({total} found)", show_lines=False)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Type", style="cyan")
    table.add_column("Domain", style="magenta")
    table.add_column("Score", justify="right")
    table.add_column("Matched", style="dim")
    table.add_column("Summary", no_wrap=False, max_width=60)

    for m in matches:
        for r in m.results:
            table.add_row(
                escape(r.record.id or "-"),
                r.record.TYPE.value,
                escape(m.domain),
                f"{r.score:.2f}",
                ", ".join(r.matched_fields),
                escape(get_record_summary(r.record)),
            )

    ctx.console.print(table)
    return 0


def cmd_prime(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = ctx.load_config()
    domains = ctx.select_domains(config, args.domains)
    excluded = parse_csv(args.exclude_domain) or []
    for domain in excluded:
        PathResolver.ensure_domain_exists(config, domain)
    paths = _parse_paths(args.files)

    store = ctx.store
    groups = []
    for domain in domains:
        if domain in excluded:
            continue
        records = store.read_domain(domain)
        if paths:
            # Domains with nothing relevant to the paths are left out entirely.
            records = filter_by_paths(records, paths)
            if not records:
                continue
        groups.append(DomainRecords(domain=domain, records=records))

    formatter = PrimeFormatter(full=args.full)

    # Machine output carries every record; the budget only shapes prompt text.
    if ctx.json:
        ctx.emit({"success": True, "command": "prime",
                  **formatter.format_json([(g.domain, g.records) for g in groups])})
        return 0

    dropped_count = dropped_domains = 0
    if not args.no_limit:
        budget = args.budget if args.budget is not None else config.prime.budget
        result = apply_budget(
            groups, budget, lambda record, domain: render_record_markdown(record, domain, args.full)
        )
        groups = result.kept
        dropped_count, dropped_domains = result.dropped_count, result.dropped_domain_count

    output = formatter.format_markdown([(g.domain, g.records) for g in groups])
    if dropped_count:
        output += "\n" + format_budget_summary(dropped_count, dropped_domains) + "\n"
    print(output, end="")
    return 0


def cmd_ready(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = ctx.load_config()
    domains = ctx.select_domains(config, [args.domain] if args.domain else None)
    since = parse_since(args.since) if args.since else None

    entries = recent_records(ctx.store, domains, since=since, limit=args.limit)

    if ctx.json:
        ctx.emit({
            "success": True,
            "command": "ready",
            "count": len(entries),
            "records": [{"domain": e.domain, "record": record_to_dict(e.record)} for e in entries],
        })
        return 0

    if not entries:
        ctx.console.print("[yellow]No recent records found.[/yellow]")
        return 0

    table = Table(title=f"Recent Records ({len(entries)})", show_lines=False)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Type", style="cyan")
    table.add_column("Domain", style="magenta")
    table.add_column("Recorded", justify="right")
    table.add_column("Summary", no_wrap=False, max_width=60)

    for e in entries:
        table.add_row(
            escape(e.record.id or "-"),
            e.record.TYPE.value,
            escape(e.domain),
            format_time_ago(e.record.recorded_at),
            escape(get_record_summary(e.record)),
        )

    ctx.console.print(table)
    return 0
