"""CLI commands: mulch record / edit / outcome / delete."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

from rich.markup import escape

from mulch.cli.context import (
    CLASSIFICATION_CHOICES,
    OUTCOME_STATUS_CHOICES,
    RECORD_TYPE_CHOICES,
    CommandContext,
    add_record_field_arguments,
    parse_csv,
)
from mulch.config import PathResolver
from mulch.core.errors import MulchError
from mulch.expertise.models import (
    Classification,
    ExpertiseRecord,
    Outcome,
    OutcomeStatus,
    RecordType,
    now_iso,
    record_from_dict,
    record_to_dict,
)
from mulch.expertise.operations import (
    BatchResult,
    RecordChanges,
    append_outcome,
    delete_record,
    edit_record,
    parse_record_payload,
    record_records,
)

# Field names each option maps to, for the kinds that have them.
_KIND_FIELD_OPTIONS = ("content", "name", "description", "resolution", "title", "rationale", "files")


def add_parsers(sub: argparse._SubParsersAction) -> None:
    record_p = sub.add_parser("record", help="Record new expertise in a domain.")
    record_p.add_argument("domain", help="Domain name.")
    record_p.add_argument("text", nargs="?", default=None, help="Content (shorthand for --content/--description).")
    record_p.add_argument("--type", dest="type_", choices=RECORD_TYPE_CHOICES, default=None, help="Record type.")
    record_p.add_argument(
        "--classification", choices=CLASSIFICATION_CHOICES,
        default=Classification.TACTICAL.value, help="Durability tier (default: tactical).",
    )
    add_record_field_arguments(record_p)
    record_p.add_argument("--evidence-commit", default=None, help="Commit backing this record.")
    record_p.add_argument("--evidence-issue", default=None, help="Issue backing this record.")
    record_p.add_argument("--evidence-file", default=None, help="File backing this record.")
    record_p.add_argument("--evidence-bead", default=None, help="Tracker ID backing this record.")
    record_p.add_argument("--outcome-status", choices=OUTCOME_STATUS_CHOICES, default=None, help="Initial outcome.")
    record_p.add_argument("--outcome-duration", type=float, default=None, help="Initial outcome duration (ms).")
    record_p.add_argument("--outcome-agent", default=None, help="Agent that produced the initial outcome.")
    record_p.add_argument("--outcome-test-results", default=None, help="Test summary for the initial outcome.")
    source = record_p.add_mutually_exclusive_group()
    source.add_argument("--stdin", action="store_true", default=False, help="Read a JSON record or array from stdin.")
    source.add_argument("--batch", default=None, help="Read a JSON record or array from a file.")
    record_p.add_argument("--force", action="store_true", default=False, help="Append even if a duplicate exists.")
    record_p.add_argument("--dry-run", action="store_true", default=False, help="Report what would change without writing.")

    edit_p = sub.add_parser("edit", help="Edit fields of an existing record.")
    edit_p.add_argument("domain", help="Domain name.")
    edit_p.add_argument("id", help="Record ID (full, bare hash, or unique prefix).")
    edit_p.add_argument("--classification", choices=CLASSIFICATION_CHOICES, default=None, help="New classification.")
    add_record_field_arguments(edit_p)

    outcome_p = sub.add_parser("outcome", help="Append an outcome to a record.")
    outcome_p.add_argument("domain", help="Domain name.")
    outcome_p.add_argument("id", help="Record ID (full, bare hash, or unique prefix).")
    outcome_p.add_argument("--status", choices=OUTCOME_STATUS_CHOICES, required=True, help="Outcome status.")
    outcome_p.add_argument("--duration", type=float, default=None, help="Duration in milliseconds.")
    outcome_p.add_argument("--agent", default=None, help="Agent that applied the record.")
    outcome_p.add_argument("--notes", default=None, help="Free-form notes.")
    outcome_p.add_argument("--test-results", default=None, help="Test summary.")

    delete_p = sub.add_parser("delete", help="Delete a record.")
    delete_p.add_argument("domain", help="Domain name.")
    delete_p.add_argument("id", help="Record ID (full, bare hash, or unique prefix).")


def _build_record(args: argparse.Namespace) -> ExpertiseRecord:
    if args.type_ is None:
        raise MulchError(f"--type is required ({', '.join(RECORD_TYPE_CHOICES)})")
    rtype = RecordType(args.type_)

    data: dict[str, Any] = {
        "type": rtype.value,
        "classification": args.classification,
        "recorded_at": now_iso(),
    }
    if rtype == RecordType.CONVENTION:
        data["content"] = args.content or args.text or args.description
    elif rtype == RecordType.FAILURE:
        data["description"] = args.description or args.text
        data["resolution"] = args.resolution
    elif rtype == RecordType.DECISION:
        data["title"] = args.title
        data["rationale"] = args.rationale or args.text
    else:
        data["name"] = args.name
        data["description"] = args.description or args.text or args.content
        if rtype in (RecordType.PATTERN, RecordType.REFERENCE):
            data["files"] = parse_csv(args.files)

    data["tags"] = parse_csv(args.tags)
    data["relates_to"] = parse_csv(args.relates_to)
    data["supersedes"] = parse_csv(args.supersedes)

    evidence = {
        "commit": args.evidence_commit,
        "issue": args.evidence_issue,
        "file": args.evidence_file,
        "bead": args.evidence_bead,
    }
    if any(v is not None for v in evidence.values()):
        data["evidence"] = evidence
    if args.outcome_status is not None:
        data["outcomes"] = [{
            "status": args.outcome_status,
            "duration": args.outcome_duration,
            "agent": args.outcome_agent,
            "test_results": args.outcome_test_results,
        }]
    return record_from_dict(data)


def _report_batch(ctx: CommandContext, domain: str, result: BatchResult, action: str, dry_run: bool) -> None:
    if ctx.json:
        ctx.emit({
            "success": not result.errors or result.processed > 0,
            "command": "record",
            "action": action,
            "domain": domain,
            "created": result.created,
            "updated": result.updated,
            "skipped": result.skipped,
            "errors": result.errors,
        })
        return

    console = ctx.console
    if result.errors:
        console.print("[red]Validation errors:[/red]")
        for error in result.errors:
            console.print(f"  {escape(error)}")

    if dry_run:
        if result.processed or result.skipped:
            console.print(f"[green]Dry run: would process {result.processed} record(s) in {escape(domain)}[/green]")
            console.print(f"  Create: {result.created}  Update: {result.updated}  Skip: {result.skipped}")
        else:
            console.print("[yellow]No records would be processed.[/yellow]")
        return

    if result.created:
        console.print(f"[green]Created {result.created} record(s) in {escape(domain)}[/green]")
    if result.updated:
        console.print(f"[green]Updated {result.updated} record(s) in {escape(domain)}[/green]")
    if result.skipped:
        console.print(f"[yellow]Skipped {result.skipped} duplicate(s) in {escape(domain)}[/yellow]")


def cmd_record(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = ctx.load_config()
    PathResolver.ensure_domain_exists(config, args.domain)

    if args.stdin or args.batch:
        if args.batch:
            batch_path = Path(args.batch)
            if not batch_path.exists():
                raise MulchError(f"Batch file not found: {args.batch}")
            text = batch_path.read_text(encoding="utf-8")
            action = "batch"
        else:
            text = sys.stdin.read()
            action = "stdin"
        records, errors = parse_record_payload(text)
    else:
        records, errors = [_build_record(args)], []
        action = "record"

    result = record_records(ctx.store, args.domain, records, force=args.force, dry_run=args.dry_run)
    result.errors = errors + result.errors
    _report_batch(ctx, args.domain, result, "dry-run" if args.dry_run else action, args.dry_run)

    if result.errors and result.processed == 0:
        return 1
    return 0


def cmd_edit(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = ctx.load_config()
    PathResolver.ensure_domain_exists(config, args.domain)

    fields = {name: getattr(args, name) for name in _KIND_FIELD_OPTIONS if getattr(args, name) is not None}
    if "files" in fields:
        fields["files"] = parse_csv(fields["files"])
    changes = RecordChanges(
        classification=Classification(args.classification) if args.classification else None,
        tags=parse_csv(args.tags),
        relates_to=parse_csv(args.relates_to),
        supersedes=parse_csv(args.supersedes),
        fields=fields,
    )
    if changes.is_empty():
        raise MulchError("No changes specified. Pass at least one field option.")

    record = edit_record(ctx.store, args.domain, args.id, changes)
    if ctx.json:
        ctx.emit({"success": True, "command": "edit", "domain": args.domain, "record": record_to_dict(record)})
    else:
        ctx.console.print(f"[green]Updated[/green] {escape(record.id or '')} in {escape(args.domain)}")
    return 0


def cmd_outcome(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = ctx.load_config()
    PathResolver.ensure_domain_exists(config, args.domain)

    outcome = Outcome(
        status=OutcomeStatus(args.status),
        duration=args.duration,
        test_results=args.test_results,
        agent=args.agent,
        notes=args.notes,
    )
    record = append_outcome(ctx.store, args.domain, args.id, outcome)
    if ctx.json:
        ctx.emit({
            "success": True,
            "command": "outcome",
            "domain": args.domain,
            "id": record.id,
            "outcome": outcome.to_dict(),
            "total_outcomes": len(record.outcomes or ()),
        })
    else:
        ctx.console.print(
            f"[green]Recorded {outcome.status.value} outcome[/green] for {escape(record.id or '')} "
            f"({len(record.outcomes or ())} total)"
        )
    return 0


def cmd_delete(args: argparse.Namespace, ctx: CommandContext) -> int:
    config = ctx.load_config()
    PathResolver.ensure_domain_exists(config, args.domain)

    record = delete_record(ctx.store, args.domain, args.id)
    if ctx.json:
        ctx.emit({"success": True, "command": "delete", "domain": args.domain, "id": record.id})
    else:
        ctx.console.print(f"[green]Deleted[/green] {escape(record.id or '')} from {escape(args.domain)}")
    return 0
