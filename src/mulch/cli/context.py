"""Shared plumbing for CLI commands: project context, output and argument parsing."""
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rich.console import Console

from mulch.config import MulchConfig, PathResolver
from mulch.expertise.models import Classification, OutcomeStatus, RecordType
from mulch.expertise.store import ExpertiseStore

RECORD_TYPE_CHOICES = [t.value for t in RecordType]
CLASSIFICATION_CHOICES = [c.value for c in Classification]
OUTCOME_STATUS_CHOICES = [s.value for s in OutcomeStatus]


@dataclass
class CommandContext:
    """Per-invocation state handed to every command."""

    root: Path
    json: bool = False
    console: Console = field(default_factory=Console)

    @property
    def resolver(self) -> PathResolver:
        return PathResolver(self.root)

    @property
    def store(self) -> ExpertiseStore:
        return ExpertiseStore(self.resolver)

    def load_config(self) -> MulchConfig:
        """Load the project config, failing if ``mulch init`` has not run."""
        self.resolver.ensure_initialized()
        return MulchConfig.load(self.root)

    def select_domains(self, config: MulchConfig, domains: list[str] | None) -> list[str]:
        """The requested domains (each must be registered), or all of them."""
        if not domains:
            return list(config.domains)
        for domain in domains:
            PathResolver.ensure_domain_exists(config, domain)
        return list(domains)

    def emit(self, payload: dict[str, Any]) -> None:
        print(json.dumps(payload, indent=2, ensure_ascii=False))

    def emit_error(self, command: str, message: str) -> None:
        if self.json:
            self.emit({"success": False, "command": command, "error": message})
        else:
            print_error(message)


def print_error(msg: str) -> None:
    print(f"Error: {msg}", file=sys.stderr)


def parse_csv(value: str | None) -> list[str] | None:
    """Split a comma-separated option; ``None`` when the option was not given."""
    if value is None:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def add_record_field_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by `record` and `edit` for the kind-specific fields."""
    parser.add_argument("--content", default=None, help="Convention text.")
    parser.add_argument("--name", default=None, help="Name (pattern, reference, guide).")
    parser.add_argument(
        "--description", default=None,
        help="Description (pattern, failure, reference, guide).",
    )
    parser.add_argument("--resolution", default=None, help="Failure resolution.")
    parser.add_argument("--title", default=None, help="Decision title.")
    parser.add_argument("--rationale", default=None, help="Decision rationale.")
    parser.add_argument("--files", default=None, help="Comma-separated related files.")
    parser.add_argument("--tags", default=None, help="Comma-separated tags.")
    parser.add_argument("--relates-to", dest="relates_to", default=None, help="Comma-separated related record IDs.")
    parser.add_argument("--supersedes", default=None, help="Comma-separated superseded record IDs.")
