"""Store diagnostics: config readability, missing files, bad lines and orphans."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mulch.config.path_resolver import PathResolver
from mulch.config.settings import MulchConfig
from mulch.core.errors import ConfigError, InvalidDomainNameError
from mulch.expertise.store import ExpertiseStore, ReadResult, load_expertise_file

logger = logging.getLogger(__name__)


@dataclass
class DoctorIssue:
    check: str
    message: str
    domain: str | None = None
    line: int | None = None
    path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"check": self.check, "error": self.message}
        for name in ("domain", "line", "path"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


@dataclass
class DoctorReport:
    issues: list[DoctorIssue] = field(default_factory=list)
    fixed: list[str] = field(default_factory=list)
    # Valid record count per domain whose file was read.
    domain_counts: dict[str, int] = field(default_factory=dict)
    config_ok: bool = True

    @property
    def ok(self) -> bool:
        return not self.issues


def validate_domain_file(path: Path) -> ReadResult:
    """Decode every non-blank line of ``path``; failures carry 1-based line numbers."""
    return load_expertise_file(path)


def diagnose(resolver: PathResolver, *, fix: bool = False) -> DoctorReport:
    """Run every health check; with ``fix``, repair what can be repaired.

    Repairs: create missing domain files, drop undecodable lines (under the
    domain lock, via an atomic rewrite) and delete ``.jsonl`` files that no
    registered domain owns.
    """
    resolver.ensure_initialized()
    report = DoctorReport()

    try:
        config = MulchConfig.load(resolver.root)
    except ConfigError as exc:
        report.config_ok = False
        report.issues.append(DoctorIssue(check="config", message=f"Config unreadable: {exc}"))
        return report

    store = ExpertiseStore(resolver)
    for domain in config.domains:
        _check_domain(store, domain, report, fix)

    for path in resolver.list_expertise_files():
        if path.stem in config.domains:
            continue
        report.issues.append(
            DoctorIssue(check="orphan", message=f"Orphan file: {path}", path=str(path))
        )
        if fix:
            path.unlink()
            report.fixed.append(f"Removed orphan: {path}")
            logger.info("Removed orphan expertise file %s", path)

    return report


def _check_domain(store: ExpertiseStore, domain: str, report: DoctorReport, fix: bool) -> None:
    try:
        path = store.path_for(domain)
    except InvalidDomainNameError as exc:
        report.issues.append(
            DoctorIssue(check="domain", message=f'Invalid domain path for "{domain}": {exc}', domain=domain)
        )
        return

    if not path.exists():
        report.issues.append(
            DoctorIssue(check="domain_file", message=f'Missing file for domain "{domain}"', domain=domain)
        )
        if fix:
            store.create_domain_file(domain)
            report.fixed.append(f'Created missing file for "{domain}"')
        return

    result = validate_domain_file(path)
    report.domain_counts[domain] = len(result.records)
    for error in result.errors:
        report.issues.append(
            DoctorIssue(check="parse", message=error.message, domain=domain, line=error.line)
        )

    if fix and result.errors:
        with store.lock(domain):
            fresh = store.read_domain_with_errors(domain)
            store.rewrite_domain(domain, fresh.records)
        report.fixed.append(f'Removed {len(fresh.errors)} bad line(s) from "{domain}"')
        logger.info("Dropped %d undecodable line(s) from %s", len(fresh.errors), domain)
