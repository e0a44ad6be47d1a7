"""Path resolution for the .mulch directory and per-domain expertise files."""
from __future__ import annotations

from pathlib import Path

from mulch.config.constants import (
    CONFIG_FILE,
    DOMAIN_NAME_PATTERN,
    EXPERTISE_FILE_SUFFIX,
    EXPERTISE_SUBDIR,
    MULCH_DIR_NAME,
)
from mulch.config.settings import MulchConfig
from mulch.core.errors import DomainNotFoundError, InvalidDomainNameError, NotInitializedError


def validate_domain_name(domain: str) -> None:
    """Raise InvalidDomainNameError unless ``domain`` is a safe file stem."""
    if not DOMAIN_NAME_PATTERN.fullmatch(domain):
        raise InvalidDomainNameError(domain)


class PathResolver:
    """Resolves every on-disk location relative to one project root."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @property
    def mulch_dir(self) -> Path:
        return self.root / MULCH_DIR_NAME

    @property
    def config_path(self) -> Path:
        return self.mulch_dir / CONFIG_FILE

    @property
    def expertise_dir(self) -> Path:
        return self.mulch_dir / EXPERTISE_SUBDIR

    def expertise_path(self, domain: str) -> Path:
        """Return the store file for ``domain``, validating the name first."""
        validate_domain_name(domain)
        return self.expertise_dir / f"{domain}{EXPERTISE_FILE_SUFFIX}"

    def is_initialized(self) -> bool:
        return self.mulch_dir.is_dir()

    def ensure_initialized(self) -> None:
        if not self.is_initialized():
            raise NotInitializedError()

    @staticmethod
    def ensure_domain_exists(config: MulchConfig, domain: str) -> None:
        if not config.has_domain(domain):
            raise DomainNotFoundError(domain, list(config.domains))

    def list_expertise_files(self) -> list[Path]:
        """All ``*.jsonl`` files in the expertise directory, sorted by name."""
        if not self.expertise_dir.is_dir():
            return []
        return sorted(self.expertise_dir.glob(f"*{EXPERTISE_FILE_SUFFIX}"))
