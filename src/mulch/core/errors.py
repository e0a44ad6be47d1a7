"""Error taxonomy for the mulch expertise store."""
from __future__ import annotations


class MulchError(Exception):
    """Base class for user-facing mulch errors."""


class NotInitializedError(MulchError):
    def __init__(self) -> None:
        super().__init__("No .mulch/ directory found. Run `mulch init` first.")


class ConfigError(MulchError):
    """Raised when the config file cannot be read or written safely."""


class InvalidDomainNameError(MulchError):
    def __init__(self, domain: str) -> None:
        self.domain = domain
        super().__init__(
            f'Invalid domain name: "{domain}". '
            "Only alphanumeric characters, hyphens, and underscores are allowed."
        )


class DomainNotFoundError(MulchError):
    def __init__(self, domain: str, available: list[str]) -> None:
        self.domain = domain
        self.available = list(available)
        listing = ", ".join(available) if available else "(none)"
        super().__init__(
            f'Domain "{domain}" not found in config. Available domains: {listing}'
        )


class DomainExistsError(MulchError):
    def __init__(self, domain: str) -> None:
        self.domain = domain
        super().__init__(f'Domain "{domain}" already exists.')


class DomainNotEmptyError(MulchError):
    def __init__(self, domain: str, count: int) -> None:
        self.domain = domain
        self.count = count
        super().__init__(
            f'Domain "{domain}" has {count} record(s). Use --force to remove.'
        )


class RecordNotFoundError(MulchError):
    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(
            f'Record "{identifier}" not found. Run `mulch query` to see record IDs.'
        )


class AmbiguousIdentifierError(MulchError):
    """Raised when an identifier prefix matches more than one record."""

    def __init__(self, identifier: str, ids: list[str]) -> None:
        self.identifier = identifier
        self.ids = list(ids)
        super().__init__(
            f'Ambiguous identifier "{identifier}" matches {len(self.ids)} records: '
            f"{', '.join(self.ids)}. Use more characters to disambiguate."
        )

    @property
    def count(self) -> int:
        return len(self.ids)


class LockTimeoutError(MulchError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"Timed out waiting for lock on {path}. If no other mulch process "
            "is running, delete the lock file manually."
        )


class RecordValidationError(MulchError):
    """Raised when a record payload or stored line fails structural validation."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Schema validation failed: {message}")
        self.detail = message


class UndecodableLinesError(RecordValidationError):
    """Raised when a domain about to be rewritten holds lines that do not decode."""

    def __init__(self, path: str, lines: list[int], first_error: str) -> None:
        self.path = path
        self.lines = list(lines)
        listing = ", ".join(str(n) for n in self.lines)
        super().__init__(
            f"{path} has undecodable line(s) {listing} ({first_error}). "
            "Run `mulch doctor --fix` to drop them before modifying this domain."
        )


class InvalidDurationError(MulchError):
    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(
            f'Invalid duration "{value}". Use a whole number followed by '
            "m (minutes), h (hours), d (days) or w (weeks), e.g. 24h."
        )
