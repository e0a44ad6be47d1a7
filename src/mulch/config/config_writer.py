"""Serialize MulchConfig snapshots to TOML and initialize the .mulch directory."""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import tomli

from mulch.config.constants import GITATTRIBUTES_FILE, GITATTRIBUTES_LINE
from mulch.config.path_resolver import PathResolver
from mulch.config.settings import MulchConfig
from mulch.core.errors import ConfigError

logger = logging.getLogger(__name__)


def render_config(config: MulchConfig) -> str:
    """Render a config snapshot as TOML text."""
    domains = ", ".join(_toml_quote(d) for d in config.domains)
    lines = [
        f"version = {_toml_quote(config.version)}",
        f"domains = [{domains}]",
        "",
        "[governance]",
        f"max_entries = {config.governance.max_entries}",
        f"warn_entries = {config.governance.warn_entries}",
        f"hard_limit = {config.governance.hard_limit}",
        "",
        "[classification_defaults.shelf_life]",
        f"tactical = {config.shelf_life.tactical}",
        f"observational = {config.shelf_life.observational}",
        "",
        "[prime]",
        f"budget = {config.prime.budget}",
        "",
        "[search]",
        f"k1 = {config.search.k1!r}",
        f"b = {config.search.b!r}",
        f"confirmation_boost = {config.search.confirmation_boost!r}",
    ]
    return "\n".join(lines) + "\n"


def write_config(config: MulchConfig, resolver: PathResolver) -> Path:
    """Atomically replace the config file with ``config``.

    Raises:
        ConfigError: If the rendered text does not parse back as TOML.
    """
    content = render_config(config)

    # Validate before writing to disk.
    try:
        tomli.loads(content)
    except tomli.TOMLDecodeError as exc:
        raise ConfigError(f"Refusing to write invalid config: {exc}") from exc

    target = resolver.config_path
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=target.parent, suffix=".tmp", prefix=".config-")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, target)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    logger.debug("Wrote config with %d domain(s) to %s", len(config.domains), target)
    return target


def init_mulch_dir(resolver: PathResolver) -> MulchConfig:
    """Create the .mulch layout; an existing config is left untouched."""
    resolver.expertise_dir.mkdir(parents=True, exist_ok=True)

    if resolver.config_path.exists():
        config = MulchConfig.load(resolver.root)
    else:
        config = MulchConfig()
        write_config(config, resolver)

    gitattributes = resolver.root / GITATTRIBUTES_FILE
    existing = gitattributes.read_text(encoding="utf-8") if gitattributes.exists() else ""
    if GITATTRIBUTES_LINE not in existing:
        separator = "\n" if existing and not existing.endswith("\n") else ""
        gitattributes.write_text(f"{existing}{separator}{GITATTRIBUTES_LINE}\n", encoding="utf-8")

    return config


def _toml_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
