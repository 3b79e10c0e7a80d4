"""
Configuration loader — reads hops.yml into a ConfigurationContext.

The YAML may hold the values flat or under a ``hops:`` key.  Values
given on the command line override the file.  Validation happens once,
here, and the resulting context is frozen for the rest of the run.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from hops.core.errors import ContextError
from hops.core.models.context import ConfigurationContext

logger = logging.getLogger(__name__)

# Default config filename
HOPS_CONFIG_FILE = "hops.yml"

# Environment variable pointing at an explicit config file
HOPS_CONFIG_ENV = "HOPS_CONFIG"

# Accepted spellings in hops.yml → ConfigurationContext field
_ALIASES = {
    "tz": "timezone",
    "uid": "puid",
    "gid": "pgid",
    "media_dir": "data_root",
    "appdata_dir": "config_root",
    "homelab_dir": "install_root",
}


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for hops.yml starting from the given directory, walking up.

    ``HOPS_CONFIG`` takes precedence when set.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to hops.yml, or None if not found.
    """
    explicit = os.environ.get(HOPS_CONFIG_ENV, "").strip()
    if explicit:
        return Path(explicit).expanduser()

    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / HOPS_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def read_config(path: Path) -> dict[str, Any]:
    """Read hops.yml into a plain mapping with canonical keys.

    Raises:
        ContextError: If the file is missing, unreadable, or not a mapping.
    """
    if not path.is_file():
        raise ContextError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ContextError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ContextError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ContextError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "hops" key or be flat
    values = data["hops"] if isinstance(data.get("hops"), dict) else data
    return _canonical_keys(values)


def load_context(
    path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> ConfigurationContext:
    """Load and validate the configuration context.

    Args:
        path: Explicit hops.yml.  If None, searches upward (or ``HOPS_CONFIG``).
              A missing file is fine when overrides supply every value.
        overrides: Values taking precedence over the file (None values ignored).

    Returns:
        Frozen ConfigurationContext.

    Raises:
        ContextError: If values are missing or invalid.
    """
    if path is None:
        path = find_config_file()

    values: dict[str, Any] = read_config(path) if path is not None else {}
    values.update(_canonical_keys(
        {k: v for k, v in (overrides or {}).items() if v is not None}
    ))

    for key in ("data_root", "config_root", "install_root"):
        if isinstance(values.get(key), str):
            values[key] = os.path.expanduser(values[key])

    try:
        ctx = ConfigurationContext.model_validate(values)
    except ValidationError as e:
        raise ContextError(f"Invalid configuration: {_summarize(e)}") from e

    logger.info(
        "Loaded configuration (uid=%d gid=%d tz=%s install_root=%s)",
        ctx.puid, ctx.pgid, ctx.timezone, ctx.install_root,
    )
    return ctx


def _canonical_keys(values: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in values.items():
        name = str(key).lower()
        out[_ALIASES.get(name, name)] = value
    return out


def _summarize(error: ValidationError) -> str:
    """One line per field, without echoing input values (may hold secrets)."""
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "context"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)
