"""
Env file — generated secrets for compose interpolation.

Catalog env entries marked ``secret`` reference names such as
``${DB_PASSWORD}``.  Names that no credential in hops.yml supplies are
given a random value in ``<install_root>/.env`` (mode 0600), which
compose reads at start time.  Other unresolved names get an empty entry
for the operator to fill in.

An existing .env is never rewritten: only missing names are appended,
so values already baked into running services stay stable.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from pathlib import Path

from hops.core.models.context import ConfigurationContext
from hops.core.models.selection import ResolvedSelection
from hops.core.services.catalog import Catalog
from hops.core.services.manifest_writer import PRIVATE_FILE_MODE, atomic_write

logger = logging.getLogger(__name__)

_SECRET_BYTES = 24

ENV_HEADER = (
    "# Generated by HOPS for docker compose. Keep this file private;\n"
    "# existing values are never changed by re-runs.\n"
)


@dataclass
class EnvRequirements:
    """Names the manifest leaves for compose to interpolate.

    Attributes:
        secrets: Names to fill with generated values.
        blanks:  Names the operator must supply (e.g. a claim token).
    """

    secrets: list[str] = field(default_factory=list)
    blanks: list[str] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return [*self.secrets, *self.blanks]


@dataclass
class EnvWrite:
    """Outcome of updating the env file.  Values are never recorded."""

    path: Path
    created: bool = False
    added: list[str] = field(default_factory=list)
    previous: str | None = field(default=None, repr=False)

    @property
    def changed(self) -> bool:
        return bool(self.added)

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "created": self.created,
            "added": self.added,
        }


def env_requirements(
    catalog: Catalog,
    selection: ResolvedSelection,
    ctx: ConfigurationContext,
) -> EnvRequirements:
    """Collect unresolved ``${NAME}`` references in the selection's env."""
    known = ctx.template_vars()
    secret_names: set[str] = set()
    other: set[str] = set()
    for sid in selection.ids:
        for var in catalog.lookup(sid).env:
            for name in var.placeholders():
                if name in known:
                    continue
                (secret_names if var.secret else other).add(name)
    return EnvRequirements(
        secrets=sorted(secret_names),
        blanks=sorted(other - secret_names),
    )


def env_names(text: str) -> set[str]:
    """Variable names assigned in dotenv-formatted ``text``."""
    names: set[str] = set()
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):]
        name, sep, _ = line.partition("=")
        if sep:
            names.add(name.strip())
    return names


def new_secret() -> str:
    """URL-safe random value; never contains ``$`` or quotes."""
    return secrets.token_urlsafe(_SECRET_BYTES)


def write_env_file(path: Path, requirements: EnvRequirements) -> EnvWrite:
    """Append entries for names ``path`` does not define yet.

    Returns:
        EnvWrite listing the names added.  ``previous`` holds the old
        content (None if the file did not exist) for rollback.

    Raises:
        OSError: If the file cannot be read or written.
    """
    result = EnvWrite(path=path)
    existing = ""
    if path.is_file():
        existing = path.read_text(encoding="utf-8")
        result.previous = existing
    present = env_names(existing)

    lines: list[str] = []
    for name in requirements.secrets:
        if name not in present:
            lines.append(f"{name}={new_secret()}")
            result.added.append(name)
    for name in requirements.blanks:
        if name not in present:
            lines.append(f"{name}=")
            result.added.append(name)

    if not lines:
        logger.info("Env file up to date: %s", path)
        return result

    content = existing or ENV_HEADER
    if not content.endswith("\n"):
        content += "\n"
    content += "\n".join(lines) + "\n"
    atomic_write(path, content, PRIVATE_FILE_MODE)
    result.created = result.previous is None
    logger.info("Added %s to %s", ", ".join(result.added), path)
    return result


def restore_env_file(path: Path, previous: str | None) -> None:
    """Undo ``write_env_file``: put ``previous`` back, or delete the file.

    Raises:
        OSError: If the file cannot be removed or rewritten.
    """
    if previous is None:
        path.unlink(missing_ok=True)
    else:
        atomic_write(path, previous, PRIVATE_FILE_MODE)
