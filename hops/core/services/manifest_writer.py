"""
Manifest writer — puts generated files on disk.

The manifest is always regenerated.  When a different manifest already
exists it is backed up (``docker-compose.yml.bak.<UTC stamp>``) and a
unified diff summary is returned so the caller can show what changed.
Identical content is not rewritten.

Auxiliary config files are the opposite: written once, never
overwritten, so operator edits survive re-runs.
"""

from __future__ import annotations

import difflib
import logging
import os
import shutil
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from hops.core.models.template import GeneratedFile

logger = logging.getLogger(__name__)

_DIFF_PREVIEW_LINES = 50

PRIVATE_FILE_MODE = 0o600


@dataclass
class ManifestWrite:
    """Outcome of writing the manifest.

    Attributes:
        path:           Manifest location.
        written:        False when identical content was already present.
        created:        True when no manifest existed before.
        backup:         Backup of the previous manifest, if one was taken.
        lines_added / lines_removed / diff: Summary against the previous one.
    """

    path: Path
    written: bool = False
    created: bool = False
    backup: Path | None = None
    lines_added: int = 0
    lines_removed: int = 0
    diff: str = ""

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "written": self.written,
            "created": self.created,
            "backup": str(self.backup) if self.backup else None,
            "lines_added": self.lines_added,
            "lines_removed": self.lines_removed,
            "diff": self.diff,
        }


@dataclass
class DiffSummary:
    added: int = 0
    removed: int = 0
    lines: list[str] = field(default_factory=list)

    @property
    def preview(self) -> str:
        text = "\n".join(self.lines[:_DIFF_PREVIEW_LINES])
        if len(self.lines) > _DIFF_PREVIEW_LINES:
            text += f"\n... ({len(self.lines) - _DIFF_PREVIEW_LINES} more lines)"
        return text


def diff_text(old: str, new: str, name: str = "docker-compose.yml") -> DiffSummary:
    """Unified diff between two versions of a file."""
    lines = list(difflib.unified_diff(
        old.splitlines(),
        new.splitlines(),
        fromfile=f"a/{name}",
        tofile=f"b/{name}",
        lineterm="",
    ))
    added = sum(1 for ln in lines if ln.startswith("+") and not ln.startswith("+++"))
    removed = sum(1 for ln in lines if ln.startswith("-") and not ln.startswith("---"))
    return DiffSummary(added=added, removed=removed, lines=lines)


def backup_path(path: Path, now: datetime | None = None) -> Path:
    """``<path>.bak.<UTC stamp>`` for a file about to be replaced."""
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%dT%H%M%SZ")
    candidate = path.with_name(f"{path.name}.bak.{stamp}")
    n = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.bak.{stamp}.{n}")
        n += 1
    return candidate


def atomic_write(path: Path, content: str, mode: int | None = None) -> None:
    """Write via a temp file + rename so readers never see a partial file.

    With ``mode`` the temp file is created with those permissions, so the
    content is never readable more widely even for a moment.  A failed
    write leaves ``path`` untouched and removes the temp file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        if mode is None:
            tmp.write_text(content, encoding="utf-8")
        else:
            tmp.unlink(missing_ok=True)
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
            os.chmod(tmp, mode)  # umask may have narrowed it
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def write_manifest(text: str, path: Path, *, private: bool = False) -> ManifestWrite:
    """Write the rendered manifest, backing up a different previous one.

    Args:
        text: Rendered manifest.
        path: Destination.
        private: Restrict the file to its owner (0600).  Set when the
            manifest embeds credentials.

    Raises:
        OSError: If the file or its backup cannot be written.  The
            previous manifest is then still in place and no backup is
            left behind.
    """
    mode = PRIVATE_FILE_MODE if private else None
    result = ManifestWrite(path=path)

    if path.is_file():
        old = path.read_text(encoding="utf-8", errors="ignore")
        if old == text:
            logger.info("Manifest unchanged: %s", path)
            if mode is not None:
                os.chmod(path, mode)
            return result

        summary = diff_text(old, text, path.name)
        result.lines_added = summary.added
        result.lines_removed = summary.removed
        result.diff = summary.preview

        result.backup = backup_path(path)
        shutil.copy2(path, result.backup)
        logger.info("Backed up existing manifest to %s", result.backup)
    else:
        result.created = True
        result.lines_added = len(text.splitlines())

    try:
        atomic_write(path, text, mode)
    except OSError:
        if result.backup is not None:
            result.backup.unlink(missing_ok=True)
        raise
    result.written = True
    logger.info(
        "Wrote manifest %s (+%d -%d)", path, result.lines_added, result.lines_removed,
    )
    return result


def write_aux_files(files: list[GeneratedFile]) -> list[Path]:
    """Write auxiliary files that do not exist yet.

    Files with ``overwrite=True`` are replaced; all others are skipped
    when present.

    Returns:
        Paths actually written, in input order.

    Raises:
        OSError: If a file cannot be written.
    """
    written: list[Path] = []
    for gen in files:
        target = Path(gen.path)
        if target.exists() and not gen.overwrite:
            logger.info("Keeping existing %s (%s)", target, gen.service_id or "aux")
            continue
        atomic_write(target, gen.content)
        written.append(target)
        logger.info("Wrote %s", target)
    return written
