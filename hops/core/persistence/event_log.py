"""
Event log — append-only record of installation step events.

Every StepEvent the orchestrator emits is written as one NDJSON line to
``<install_root>/.hops/events.ndjson``, tagged with a run id.  This is
the installation history: what ran, when, and how it ended.

The log is append-only: entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path

from pydantic import BaseModel, Field

from hops.core.models.state import StepEvent

logger = logging.getLogger(__name__)

# Default event log location (relative to install root)
DEFAULT_STATE_DIR = ".hops"
DEFAULT_EVENT_FILE = "events.ndjson"


class EventRecord(BaseModel):
    """One persisted event line."""

    run_id: str
    event: StepEvent
    services: list[str] = Field(default_factory=list)


class EventLog:
    """Append-only NDJSON writer for StepEvents.

    Usable directly as the orchestrator's ``on_event`` callback::

        log = EventLog(install_root=ctx.install_root)
        InstallOrchestrator(engine, on_event=log.write)
    """

    def __init__(
        self,
        path: Path | None = None,
        install_root: Path | None = None,
        run_id: str | None = None,
        services: list[str] | None = None,
    ):
        if path is not None:
            self._path = path
        elif install_root is not None:
            self._path = install_root / DEFAULT_STATE_DIR / DEFAULT_EVENT_FILE
        else:
            self._path = Path(DEFAULT_STATE_DIR) / DEFAULT_EVENT_FILE
        self._run_id = run_id or uuid.uuid4().hex[:12]
        self._services = list(services or [])

    @property
    def path(self) -> Path:
        return self._path

    @property
    def run_id(self) -> str:
        return self._run_id

    def write(self, event: StepEvent) -> None:
        """Append one event.  Write failures are logged, never raised."""
        record = EventRecord(run_id=self._run_id, event=event, services=self._services)
        line = json.dumps(record.model_dump(mode="json"), ensure_ascii=False) + "\n"

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Event written: %s/%s", event.step, event.outcome)
        except OSError as e:
            logger.error("Failed to write event log entry: %s", e)

    def read_all(self) -> list[EventRecord]:
        """Read every record, oldest first.  Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        records = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        records.append(EventRecord.model_validate(json.loads(line)))
                    except ValueError as e:
                        logger.warning("Skipping corrupt event at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read event log: %s", e)

        return records

    def read_run(self, run_id: str | None = None) -> list[EventRecord]:
        """Records for one run (default: this writer's run)."""
        wanted = run_id or self._run_id
        return [r for r in self.read_all() if r.run_id == wanted]
