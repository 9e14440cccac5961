"""DecisionJournal - append-only audit trail of superego decisions.

One file per record, written atomically, so concurrent appenders can
never interleave into a corrupt record.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

from pydantic import ValidationError

from .atomic import atomic_write_text
from .paths import SuperegoPaths
from .session_schema import DecisionRecord

logger = logging.getLogger(__name__)


def record_filename(record: DecisionRecord) -> str:
    """Sortable, collision-free file name for a record."""
    stamp = record.timestamp.strftime("%Y%m%dT%H%M%S%fZ")
    return f"{stamp}-{uuid.uuid4().hex}.json"


class DecisionJournal:
    """
    Per-session and aggregate decision journals.

    Layout:
        .superego/sessions/{session_id}/decisions/{name}.json
        .superego/decisions/{name}.json

    The same serialized record is written under the same name to both
    directories, aggregate first, so the aggregate is a superset of every
    session journal even if an append is interrupted, and a repeated write
    cannot double-count.
    """

    def __init__(self, paths: SuperegoPaths):
        self.paths = paths

    def append(self, session_id: str, record: DecisionRecord) -> str:
        """
        Append a record to the session journal and the aggregate journal.

        Args:
            session_id: Session the decision belongs to
            record: Decision to persist

        Returns:
            File name of the stored record
        """
        if record.session_id != session_id:
            record = record.model_copy(update={"session_id": session_id})

        name = record_filename(record)
        payload = record.model_dump_json()
        # Aggregate first: an interrupted append leaves an aggregate-only record
        atomic_write_text(self.paths.decisions_dir / name, payload, prefix=".decision_")
        atomic_write_text(self.paths.session_decisions_dir(session_id) / name, payload, prefix=".decision_")
        return name

    def read_all(self, session_id: str | None = None) -> list[DecisionRecord]:
        """
        Read every record, ordered by timestamp then file name.

        Args:
            session_id: Session journal to read, or None for the aggregate

        Returns:
            Records in deterministic order; unparseable files are skipped
        """
        directory = (
            self.paths.session_decisions_dir(session_id)
            if session_id is not None
            else self.paths.decisions_dir
        )
        return [record for _, record in self._load_dir(directory)]

    def recent(self, session_id: str | None, limit: int) -> list[DecisionRecord]:
        """Last ``limit`` records in journal order."""
        if limit <= 0:
            return []
        return self.read_all(session_id)[-limit:]

    def _load_dir(self, directory: Path) -> list[tuple[str, DecisionRecord]]:
        if not directory.exists():
            return []

        loaded = []
        for path in directory.glob("*.json"):
            try:
                record = DecisionRecord.model_validate_json(path.read_text(encoding="utf-8"))
            except (ValidationError, ValueError, OSError) as e:
                logger.warning(f"Skipping unreadable decision record {path.name}: {e}")
                continue
            loaded.append((path.name, record))

        loaded.sort(key=lambda item: (item[1].timestamp, item[0]))
        return loaded


__all__ = ["DecisionJournal", "record_filename"]
