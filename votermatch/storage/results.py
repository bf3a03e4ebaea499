"""
Match-result store with an audit log.

Keeps the current MatchResult for each person entry and records every
automatic, confirm, reject and remove action so decisions can be reviewed
later. A result written by an explicit user action is never replaced by an
automatic one unless the person entry itself changed.
"""

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.results import MatchResult, Pending
from ..exceptions import UnknownPersonError

logger = logging.getLogger(__name__)


class AuditAction(Enum):
    """Kinds of writes recorded in the audit log."""
    SUBMIT = "submit"
    AUTO = "auto"
    AUTO_SKIPPED = "auto_skipped"  # automatic result lost to a manual one
    CONFIRM = "confirm"
    REJECT = "reject"
    REMOVE = "remove"


@dataclass
class AuditEntry:
    """Single audit log entry."""
    id: Optional[int] = None
    timestamp: Optional[str] = None
    person_id: str = ""
    action: str = ""
    status: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEntry':
        """Create from dictionary."""
        if 'metadata' in data and isinstance(data['metadata'], str):
            data['metadata'] = json.loads(data['metadata'])
        return cls(**data)


class MatchResultStore:
    """Persists match results in SQLite.

    All reads and writes go through one connection guarded by a lock, so
    the check-then-write of the manual-override rule is atomic with respect
    to concurrent matching workers.
    """

    def __init__(self, db_path: str | Path = ':memory:'):
        """Open the result store.

        Args:
            db_path: Database file, or ':memory:' for a private in-memory store
        """
        self.db_path = db_path if str(db_path) == ':memory:' else Path(db_path)
        self._lock = threading.RLock()
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._create_schema()

    def _create_schema(self):
        """Create the result and audit tables."""
        with self._lock:
            self.conn.executescript("""
                CREATE TABLE IF NOT EXISTS match_results (
                    person_id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    entry_fingerprint TEXT,
                    manual INTEGER NOT NULL DEFAULT 0,
                    result TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
                );

                CREATE TABLE IF NOT EXISTS match_audit (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL DEFAULT (datetime('now')),
                    person_id TEXT NOT NULL,
                    action TEXT NOT NULL,
                    status TEXT,
                    metadata TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_match_audit_person
                ON match_audit(person_id, id);
            """)
            self.conn.commit()

    # ========== Reads ==========

    def get(self, person_id: str) -> Optional[MatchResult]:
        """Current result for a person entry, or None if never submitted."""
        with self._lock:
            row = self.conn.execute(
                "SELECT result FROM match_results WHERE person_id = ?", (person_id,)
            ).fetchone()
        return MatchResult.from_dict(json.loads(row['result'])) if row else None

    def all(self) -> List[MatchResult]:
        """Every stored result, ordered by person id."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT result FROM match_results ORDER BY person_id"
            ).fetchall()
        return [MatchResult.from_dict(json.loads(row['result'])) for row in rows]

    def __contains__(self, person_id: str) -> bool:
        return self.get(person_id) is not None

    def history(self, person_id: str) -> List[AuditEntry]:
        """Audit entries for a person entry, oldest first."""
        with self._lock:
            rows = self.conn.execute("""
                SELECT * FROM match_audit
                WHERE person_id = ?
                ORDER BY id
            """, (person_id,)).fetchall()
        return [AuditEntry.from_dict(dict(row)) for row in rows]

    # ========== Writes ==========

    def create_pending(self, person_id: str, entry_fingerprint: Optional[str] = None) -> MatchResult:
        """Create a Pending result; an existing result is kept and returned."""
        with self._lock:
            existing = self.get(person_id)
            if existing is not None:
                return existing

            result = MatchResult(person_id, Pending(), entry_fingerprint)
            self._write(result, AuditAction.SUBMIT)
            return result

    def save_automatic(self, result: MatchResult) -> MatchResult:
        """
        Store an automatic result unless a manual result dominates it.

        A manual (confirmed or rejected by the user) result is kept when it
        was made for the same version of the person entry, i.e. the
        fingerprints agree.

        Returns:
            The result that is stored afterwards
        """
        with self._lock:
            existing = self.get(result.person_entry_id)
            if (existing is not None and existing.is_manual
                    and existing.entry_fingerprint == result.entry_fingerprint):
                logger.debug(f"Keeping manual result for {result.person_entry_id}")
                self._audit(result.person_entry_id, AuditAction.AUTO_SKIPPED, result.status.value)
                self.conn.commit()
                return existing

            self._write(result, AuditAction.AUTO)
            return result

    def save_manual(self, result: MatchResult, action: AuditAction) -> MatchResult:
        """Store the result of a confirm or reject action."""
        with self._lock:
            if self.get(result.person_entry_id) is None:
                raise UnknownPersonError(result.person_entry_id)
            self._write(result, action, manual=True)
            return result

    def remove(self, person_id: str) -> bool:
        """Delete a person entry's result. Returns False if there was none."""
        with self._lock:
            cursor = self.conn.execute(
                "DELETE FROM match_results WHERE person_id = ?", (person_id,))
            if cursor.rowcount:
                self._audit(person_id, AuditAction.REMOVE, None)
            self.conn.commit()
            return cursor.rowcount > 0

    def _write(self, result: MatchResult, action: AuditAction, manual: bool = False) -> None:
        best = result.best_match
        self.conn.execute("""
            INSERT OR REPLACE INTO match_results
                (person_id, status, entry_fingerprint, manual, result, updated_at)
            VALUES (?, ?, ?, ?, ?, datetime('now'))
        """, (result.person_entry_id, result.status.value, result.entry_fingerprint,
              int(manual), json.dumps(result.to_dict())))

        metadata = {'candidates': len(result.candidates)}
        if best is not None:
            metadata['best_match'] = best.full_name()
        self._audit(result.person_entry_id, action, result.status.value, metadata)
        self.conn.commit()

    def _audit(self, person_id: str, action: AuditAction, status: Optional[str],
               metadata: Optional[Dict[str, Any]] = None) -> None:
        self.conn.execute("""
            INSERT INTO match_audit (person_id, action, status, metadata)
            VALUES (?, ?, ?, ?)
        """, (person_id, action.value, status, json.dumps(metadata) if metadata else None))

    def close(self):
        """Close the result database connection."""
        if self.conn:
            self.conn.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
