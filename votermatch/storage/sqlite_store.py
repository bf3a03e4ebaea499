"""SQLite-backed voter reference store."""

import logging
import queue
import sqlite3
from contextlib import contextmanager
from itertools import count
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..cancellation import CancellationToken
from ..core.models import ELECTION_FIELDS, VoterRecord
from ..exceptions import MatchCancelledError, MatchingUnavailableError
from ..matching.normalize import normalize_name, normalize_zip
from ..matching.phonetic import NameAlgorithms
from .base import ReferenceStore

logger = logging.getLogger(__name__)

# SQLite VM steps between cancellation checks
PROGRESS_STEPS = 1000

VOTER_COLUMNS = (
    'voter_id', 'first_name', 'last_name', 'date_of_birth', 'gender',
    'residential_address', 'city', 'state', 'zip', 'party_affiliation',
    'registration_date', 'voter_status',
) + tuple(name.lower() for name in ELECTION_FIELDS)

BLOCKING_COLUMNS = ('last_name_normalized', 'last_name_metaphone', 'last_name_metaphone_alt', 'zip5')

SCHEMA = f"""
    CREATE TABLE IF NOT EXISTS voters (
        voter_id TEXT PRIMARY KEY,
        first_name TEXT NOT NULL,
        last_name TEXT NOT NULL,
        date_of_birth TEXT,
        gender TEXT,
        residential_address TEXT,
        city TEXT,
        state TEXT NOT NULL,
        zip TEXT,
        party_affiliation TEXT,
        registration_date TEXT,
        voter_status TEXT,
        {', '.join(f"{name.lower()} TEXT DEFAULT ''" for name in ELECTION_FIELDS)},
        last_name_normalized TEXT NOT NULL,
        last_name_metaphone TEXT,
        last_name_metaphone_alt TEXT,
        zip5 TEXT
    );
    CREATE INDEX IF NOT EXISTS idx_voters_state_last ON voters(state, last_name_normalized);
    CREATE INDEX IF NOT EXISTS idx_voters_state_metaphone ON voters(state, last_name_metaphone);
    CREATE INDEX IF NOT EXISTS idx_voters_state_metaphone_alt ON voters(state, last_name_metaphone_alt);
    CREATE INDEX IF NOT EXISTS idx_voters_state_zip ON voters(state, zip5);
"""

_INSERT_SQL = (
    f"INSERT OR REPLACE INTO voters ({', '.join(VOTER_COLUMNS + BLOCKING_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in VOTER_COLUMNS + BLOCKING_COLUMNS)})"
)

_memory_ids = count(1)


class SQLiteVoterStore(ReferenceStore):
    """Voter file in a SQLite database.

    This class handles:
    - A pool of connections shared by matching worker threads
    - The voters schema with precomputed blocking columns
    - An FTS5 trigram index for fuzzy last-name retrieval, when the SQLite
      build supports it
    - Interrupting running queries when a batch is cancelled
    """

    def __init__(self, db_path: str | Path = ':memory:', pool_size: int = 4,
                 algorithms: Optional[NameAlgorithms] = None,
                 fuzzy_index: bool = True, acquire_timeout: float = 30.0):
        """Open (and if needed create) a voter database.

        Args:
            db_path: Database file, or ':memory:' for a private in-memory database
            pool_size: Number of pooled connections (bounds concurrent queries)
            algorithms: Name algorithms used for the blocking columns
            fuzzy_index: Build and use the trigram index when supported
            acquire_timeout: Seconds to wait for a free connection
        """
        if pool_size < 1:
            raise ValueError("pool_size must be at least 1")

        self.algorithms = algorithms or NameAlgorithms()
        self.pool_size = pool_size
        self.max_concurrency = pool_size
        self.acquire_timeout = acquire_timeout

        if str(db_path) == ':memory:':
            # Shared cache so every pooled connection sees the same database
            self.db_path = ':memory:'
            self._target = f"file:votermatch-{next(_memory_ids)}?mode=memory&cache=shared"
            self._uri = True
        else:
            self.db_path = Path(db_path)
            self._target = str(self.db_path)
            self._uri = False

        self._pool: queue.Queue = queue.Queue(maxsize=pool_size)
        self._closed = False

        try:
            for _ in range(pool_size):
                self._pool.put(self._open_connection())
            with self._connection() as conn:
                conn.executescript(SCHEMA)
                conn.commit()
                self._fuzzy = fuzzy_index and self._create_fuzzy_index(conn)
        except sqlite3.Error as e:
            self.close()
            raise MatchingUnavailableError(f"Cannot open voter database {self.db_path}: {e}") from e

        logger.info(f"Opened voter store {self.db_path} "
                    f"(pool_size={pool_size}, fuzzy_index={self._fuzzy})")

    def _open_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._target, uri=self._uri, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row  # Access columns by name
        conn.create_function('similarity', 2, self.algorithms.trigram_similarity, deterministic=True)
        return conn

    def _create_fuzzy_index(self, conn: sqlite3.Connection) -> bool:
        """Create the trigram index; False if this SQLite build lacks FTS5 trigram."""
        try:
            conn.execute("""
                CREATE VIRTUAL TABLE IF NOT EXISTS voters_fts
                USING fts5(last_name_normalized, content='voters', tokenize='trigram')
            """)
            conn.commit()
            return True
        except sqlite3.OperationalError as e:
            logger.warning(f"Trigram index unavailable, fuzzy last-name retrieval disabled: {e}")
            return False

    def close(self):
        """Close every pooled connection."""
        self._closed = True
        while True:
            try:
                conn = self._pool.get_nowait()
            except queue.Empty:
                break
            conn.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    @contextmanager
    def _connection(self, token: Optional[CancellationToken] = None):
        """Borrow a pooled connection, interrupting its queries if ``token`` trips."""
        if self._closed:
            raise MatchingUnavailableError("Voter store is closed")

        try:
            conn = self._pool.get(timeout=self.acquire_timeout)
        except queue.Empty:
            raise MatchingUnavailableError(
                f"No database connection free after {self.acquire_timeout}s") from None

        if token is not None:
            conn.set_progress_handler(lambda: 1 if token.cancelled else 0, PROGRESS_STEPS)
        try:
            yield conn
        finally:
            if token is not None:
                conn.set_progress_handler(None, 0)
            if self._closed:
                conn.close()
            else:
                self._pool.put(conn)

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        with self._connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def _query(self, sql: str, params: Tuple[Any, ...],
               token: Optional[CancellationToken] = None) -> List[VoterRecord]:
        if token is not None:
            token.raise_if_cancelled()

        try:
            with self._connection(token) as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            if token is not None and token.cancelled:
                raise MatchCancelledError() from e
            logger.error(f"Voter query failed: {e}", exc_info=True)
            raise MatchingUnavailableError(f"Voter store query failed: {e}") from e

        return [self._row_to_voter(row) for row in rows]

    # ========== Queries ==========

    def find_by_last_name(self, last_name, state, limit, zip_code=None, token=None):
        return self._query("""
            SELECT * FROM voters
            WHERE state = ? AND last_name_normalized = ?
            ORDER BY (zip5 = ?) DESC, voter_id
            LIMIT ?
        """, (state.upper(), last_name, normalize_zip(zip_code), limit), token)

    def find_by_phonetic_code(self, code, state, limit, token=None):
        return self._query("""
            SELECT * FROM voters
            WHERE state = ? AND (last_name_metaphone = ? OR last_name_metaphone_alt = ?)
            ORDER BY voter_id
            LIMIT ?
        """, (state.upper(), code, code, limit), token)

    def find_fuzzy_last_name(self, last_name, state, limit, min_similarity, token=None):
        if not self._fuzzy:
            return []

        # The trigram tokenizer needs at least three characters per term
        grams = sorted({last_name[i:i + 3] for i in range(len(last_name) - 2)})
        if not grams:
            return []
        match = ' OR '.join('"' + gram.replace('"', '""') + '"' for gram in grams)

        return self._query("""
            SELECT v.* FROM voters_fts
            JOIN voters v ON v.rowid = voters_fts.rowid
            WHERE voters_fts MATCH ? AND v.state = ?
              AND similarity(v.last_name_normalized, ?) > ?
            ORDER BY similarity(v.last_name_normalized, ?) DESC, v.voter_id
            LIMIT ?
        """, (match, state.upper(), last_name, min_similarity, last_name, limit), token)

    def find_by_zip(self, zip_code, state, limit, token=None):
        return self._query("""
            SELECT * FROM voters
            WHERE state = ? AND zip5 = ?
            ORDER BY voter_id
            LIMIT ?
        """, (state.upper(), normalize_zip(zip_code), limit), token)

    def has_fuzzy_index(self) -> bool:
        return self._fuzzy

    def ping(self) -> None:
        try:
            with self._connection() as conn:
                conn.execute("SELECT 1 FROM voters LIMIT 1").fetchall()
        except sqlite3.Error as e:
            logger.error(f"Voter store {self.db_path} is unavailable: {e}", exc_info=True)
            raise MatchingUnavailableError(f"Voter store unavailable: {e}") from e

    # ========== Loading ==========

    def import_records(self, records: Iterable[VoterRecord], batch_size: int = 1000) -> int:
        """Insert or replace voter records, computing their blocking columns.

        Args:
            records: Voter records to load
            batch_size: Rows per executemany call

        Returns:
            Number of records written
        """
        total = 0
        batch = []

        with self.transaction() as conn:
            for record in records:
                batch.append(self._voter_to_row(record))
                if len(batch) >= batch_size:
                    conn.executemany(_INSERT_SQL, batch)
                    total += len(batch)
                    batch = []

            if batch:
                conn.executemany(_INSERT_SQL, batch)
                total += len(batch)

            if self._fuzzy:
                logger.info("Rebuilding trigram index")
                conn.execute("INSERT INTO voters_fts(voters_fts) VALUES('rebuild')")

        logger.info(f"Imported {total} voter records into {self.db_path}")
        return total

    def stats(self) -> Dict[str, int]:
        """Get database statistics.

        Returns:
            Dictionary with the number of voters and of distinct states
        """
        with self._connection() as conn:
            voters = conn.execute("SELECT COUNT(*) FROM voters").fetchone()[0]
            states = conn.execute("SELECT COUNT(DISTINCT state) FROM voters").fetchone()[0]

        return {'voters': voters, 'states': states}

    # ========== Row conversion ==========

    def _voter_to_row(self, record: VoterRecord) -> Tuple[Any, ...]:
        keys = self.algorithms.blocking_keys(record.last_name)
        values = [
            record.voter_id,
            record.first_name,
            record.last_name,
            record.date_of_birth,
            record.gender,
            record.residential_address,
            record.city,
            (record.state or '').upper(),
            record.zip,
            record.party_affiliation,
            record.registration_date,
            record.voter_status,
        ]
        values.extend(record.vote_history.get(name, '') for name in ELECTION_FIELDS)
        values.extend([
            normalize_name(record.last_name),
            keys[0] if keys else None,
            keys[1] if len(keys) > 1 else None,
            normalize_zip(record.zip),
        ])
        return tuple(values)

    @staticmethod
    def _row_to_voter(row: sqlite3.Row) -> VoterRecord:
        return VoterRecord(
            voter_id=row['voter_id'],
            first_name=row['first_name'],
            last_name=row['last_name'],
            date_of_birth=row['date_of_birth'] or '',
            gender=row['gender'] or 'U',
            residential_address=row['residential_address'] or '',
            city=row['city'] or '',
            state=row['state'] or '',
            zip=row['zip'] or '',
            party_affiliation=row['party_affiliation'] or '',
            registration_date=row['registration_date'] or '',
            voter_status=row['voter_status'] or '',
            vote_history={name: row[name.lower()] for name in ELECTION_FIELDS},
        )
