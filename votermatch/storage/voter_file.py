"""Reading voter-file exports (CSV) into voter records."""

import csv
import logging
from pathlib import Path
from typing import Iterator

from ..core.models import ELECTION_FIELDS, VoterRecord

logger = logging.getLogger(__name__)

# Other spellings seen in state exports
COLUMN_ALIASES = {
    'voterid': 'voter_id',
    'voter_reg_num': 'voter_id',
    'firstname': 'first_name',
    'lastname': 'last_name',
    'dob': 'date_of_birth',
    'birth_date': 'date_of_birth',
    'sex': 'gender',
    'address': 'residential_address',
    'zip_code': 'zip',
    'zipcode': 'zip',
    'party': 'party_affiliation',
    'status': 'voter_status',
}

TEXT_FIELDS = ('date_of_birth', 'gender', 'residential_address', 'city', 'state',
               'zip', 'party_affiliation', 'registration_date', 'voter_status')


def _column_key(header: str) -> str:
    key = header.strip().lower().replace(' ', '_')
    return COLUMN_ALIASES.get(key, key)


def load_voter_csv(path: str | Path, encoding: str = 'utf-8') -> Iterator[VoterRecord]:
    """
    Read voter records from a CSV file with a header row.

    Column names are matched case-insensitively; the vote-history columns
    are VH2024G ... VH2020P. Rows without a voter id or a last name are
    skipped with a warning.

    Args:
        path: CSV file
        encoding: File encoding

    Yields:
        VoterRecord for each usable row
    """
    path = Path(path)
    skipped = 0
    loaded = 0

    with open(path, 'r', encoding=encoding, newline='') as f:
        reader = csv.DictReader(f)
        for line_no, raw in enumerate(reader, start=2):
            row = {_column_key(k): (v or '').strip() for k, v in raw.items() if k}

            if not row.get('voter_id') or not row.get('last_name'):
                logger.warning(f"{path.name}:{line_no}: missing voter id or last name, skipped")
                skipped += 1
                continue

            values = {name: row[name] for name in TEXT_FIELDS if row.get(name)}
            yield VoterRecord(
                voter_id=row['voter_id'],
                first_name=row.get('first_name', ''),
                last_name=row['last_name'],
                vote_history={name: row.get(name.lower(), '') for name in ELECTION_FIELDS},
                **values,
            )
            loaded += 1

    logger.info(f"Read {loaded} voter records from {path} ({skipped} skipped)")
