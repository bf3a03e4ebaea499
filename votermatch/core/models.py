"""Data models for person entries and voter-file records."""

import hashlib
import json
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, Mapping

# Election history columns, most recent general elections first
ELECTION_FIELDS = ('VH2024G', 'VH2022G', 'VH2020G', 'VH2024P', 'VH2022P', 'VH2020P')

# Y = in person, A = absentee, E = early, N = did not vote, '' = unknown
VOTE_VALUES = frozenset({'Y', 'A', 'E', 'N', ''})

AGE_RANGES = ('under-25', '25-34', '35-44', '45-54', '55-64', '65+')

RELATIONSHIP_CATEGORIES = (
    'household',
    'close-family',
    'extended-family',
    'best-friends',
    'close-friends',
    'neighbors',
    'coworkers',
    'faith-community',
    'school-pta',
    'sports-recreation',
    'hobby-groups',
    'community-regulars',
    'recent-meals',
    'who-did-we-miss',
)


def clean_vote_value(value: Optional[str]) -> str:
    """Coerce a stored vote-history flag to one of Y/A/E/N/''."""
    value = (value or '').strip().upper()
    return value if value in VOTE_VALUES else ''


def clean_vote_history(history: Optional[Mapping[str, Optional[str]]]) -> Dict[str, str]:
    """Return all six election flags, unknown or missing ones as ''."""
    history = history or {}
    return {name: clean_vote_value(history.get(name)) for name in ELECTION_FIELDS}


@dataclass(frozen=True)
class PersonEntry:
    """A contact entered by a volunteer, to be matched against the voter file."""
    id: str
    first_name: str
    last_name: str
    city: Optional[str] = None
    zip: Optional[str] = None
    age: Optional[int] = None
    age_range: Optional[str] = None
    gender: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    category: str = 'who-did-we-miss'
    created_at: Optional[float] = None

    def __post_init__(self):
        if self.age_range is not None and self.age_range not in AGE_RANGES:
            raise ValueError(f"Unknown age range: {self.age_range!r}")

    def fingerprint(self) -> str:
        """Stable hash of the fields that influence matching."""
        relevant = {
            'first_name': self.first_name,
            'last_name': self.last_name,
            'city': self.city,
            'zip': self.zip,
            'age': self.age,
            'age_range': self.age_range,
            'gender': self.gender,
            'address': self.address,
        }
        payload = json.dumps(relevant, sort_keys=True)
        return hashlib.sha256(payload.encode('utf-8')).hexdigest()

    def full_name(self) -> str:
        """Return formatted full name."""
        return ' '.join(p for p in (self.first_name, self.last_name) if p) or 'Unknown'


@dataclass(frozen=True)
class SafeVoterRecord:
    """
    Voter record as exposed outside the matching layer.

    The internal voter id and the full date of birth are never included;
    only the birth year is.
    """
    first_name: str
    last_name: str
    birth_year: Optional[int] = None
    gender: str = 'U'
    residential_address: str = ''
    city: str = ''
    state: str = ''
    zip: str = ''
    party_affiliation: str = ''
    registration_date: str = ''
    voter_status: str = ''
    vote_history: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        # Always carry all six flags
        object.__setattr__(self, 'vote_history', clean_vote_history(self.vote_history))

    def __hash__(self):
        return hash((self.first_name, self.last_name, self.birth_year, self.gender,
                     self.residential_address, self.city, self.state, self.zip,
                     tuple(self.vote_history[f] for f in ELECTION_FIELDS)))

    def full_name(self) -> str:
        """Return formatted full name."""
        return ' '.join(p for p in (self.first_name, self.last_name) if p) or 'Unknown'

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result = asdict(self)
        result['vote_history'] = dict(self.vote_history)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SafeVoterRecord':
        """Create from dictionary."""
        values = dict(data)
        # Never accept the private fields back in
        values.pop('voter_id', None)
        values.pop('date_of_birth', None)
        birth_year = values.get('birth_year')
        values['birth_year'] = int(birth_year) if birth_year not in (None, '') else None
        return cls(**values)


@dataclass
class VoterRecord:
    """Authoritative voter-file record. Stays inside the matching layer."""
    voter_id: str
    first_name: str
    last_name: str
    date_of_birth: str = ''
    gender: str = 'U'
    residential_address: str = ''
    city: str = ''
    state: str = ''
    zip: str = ''
    party_affiliation: str = 'UNR'
    registration_date: str = ''
    voter_status: str = 'Active'
    vote_history: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.vote_history = clean_vote_history(self.vote_history)
        self.gender = (self.gender or 'U').strip().upper() or 'U'

    @property
    def birth_year(self) -> Optional[int]:
        """Year part of the date of birth (YYYY-MM-DD), if parseable."""
        dob = (self.date_of_birth or '').strip()
        if len(dob) >= 4 and dob[:4].isdigit():
            return int(dob[:4])
        return None

    def to_safe(self) -> SafeVoterRecord:
        """Project to the record form that may leave the matching layer."""
        return SafeVoterRecord(
            first_name=self.first_name,
            last_name=self.last_name,
            birth_year=self.birth_year,
            gender=self.gender,
            residential_address=self.residential_address,
            city=self.city,
            state=self.state,
            zip=self.zip,
            party_affiliation=self.party_affiliation,
            registration_date=self.registration_date,
            voter_status=self.voter_status,
            vote_history=dict(self.vote_history),
        )
