"""Query contract every voter reference store implements."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..cancellation import CancellationToken
from ..core.models import VoterRecord


class ReferenceStore(ABC):
    """
    Read-only, indexed access to the voter file.

    Names passed in are already normalized (see ``normalize_name``);
    states are compared case-insensitively. Every query is bounded by
    ``limit``. Implementations must be safe to call from several threads.
    """

    # Upper bound on concurrent queries (None = unbounded)
    max_concurrency: Optional[int] = None

    @abstractmethod
    def find_by_last_name(self, last_name: str, state: str, limit: int,
                          zip_code: Optional[str] = None,
                          token: Optional[CancellationToken] = None) -> List[VoterRecord]:
        """
        Records with this exact normalized last name in a state.

        Records in ``zip_code`` come first when it is given.
        """

    @abstractmethod
    def find_by_phonetic_code(self, code: str, state: str, limit: int,
                              token: Optional[CancellationToken] = None) -> List[VoterRecord]:
        """Records whose last name has ``code`` as a primary or alternate blocking key."""

    @abstractmethod
    def find_fuzzy_last_name(self, last_name: str, state: str, limit: int,
                             min_similarity: float,
                             token: Optional[CancellationToken] = None) -> List[VoterRecord]:
        """
        Records whose last name has trigram similarity above ``min_similarity``.

        Best match first. Only meaningful when ``has_fuzzy_index()`` is True.
        """

    @abstractmethod
    def find_by_zip(self, zip_code: str, state: str, limit: int,
                    token: Optional[CancellationToken] = None) -> List[VoterRecord]:
        """Records in a 5-digit zip code."""

    @abstractmethod
    def has_fuzzy_index(self) -> bool:
        """True if ``find_fuzzy_last_name`` is backed by an index."""

    @abstractmethod
    def ping(self) -> None:
        """Raise MatchingUnavailableError if the store cannot serve queries."""
