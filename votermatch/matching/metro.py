"""
City and metro-area resolution.

Volunteers often enter a neighborhood or borough ("Forest Hills",
"Queens") where the voter file has the municipality ("New York"). The
resolver maps both onto a metro area using the alias table, with the
3-digit zip prefix as a second source.
"""

import logging
from typing import Callable, Optional

from ..data.reference_loader import ReferenceDataLoader, reference_data
from .normalize import normalize_city, normalize_zip

logger = logging.getLogger(__name__)

# Scores for each rule of get_city_match_score
EXACT_CITY_SCORE = 1.0
SAME_METRO_SCORE = 0.95
SAME_PREFIX_METRO_SCORE = 0.85
PREFIX_METRO_SCORE = 0.80
SAME_PREFIX_SCORE = 0.5
EXACT_ZIP_SCORE = 0.85


class MetroResolver:
    """Resolves cities and zip codes to metro areas and scores city agreement."""

    def __init__(self, data: Optional[ReferenceDataLoader] = None):
        """
        Initialize the resolver.

        Args:
            data: Reference tables (defaults to the packaged ones)
        """
        self.data = data or reference_data

    def _zip_metro(self, zip_code: str) -> Optional[str]:
        if len(zip_code) < 3:
            return None
        return self.data.metro_for_zip_prefix(zip_code[:3])

    def get_metro_area(self, city: Optional[str], zip_code: Optional[str] = None) -> Optional[str]:
        """
        Resolve a city name to its metro area.

        The alias table is checked first. A neighborhood name shared by
        several metros is settled by the zip prefix when possible. An
        unrecognized city falls back to the zip prefix alone.

        Args:
            city: City, neighborhood or borough name
            zip_code: Optional zip code

        Returns:
            Canonical metro name, or None if it cannot be resolved
        """
        normalized = normalize_city(city)
        zip_metro = self._zip_metro(normalize_zip(zip_code))

        owners = self.data.metros_for_alias(normalized) if normalized else ()
        if len(owners) == 1 or (owners and owners[0] == normalized):
            return owners[0]
        if owners:
            if zip_metro in owners:
                return zip_metro
            logger.debug(f"'{normalized}' belongs to several metros: {owners}")
            return None

        return zip_metro

    def cities_match(self, city1: Optional[str], city2: Optional[str],
                     zip1: Optional[str] = None, zip2: Optional[str] = None) -> bool:
        """True if the two cities are the same place or in the same metro area."""
        c1, c2 = normalize_city(city1), normalize_city(city2)
        if c1 and c1 == c2:
            return True

        metro1 = self.get_metro_area(city1, zip1)
        metro2 = self.get_metro_area(city2, zip2)
        return metro1 is not None and metro1 == metro2

    def get_city_match_score(
        self,
        city1: Optional[str],
        city2: Optional[str],
        zip1: Optional[str] = None,
        zip2: Optional[str] = None,
        similarity: Optional[Callable[[str, str], float]] = None
    ) -> float:
        """
        Score how well two locations agree (0.0-1.0).

        Rules, first hit wins:
        - 1.0  exact city name
        - 0.95 same metro area via the alias table (Queens + NYC)
        - 0.85 exact zip
        - 0.85 same zip prefix, and the prefix maps to a metro
        - 0.80 different zip prefixes of the same metro
        - 0.5  same zip prefix without a metro mapping
        - string similarity of the city names, discounted
        - 0.0 otherwise

        City rules need both cities; prefix rules need two zips of at least
        three characters.

        Args:
            city1: City of the first location
            city2: City of the second location
            zip1: Zip of the first location
            zip2: Zip of the second location
            similarity: Optional string similarity function (0.0-1.0)

        Returns:
            Match score
        """
        c1, c2 = normalize_city(city1), normalize_city(city2)
        z1, z2 = normalize_zip(zip1), normalize_zip(zip2)
        have_cities = bool(c1 and c2)

        if have_cities:
            if c1 == c2:
                return EXACT_CITY_SCORE

            shared = set(self.data.metros_for_alias(c1)) & set(self.data.metros_for_alias(c2))
            if shared:
                return SAME_METRO_SCORE

        # An exact zip outranks any prefix rule
        if z1 and z1 == z2:
            return EXACT_ZIP_SCORE

        if len(z1) >= 3 and len(z2) >= 3:
            prefix1, prefix2 = z1[:3], z2[:3]
            metro1 = self.data.metro_for_zip_prefix(prefix1)
            metro2 = self.data.metro_for_zip_prefix(prefix2)

            if prefix1 == prefix2:
                return SAME_PREFIX_METRO_SCORE if metro1 else SAME_PREFIX_SCORE

            if metro1 and metro1 == metro2:
                return PREFIX_METRO_SCORE

        if have_cities and similarity is not None:
            score = similarity(c1, c2)
            if score > 0.92:
                return score * 0.9  # typos
            if score > 0.80:
                return score * 0.7

        return 0.0


# Shared resolver over the packaged tables
default_resolver = MetroResolver()


def get_metro_area(city: Optional[str], zip_code: Optional[str] = None) -> Optional[str]:
    """Resolve a city to its metro area using the packaged tables."""
    return default_resolver.get_metro_area(city, zip_code)


def cities_match(city1: Optional[str], city2: Optional[str],
                 zip1: Optional[str] = None, zip2: Optional[str] = None) -> bool:
    """True if two cities are in the same metro area (packaged tables)."""
    return default_resolver.cities_match(city1, city2, zip1, zip2)


def get_city_match_score(city1, city2, zip1=None, zip2=None, similarity=None) -> float:
    """City match score using the packaged tables."""
    return default_resolver.get_city_match_score(city1, city2, zip1, zip2, similarity)
