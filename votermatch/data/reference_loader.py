"""
Reference data loader for nickname equivalences and metro-area aliases.

This module loads the static lookup tables used by the matching engine:
informal-to-formal first names, neighborhood/borough aliases for each metro
area, and 3-digit zip prefixes for the same metros. Tables are read once and
exposed through read-only lookups.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetroArea:
    """A metro area with all of its known aliases."""
    canonical: str
    aliases: FrozenSet[str] = field(default_factory=frozenset)
    zip_prefixes: FrozenSet[str] = field(default_factory=frozenset)

    def get_all_names(self) -> FrozenSet[str]:
        """Every name that resolves to this metro, including its own."""
        return self.aliases | {self.canonical}


class ReferenceDataLoader:
    """Loads and indexes the nickname and metro-area reference tables."""

    def __init__(self, data_dir: Optional[Path] = None):
        """
        Initialize the reference data loader.

        Args:
            data_dir: Directory holding ``nicknames.json`` and
                ``metro_areas.json`` (defaults to this package directory)
        """
        self.data_dir = Path(data_dir) if data_dir else Path(__file__).parent

        nicknames, formal_to_informal = self._load_nicknames()
        metros, alias_lookup, zip_lookup = self._load_metro_areas()

        self._nicknames: Mapping[str, FrozenSet[str]] = MappingProxyType(nicknames)
        self._formal_to_informal: Mapping[str, FrozenSet[str]] = MappingProxyType(formal_to_informal)
        self._metros: Mapping[str, MetroArea] = MappingProxyType(metros)
        self._alias_lookup: Mapping[str, Tuple[str, ...]] = MappingProxyType(alias_lookup)
        self._zip_lookup: Mapping[str, str] = MappingProxyType(zip_lookup)

    def _read_json(self, filename: str) -> dict:
        path = self.data_dir / filename

        if not path.exists():
            logger.warning(f"Reference data file not found: {path}")
            return {}

        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def _load_nicknames(self) -> Tuple[Dict[str, FrozenSet[str]], Dict[str, FrozenSet[str]]]:
        """Load the informal -> formal first-name table and its reverse."""
        data = self._read_json('nicknames.json')

        nicknames: Dict[str, FrozenSet[str]] = {}
        reverse: Dict[str, set] = {}

        for informal, formals in data.get('nicknames', {}).items():
            key = informal.lower().strip()
            values = frozenset(f.lower().strip() for f in formals)
            nicknames[key] = nicknames.get(key, frozenset()) | values

            for formal in values:
                reverse.setdefault(formal, set()).add(key)

        return nicknames, {k: frozenset(v) for k, v in reverse.items()}

    def _load_metro_areas(self):
        """Load metro aliases and zip prefixes, building reverse lookups."""
        data = self._read_json('metro_areas.json')

        prefixes_by_metro: Dict[str, set] = {}
        zip_lookup: Dict[str, str] = {}
        for prefix, metro in data.get('zip_prefixes', {}).items():
            metro = metro.lower().strip()
            zip_lookup[prefix.strip()] = metro
            prefixes_by_metro.setdefault(metro, set()).add(prefix.strip())

        metros: Dict[str, MetroArea] = {}
        alias_lookup: Dict[str, List[str]] = {}

        for canonical, aliases in data.get('aliases', {}).items():
            canonical = canonical.lower().strip()
            metro = MetroArea(
                canonical=canonical,
                aliases=frozenset(a.lower().strip() for a in aliases),
                zip_prefixes=frozenset(prefixes_by_metro.get(canonical, ())),
            )
            metros[canonical] = metro

            for name in metro.get_all_names():
                owners = alias_lookup.setdefault(name, [])
                if canonical not in owners:
                    owners.append(canonical)

        # A metro's own name always resolves to itself first
        for canonical in metros:
            owners = alias_lookup[canonical]
            owners.remove(canonical)
            owners.insert(0, canonical)

        return metros, {k: tuple(v) for k, v in alias_lookup.items()}, zip_lookup

    @property
    def nicknames(self) -> Mapping[str, FrozenSet[str]]:
        """Informal name -> formal names."""
        return self._nicknames

    @property
    def metros(self) -> Mapping[str, MetroArea]:
        """Canonical metro name -> MetroArea."""
        return self._metros

    def formal_names_for(self, name: str) -> FrozenSet[str]:
        """Formal names an informal name stands for (e.g. "bob" -> {"robert"})."""
        return self._nicknames.get(name, frozenset())

    def informal_names_for(self, name: str) -> FrozenSet[str]:
        """Informal names whose formal set contains ``name``."""
        return self._formal_to_informal.get(name, frozenset())

    def metros_for_alias(self, name: str) -> Tuple[str, ...]:
        """
        Metro areas a city/neighborhood/borough name belongs to.

        Some neighborhood names ("midtown", "chinatown") exist in several
        metros, so more than one metro can be returned. An exact metro name
        always comes first.
        """
        return self._alias_lookup.get(name, ())

    def metro_for_zip_prefix(self, prefix: str) -> Optional[str]:
        """Metro area for a 3-digit zip prefix, if known."""
        return self._zip_lookup.get(prefix)


# Loaded once at import; the tables are read-only afterwards
reference_data = ReferenceDataLoader()
