"""Nickname expansion for first names (Bob <-> Robert, Jim <-> James)."""

from typing import FrozenSet, Optional

from ..data.reference_loader import ReferenceDataLoader, reference_data
from .normalize import normalize_name


def expand_nicknames(first_name: str,
                     data: Optional[ReferenceDataLoader] = None) -> FrozenSet[str]:
    """
    Expand a first name to all of its formal/informal equivalents.

    The result holds the normalized input, the formal names it stands for,
    and every informal name that stands for it. "bob" gives
    {"bob", "robert"}; "robert" gives {"robert", "bob", "bobby", "rob",
    "robbie"}.

    Args:
        first_name: First name as entered
        data: Reference tables (defaults to the packaged ones)

    Returns:
        Set of normalized name forms; empty if the name normalizes to nothing
    """
    data = data or reference_data
    normalized = normalize_name(first_name)
    if not normalized:
        return frozenset()

    return frozenset({normalized}
                     | data.formal_names_for(normalized)
                     | data.informal_names_for(normalized))


def are_nickname_equivalent(name1: str, name2: str,
                            data: Optional[ReferenceDataLoader] = None) -> bool:
    """True if one name is a nickname (or the same name) of the other."""
    n2 = normalize_name(name2)
    return bool(n2) and n2 in expand_nicknames(name1, data)
