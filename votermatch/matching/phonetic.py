"""
Phonetic encoding and string similarity for names.

``NameAlgorithms`` bundles double metaphone (blocking keys) with
Jaro-Winkler and trigram similarity (scoring). It holds no state, so one
instance is built at startup and shared by every worker thread.
"""

from typing import FrozenSet, Tuple

import phonetics
from rapidfuzz.distance import JaroWinkler

from .normalize import normalize_name

# Names shorter than this are blocked on the exact string instead
MIN_PHONETIC_LENGTH = 2


class NameAlgorithms:
    """Phonetic codes and similarity measures used by retrieval and scoring."""

    __slots__ = ()

    def double_metaphone(self, name: str) -> Tuple[str, ...]:
        """
        Get the Double Metaphone codes of a name.

        Args:
            name: Name to encode

        Returns:
            Primary code and, when it differs, the alternate code
        """
        letters = ''.join(c for c in normalize_name(name) if c.isalpha())
        if not letters:
            return ()

        codes = phonetics.dmetaphone(letters.upper())
        return tuple(dict.fromkeys(code for code in codes if code))

    def blocking_keys(self, last_name: str) -> Tuple[str, ...]:
        """
        Keys a last name is blocked under.

        The Double Metaphone codes, or the normalized name itself when the
        name is too short or yields no code.
        """
        normalized = normalize_name(last_name)
        if not normalized:
            return ()

        letters = ''.join(c for c in normalized if c.isalpha())
        if len(letters) < MIN_PHONETIC_LENGTH:
            return (normalized,)

        return self.double_metaphone(normalized) or (normalized,)

    def sounds_alike(self, name1: str, name2: str) -> bool:
        """True if the two names share a Double Metaphone code."""
        return bool(set(self.double_metaphone(name1)) & set(self.double_metaphone(name2)))

    def jaro_winkler(self, s1: str, s2: str) -> float:
        """Jaro-Winkler similarity (0.0-1.0); 0.0 if either string is empty."""
        if not s1 or not s2:
            return 0.0
        return JaroWinkler.similarity(s1, s2)

    def trigram_similarity(self, s1: str, s2: str) -> float:
        """
        Trigram similarity in the style of PostgreSQL's pg_trgm.

        Each word is padded with two leading spaces and one trailing space;
        the score is shared trigrams over all distinct trigrams.
        """
        t1 = self.trigrams(s1)
        t2 = self.trigrams(s2)
        if not t1 or not t2:
            return 0.0
        return len(t1 & t2) / len(t1 | t2)

    @staticmethod
    def trigrams(text: str) -> FrozenSet[str]:
        grams = set()
        for word in normalize_name(text).split():
            padded = f"  {word} "
            grams.update(padded[i:i + 3] for i in range(len(padded) - 2))
        return frozenset(grams)
