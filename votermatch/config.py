"""Configuration for candidate retrieval, scoring and classification."""

import json
import logging
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any, Dict, Optional

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchingConfig:
    """Options for the matching engine."""

    # Confidence thresholds (0.0-1.0)
    high_confidence_threshold: float = 0.90
    medium_confidence_threshold: float = 0.70
    low_cutoff: float = 0.55

    # Minimum gap between the best and second-best score to auto-confirm
    ambiguity_margin: float = 0.05

    max_candidates_per_person: int = 3

    # Retrieval bounds
    tier_limit: int = 200
    max_retrieved_candidates: int = 500
    fuzzy_similarity_floor: float = 0.3

    # Batch execution
    max_workers: int = 4

    # Composite score weights, renormalized over the sub-scores present
    scoring_weights: Dict[str, float] = field(default_factory=lambda: {
        'name': 0.55,
        'geography': 0.20,
        'age': 0.12,
        'gender': 0.05,
        'address': 0.08,
    })

    # Year used to turn ages into birth years (None = current year)
    current_year: Optional[int] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ConfigurationError when the options are inconsistent."""
        if not (0.0 <= self.low_cutoff <= self.medium_confidence_threshold
                <= self.high_confidence_threshold <= 1.0):
            raise ConfigurationError(
                "Thresholds must satisfy 0 <= low_cutoff <= medium <= high <= 1 "
                f"(got {self.low_cutoff}, {self.medium_confidence_threshold}, "
                f"{self.high_confidence_threshold})"
            )

        if self.ambiguity_margin < 0:
            raise ConfigurationError("ambiguity_margin must be >= 0")

        for name in ('max_candidates_per_person', 'tier_limit',
                     'max_retrieved_candidates', 'max_workers'):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be a positive integer")

        if not 0.0 <= self.fuzzy_similarity_floor < 1.0:
            raise ConfigurationError("fuzzy_similarity_floor must be in [0, 1)")

        unknown = set(self.scoring_weights) - {'name', 'geography', 'age', 'gender', 'address'}
        if unknown:
            raise ConfigurationError(f"Unknown scoring weights: {sorted(unknown)}")
        if any(w < 0 for w in self.scoring_weights.values()) or not self.scoring_weights.get('name'):
            raise ConfigurationError("Scoring weights must be >= 0 and include a positive 'name' weight")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MatchingConfig':
        """Create from a dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        ignored = set(data) - known
        if ignored:
            logger.warning(f"Ignoring unknown config keys: {sorted(ignored)}")

        values = {k: v for k, v in data.items() if k in known}
        if 'scoring_weights' in values:
            weights = dict(cls().scoring_weights)
            weights.update(values['scoring_weights'])
            values['scoring_weights'] = weights

        return cls(**values)


def load_config(path: str | Path) -> MatchingConfig:
    """
    Load matching options from a JSON file.

    Args:
        path: JSON file with any subset of MatchingConfig fields

    Returns:
        MatchingConfig with the file's values over the defaults
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object")

    return MatchingConfig.from_dict(data)


# Global configuration instance
default_config = MatchingConfig()
