"""
Voter matching engine.

This module provides candidate retrieval (blocking), similarity scoring and
confidence classification for matching person entries to voter records,
using nickname expansion, phonetic keys and fuzzy string matching.
"""

from .matcher import VoterMatcher
from .scorer import SimilarityScorer
from .classifier import ConfidenceClassifier
from .retriever import CandidateRetriever, RetrievalResult
from .phonetic import NameAlgorithms
from .metro import MetroResolver

__all__ = [
    'VoterMatcher',
    'SimilarityScorer',
    'ConfidenceClassifier',
    'CandidateRetriever',
    'RetrievalResult',
    'NameAlgorithms',
    'MetroResolver',
]
