"""Reconciliation engine components."""

from .matching import MatchingEngine, CandidateScore
from .linker import Linker
from .auto_match import AutoMatchScheduler
from .aggregator import Aggregator

__all__ = [
    "MatchingEngine",
    "CandidateScore",
    "Linker",
    "AutoMatchScheduler",
    "Aggregator",
]
