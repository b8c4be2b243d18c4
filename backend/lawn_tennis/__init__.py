"""Live scoring for lawn-tennis tournament matches."""

from .rules import ConfigurationError, FastSet, Final, FirstToNGames, MatchConfig, Side, Standard, build_rule
from .scoring import MatchState, PointValue, ScoringEngine, SetState

__all__ = [
    "ConfigurationError",
    "FastSet",
    "Final",
    "FirstToNGames",
    "MatchConfig",
    "MatchState",
    "PointValue",
    "ScoringEngine",
    "SetState",
    "Side",
    "Standard",
    "build_rule",
]
