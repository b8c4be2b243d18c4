from dataclasses import dataclass
from enum import Enum
from typing import Literal


class ConfigurationError(ValueError):
    """Raised when a match configuration or rule parameter is invalid."""


class Side(str, Enum):
    A = "A"
    B = "B"

    @property
    def other(self) -> "Side":
        return Side.B if self is Side.A else Side.A


def parse_side(value: object) -> Side | None:
    if isinstance(value, Side):
        return value
    if isinstance(value, str):
        try:
            return Side(value.strip().upper())
        except ValueError:
            return None
    return None


BEST_OF_CHOICES = (1, 3, 5)
RuleName = Literal["standard", "first_to_n_games", "fast_set", "final"]


def _check_best_of(best_of_sets: int) -> None:
    if isinstance(best_of_sets, bool) or best_of_sets not in BEST_OF_CHOICES:
        raise ConfigurationError(f"best_of_sets must be one of {BEST_OF_CHOICES}, got {best_of_sets!r}.")


# Every rule exposes the same attributes so that the scoring functions can stay
# rule-agnostic:
#   games_target / set_win_by        -> plain game race for the set
#   tiebreak_at                      -> games-all score that starts a tiebreak
#   tiebreak_target / _win_by / _cap -> tiebreak completion
#   no_ad                            -> point ladder without deuce


@dataclass(frozen=True)
class Standard:
    best_of_sets: int = 3

    name = "standard"
    no_ad = False
    games_target = 6
    set_win_by = 2
    tiebreak_at = 6
    tiebreak_target = 7
    tiebreak_win_by = 2
    tiebreak_cap = None

    def __post_init__(self) -> None:
        _check_best_of(self.best_of_sets)

    @property
    def sets_to_win(self) -> int:
        return self.best_of_sets // 2 + 1

    @property
    def label(self) -> str:
        return f"Standard (best of {self.best_of_sets})"


@dataclass(frozen=True)
class FirstToNGames:
    games_target: int = 4

    name = "first_to_n_games"
    no_ad = False
    best_of_sets = 1
    set_win_by = 1
    tiebreak_at = None
    tiebreak_target = None
    tiebreak_win_by = None
    tiebreak_cap = None

    def __post_init__(self) -> None:
        if isinstance(self.games_target, bool) or not isinstance(self.games_target, int):
            raise ConfigurationError(f"games_target must be an integer, got {self.games_target!r}.")
        if not 1 <= self.games_target <= 6:
            raise ConfigurationError(f"games_target must be between 1 and 6, got {self.games_target}.")

    @property
    def sets_to_win(self) -> int:
        return 1

    @property
    def label(self) -> str:
        return f"First to {self.games_target} games"


@dataclass(frozen=True)
class FastSet:
    """Fast4 format for qualifiers and semifinals.

    Games to 4 with no-ad points and a tiebreak at 3-3. The tiebreak is first
    to ``tiebreak_target`` points with a ``tiebreak_win_by`` margin; the
    defaults (5, win by 1) give the same outcomes as "4-4, next point wins".
    """

    best_of_sets: int = 1
    tiebreak_target: int = 5
    tiebreak_win_by: int = 1

    name = "fast_set"
    no_ad = True
    games_target = 4
    set_win_by = 1
    tiebreak_at = 3
    tiebreak_cap = None

    def __post_init__(self) -> None:
        _check_best_of(self.best_of_sets)
        for field_name in ("tiebreak_target", "tiebreak_win_by"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{field_name} must be an integer, got {value!r}.")
        if self.tiebreak_target < 1:
            raise ConfigurationError("tiebreak_target must be positive.")
        if not 1 <= self.tiebreak_win_by <= 2:
            raise ConfigurationError("tiebreak_win_by must be 1 or 2.")

    @property
    def sets_to_win(self) -> int:
        return self.best_of_sets // 2 + 1

    @property
    def label(self) -> str:
        return f"Fast4 (best of {self.best_of_sets})"


@dataclass(frozen=True)
class Final:
    """Finals variant of the fast rule: full 6-game sets, capped tiebreak."""

    best_of_sets: int = 1
    no_ad: bool = True

    name = "final"
    games_target = 6
    set_win_by = 2
    tiebreak_at = 6
    tiebreak_target = 7
    tiebreak_win_by = 2
    # Once both sides reach this many tiebreak points the next point wins.
    tiebreak_cap = 10

    def __post_init__(self) -> None:
        _check_best_of(self.best_of_sets)

    @property
    def sets_to_win(self) -> int:
        return self.best_of_sets // 2 + 1

    @property
    def label(self) -> str:
        return f"Final (best of {self.best_of_sets})"


RuleSet = Standard | FirstToNGames | FastSet | Final

RULE_NAMES: tuple[str, ...] = ("standard", "first_to_n_games", "fast_set", "final")


def build_rule(name: str, parameter: int | None = None) -> RuleSet:
    """Build a rule from its name and its single caller-supplied parameter.

    The parameter is ``best_of_sets`` for every rule except
    ``first_to_n_games``, where it is the games target.
    """
    if name == "standard":
        return Standard() if parameter is None else Standard(best_of_sets=parameter)
    if name == "first_to_n_games":
        return FirstToNGames() if parameter is None else FirstToNGames(games_target=parameter)
    if name == "fast_set":
        return FastSet() if parameter is None else FastSet(best_of_sets=parameter)
    if name == "final":
        return Final() if parameter is None else Final(best_of_sets=parameter)
    raise ConfigurationError(f"Unknown rule set {name!r}; expected one of {', '.join(RULE_NAMES)}.")


@dataclass(frozen=True)
class MatchConfig:
    side_a: str
    side_b: str
    rule_set: RuleSet
    starting_server: Side = Side.A

    def __post_init__(self) -> None:
        side_a = " ".join((self.side_a or "").split())
        side_b = " ".join((self.side_b or "").split())
        if not side_a or not side_b:
            raise ConfigurationError("Both sides need a name.")
        if side_a.casefold() == side_b.casefold():
            raise ConfigurationError("A side cannot play itself.")
        if not isinstance(self.rule_set, (Standard, FirstToNGames, FastSet, Final)):
            raise ConfigurationError(f"Unsupported rule set: {self.rule_set!r}.")

        server = parse_side(self.starting_server)
        if server is None:
            raise ConfigurationError(f"starting_server must be 'A' or 'B', got {self.starting_server!r}.")

        object.__setattr__(self, "side_a", side_a)
        object.__setattr__(self, "side_b", side_b)
        object.__setattr__(self, "starting_server", server)

    def name_of(self, side: Side) -> str:
        return self.side_a if side is Side.A else self.side_b
