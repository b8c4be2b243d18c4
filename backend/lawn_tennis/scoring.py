"""Match scoring state machine.

The state of a match is an immutable ``MatchState`` value. The module level
functions (``award_point``, ``force_server_swap``, ``reset_game_points``,
``swap_ends``) take a state and a rule and return the next state, so a match
can be replayed deterministically from its point sequence.

``ScoringEngine`` wraps one match: it owns the current state, ignores input it
cannot use, and hands the final ``MatchResult`` to a result sink exactly once.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

from . import schemas
from .rules import MatchConfig, RuleSet, Side, parse_side

logger = logging.getLogger(__name__)

ResultSink = Callable[[schemas.MatchResult], object]


class PointValue(Enum):
    LOVE = "0"
    FIFTEEN = "15"
    THIRTY = "30"
    FORTY = "40"
    ADVANTAGE = "AD"
    GAME = "GAME"


_LADDER = {
    PointValue.LOVE: PointValue.FIFTEEN,
    PointValue.FIFTEEN: PointValue.THIRTY,
    PointValue.THIRTY: PointValue.FORTY,
}

LOVE_ALL = (PointValue.LOVE, PointValue.LOVE)


@dataclass(frozen=True)
class SetState:
    games_a: int = 0
    games_b: int = 0
    in_tiebreak: bool = False
    tiebreak_points_a: int = 0
    tiebreak_points_b: int = 0
    tiebreak_starting_server: Side | None = None
    finished: bool = False
    winner: Side | None = None

    def games(self, side: Side) -> int:
        return self.games_a if side is Side.A else self.games_b

    def tiebreak_points(self, side: Side) -> int:
        return self.tiebreak_points_a if side is Side.A else self.tiebreak_points_b

    @property
    def tiebreak_played(self) -> bool:
        return self.tiebreak_starting_server is not None


@dataclass(frozen=True)
class MatchState:
    server: Side
    points: tuple[PointValue, PointValue] = LOVE_ALL
    sets: tuple[SetState, ...] = (SetState(),)
    sides_swapped: bool = False
    complete: bool = False
    winner: Side | None = None

    @property
    def current_set(self) -> SetState:
        return self.sets[-1]

    def sets_won(self, side: Side) -> int:
        return sum(1 for set_state in self.sets if set_state.finished and set_state.winner is side)


def initial_state(starting_server: Side) -> MatchState:
    return MatchState(server=starting_server)


# ---------------------------------------------------------------------------
# Point, game and set policy
# ---------------------------------------------------------------------------


def advance_points(
    points: tuple[PointValue, PointValue],
    side: Side,
    no_ad: bool,
) -> tuple[PointValue, PointValue]:
    """Apply one point to the game ladder.

    Returns the new pair of point values; the scorer's value is
    ``PointValue.GAME`` when the point won the game.
    """
    index = 0 if side is Side.A else 1
    scorer = points[index]
    opponent = points[1 - index]

    if scorer in _LADDER:
        scorer = _LADDER[scorer]
    elif scorer is PointValue.FORTY:
        if no_ad:
            scorer = PointValue.GAME
        elif opponent is PointValue.FORTY:
            scorer = PointValue.ADVANTAGE
        elif opponent is PointValue.ADVANTAGE:
            # Back to deuce.
            opponent = PointValue.FORTY
        else:
            scorer = PointValue.GAME
    elif scorer is PointValue.ADVANTAGE:
        scorer = PointValue.GAME
    else:
        raise ValueError(f"Cannot advance from {scorer!r}.")

    return (scorer, opponent) if index == 0 else (opponent, scorer)


TIEBREAK = "tiebreak"


def set_decision(rule: RuleSet, games_a: int, games_b: int) -> Side | str | None:
    """Decide the set after a game: a winning side, ``TIEBREAK`` or ``None``."""
    if rule.tiebreak_at is not None and games_a == games_b == rule.tiebreak_at:
        return TIEBREAK

    high = max(games_a, games_b)
    low = min(games_a, games_b)
    if high >= rule.games_target and high - low >= rule.set_win_by:
        return Side.A if games_a > games_b else Side.B
    return None


def tiebreak_decision(rule: RuleSet, points_a: int, points_b: int) -> Side | None:
    high = max(points_a, points_b)
    low = min(points_a, points_b)
    if high == low:
        return None

    leader = Side.A if points_a > points_b else Side.B
    if rule.tiebreak_cap is not None and low >= rule.tiebreak_cap:
        return leader
    if high >= rule.tiebreak_target and high - low >= rule.tiebreak_win_by:
        return leader
    return None


def tiebreak_server(set_state: SetState) -> Side:
    """Server for the next tiebreak point: one point first, then two each."""
    starter = set_state.tiebreak_starting_server
    played = set_state.tiebreak_points_a + set_state.tiebreak_points_b
    return starter if ((played + 1) // 2) % 2 == 0 else starter.other


def current_server(state: MatchState) -> Side:
    current = state.current_set
    if current.in_tiebreak:
        return tiebreak_server(current)
    return state.server


def _with_games(set_state: SetState, side: Side) -> SetState:
    if side is Side.A:
        return replace(set_state, games_a=set_state.games_a + 1)
    return replace(set_state, games_b=set_state.games_b + 1)


def _close_set(state: MatchState, finished: SetState, winner: Side, rule: RuleSet, next_server: Side) -> MatchState:
    finished = replace(finished, in_tiebreak=False, finished=True, winner=winner)
    sets = state.sets[:-1] + (finished,)
    state = replace(state, sets=sets, points=LOVE_ALL, server=next_server)

    if state.sets_won(winner) >= rule.sets_to_win:
        return replace(state, complete=True, winner=winner)
    return replace(state, sets=sets + (SetState(),))


def _award_tiebreak_point(state: MatchState, side: Side, rule: RuleSet) -> MatchState:
    current = state.current_set
    if side is Side.A:
        current = replace(current, tiebreak_points_a=current.tiebreak_points_a + 1)
    else:
        current = replace(current, tiebreak_points_b=current.tiebreak_points_b + 1)

    winner = tiebreak_decision(rule, current.tiebreak_points_a, current.tiebreak_points_b)
    if winner is None:
        return replace(state, sets=state.sets[:-1] + (current,))

    # The tiebreak counts as one game for the winner (7-6, 4-3). The side that
    # received first in the tiebreak serves the next game.
    current = _with_games(current, winner)
    return _close_set(state, current, winner, rule, next_server=current.tiebreak_starting_server.other)


def award_point(state: MatchState, side: Side, rule: RuleSet) -> MatchState:
    if state.complete:
        return state

    current = state.current_set
    if current.in_tiebreak:
        return _award_tiebreak_point(state, side, rule)

    points = advance_points(state.points, side, rule.no_ad)
    if PointValue.GAME not in points:
        return replace(state, points=points)

    current = _with_games(current, side)
    next_server = state.server.other
    decision = set_decision(rule, current.games_a, current.games_b)

    if decision is None:
        return replace(state, points=LOVE_ALL, sets=state.sets[:-1] + (current,), server=next_server)

    if decision == TIEBREAK:
        current = replace(
            current,
            in_tiebreak=True,
            tiebreak_points_a=0,
            tiebreak_points_b=0,
            tiebreak_starting_server=next_server,
        )
        return replace(state, points=LOVE_ALL, sets=state.sets[:-1] + (current,), server=next_server)

    return _close_set(state, current, decision, rule, next_server=next_server)


# ---------------------------------------------------------------------------
# Operator corrections
# ---------------------------------------------------------------------------


def force_server_swap(state: MatchState) -> MatchState:
    if state.complete:
        return state

    current = state.current_set
    if current.in_tiebreak:
        current = replace(current, tiebreak_starting_server=current.tiebreak_starting_server.other)
        return replace(state, sets=state.sets[:-1] + (current,), server=state.server.other)
    return replace(state, server=state.server.other)


def reset_game_points(state: MatchState) -> MatchState:
    if state.complete:
        return state

    current = state.current_set
    if current.in_tiebreak:
        current = replace(current, tiebreak_points_a=0, tiebreak_points_b=0)
    return replace(state, points=LOVE_ALL, sets=state.sets[:-1] + (current,))


def swap_ends(state: MatchState) -> MatchState:
    if state.complete:
        return state
    return replace(state, sides_swapped=not state.sides_swapped)


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------


def game_text(state: MatchState, config: MatchConfig) -> str:
    if state.complete:
        return f"Game, set and match {config.name_of(state.winner)}"

    current = state.current_set
    if current.in_tiebreak:
        return f"Tiebreak {current.tiebreak_points_a} - {current.tiebreak_points_b}"

    point_a, point_b = state.points
    if point_a is PointValue.FORTY and point_b is PointValue.FORTY:
        return "Deuce"
    if point_a is PointValue.ADVANTAGE:
        return f"Ad {config.side_a}"
    if point_b is PointValue.ADVANTAGE:
        return f"Ad {config.side_b}"
    return f"{point_a.value} - {point_b.value}"


def format_set_score(set_state: SetState, leading_side: Side) -> str:
    """Render a finished set as ``"w-l"`` from ``leading_side``'s point of view.

    Tiebreak sets carry the tiebreak loser's points: ``"7-6(5)"``.
    """
    games = f"{set_state.games(leading_side)}-{set_state.games(leading_side.other)}"
    if set_state.tiebreak_played:
        loser = set_state.winner.other
        games += f"({set_state.tiebreak_points(loser)})"
    return games


def per_set_scoreline(state: MatchState, leading_side: Side) -> tuple[str, ...]:
    return tuple(format_set_score(s, leading_side) for s in state.sets if s.finished)


def build_snapshot(state: MatchState, config: MatchConfig) -> schemas.ScoreSnapshot:
    return schemas.ScoreSnapshot(
        side_a=config.side_a,
        side_b=config.side_b,
        rule_set=config.rule_set.label,
        points_a=state.points[0].value,
        points_b=state.points[1].value,
        game_text=game_text(state, config),
        sets=tuple(
            schemas.SetSnapshot(
                games_a=s.games_a,
                games_b=s.games_b,
                in_tiebreak=s.in_tiebreak,
                tiebreak_points_a=s.tiebreak_points_a,
                tiebreak_points_b=s.tiebreak_points_b,
                finished=s.finished,
                winner=s.winner,
            )
            for s in state.sets
        ),
        sets_won_a=state.sets_won(Side.A),
        sets_won_b=state.sets_won(Side.B),
        server=current_server(state),
        sides_swapped=state.sides_swapped,
        complete=state.complete,
        winner=state.winner,
    )


def build_result(state: MatchState, config: MatchConfig, completed_at: datetime) -> schemas.MatchResult:
    return schemas.MatchResult(
        side_a=config.side_a,
        side_b=config.side_b,
        rule_set=config.rule_set.label,
        per_set_scoreline=per_set_scoreline(state, state.winner),
        winning_side=state.winner,
        winner_name=config.name_of(state.winner),
        completed_at=completed_at,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScoringEngine:
    """Live scorer for a single match.

    Input the engine cannot use (an unknown side, anything after the match is
    over) is ignored rather than raised, so an operator mis-click never breaks
    a live session. When the match completes, the result is handed to
    ``result_sink`` once; if the sink raises, the error reaches the caller of
    the point that finished the match, the match stays complete and the result
    remains available on ``result`` so the caller can retry persisting it.
    """

    def __init__(
        self,
        config: MatchConfig,
        result_sink: ResultSink | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config
        self.rule = config.rule_set
        self._state = initial_state(config.starting_server)
        self._result_sink = result_sink
        self._clock = clock
        self._result: schemas.MatchResult | None = None

    @property
    def state(self) -> MatchState:
        return self._state

    @property
    def result(self) -> schemas.MatchResult | None:
        return self._result

    # -- queries ----------------------------------------------------------

    def is_match_complete(self) -> bool:
        return self._state.complete

    def current_server(self) -> Side:
        return current_server(self._state)

    def score_snapshot(self) -> schemas.ScoreSnapshot:
        return build_snapshot(self._state, self.config)

    # -- mutations --------------------------------------------------------

    def award_point(self, side: object) -> schemas.ScoreSnapshot:
        parsed = parse_side(side)
        if parsed is None:
            logger.debug("Ignoring point for unknown side %r", side)
            return self.score_snapshot()
        if self._state.complete:
            logger.debug("Ignoring point for %s: match already complete", parsed.value)
            return self.score_snapshot()

        before = self._state
        self._state = award_point(before, parsed, self.rule)

        if len(self._state.sets) > len(before.sets) or self._state.complete:
            finished = self._state.sets[len(before.sets) - 1]
            logger.info(
                "%s vs %s: set %d to %s (%d-%d)",
                self.config.side_a,
                self.config.side_b,
                len(before.sets),
                self.config.name_of(finished.winner),
                finished.games_a,
                finished.games_b,
            )

        if self._state.complete:
            self._complete()

        return self.score_snapshot()

    def force_server_swap(self) -> schemas.ScoreSnapshot:
        self._state = force_server_swap(self._state)
        return self.score_snapshot()

    def reset_game_points(self) -> schemas.ScoreSnapshot:
        self._state = reset_game_points(self._state)
        return self.score_snapshot()

    def swap_ends(self) -> schemas.ScoreSnapshot:
        self._state = swap_ends(self._state)
        return self.score_snapshot()

    def _complete(self) -> None:
        self._result = build_result(self._state, self.config, self._clock())
        logger.info(
            "Match complete: %s def. %s",
            self._result.winner_name,
            self.config.name_of(self._result.winning_side.other),
        )
        if self._result_sink is not None:
            self._result_sink(self._result)
