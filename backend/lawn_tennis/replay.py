"""Replay a point sequence through the scoring engine.

Example::

    python -m lawn_tennis.replay --side-a Nadal --side-b Federer \\
        --rule fast_set AAAABBBBAAAA

Each character of the sequence is the side that won the point (``A`` or
``B``); other characters (spaces, dashes) are skipped. With ``--record`` the
final result is stored in the tournament database; ``--fixture ID`` scores a
stored fixture instead and completes it with the result.
"""

from __future__ import annotations

import argparse
import logging
import os

from . import crud, schemas, serializers
from .rules import RULE_NAMES, ConfigurationError, MatchConfig, Side, build_rule
from .scoring import ScoringEngine


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay a tennis point sequence")
    parser.add_argument("points", help="Point winners in order, e.g. AABABBA")
    parser.add_argument("--side-a", default="Side A", help="Name of side A")
    parser.add_argument("--side-b", default="Side B", help="Name of side B")
    parser.add_argument("--rule", choices=RULE_NAMES, default="standard", help="Rule set (default standard)")
    parser.add_argument(
        "--param",
        type=int,
        default=None,
        help="Best-of sets, or the games target for first_to_n_games",
    )
    parser.add_argument("--server", choices=["A", "B"], default="A", help="Starting server (default A)")
    parser.add_argument("--verbose", action="store_true", help="Print the scoreboard after every point")
    parser.add_argument("--record", action="store_true", help="Store the result in the tournament database")
    parser.add_argument(
        "--fixture",
        type=int,
        default=None,
        help="Score a stored fixture and record the result on it; names and rule come from the fixture",
    )
    return parser.parse_args(argv)


def scoreboard_line(snapshot: schemas.ScoreSnapshot) -> str:
    games = " ".join(f"{s.games_a}-{s.games_b}" for s in snapshot.sets)
    server = snapshot.side_a if snapshot.server is Side.A else snapshot.side_b
    return f"[{games}] {snapshot.game_text} (serving: {server})"


def _play(engine: ScoringEngine, args: argparse.Namespace) -> None:
    config = engine.config
    print(f"{config.side_a} vs {config.side_b} - {config.rule_set.label}")

    for token in args.points.upper():
        if token not in ("A", "B"):
            continue
        snapshot = engine.award_point(token)
        if args.verbose:
            print(scoreboard_line(snapshot))
        if engine.is_match_complete():
            break


def _report(engine: ScoringEngine) -> int:
    if engine.result is None:
        print(f"Match in progress: {scoreboard_line(engine.score_snapshot())}")
        return 1

    print(f"Winner: {engine.result.winner_name} {engine.result.scoreline}")
    return 0


def _replay_fixture(args: argparse.Namespace) -> int:
    from .database import init_db, session_scope

    init_db()
    with session_scope() as db:
        try:
            engine = crud.start_live_match(db, args.fixture)
        except (LookupError, ValueError) as exc:
            print(f"Cannot score fixture {args.fixture}: {exc}")
            return 2

        _play(engine, args)
        exit_code = _report(engine)

        fixture = serializers.fixture_to_read(crud.get_fixture_or_raise(db, args.fixture))
        line = f"Fixture #{fixture.id} {fixture.status}"
        if fixture.winner:
            line += f": {fixture.winner} {fixture.scoreline}"
        print(line)
    return exit_code


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.fixture is not None:
        return _replay_fixture(args)

    try:
        config = MatchConfig(
            side_a=args.side_a,
            side_b=args.side_b,
            rule_set=build_rule(args.rule, args.param),
            starting_server=Side(args.server),
        )
    except ConfigurationError as exc:
        print(f"Invalid configuration: {exc}")
        return 2

    if not args.record:
        engine = ScoringEngine(config)
        _play(engine, args)
        return _report(engine)

    from .database import init_db, session_scope

    init_db()
    with session_scope() as db:
        sink = crud.DatabaseResultSink(db)
        engine = ScoringEngine(config, result_sink=sink)
        _play(engine, args)
        exit_code = _report(engine)

        if sink.record is not None:
            record = serializers.record_to_read(sink.record)
            print(f"Recorded result #{record.id}: {record.winner} {record.scoreline} ({record.rule_set})")
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
