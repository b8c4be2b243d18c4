from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lawn_tennis import crud, database, models, schemas, serializers
from lawn_tennis.database import init_db
from lawn_tennis.rules import ConfigurationError, FastSet, Final, FirstToNGames, Side, Standard
from lawn_tennis.scoring import ScoringEngine


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_factory = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    init_db(bind=engine)
    return session_factory


@pytest.fixture()
def db(session_factory):
    with session_factory() as session:
        yield session


def add_fixture(db, side_a="Alice", side_b="Bea", **kwargs):
    return crud.create_fixture(db, schemas.FixtureCreate(side_a=side_a, side_b=side_b, **kwargs))


def make_result(winner="Alice", completed_at=None, scoreline=("6-4", "6-3")):
    return schemas.MatchResult(
        side_a="Alice",
        side_b="Bea",
        rule_set="Standard (best of 3)",
        per_set_scoreline=scoreline,
        winning_side=Side.A if winner == "Alice" else Side.B,
        winner_name=winner,
        completed_at=completed_at or datetime(2025, 11, 16, 12, 0, tzinfo=timezone.utc),
    )


# ---------- FIXTURES ----------


def test_create_fixture_normalises_names(db):
    fixture = add_fixture(db, side_a="  Alice   Smith ", side_b="Bea", category="Women's Singles")

    read = serializers.fixture_to_read(fixture)
    assert read.side_a == "Alice Smith"
    assert read.status == "upcoming"
    assert read.starting_server is Side.A


def test_create_fixture_rejects_same_sides(db):
    with pytest.raises(ValueError):
        add_fixture(db, side_a="Alice", side_b="ALICE")


def test_create_fixture_rejects_bad_rule_parameter(db):
    with pytest.raises(ConfigurationError):
        add_fixture(db, rule_set="standard", rule_parameter=2)

    assert crud.list_fixtures(db) == []


def test_list_fixtures_ordered_by_start(db):
    base = datetime(2025, 11, 15, 9, 0, tzinfo=timezone.utc)
    late = add_fixture(db, side_a="C", side_b="D", start=base + timedelta(hours=2))
    unscheduled = add_fixture(db, side_a="E", side_b="F")
    early = add_fixture(db, side_a="A", side_b="B", start=base)

    ordered = [fixture.id for fixture in crud.list_fixtures(db)]
    assert ordered == [early.id, late.id, unscheduled.id]

    assert crud.list_fixtures(db, status="active") == []


@pytest.mark.parametrize(
    "kwargs, expected",
    [
        ({"match_type": "league"}, Standard(best_of_sets=3)),
        ({"match_type": "qualifier"}, FastSet()),
        ({"match_type": "semifinal"}, FastSet()),
        ({"match_type": "final"}, Final()),
        ({"match_type": "final", "rule_parameter": 3}, Final(best_of_sets=3)),
        ({"match_type": "qualifier", "rule_set": "first_to_n_games", "rule_parameter": 4}, FirstToNGames(4)),
    ],
)
def test_rule_for_fixture(db, kwargs, expected):
    fixture = add_fixture(db, **kwargs)
    assert crud.rule_for_fixture(fixture) == expected


def test_match_config_for_fixture(db):
    fixture = add_fixture(db, match_type="final", starting_server="B")

    config = crud.match_config_for_fixture(fixture)

    assert (config.side_a, config.side_b) == ("Alice", "Bea")
    assert config.rule_set == Final()
    assert config.starting_server is Side.B


def test_start_fixture_demotes_other_active(db):
    first = add_fixture(db, side_a="A", side_b="B")
    second = add_fixture(db, side_a="C", side_b="D")

    crud.start_fixture(db, first.id)
    crud.start_fixture(db, second.id)

    assert crud.get_fixture_or_raise(db, first.id).status == "upcoming"
    assert crud.get_fixture_or_raise(db, second.id).status == "active"
    assert [f.id for f in crud.list_fixtures(db, status="active")] == [second.id]


def test_start_fixture_pulls_future_start_to_now(db):
    future = datetime.now(timezone.utc) + timedelta(days=2)
    fixture = add_fixture(db, start=future)

    started = crud.start_fixture(db, fixture.id)

    assert serializers.as_utc(started.start) < future


def test_start_fixture_errors(db):
    with pytest.raises(LookupError):
        crud.start_fixture(db, 404)

    fixture = add_fixture(db)
    fixture.status = "completed"
    db.commit()

    with pytest.raises(ValueError):
        crud.start_fixture(db, fixture.id)


# ---------- LIVE MATCH AND RESULTS ----------


def test_live_match_records_result_and_completes_fixture(db):
    fixture = add_fixture(db, match_type="qualifier")

    engine = crud.start_live_match(db, fixture.id)
    assert isinstance(engine, ScoringEngine)
    assert crud.get_fixture_or_raise(db, fixture.id).status == "active"

    for _ in range(16):
        engine.award_point("A")

    assert engine.is_match_complete()

    stored = crud.get_fixture_or_raise(db, fixture.id)
    assert stored.status == "completed"
    assert stored.winner == "Alice"
    assert stored.scoreline == "4-0"

    records = [serializers.record_to_read(record) for record in crud.list_results(db)]
    assert len(records) == 1
    assert records[0].fixture_id == fixture.id
    assert records[0].per_set_scoreline == ["4-0"]
    assert records[0].rule_set == "Fast4 (best of 1)"

    with pytest.raises(ValueError):
        crud.start_fixture(db, fixture.id)


def test_results_listed_newest_first(db):
    base = datetime(2025, 11, 16, 12, 0, tzinfo=timezone.utc)
    crud.record_result(db, make_result(winner="Alice", completed_at=base))
    crud.record_result(db, make_result(winner="Bea", completed_at=base + timedelta(hours=1)))

    winners = [record.winner for record in crud.list_results(db)]
    assert winners == ["Bea", "Alice"]
    assert len(crud.list_results(db, limit=1)) == 1


def test_results_history_is_capped(db, monkeypatch):
    monkeypatch.setenv("RESULTS_HISTORY_LIMIT", "2")
    base = datetime(2025, 11, 16, 12, 0, tzinfo=timezone.utc)

    for hour in range(3):
        crud.record_result(db, make_result(completed_at=base + timedelta(hours=hour)))

    kept = [serializers.as_utc(record.completed_at) for record in crud.list_results(db)]
    assert kept == [base + timedelta(hours=2), base + timedelta(hours=1)]


def test_invalid_history_limit(monkeypatch):
    monkeypatch.setenv("RESULTS_HISTORY_LIMIT", "lots")
    with pytest.raises(ConfigurationError):
        crud.results_history_limit()


def test_sink_failure_leaves_match_complete_for_retry(db):
    fixture = add_fixture(db, match_type="qualifier")
    config = crud.match_config_for_fixture(fixture)
    engine = ScoringEngine(config, result_sink=crud.DatabaseResultSink(db, fixture_id=9999))

    for _ in range(15):
        engine.award_point("B")
    with pytest.raises(LookupError):
        engine.award_point("B")

    assert engine.is_match_complete()
    assert crud.list_results(db) == []

    record = crud.record_result(db, engine.result, fixture_id=fixture.id)

    assert record.winner == "Bea"
    assert crud.get_fixture_or_raise(db, fixture.id).status == "completed"
    assert isinstance(record, models.MatchRecord)


# ---------- FIXTURE CHANGES ----------


def test_update_fixture_changes_fields(db):
    fixture = add_fixture(db, match_type="league")

    updated = crud.update_fixture(
        db,
        fixture.id,
        schemas.FixtureUpdate(side_b="  Bea   Jones ", match_type="final", starting_server="B", venue="Court 2"),
    )

    assert updated.side_b == "Bea Jones"
    assert updated.venue == "Court 2"
    config = crud.match_config_for_fixture(updated)
    assert config.rule_set == Final()
    assert config.starting_server is Side.B


def test_update_fixture_can_drop_explicit_rule(db):
    fixture = add_fixture(db, match_type="qualifier", rule_set="standard", rule_parameter=5)

    updated = crud.update_fixture(db, fixture.id, schemas.FixtureUpdate(rule_set=None, rule_parameter=None))

    assert crud.rule_for_fixture(updated) == FastSet()


def test_update_fixture_rejects_invalid_changes(db):
    fixture = add_fixture(db)

    with pytest.raises(ValueError):
        crud.update_fixture(db, fixture.id, schemas.FixtureUpdate(side_b="alice"))
    with pytest.raises(ValueError):
        crud.update_fixture(db, fixture.id, schemas.FixtureUpdate(side_a=None))
    with pytest.raises(ConfigurationError):
        crud.update_fixture(db, fixture.id, schemas.FixtureUpdate(rule_set="standard", rule_parameter=4))

    stored = crud.get_fixture_or_raise(db, fixture.id)
    assert stored.side_b == "Bea"
    assert stored.rule_set is None
    assert stored.rule_parameter is None


def test_update_fixture_rejects_completed_and_missing(db):
    fixture = add_fixture(db, match_type="qualifier")
    engine = crud.start_live_match(db, fixture.id)
    for _ in range(16):
        engine.award_point("A")

    with pytest.raises(ValueError):
        crud.update_fixture(db, fixture.id, schemas.FixtureUpdate(venue="Court 1"))
    with pytest.raises(LookupError):
        crud.update_fixture(db, 404, schemas.FixtureUpdate(venue="Court 1"))


def test_delete_fixture_keeps_its_results(db):
    fixture = add_fixture(db)
    other = add_fixture(db, side_a="C", side_b="D")
    crud.record_result(db, make_result(), fixture_id=fixture.id)

    crud.delete_fixture(db, fixture.id)

    assert [f.id for f in crud.list_fixtures(db)] == [other.id]
    records = crud.list_results(db)
    assert len(records) == 1
    assert records[0].fixture_id is None

    with pytest.raises(LookupError):
        crud.delete_fixture(db, fixture.id)


def test_clear_fixtures(db):
    fixture = add_fixture(db)
    add_fixture(db, side_a="C", side_b="D")
    crud.record_result(db, make_result(), fixture_id=fixture.id)

    assert crud.clear_fixtures(db) == 2

    assert crud.list_fixtures(db) == []
    assert [record.fixture_id for record in crud.list_results(db)] == [None]


def test_clear_results(db):
    fixture = add_fixture(db)
    crud.record_result(db, make_result(), fixture_id=fixture.id)
    crud.record_result(db, make_result(winner="Bea"))

    assert crud.clear_results(db) == 2

    assert crud.list_results(db) == []
    assert crud.get_fixture_or_raise(db, fixture.id).status == "completed"
    assert crud.clear_results(db) == 0


# ---------- PLAYER ROSTER ----------


def add_player(db, name, mode="singles", category="Women's Singles"):
    return crud.create_player(db, schemas.PlayerCreate(name=name, mode=mode, category=category))


def test_empty_roster_has_default_categories(db):
    roster = crud.player_roster(db)

    assert set(roster) == {"singles", "doubles"}
    assert roster["singles"]["Women's Singles"] == []
    assert roster["doubles"]["Mixed Doubles"] == []
    assert len(roster["doubles"]) == 5


def test_create_and_list_players(db):
    add_player(db, "  Zoe   Ng ")
    add_player(db, "Ana")
    add_player(db, "Ana / Ben", mode="doubles", category="Mixed Doubles")
    add_player(db, "Tom", category="Veterans' Singles")

    names = [player.name for player in crud.list_players(db, category="Women's Singles")]
    assert names == ["Ana", "Zoe Ng"]
    assert [player.name for player in crud.list_players(db, mode="doubles")] == ["Ana / Ben"]

    roster = crud.player_roster(db)
    assert roster["singles"]["Women's Singles"] == ["Ana", "Zoe Ng"]
    assert roster["singles"]["Veterans' Singles"] == ["Tom"]
    assert roster["doubles"]["Mixed Doubles"] == ["Ana / Ben"]


def test_create_player_rejects_duplicates_and_wrong_mode(db):
    add_player(db, "Ana")

    with pytest.raises(ValueError):
        add_player(db, "ANA")
    with pytest.raises(ValueError):
        add_player(db, "Cleo", mode="doubles", category="Women's Singles")
    with pytest.raises(ValueError):
        add_player(db, "   ")

    # Same name in another category is a separate entry.
    add_player(db, "Ana", category="Kid's Singles")
    assert len(crud.list_players(db)) == 2


def test_delete_player(db):
    player = add_player(db, "Ana")

    crud.delete_player(db, player.id)

    assert crud.list_players(db) == []
    with pytest.raises(LookupError):
        crud.delete_player(db, player.id)


# ---------- SESSIONS ----------


def test_session_scope_rolls_back_and_closes(session_factory, monkeypatch):
    monkeypatch.setattr(database, "SessionLocal", session_factory)

    with pytest.raises(RuntimeError):
        with database.session_scope() as db:
            db.add(models.Player(name="Ana", mode="singles", category="Women's Singles"))
            db.flush()
            raise RuntimeError("interrupted")

    with database.session_scope() as db:
        assert crud.list_players(db) == []
