import logging
import os
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models, schemas, serializers
from .rules import ConfigurationError, MatchConfig, RuleSet, Side, build_rule
from .scoring import ScoringEngine

logger = logging.getLogger(__name__)

FixtureStatus = schemas.FixtureStatus

# Default rule per fixture type: Fast4 for the early knockout rounds, the
# capped-tiebreak final format for finals, regular sets otherwise.
DEFAULT_RULE_FOR_MATCH_TYPE = {
    "league": "standard",
    "qualifier": "fast_set",
    "semifinal": "fast_set",
    "final": "final",
}


def results_history_limit() -> int:
    raw = os.getenv("RESULTS_HISTORY_LIMIT", "500").strip()
    try:
        limit = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"RESULTS_HISTORY_LIMIT must be an integer, got {raw!r}.") from exc
    if limit < 1:
        raise ConfigurationError("RESULTS_HISTORY_LIMIT must be at least 1.")
    return limit


def _normalize_text(value: str) -> str:
    return " ".join(value.split())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _fixture_sort_key(fixture: models.Fixture) -> tuple[int, datetime, int]:
    start = serializers.as_utc(fixture.start)
    if start is None:
        return (1, datetime.max.replace(tzinfo=timezone.utc), fixture.id)
    return (0, start, fixture.id)


# ---------------------------------------------------------------------------
# Fixtures and the match configuration they provide
# ---------------------------------------------------------------------------


def rule_for_fixture(fixture: models.Fixture) -> RuleSet:
    name = fixture.rule_set or DEFAULT_RULE_FOR_MATCH_TYPE.get(fixture.match_type)
    if name is None:
        raise ConfigurationError(f"No rule set for match type {fixture.match_type!r}.")
    return build_rule(name, fixture.rule_parameter)


def match_config_for_fixture(fixture: models.Fixture) -> MatchConfig:
    return MatchConfig(
        side_a=fixture.side_a,
        side_b=fixture.side_b,
        rule_set=rule_for_fixture(fixture),
        starting_server=Side(fixture.starting_server),
    )


def create_fixture(db: Session, payload: schemas.FixtureCreate) -> models.Fixture:
    side_a = _normalize_text(payload.side_a)
    side_b = _normalize_text(payload.side_b)
    if not side_a or not side_b:
        raise ValueError("Both sides are required.")
    if side_a.casefold() == side_b.casefold():
        raise ValueError("A fixture needs two different sides.")

    fixture = models.Fixture(
        side_a=side_a,
        side_b=side_b,
        mode=payload.mode,
        category=_normalize_text(payload.category) if payload.category else None,
        match_type=payload.match_type,
        rule_set=payload.rule_set,
        rule_parameter=payload.rule_parameter,
        starting_server=payload.starting_server.value,
        start=payload.start,
        venue=payload.venue,
        status="upcoming",
    )
    # Reject rule parameters up front rather than when scoring starts.
    rule_for_fixture(fixture)

    db.add(fixture)
    db.commit()
    db.refresh(fixture)
    return fixture


def list_fixtures(db: Session, status: FixtureStatus | None = None) -> list[models.Fixture]:
    query = db.query(models.Fixture)
    if status:
        query = query.filter(models.Fixture.status == status)

    fixtures = query.all()
    fixtures.sort(key=_fixture_sort_key)
    return fixtures


def get_fixture_or_raise(db: Session, fixture_id: int) -> models.Fixture:
    fixture = db.get(models.Fixture, fixture_id)
    if not fixture:
        raise LookupError("Fixture not found.")
    return fixture


def update_fixture(db: Session, fixture_id: int, payload: schemas.FixtureUpdate) -> models.Fixture:
    fixture = get_fixture_or_raise(db, fixture_id)
    if fixture.status == "completed":
        raise ValueError("Completed fixture cannot be changed.")

    changes = payload.model_dump(exclude_unset=True)
    for field in ("side_a", "side_b", "mode", "match_type", "starting_server"):
        if field in changes and changes[field] is None:
            raise ValueError(f"{field} cannot be cleared.")
    for field in ("side_a", "side_b", "category"):
        if changes.get(field):
            changes[field] = _normalize_text(changes[field]) or None
    if "starting_server" in changes:
        changes["starting_server"] = Side(changes["starting_server"]).value

    side_a = changes.get("side_a", fixture.side_a)
    side_b = changes.get("side_b", fixture.side_b)
    if not side_a or not side_b:
        raise ValueError("Both sides are required.")
    if side_a.casefold() == side_b.casefold():
        raise ValueError("A fixture needs two different sides.")

    for field, value in changes.items():
        setattr(fixture, field, value)
    try:
        rule_for_fixture(fixture)
    except ConfigurationError:
        db.rollback()
        raise

    db.commit()
    logger.info("Fixture %s updated: %s", fixture.id, ", ".join(sorted(changes)) or "no changes")
    return get_fixture_or_raise(db, fixture_id)


def delete_fixture(db: Session, fixture_id: int) -> None:
    fixture = get_fixture_or_raise(db, fixture_id)
    # Stored results outlive their fixture; they only lose the link.
    for record in list(fixture.results):
        record.fixture = None
    db.delete(fixture)
    db.commit()
    logger.info("Fixture %s deleted", fixture_id)


def clear_fixtures(db: Session) -> int:
    db.query(models.MatchRecord).filter(models.MatchRecord.fixture_id.isnot(None)).update(
        {models.MatchRecord.fixture_id: None},
        synchronize_session=False,
    )
    removed = db.query(models.Fixture).delete(synchronize_session=False)
    db.commit()
    db.expire_all()
    logger.info("Cleared %d fixtures", removed)
    return removed


def start_fixture(db: Session, fixture_id: int) -> models.Fixture:
    """Make a fixture the active one.

    Only one fixture is live at a time: any other active fixture goes back to
    upcoming. A fixture scheduled in the future is pulled forward to now.
    """
    fixture = get_fixture_or_raise(db, fixture_id)
    if fixture.status == "completed":
        raise ValueError("Completed fixture cannot be started again.")

    others = (
        db.query(models.Fixture)
        .filter(models.Fixture.status == "active", models.Fixture.id != fixture_id)
        .all()
    )
    for other in others:
        other.status = "upcoming"
        logger.info("Fixture %s demoted to upcoming", other.id)

    now = _utcnow()
    start = serializers.as_utc(fixture.start)
    if start is None or start > now:
        fixture.start = now

    fixture.status = "active"
    db.commit()
    logger.info("Fixture %s started: %s vs %s", fixture.id, fixture.side_a, fixture.side_b)
    return get_fixture_or_raise(db, fixture_id)


def start_live_match(db: Session, fixture_id: int) -> ScoringEngine:
    fixture = start_fixture(db, fixture_id)
    config = match_config_for_fixture(fixture)
    return ScoringEngine(config, result_sink=DatabaseResultSink(db, fixture_id=fixture.id))


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


def _prune_results(db: Session, limit: int) -> None:
    stale = (
        db.query(models.MatchRecord)
        .order_by(models.MatchRecord.completed_at.desc(), models.MatchRecord.id.desc())
        .offset(limit)
        .all()
    )
    for record in stale:
        db.delete(record)


def record_result(
    db: Session,
    result: schemas.MatchResult,
    fixture_id: int | None = None,
) -> models.MatchRecord:
    fixture = get_fixture_or_raise(db, fixture_id) if fixture_id is not None else None

    record = models.MatchRecord(
        fixture_id=fixture_id,
        side_a=result.side_a,
        side_b=result.side_b,
        winner=result.winner_name,
        scoreline=result.scoreline,
        payload=serializers.result_to_payload(result),
        completed_at=result.completed_at,
    )
    db.add(record)

    if fixture is not None:
        fixture.status = "completed"
        fixture.winner = result.winner_name
        fixture.scoreline = result.scoreline

    db.flush()
    _prune_results(db, results_history_limit())
    db.commit()
    db.refresh(record)

    logger.info("Recorded result %s: %s %s", record.id, result.winner_name, result.scoreline)
    return record


def list_results(db: Session, limit: int | None = None) -> list[models.MatchRecord]:
    query = db.query(models.MatchRecord).order_by(
        models.MatchRecord.completed_at.desc(),
        models.MatchRecord.id.desc(),
    )
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def clear_results(db: Session) -> int:
    removed = db.query(models.MatchRecord).delete(synchronize_session=False)
    db.commit()
    db.expire_all()
    logger.info("Cleared %d match records", removed)
    return removed


class DatabaseResultSink:
    """Result sink that stores each completed match through ``record_result``.

    The stored row is kept on ``record`` once the write succeeds.
    """

    def __init__(self, db: Session, fixture_id: int | None = None):
        self.db = db
        self.fixture_id = fixture_id
        self.record: models.MatchRecord | None = None

    def __call__(self, result: schemas.MatchResult) -> models.MatchRecord:
        try:
            self.record = record_result(self.db, result, fixture_id=self.fixture_id)
        except Exception:
            self.db.rollback()
            raise
        return self.record


# ---------------------------------------------------------------------------
# Player roster
# ---------------------------------------------------------------------------

# Categories every roster starts with, per mode.
DEFAULT_PLAYER_CATEGORIES: dict[str, tuple[str, ...]] = {
    "singles": (
        "Women's Singles",
        "Kid's Singles",
        "NW Team (A) Singles",
        "NW Team (B) Singles",
    ),
    "doubles": (
        "Women's Doubles",
        "Kid's Doubles",
        "NW Team (A) Doubles",
        "NW Team (B) Doubles",
        "Mixed Doubles",
    ),
}


def list_players(
    db: Session,
    mode: schemas.FixtureMode | None = None,
    category: str | None = None,
) -> list[models.Player]:
    query = db.query(models.Player)
    if mode:
        query = query.filter(models.Player.mode == mode)
    if category:
        query = query.filter(models.Player.category == _normalize_text(category))
    return query.order_by(models.Player.mode.desc(), models.Player.category.asc(), models.Player.name.asc()).all()


def player_roster(db: Session) -> dict[str, dict[str, list[str]]]:
    """Roster grouped as ``{mode: {category: [names]}}``.

    Default categories are always present, even when empty.
    """
    roster: dict[str, dict[str, list[str]]] = {
        mode: {category: [] for category in categories}
        for mode, categories in DEFAULT_PLAYER_CATEGORIES.items()
    }
    for player in list_players(db):
        roster[player.mode].setdefault(player.category, []).append(player.name)
    return roster


def create_player(db: Session, payload: schemas.PlayerCreate) -> models.Player:
    name = _normalize_text(payload.name)
    if not name:
        raise ValueError("Player name cannot be empty.")
    category = _normalize_text(payload.category)
    if not category:
        raise ValueError("Player category cannot be empty.")

    for mode, categories in DEFAULT_PLAYER_CATEGORIES.items():
        if category in categories and mode != payload.mode:
            raise ValueError(f"{category} is a {mode} category.")

    existing = (
        db.query(models.Player)
        .filter(
            models.Player.category == category,
            func.lower(models.Player.name) == name.lower(),
        )
        .first()
    )
    if existing:
        raise ValueError("A player with this name already exists in this category.")

    player = models.Player(name=name, mode=payload.mode, category=category)
    db.add(player)
    db.commit()
    db.refresh(player)
    return player


def delete_player(db: Session, player_id: int) -> None:
    player = db.get(models.Player, player_id)
    if not player:
        raise LookupError("Player not found.")
    db.delete(player)
    db.commit()
