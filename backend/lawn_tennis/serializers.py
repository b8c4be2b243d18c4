from datetime import datetime, timezone

from . import models, schemas


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands timezone-aware columns back as naive datetimes.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def fixture_to_read(fixture: models.Fixture) -> schemas.FixtureRead:
    return schemas.FixtureRead(
        id=fixture.id,
        side_a=fixture.side_a,
        side_b=fixture.side_b,
        mode=fixture.mode,
        category=fixture.category,
        match_type=fixture.match_type,
        rule_set=fixture.rule_set,
        rule_parameter=fixture.rule_parameter,
        starting_server=fixture.starting_server,
        start=as_utc(fixture.start),
        venue=fixture.venue,
        status=fixture.status,
        winner=fixture.winner,
        scoreline=fixture.scoreline,
    )


def result_to_payload(result: schemas.MatchResult) -> dict[str, object]:
    return result.model_dump(mode="json")


def record_to_read(record: models.MatchRecord) -> schemas.MatchRecordRead:
    payload = record.payload or {}

    return schemas.MatchRecordRead(
        id=record.id,
        fixture_id=record.fixture_id,
        side_a=record.side_a,
        side_b=record.side_b,
        rule_set=str(payload.get("rule_set", "")),
        per_set_scoreline=list(payload.get("per_set_scoreline", [])),
        winner=record.winner,
        scoreline=record.scoreline,
        completed_at=as_utc(record.completed_at),
    )
