from datetime import datetime, timezone

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Fixture(Base):
    __tablename__ = "fixtures"

    id = Column(Integer, primary_key=True, index=True)

    side_a = Column(String(100), nullable=False)
    side_b = Column(String(100), nullable=False)
    mode = Column(String(16), default="singles", nullable=False)
    category = Column(String(100), nullable=True, index=True)

    match_type = Column(String(16), default="league", nullable=False)
    rule_set = Column(String(32), nullable=True)
    rule_parameter = Column(Integer, nullable=True)
    starting_server = Column(String(1), default="A", nullable=False)

    start = Column(DateTime(timezone=True), nullable=True, index=True)
    venue = Column(String(100), nullable=True)

    status = Column(String(16), default="upcoming", nullable=False, index=True)
    winner = Column(String(100), nullable=True)
    scoreline = Column(String(100), nullable=True)

    results = relationship("MatchRecord", back_populates="fixture")

    __table_args__ = (
        CheckConstraint("side_a <> side_b", name="ck_fixture_distinct_sides"),
        CheckConstraint("mode in ('singles', 'doubles')", name="ck_fixture_mode_valid"),
        CheckConstraint(
            "match_type in ('league', 'qualifier', 'semifinal', 'final')",
            name="ck_fixture_match_type_valid",
        ),
        CheckConstraint(
            "rule_set in ('standard', 'first_to_n_games', 'fast_set', 'final') or rule_set is null",
            name="ck_fixture_rule_set_valid",
        ),
        CheckConstraint("starting_server in ('A', 'B')", name="ck_fixture_starting_server_valid"),
        CheckConstraint(
            "status in ('upcoming', 'active', 'completed')",
            name="ck_fixture_status_valid",
        ),
    )


class MatchRecord(Base):
    """A completed match, stored as an opaque result payload."""

    __tablename__ = "match_records"

    id = Column(Integer, primary_key=True, index=True)
    fixture_id = Column(Integer, ForeignKey("fixtures.id"), nullable=True, index=True)

    side_a = Column(String(100), nullable=False)
    side_b = Column(String(100), nullable=False)
    winner = Column(String(100), nullable=False)
    scoreline = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=False)

    completed_at = Column(DateTime(timezone=True), nullable=False, index=True)
    recorded_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    fixture = relationship("Fixture", back_populates="results")


class Player(Base):
    """A roster entry; for doubles the name is the pair, e.g. "Ana / Bea"."""

    __tablename__ = "players"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    mode = Column(String(16), nullable=False, index=True)
    category = Column(String(100), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("name", "category", name="uq_player_name_category"),
        CheckConstraint("mode in ('singles', 'doubles')", name="ck_player_mode_valid"),
    )
