from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .rules import Side


class ORMBaseModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


FixtureStatus = Literal["upcoming", "active", "completed"]
FixtureMode = Literal["singles", "doubles"]
MatchType = Literal["league", "qualifier", "semifinal", "final"]
RuleChoice = Literal["standard", "first_to_n_games", "fast_set", "final"]


# ---------------------------------------------------------------------------
# Live scoring projections
# ---------------------------------------------------------------------------


class SetSnapshot(FrozenModel):
    games_a: int
    games_b: int
    in_tiebreak: bool
    tiebreak_points_a: int
    tiebreak_points_b: int
    finished: bool
    winner: Side | None = None


class ScoreSnapshot(FrozenModel):
    side_a: str
    side_b: str
    rule_set: str

    points_a: str
    points_b: str
    game_text: str

    sets: tuple[SetSnapshot, ...]
    sets_won_a: int
    sets_won_b: int

    server: Side
    sides_swapped: bool
    complete: bool
    winner: Side | None = None


class MatchResult(FrozenModel):
    side_a: str
    side_b: str
    rule_set: str
    per_set_scoreline: tuple[str, ...]
    winning_side: Side
    winner_name: str
    completed_at: datetime

    @property
    def scoreline(self) -> str:
        return " ".join(self.per_set_scoreline)


# ---------------------------------------------------------------------------
# Fixtures and stored results
# ---------------------------------------------------------------------------


class FixtureCreate(BaseModel):
    side_a: str = Field(min_length=1, max_length=100)
    side_b: str = Field(min_length=1, max_length=100)
    mode: FixtureMode = "singles"
    category: str | None = Field(default=None, max_length=100)
    match_type: MatchType = "league"
    rule_set: RuleChoice | None = None
    rule_parameter: int | None = Field(default=None, ge=1, le=6)
    starting_server: Side = Side.A
    start: datetime | None = None
    venue: str | None = Field(default=None, max_length=100)


class FixtureUpdate(BaseModel):
    side_a: str | None = Field(default=None, min_length=1, max_length=100)
    side_b: str | None = Field(default=None, min_length=1, max_length=100)
    mode: FixtureMode | None = None
    category: str | None = Field(default=None, max_length=100)
    match_type: MatchType | None = None
    rule_set: RuleChoice | None = None
    rule_parameter: int | None = Field(default=None, ge=1, le=6)
    starting_server: Side | None = None
    start: datetime | None = None
    venue: str | None = Field(default=None, max_length=100)


class FixtureRead(ORMBaseModel):
    id: int
    side_a: str
    side_b: str
    mode: FixtureMode
    category: str | None = None
    match_type: MatchType
    rule_set: RuleChoice | None = None
    rule_parameter: int | None = None
    starting_server: Side
    start: datetime | None = None
    venue: str | None = None
    status: FixtureStatus
    winner: str | None = None
    scoreline: str | None = None


class PlayerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    mode: FixtureMode
    category: str = Field(min_length=1, max_length=100)


class MatchRecordRead(BaseModel):
    id: int
    fixture_id: int | None = None
    side_a: str
    side_b: str
    rule_set: str
    per_set_scoreline: list[str] = Field(default_factory=list)
    winner: str
    scoreline: str
    completed_at: datetime
