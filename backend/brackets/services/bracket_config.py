"""
Structured bracket configuration.

The bracket row stores an open JSON document (camelCase keys, unknown keys
tolerated). It is parsed into BracketConfig once per operation; business
logic only ever reads typed attributes with the defaults declared here.
"""
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

MAX_SETS_PER_MATCH = 5


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class MatchFormat(_ConfigModel):
    sets: int = 3  # best-of-N
    games_per_set: int = 6
    tie_break: bool = True  # allow (G+1)-G sets
    points_per_set: Optional[int] = None  # express format when set

    @field_validator("sets")
    @classmethod
    def validate_sets(cls, v):
        if v < 1 or v > MAX_SETS_PER_MATCH:
            raise ValueError(f"sets must be between 1 and {MAX_SETS_PER_MATCH}")
        return v

    @field_validator("games_per_set")
    @classmethod
    def validate_games_per_set(cls, v):
        if v < 1:
            raise ValueError("gamesPerSet must be greater than 0")
        return v

    @field_validator("points_per_set")
    @classmethod
    def validate_points_per_set(cls, v):
        if v is not None and v < 1:
            raise ValueError("pointsPerSet must be greater than 0")
        return v

    @property
    def sets_to_win(self) -> int:
        return self.sets // 2 + 1


class KnockoutPoints(_ConfigModel):
    winner: int = 100
    finalist: int = 70
    semi_finalist: int = 50
    quarter_finalist: int = 30
    base_points: int = 10
    per_round_bonus: int = 5


class BracketConfig(_ConfigModel):
    match_format: MatchFormat = Field(default_factory=MatchFormat)
    knockout_points: KnockoutPoints = Field(default_factory=KnockoutPoints)
    group_win_points: int = 3
    top_per_group: int = 2
    wildcard_count: int = 0
    allow_player_scores: bool = True

    @field_validator("top_per_group")
    @classmethod
    def validate_top_per_group(cls, v):
        if v < 1:
            raise ValueError("topPerGroup must be >= 1")
        return v

    @field_validator("wildcard_count", "group_win_points")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("value must be >= 0")
        return v

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def parse_bracket_config(raw: Optional[Dict[str, Any]], bracket_id: Optional[int] = None) -> BracketConfig:
    """Parse a stored config document. Missing or unreadable documents fall back to defaults."""
    if not raw:
        return BracketConfig()
    try:
        return BracketConfig.model_validate(raw)
    except ValidationError as e:
        logger.warning("Failed to parse config for bracket %s, using defaults: %s", bracket_id, e)
        return BracketConfig()
