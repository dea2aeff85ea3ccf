from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from brackets.models.bracket import Bracket


class Standing(SQLModel, table=True):
    """Derived ranking row. Replaced wholesale by the standings calculator."""

    id: Optional[int] = Field(default=None, primary_key=True)
    bracket_id: int = Field(foreign_key="bracket.id", index=True)
    team_id: int = Field(foreign_key="team.id")
    group_number: Optional[int] = Field(default=None)  # None for knockout rows
    position: int
    total_points: int = Field(default=0)
    matches_played: int = Field(default=0)
    matches_won: int = Field(default=0)
    matches_lost: int = Field(default=0)
    games_won: int = Field(default=0)
    games_lost: int = Field(default=0)
    game_difference: int = Field(default=0)
    round_reached: Optional[str] = Field(default=None)  # "Champion" | "Finalist" | ... (knockout only)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    bracket: "Bracket" = Relationship(back_populates="standings")
