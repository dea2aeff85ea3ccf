from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from brackets.models.bracket import Bracket

MATCH_PENDING = "pending"
MATCH_SCHEDULED = "scheduled"
MATCH_IN_PROGRESS = "in_progress"
MATCH_COMPLETED = "completed"
MATCH_FORFEIT = "forfeit"

MATCH_STATUSES = (MATCH_PENDING, MATCH_SCHEDULED, MATCH_IN_PROGRESS, MATCH_COMPLETED, MATCH_FORFEIT)
FINISHED_STATUSES = (MATCH_COMPLETED, MATCH_FORFEIT)
UNPLAYED_STATUSES = (MATCH_PENDING, MATCH_SCHEDULED)


class Match(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    bracket_id: int = Field(foreign_key="bracket.id", index=True)
    round_number: int
    round_name: Optional[str] = None
    sequence_in_round: int  # 1-based slot inside the round

    # Team slots (nullable until resolved by advancement)
    team1_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team2_id: Optional[int] = Field(default=None, foreign_key="team.id")

    winner_side: Optional[int] = Field(default=None)  # 1 | 2
    sets_json: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    team1_sets: Optional[int] = Field(default=None)
    team2_sets: Optional[int] = Field(default=None)

    status: str = Field(default=MATCH_PENDING)  # pending | scheduled | in_progress | completed | forfeit
    is_bye: bool = Field(default=False)

    # Group stage only; group matches never reference a next match
    group_number: Optional[int] = Field(default=None, index=True)

    # Knockout wiring: winner goes to next_match_id, slot 1 (team1) or 2 (team2)
    next_match_id: Optional[int] = Field(default=None, foreign_key="match.id")
    next_match_slot: Optional[int] = Field(default=None)

    # Owned by the scheduling collaborator; stored only
    court_number: Optional[int] = Field(default=None)
    scheduled_time: Optional[datetime] = Field(default=None)

    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    submitted_by_user_id: Optional[str] = Field(default=None)

    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    bracket: "Bracket" = Relationship(back_populates="matches")

    def team_for_side(self, side: Optional[int]) -> Optional[int]:
        if side == 1:
            return self.team1_id
        if side == 2:
            return self.team2_id
        return None

    def side_of(self, team_id: int) -> Optional[int]:
        if self.team1_id == team_id:
            return 1
        if self.team2_id == team_id:
            return 2
        return None

    @property
    def winner_team_id(self) -> Optional[int]:
        return self.team_for_side(self.winner_side)
