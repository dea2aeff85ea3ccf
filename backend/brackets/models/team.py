from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class Team(SQLModel, table=True):
    """Registered team. Owned by the registration side; read-only here."""

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(index=True)
    category_id: int = Field(index=True)
    name: str
    player1_id: Optional[str] = Field(default=None)  # user uid
    player2_id: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def player_ids(self) -> set:
        return {uid for uid in (self.player1_id, self.player2_id) if uid}


class TeamWithdrawal(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    bracket_id: int = Field(foreign_key="bracket.id", index=True)
    team_id: int = Field(foreign_key="team.id")
    reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
