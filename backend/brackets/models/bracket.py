from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON, String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from brackets.models.match import Match
    from brackets.models.standing import Standing


class BracketFormat(str, Enum):
    knockout = "knockout"
    round_robin = "round_robin"
    groups_knockout = "groups_knockout"


class SeedingMethod(str, Enum):
    random = "random"
    manual = "manual"
    ranking = "ranking"


class BracketStatus(str, Enum):
    draft = "draft"
    in_progress = "in_progress"
    published = "published"


class Bracket(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "category_id", name="uq_bracket_tournament_category"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(index=True)
    category_id: int
    format: BracketFormat = Field(sa_column=Column(String, nullable=False))
    seeding_method: SeedingMethod = Field(default=SeedingMethod.random, sa_column=Column(String, nullable=False))
    status: BracketStatus = Field(default=BracketStatus.draft, sa_column=Column(String, nullable=False))

    # Open document; read through brackets.services.bracket_config only
    config_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    matches: List["Match"] = Relationship(back_populates="bracket")
    standings: List["Standing"] = Relationship(back_populates="bracket")
