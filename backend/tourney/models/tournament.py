from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from tourney.models.match import Match
    from tourney.models.participant import Participant

FORMAT_SINGLE_ELIMINATION = "single-elimination"


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    sport: str = Field(default="other")  # free-form sport id, e.g. "judo", "tennis"
    format: str = Field(default=FORMAT_SINGLE_ELIMINATION)
    allow_ties: bool = Field(default=False)
    is_public: bool = Field(default=False)  # public view vs referee mode
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column_kwargs={"onupdate": lambda: datetime.now(timezone.utc)},
    )

    # Relationships
    participants: List["Participant"] = Relationship(
        back_populates="tournament", sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
    matches: List["Match"] = Relationship(
        back_populates="tournament", sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
