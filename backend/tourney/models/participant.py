import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from tourney.models.tournament import Tournament


class Participant(SQLModel, table=True):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str
    country: Optional[str] = Field(default=None)  # ISO country code
    seed: Optional[int] = Field(default=None)  # 1 = top seed; None = unseeded
    category: Optional[str] = Field(default=None)  # weight class, division, ...
    metadata_json: Optional[Dict[str, str]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    sort_order: int = Field(default=0)  # roster encounter order, tie-break for unseeded
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    tournament: "Tournament" = Relationship(back_populates="participants")
