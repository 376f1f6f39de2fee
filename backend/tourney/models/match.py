from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, Optional

from sqlalchemy import JSON, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from tourney.models.tournament import Tournament


class Match(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "round", "position", name="uq_match_round_position"),)

    id: str = Field(primary_key=True)  # assigned by the bracket engine
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    round: int  # 0 = final, 1 = semifinals, ...
    position: int  # 0-based index within round

    # Competitor slots (None = BYE or not yet decided upstream)
    red_competitor_id: Optional[str] = Field(default=None)
    blue_competitor_id: Optional[str] = Field(default=None)

    winner_id: Optional[str] = Field(default=None)
    result_type: str = Field(default="PENDING")  # PENDING | SCORE | KO | WALKOVER | DQ | TIE
    red_score: Optional[str] = Field(default=None)  # free text: "3-1", "KO R2", ...
    blue_score: Optional[str] = Field(default=None)

    # Winner feeds this match; None for the final
    next_match_id: Optional[str] = Field(default=None, index=True)
    metadata_json: Optional[Dict[str, str]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    tournament: "Tournament" = Relationship(back_populates="matches")
