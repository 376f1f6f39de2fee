from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Session, select

from tourney.database import get_session
from tourney.models.tournament import FORMAT_SINGLE_ELIMINATION, Tournament
from tourney.routes.participants import ParticipantCreate, ParticipantResponse, participant_to_response
from tourney.routes.runtime import MatchResponse, matches_to_response
from tourney.services import bracket_service
from tourney.services.bracket_engine import InvalidInputError

router = APIRouter()


class TournamentCreate(BaseModel):
    name: str
    sport: str = "other"
    format: str = FORMAT_SINGLE_ELIMINATION
    allow_ties: bool = False
    is_public: bool = False
    participants: List[ParticipantCreate] = []

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Tournament name is required")
        return v.strip()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v):
        if v != FORMAT_SINGLE_ELIMINATION:
            raise ValueError(f"Unsupported format: {v} (only {FORMAT_SINGLE_ELIMINATION})")
        return v


class TournamentUpdate(BaseModel):
    name: Optional[str] = None
    sport: Optional[str] = None
    allow_ties: Optional[bool] = None
    is_public: Optional[bool] = None


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    sport: str
    format: str
    allow_ties: bool
    is_public: bool
    created_at: datetime
    updated_at: datetime


class TournamentDetailResponse(TournamentResponse):
    participants: List[ParticipantResponse]
    matches: List[MatchResponse]


def tournament_detail(session: Session, tournament: Tournament) -> TournamentDetailResponse:
    """Full tournament record: settings, roster and bracket"""
    roster = bracket_service.load_roster(session, tournament.id)
    matches = bracket_service.load_matches(session, tournament.id)
    return TournamentDetailResponse(
        **TournamentResponse.model_validate(tournament).model_dump(),
        participants=[participant_to_response(p) for p in roster],
        matches=matches_to_response(matches),
    )


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(session: Session = Depends(get_session)):
    """List all tournaments, most recently updated first"""
    return session.exec(select(Tournament).order_by(Tournament.updated_at.desc())).all()


@router.post("/tournaments", response_model=TournamentDetailResponse, status_code=201)
def create_tournament(tournament_data: TournamentCreate, session: Session = Depends(get_session)):
    """Create a tournament; when participants are supplied the bracket is generated"""
    entries = [p.to_input() for p in tournament_data.participants]
    if len(entries) == 1:
        raise HTTPException(status_code=422, detail="At least 2 participants are required")

    tournament = Tournament(**tournament_data.model_dump(exclude={"participants"}))
    session.add(tournament)
    session.commit()
    session.refresh(tournament)

    if entries:
        try:
            bracket_service.add_participants(session, tournament.id, entries)
        except InvalidInputError as e:
            session.delete(tournament)
            session.commit()
            raise HTTPException(status_code=422, detail=str(e))
        session.refresh(tournament)

    return tournament_detail(session, tournament)


@router.get("/tournaments/{tournament_id}", response_model=TournamentDetailResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    """Get a tournament with its roster and bracket"""
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament_detail(session, tournament)


@router.put("/tournaments/{tournament_id}", response_model=TournamentResponse)
def update_tournament(tournament_id: int, tournament_data: TournamentUpdate, session: Session = Depends(get_session)):
    """Update tournament settings (the bracket is untouched)"""
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")

    update_data = tournament_data.model_dump(exclude_unset=True)
    if "name" in update_data and not (update_data["name"] or "").strip():
        raise HTTPException(status_code=422, detail="Tournament name is required")
    for field, value in update_data.items():
        setattr(tournament, field, value)

    tournament.updated_at = datetime.now(timezone.utc)
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.delete("/tournaments/{tournament_id}", status_code=204)
def delete_tournament(tournament_id: int, session: Session = Depends(get_session)):
    """Delete a tournament with its roster and bracket"""
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    session.delete(tournament)
    session.commit()
    bracket_service.release_tournament_lock(tournament_id)
    return Response(status_code=204)
