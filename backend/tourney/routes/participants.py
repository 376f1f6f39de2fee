"""
Participant (roster) API Routes.

Every roster change regenerates the bracket from scratch; results recorded on
the previous bracket are discarded.
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Session

from tourney.database import get_session
from tourney.models.tournament import Tournament
from tourney.services import bracket_service
from tourney.services.bracket_engine import InvalidInputError
from tourney.services.bracket_service import ParticipantInput
from tourney.services.import_export import import_participants

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class ParticipantCreate(BaseModel):
    name: str
    country: Optional[str] = None
    seed: Optional[int] = None
    category: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Name is required")
        return v.strip()

    def to_input(self) -> ParticipantInput:
        return ParticipantInput(
            name=self.name,
            country=self.country,
            seed=self.seed,
            category=self.category,
            metadata=self.metadata,
        )


class ParticipantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tournament_id: int
    name: str
    country: Optional[str] = None
    seed: Optional[int] = None
    category: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
    created_at: datetime


def participant_to_response(p) -> ParticipantResponse:
    return ParticipantResponse(
        id=p.id,
        tournament_id=p.tournament_id,
        name=p.name,
        country=p.country,
        seed=p.seed,
        category=p.category,
        metadata=p.metadata_json,
        created_at=p.created_at,
    )


class AddParticipantsRequest(BaseModel):
    participants: List[ParticipantCreate]
    replace_existing: bool = False


class ParticipantImportRequest(BaseModel):
    format: Literal["csv", "json", "text"]
    raw_text: str
    replace_existing: bool = False


class ParticipantImportResponse(BaseModel):
    tournament_id: int
    imported: int
    total: int
    participants: List[ParticipantResponse]


def _get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/tournaments/{tournament_id}/participants", response_model=List[ParticipantResponse])
def list_participants(tournament_id: int, session: Session = Depends(get_session)):
    """Roster in encounter order"""
    _get_tournament_or_404(session, tournament_id)
    return [participant_to_response(p) for p in bracket_service.load_roster(session, tournament_id)]


@router.post(
    "/tournaments/{tournament_id}/participants",
    response_model=List[ParticipantResponse],
    status_code=201,
)
def add_participants(
    tournament_id: int,
    payload: AddParticipantsRequest,
    session: Session = Depends(get_session),
):
    """Add participants and regenerate the bracket"""
    _get_tournament_or_404(session, tournament_id)
    if not payload.participants:
        raise HTTPException(status_code=422, detail="participants must not be empty")
    try:
        roster = bracket_service.add_participants(
            session,
            tournament_id,
            [p.to_input() for p in payload.participants],
            replace_existing=payload.replace_existing,
        )
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return [participant_to_response(p) for p in roster]


@router.delete("/tournaments/{tournament_id}/participants/{participant_id}", status_code=204)
def delete_participant(
    tournament_id: int,
    participant_id: str,
    session: Session = Depends(get_session),
):
    """Remove a participant and regenerate the bracket"""
    _get_tournament_or_404(session, tournament_id)
    try:
        bracket_service.remove_participant(session, tournament_id, participant_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Participant not found")
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return None


@router.post(
    "/tournaments/{tournament_id}/participants/import",
    response_model=ParticipantImportResponse,
)
def import_roster(
    tournament_id: int,
    payload: ParticipantImportRequest,
    session: Session = Depends(get_session),
):
    """Import participants from CSV, JSON or one-name-per-line text"""
    _get_tournament_or_404(session, tournament_id)
    try:
        entries = import_participants(payload.format, payload.raw_text)
        roster = bracket_service.add_participants(
            session, tournament_id, entries, replace_existing=payload.replace_existing
        )
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return ParticipantImportResponse(
        tournament_id=tournament_id,
        imported=len(entries),
        total=len(roster),
        participants=[participant_to_response(p) for p in roster],
    )
