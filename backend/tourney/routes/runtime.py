"""
Bracket runtime: match results, reset, regeneration.

A result edit runs the advancement engine: the winner moves into the next
match, stale downstream results are cleared, BYE walkovers cascade. The
returned collection is persisted only if the tree is consistent.
"""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from tourney.database import get_session
from tourney.models.match import Match
from tourney.models.tournament import Tournament
from tourney.services import bracket_service
from tourney.services.bracket_engine import (
    InternalConsistencyError,
    InvalidInputError,
    ResultType,
    round_label,
    total_rounds,
)
from tourney.services.bracket_service import MatchResultUpdate

router = APIRouter()


class MatchResultRequest(BaseModel):
    winner_id: Optional[str] = None
    result_type: Optional[ResultType] = None
    red_score: Optional[str] = None
    blue_score: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tournament_id: int
    round: int
    round_label: str
    position: int
    red_competitor_id: Optional[str] = None
    blue_competitor_id: Optional[str] = None
    winner_id: Optional[str] = None
    result_type: ResultType
    red_score: Optional[str] = None
    blue_score: Optional[str] = None
    next_match_id: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
    updated_at: datetime


class MatchResultResponse(BaseModel):
    match: MatchResponse
    updated_match_ids: List[str]
    cascaded_count: int = 0


def match_to_response(m: Match, rounds: int) -> MatchResponse:
    return MatchResponse(
        id=m.id,
        tournament_id=m.tournament_id,
        round=m.round,
        round_label=round_label(m.round, rounds),
        position=m.position,
        red_competitor_id=m.red_competitor_id,
        blue_competitor_id=m.blue_competitor_id,
        winner_id=m.winner_id,
        result_type=ResultType(m.result_type),
        red_score=m.red_score,
        blue_score=m.blue_score,
        next_match_id=m.next_match_id,
        metadata=m.metadata_json,
        updated_at=m.updated_at,
    )


def matches_to_response(matches: List[Match]) -> List[MatchResponse]:
    rounds = total_rounds(matches)
    return [match_to_response(m, rounds) for m in matches]


def _get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


@router.get("/tournaments/{tournament_id}/matches", response_model=List[MatchResponse])
def list_matches(tournament_id: int, session: Session = Depends(get_session)):
    """All matches. Stable order: first round first, then position."""
    _get_tournament_or_404(session, tournament_id)
    return matches_to_response(bracket_service.load_matches(session, tournament_id))


@router.patch(
    "/tournaments/{tournament_id}/matches/{match_id}",
    response_model=MatchResultResponse,
)
def update_match_result(
    tournament_id: int,
    match_id: str,
    payload: MatchResultRequest,
    session: Session = Depends(get_session),
) -> MatchResultResponse:
    """Record (or clear, with winner_id null) a match result and cascade it."""
    tournament = _get_tournament_or_404(session, tournament_id)

    match = session.get(Match, match_id)
    if not match or match.tournament_id != tournament_id:
        raise HTTPException(status_code=404, detail="Match not found")

    update = MatchResultUpdate(
        winner_id=payload.winner_id,
        result_type=payload.result_type,
        red_score=payload.red_score,
        blue_score=payload.blue_score,
        metadata=payload.metadata,
    )
    try:
        outcome = bracket_service.apply_match_result(session, tournament, match_id, update)
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InternalConsistencyError as e:
        raise HTTPException(status_code=500, detail=f"Bracket is inconsistent: {e}")

    rounds = total_rounds(bracket_service.load_matches(session, tournament_id))
    cascaded = [mid for mid in outcome.updated_match_ids if mid != match_id]
    return MatchResultResponse(
        match=match_to_response(outcome.match, rounds),
        updated_match_ids=outcome.updated_match_ids,
        cascaded_count=len(cascaded),
    )


@router.post("/tournaments/{tournament_id}/bracket/reset", response_model=List[MatchResponse])
def reset_bracket(tournament_id: int, session: Session = Depends(get_session)):
    """Clear every result; first-round seating is kept."""
    _get_tournament_or_404(session, tournament_id)
    return matches_to_response(bracket_service.reset_bracket(session, tournament_id))


@router.post("/tournaments/{tournament_id}/bracket/regenerate", response_model=List[MatchResponse])
def regenerate_bracket(tournament_id: int, session: Session = Depends(get_session)):
    """Rebuild the bracket from the current roster (all results are lost)."""
    _get_tournament_or_404(session, tournament_id)
    try:
        matches = bracket_service.generate_bracket(session, tournament_id)
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return matches_to_response(matches)
