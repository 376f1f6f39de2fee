"""Tournament export endpoints (JSON record, participant CSV)."""
from fastapi import APIRouter, Depends, HTTPException, Response
from sqlmodel import Session

from tourney.database import get_session
from tourney.models.tournament import Tournament
from tourney.routes.tournaments import tournament_detail
from tourney.services import bracket_service
from tourney.services.import_export import (
    export_filename,
    export_participants_csv,
    export_tournament_json,
)

router = APIRouter()


def _attachment(content: str, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/tournaments/{tournament_id}/export/json")
def export_json(tournament_id: int, session: Session = Depends(get_session)):
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    record = tournament_detail(session, tournament).model_dump(mode="json")
    return _attachment(
        export_tournament_json(record),
        "application/json",
        export_filename(tournament.name, "tournament.json"),
    )


@router.get("/tournaments/{tournament_id}/export/csv")
def export_csv(tournament_id: int, session: Session = Depends(get_session)):
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    participants = [bracket_service.to_engine_participant(p) for p in bracket_service.load_roster(session, tournament_id)]
    matches = [bracket_service.to_engine_match(m) for m in bracket_service.load_matches(session, tournament_id)]
    return _attachment(
        export_participants_csv(participants, matches),
        "text/csv; charset=utf-8",
        export_filename(tournament.name, "participants.csv"),
    )
