"""
Bracket Service: persistence glue around the bracket engine.

Loads a tournament's roster and match rows, hands plain engine dataclasses to
bracket_engine, and writes the result back in one commit. The engine never
sees a session; this module never does bracket math.

Edits are serialized per tournament id: the engine assumes exclusive access to
the collection for the duration of one call.
"""
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlmodel import Session, select

from tourney.models.match import Match as MatchRow
from tourney.models.participant import Participant as ParticipantRow
from tourney.models.tournament import Tournament
from tourney.services import bracket_engine
from tourney.services.bracket_engine import (
    InternalConsistencyError,
    InvalidInputError,
    Match,
    Participant,
    ResultType,
)

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
_tournament_locks: Dict[int, threading.Lock] = defaultdict(threading.Lock)


def tournament_lock(tournament_id: int) -> threading.Lock:
    """At most one in-flight bracket mutation per tournament."""
    with _locks_guard:
        return _tournament_locks[tournament_id]


def release_tournament_lock(tournament_id: int) -> None:
    """Forget the lock of a deleted tournament."""
    with _locks_guard:
        _tournament_locks.pop(tournament_id, None)


@dataclass
class ParticipantInput:
    """Roster entry before it has an id (name + optional country/seed/category)."""
    name: str
    country: Optional[str] = None
    seed: Optional[int] = None
    category: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


@dataclass
class MatchResultUpdate:
    winner_id: Optional[str] = None
    result_type: Optional[ResultType] = None
    red_score: Optional[str] = None
    blue_score: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


@dataclass
class AdvanceOutcome:
    match: MatchRow
    updated_match_ids: List[str]


# -----------------------------------------------------------------------------
# Row <-> engine conversion
# -----------------------------------------------------------------------------

def to_engine_participant(row: ParticipantRow) -> Participant:
    return Participant(
        id=row.id,
        name=row.name,
        country=row.country,
        seed=row.seed,
        category=row.category,
        metadata=dict(row.metadata_json) if row.metadata_json else None,
    )


def to_engine_match(row: MatchRow) -> Match:
    return Match(
        id=row.id,
        round=row.round,
        position=row.position,
        red_competitor_id=row.red_competitor_id,
        blue_competitor_id=row.blue_competitor_id,
        winner_id=row.winner_id,
        result_type=ResultType(row.result_type),
        red_score=row.red_score,
        blue_score=row.blue_score,
        next_match_id=row.next_match_id,
        metadata=dict(row.metadata_json) if row.metadata_json else None,
    )


def _match_row(tournament_id: int, m: Match) -> MatchRow:
    return MatchRow(
        id=m.id,
        tournament_id=tournament_id,
        round=m.round,
        position=m.position,
        red_competitor_id=m.red_competitor_id,
        blue_competitor_id=m.blue_competitor_id,
        winner_id=m.winner_id,
        result_type=m.result_type.value,
        red_score=m.red_score,
        blue_score=m.blue_score,
        next_match_id=m.next_match_id,
        metadata_json=m.metadata,
    )


_SYNCED_FIELDS = (
    "red_competitor_id",
    "blue_competitor_id",
    "winner_id",
    "red_score",
    "blue_score",
)


def _sync_row(row: MatchRow, m: Match) -> bool:
    """Copy engine state onto a row. Returns True if anything changed."""
    changed = False
    for name in _SYNCED_FIELDS:
        value = getattr(m, name)
        if getattr(row, name) != value:
            setattr(row, name, value)
            changed = True
    if row.result_type != m.result_type.value:
        row.result_type = m.result_type.value
        changed = True
    if (row.metadata_json or None) != (m.metadata or None):
        row.metadata_json = m.metadata
        changed = True
    if changed:
        row.updated_at = datetime.now(timezone.utc)
    return changed


# -----------------------------------------------------------------------------
# Queries
# -----------------------------------------------------------------------------

def load_roster(session: Session, tournament_id: int) -> List[ParticipantRow]:
    """Participants in roster encounter order."""
    return list(
        session.exec(
            select(ParticipantRow)
            .where(ParticipantRow.tournament_id == tournament_id)
            .order_by(ParticipantRow.sort_order, ParticipantRow.created_at)
        ).all()
    )


def load_matches(session: Session, tournament_id: int) -> List[MatchRow]:
    """Match rows, first round first, positions ascending.

    Rows already in the session are overwritten with their committed state.
    """
    return list(
        session.exec(
            select(MatchRow)
            .where(MatchRow.tournament_id == tournament_id)
            .order_by(MatchRow.round.desc(), MatchRow.position)
            .execution_options(populate_existing=True)
        ).all()
    )


# -----------------------------------------------------------------------------
# Bracket lifecycle
# -----------------------------------------------------------------------------

def _replace_matches(session: Session, tournament_id: int, roster: List[ParticipantRow]) -> List[MatchRow]:
    """Build a fresh tree for *roster* and swap it in for the stored one.

    Builds before deleting so an invalid roster leaves the stored bracket intact.
    """
    matches = bracket_engine.build([to_engine_participant(p) for p in roster])
    matches = bracket_engine.seat_byes(matches)

    for old in load_matches(session, tournament_id):
        session.delete(old)
    session.flush()

    rows = [_match_row(tournament_id, m) for m in matches]
    for row in rows:
        session.add(row)
    return rows


def generate_bracket(session: Session, tournament_id: int) -> List[MatchRow]:
    """(Re)generate the whole bracket from the stored roster."""
    with tournament_lock(tournament_id):
        roster = load_roster(session, tournament_id)
        rows = _replace_matches(session, tournament_id, roster)
        _touch(session, tournament_id)
        session.commit()

    byes = bracket_engine.bracket_size(len(roster)) - len(roster)
    logger.info(
        "Generated bracket for tournament %d: %d participants, %d matches, %d byes",
        tournament_id, len(roster), len(rows), byes,
    )
    return load_matches(session, tournament_id)


def add_participants(
    session: Session,
    tournament_id: int,
    entries: List[ParticipantInput],
    replace_existing: bool = False,
) -> List[ParticipantRow]:
    """Add roster entries and regenerate the bracket.

    With replace_existing the current roster is dropped first. Nothing is
    written if the resulting roster cannot form a bracket.
    """
    with tournament_lock(tournament_id):
        existing = load_roster(session, tournament_id)
        kept = [] if replace_existing else existing
        next_order = max((p.sort_order for p in kept), default=-1) + 1

        new_rows = []
        for offset, entry in enumerate(entries):
            new_rows.append(
                ParticipantRow(
                    tournament_id=tournament_id,
                    name=entry.name,
                    country=entry.country,
                    seed=entry.seed,
                    category=entry.category,
                    metadata_json=entry.metadata,
                    sort_order=next_order + offset,
                )
            )
        roster = kept + new_rows

        try:
            _replace_matches(session, tournament_id, roster)
        except InvalidInputError:
            session.rollback()
            raise

        if replace_existing:
            for old in existing:
                session.delete(old)
        for row in new_rows:
            session.add(row)
        _touch(session, tournament_id)
        session.commit()

    logger.info(
        "Tournament %d roster now %d participants (%d added, replace=%s)",
        tournament_id, len(roster), len(new_rows), replace_existing,
    )
    return load_roster(session, tournament_id)


def remove_participant(session: Session, tournament_id: int, participant_id: str) -> List[ParticipantRow]:
    """Drop one participant and regenerate. Refuses to go below 2 participants."""
    with tournament_lock(tournament_id):
        roster = load_roster(session, tournament_id)
        target = next((p for p in roster if p.id == participant_id), None)
        if target is None:
            raise LookupError(f"Participant {participant_id} not found")

        remaining = [p for p in roster if p.id != participant_id]
        try:
            _replace_matches(session, tournament_id, remaining)
        except InvalidInputError:
            session.rollback()
            raise
        session.delete(target)
        _touch(session, tournament_id)
        session.commit()

    logger.info("Removed participant %s from tournament %d", participant_id, tournament_id)
    return load_roster(session, tournament_id)


def _normalize_update(tournament: Tournament, update: MatchResultUpdate) -> MatchResultUpdate:
    """Keep the PENDING/decided state machine exhaustive.

    - no winner: PENDING, scores dropped
    - winner without a decided type: SCORE
    - scores are only kept for SCORE results
    """
    result_type = update.result_type
    if update.winner_id is None:
        return MatchResultUpdate(result_type=ResultType.PENDING, metadata=update.metadata)
    if result_type is None or result_type == ResultType.PENDING:
        result_type = ResultType.SCORE
    if result_type == ResultType.TIE and not tournament.allow_ties:
        raise InvalidInputError("Ties are not allowed in this tournament")
    keep_scores = result_type == ResultType.SCORE
    return MatchResultUpdate(
        winner_id=update.winner_id,
        result_type=result_type,
        red_score=update.red_score if keep_scores else None,
        blue_score=update.blue_score if keep_scores else None,
        metadata=update.metadata,
    )


def apply_match_result(
    session: Session,
    tournament: Tournament,
    match_id: str,
    update: MatchResultUpdate,
) -> AdvanceOutcome:
    """Record a result for one match and cascade it through the bracket.

    Raises InvalidInputError for a bad edit and InternalConsistencyError for a
    corrupted tree; in both cases nothing is persisted.
    """
    tournament_id = tournament.id
    normalized = _normalize_update(tournament, update)

    with tournament_lock(tournament_id):
        rows = load_matches(session, tournament_id)
        by_id = {r.id: r for r in rows}
        if match_id not in by_id:
            raise LookupError(f"Match {match_id} not found")

        edited = to_engine_match(by_id[match_id])
        edited.winner_id = normalized.winner_id
        edited.result_type = normalized.result_type
        edited.red_score = normalized.red_score
        edited.blue_score = normalized.blue_score
        if normalized.metadata is not None:
            edited.metadata = normalized.metadata

        try:
            advanced = bracket_engine.advance([to_engine_match(r) for r in rows], edited)
        except InternalConsistencyError:
            logger.exception(
                "Bracket for tournament %d is inconsistent; refusing to persist edit of match %s",
                tournament_id, match_id,
            )
            session.rollback()
            raise

        updated_ids = []
        for m in advanced:
            row = by_id[m.id]
            if _sync_row(row, m):
                session.add(row)
                updated_ids.append(m.id)
        _touch(session, tournament_id)
        session.commit()

    logger.info(
        "Tournament %d match %s -> %s (winner=%s); %d match(es) updated",
        tournament_id, match_id, normalized.result_type.value, normalized.winner_id, len(updated_ids),
    )
    session.refresh(by_id[match_id])
    return AdvanceOutcome(match=by_id[match_id], updated_match_ids=updated_ids)


def reset_bracket(session: Session, tournament_id: int) -> List[MatchRow]:
    """Clear all results; BYE walkovers are seated again afterwards."""
    with tournament_lock(tournament_id):
        rows = load_matches(session, tournament_id)
        by_id = {r.id: r for r in rows}
        cleared = bracket_engine.reset([to_engine_match(r) for r in rows])
        cleared = bracket_engine.seat_byes(cleared)
        for m in cleared:
            row = by_id[m.id]
            if _sync_row(row, m):
                session.add(row)
        _touch(session, tournament_id)
        session.commit()

    logger.info("Reset bracket for tournament %d (%d matches)", tournament_id, len(rows))
    return load_matches(session, tournament_id)


def _touch(session: Session, tournament_id: int) -> None:
    tournament = session.get(Tournament, tournament_id)
    if tournament:
        tournament.updated_at = datetime.now(timezone.utc)
        session.add(tournament)
