"""
Bracket Engine — single-elimination bracket generation and advancement.

Pure functions over plain dataclasses; no sessions, no I/O:
1. build()      participant roster -> full match tree (BYEs resolved as WALKOVER)
2. advance()    one edited match -> new consistent match collection
3. reset()      clear every result, keep first-round seating

Round numbering counts down to the final: round 0 is the final, round 1 the
semifinals, and so on. A match at (round, position) feeds the match at
(round - 1, position // 2); even positions feed the red slot, odd the blue.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

RED = "red_competitor_id"
BLUE = "blue_competitor_id"


class InvalidInputError(ValueError):
    """Caller supplied data the engine cannot build or apply."""


class InternalConsistencyError(RuntimeError):
    """The match tree is corrupted (missing match or dangling next_match_id)."""


class ResultType(str, Enum):
    PENDING = "PENDING"
    SCORE = "SCORE"
    KO = "KO"
    WALKOVER = "WALKOVER"
    DQ = "DQ"
    TIE = "TIE"


@dataclass
class Participant:
    id: str
    name: str
    country: Optional[str] = None
    seed: Optional[int] = None
    category: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


@dataclass
class Match:
    id: str
    round: int
    position: int
    red_competitor_id: Optional[str] = None  # None = BYE / not yet known
    blue_competitor_id: Optional[str] = None
    winner_id: Optional[str] = None
    result_type: ResultType = ResultType.PENDING
    red_score: Optional[str] = None
    blue_score: Optional[str] = None
    next_match_id: Optional[str] = None  # None for the final
    metadata: Optional[Dict[str, str]] = None

    @property
    def feeds_slot(self) -> str:
        """Slot of the next match this match's winner is written into."""
        return RED if self.position % 2 == 0 else BLUE


def new_id() -> str:
    return uuid.uuid4().hex


def bracket_size(participant_count: int) -> int:
    """Smallest power of two >= participant_count (5 -> 8)."""
    return 2 ** math.ceil(math.log2(participant_count))


def seeding_order(participants: List[Participant]) -> List[Participant]:
    """Seeded participants ascending by seed, then unseeded in encounter order."""
    return sorted(participants, key=lambda p: (p.seed is None, p.seed or 0))


def snake_slots(seeded: List[Optional[Participant]]) -> List[Optional[Participant]]:
    """Take alternately from the front and the back of the padded list.

    [1, 2, 3, 4, 5, BYE, BYE, BYE] -> [1, BYE, 2, BYE, 3, BYE, 4, 5]
    """
    slots: List[Optional[Participant]] = []
    top, bottom = 0, len(seeded) - 1
    from_top = True
    while top <= bottom:
        if from_top:
            slots.append(seeded[top])
            top += 1
        else:
            slots.append(seeded[bottom])
            bottom -= 1
        from_top = not from_top
    return slots


def _resolve_bye(match: Match) -> None:
    red, blue = match.red_competitor_id, match.blue_competitor_id
    if (red is None) == (blue is None):
        return
    match.winner_id = red if red is not None else blue
    match.result_type = ResultType.WALKOVER


def build(participants: List[Participant]) -> List[Match]:
    """Build the full single-elimination match tree for a roster.

    First-round matches with one BYE are already resolved as WALKOVER; all
    later rounds start empty and PENDING. Output runs from the first round
    down to the final, positions ascending.
    """
    if len(participants) < 2:
        raise InvalidInputError("At least 2 participants are required")

    size = bracket_size(len(participants))
    total_rounds = int(math.log2(size))

    padded: List[Optional[Participant]] = list(seeding_order(participants))
    padded.extend([None] * (size - len(participants)))
    slots = snake_slots(padded)

    rounds: Dict[int, List[Match]] = {}
    for round_number in range(total_rounds - 1, -1, -1):
        round_matches = []
        for position in range(2 ** round_number):
            match = Match(id=new_id(), round=round_number, position=position)
            if round_number == total_rounds - 1:
                red = slots[position * 2]
                blue = slots[position * 2 + 1]
                match.red_competitor_id = red.id if red else None
                match.blue_competitor_id = blue.id if blue else None
                _resolve_bye(match)
            round_matches.append(match)
        rounds[round_number] = round_matches

    # Link pass: every target exists before it is referenced
    for round_number in range(total_rounds - 1, 0, -1):
        targets = rounds[round_number - 1]
        for match in rounds[round_number]:
            match.next_match_id = targets[match.position // 2].id

    return [m for r in range(total_rounds - 1, -1, -1) for m in rounds[r]]


def _clear_result(match: Match) -> None:
    match.winner_id = None
    match.result_type = ResultType.PENDING
    match.red_score = None
    match.blue_score = None
    match.metadata = None


def _feeder_index(matches: Dict[str, Match]) -> Dict[Tuple[str, str], str]:
    """(target match id, slot) -> id of the match feeding that slot."""
    feeders: Dict[Tuple[str, str], str] = {}
    for m in matches.values():
        if m.next_match_id is not None:
            feeders[(m.next_match_id, m.feeds_slot)] = m.id
    return feeders


def _is_bye_slot(
    match: Match,
    slot: str,
    by_id: Dict[str, Match],
    feeders: Dict[Tuple[str, str], str],
) -> bool:
    """Empty slot that no participant can ever reach.

    A slot still waiting on an unfinished feeder is not a BYE.
    """
    if getattr(match, slot) is not None:
        return False
    feeder_id = feeders.get((match.id, slot))
    if feeder_id is None:
        return True
    feeder = by_id.get(feeder_id)
    if feeder is None:
        raise InternalConsistencyError(f"Feeder match {feeder_id} missing")
    return _is_bye_slot(feeder, RED, by_id, feeders) and _is_bye_slot(feeder, BLUE, by_id, feeders)


def _walkover_winner(
    match: Match,
    by_id: Dict[str, Match],
    feeders: Dict[Tuple[str, str], str],
) -> Optional[str]:
    red, blue = match.red_competitor_id, match.blue_competitor_id
    if red is not None and blue is None and _is_bye_slot(match, BLUE, by_id, feeders):
        return red
    if blue is not None and red is None and _is_bye_slot(match, RED, by_id, feeders):
        return blue
    return None


def advance(matches: List[Match], edited_match: Match) -> List[Match]:
    """Apply one edited match and propagate the consequences toward the final.

    The edited match's result fields are authoritative. Downstream matches
    whose input competitor changed lose their result; a match left with one
    competitor against a BYE-equivalent slot is resolved as WALKOVER and the
    cascade continues. The input list is not mutated.
    """
    by_id = {m.id: replace(m) for m in matches}
    if edited_match.id not in by_id:
        raise InternalConsistencyError(f"Match {edited_match.id} is not part of this bracket")

    winner = edited_match.winner_id
    if winner is not None and winner not in (edited_match.red_competitor_id, edited_match.blue_competitor_id):
        raise InvalidInputError(f"Winner {winner} is not a competitor of match {edited_match.id}")

    current = replace(edited_match)
    by_id[current.id] = current
    feeders = _feeder_index(by_id)

    steps = 0
    while current.next_match_id is not None:
        steps += 1
        if steps > len(by_id):
            raise InternalConsistencyError(f"Cycle in next_match_id chain at match {current.id}")
        nxt = by_id.get(current.next_match_id)
        if nxt is None:
            raise InternalConsistencyError(
                f"Match {current.id} points to missing next match {current.next_match_id}"
            )
        slot = current.feeds_slot

        if current.winner_id is not None:
            changed = getattr(nxt, slot) != current.winner_id
            setattr(nxt, slot, current.winner_id)
            if changed:
                _clear_result(nxt)

            walkover = _walkover_winner(nxt, by_id, feeders)
            if walkover is not None:
                nxt.winner_id = walkover
                nxt.result_type = ResultType.WALKOVER
            elif not changed:
                break
        else:
            setattr(nxt, slot, None)
            _clear_result(nxt)

        current = nxt

    return [by_id[m.id] for m in matches]


def seat_byes(matches: List[Match]) -> List[Match]:
    """Resolve every first-round BYE as WALKOVER and advance its winner.

    Works on freshly built and on reset brackets alike.
    """
    if not matches:
        return []
    first_round = max(m.round for m in matches)
    result = list(matches)
    openers = sorted((m for m in matches if m.round == first_round), key=lambda m: m.position)
    for opener in openers:
        if (opener.red_competitor_id is None) == (opener.blue_competitor_id is None):
            continue
        resolved = replace(opener)
        _resolve_bye(resolved)
        result = advance(result, resolved)
    return result


def reset(matches: List[Match]) -> List[Match]:
    """Clear every result; competitor slots survive only in the first round."""
    if not matches:
        return []
    first_round = max(m.round for m in matches)
    out = []
    for m in matches:
        cleared = replace(
            m,
            winner_id=None,
            result_type=ResultType.PENDING,
            red_score=None,
            blue_score=None,
        )
        if m.round != first_round:
            cleared.red_competitor_id = None
            cleared.blue_competitor_id = None
        out.append(cleared)
    return out


def total_rounds(matches) -> int:
    """Round count of a bracket; accepts engine matches or stored match rows."""
    return max((m.round for m in matches), default=-1) + 1


def round_label(round_number: int, rounds: int) -> str:
    """Display name for a round: Final, Semifinals, Quarterfinals, Round N."""
    if round_number == 0:
        return "Final"
    if round_number == 1:
        return "Semifinals"
    if round_number == 2:
        return "Quarterfinals"
    return f"Round {rounds - round_number}"


@dataclass
class ParticipantStats:
    participant_id: str
    matches: int = 0
    wins: int = 0
    losses: int = 0
    pending: int = 0
    eliminated: bool = False


def participant_stats(participants: List[Participant], matches: List[Match]) -> Dict[str, ParticipantStats]:
    """Matches played/won/lost per participant. BYE walkovers count as wins."""
    stats = {p.id: ParticipantStats(participant_id=p.id) for p in participants}
    for m in matches:
        for pid in (m.red_competitor_id, m.blue_competitor_id):
            if pid is None or pid not in stats:
                continue
            s = stats[pid]
            s.matches += 1
            if m.winner_id is None:
                s.pending += 1
            elif m.winner_id == pid:
                s.wins += 1
            else:
                s.losses += 1
                s.eliminated = True
    return stats
