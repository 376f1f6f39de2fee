"""
Roster import and tournament export.

Imports turn pasted/uploaded text into ParticipantInput entries:
  CSV   header row; columns name, country, seed, category (case-insensitive)
  JSON  list of {"name", "country"?, "seed"?, "category"?, "metadata"?}
  text  one name per line; seed follows line order

Exports are plain strings (JSON document, CSV table); the HTTP layer decides
how to ship them.
"""
import csv
import io
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, field_validator

from tourney.services.bracket_engine import InvalidInputError, participant_stats
from tourney.services.bracket_service import ParticipantInput

logger = logging.getLogger(__name__)

CSV_EXPORT_COLUMNS = ["seed", "name", "country", "category", "matches", "wins", "losses"]


class ParticipantImportRow(BaseModel):
    """One imported roster entry. Empty strings count as missing."""

    model_config = ConfigDict(extra="ignore")

    name: str
    country: Optional[str] = None
    seed: Optional[int] = None
    category: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("country", "category", "seed", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def to_input(self) -> ParticipantInput:
        return ParticipantInput(
            name=self.name,
            country=self.country.strip() if self.country else None,
            seed=self.seed,
            category=self.category.strip() if self.category else None,
            metadata=self.metadata,
        )


_rows_adapter = TypeAdapter(List[ParticipantImportRow])


def import_from_csv(text: str) -> List[ParticipantInput]:
    """Parse a CSV roster. Rows that fail validation are skipped with a warning."""
    reader = csv.DictReader(io.StringIO(text.strip()))
    if reader.fieldnames is None:
        raise InvalidInputError("No valid participants found in CSV")
    reader.fieldnames = [h.lower().strip() for h in reader.fieldnames]

    entries: List[ParticipantInput] = []
    for line_number, raw in enumerate(reader, start=2):
        row = {k: v for k, v in raw.items() if k is not None}
        if not any((v or "").strip() for v in row.values()):
            continue
        try:
            entries.append(ParticipantImportRow.model_validate(row).to_input())
        except ValidationError as e:
            logger.warning("Skipping invalid CSV row %d: %s", line_number, e.errors()[0]["msg"])

    if not entries:
        raise InvalidInputError("No valid participants found in CSV")
    return entries


def import_from_json(text: str) -> List[ParticipantInput]:
    try:
        rows = _rows_adapter.validate_json(text)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid JSON format: {e.errors()[0]['msg']}") from e
    if not rows:
        raise InvalidInputError("No participants found in JSON")
    return [r.to_input() for r in rows]


def import_from_text(text: str) -> List[ParticipantInput]:
    names = [line.strip() for line in text.splitlines() if line.strip()]
    if not names:
        raise InvalidInputError("No participants found in text")
    return [ParticipantInput(name=name, seed=i + 1) for i, name in enumerate(names)]


IMPORTERS = {
    "csv": import_from_csv,
    "json": import_from_json,
    "text": import_from_text,
}


def import_participants(fmt: str, text: str) -> List[ParticipantInput]:
    importer = IMPORTERS.get(fmt.lower())
    if importer is None:
        raise InvalidInputError(f"Unsupported import format: {fmt}")
    return importer(text)


def export_filename(tournament_name: str, suffix: str) -> str:
    """'Spring Open' + 'participants.csv' -> 'Spring-Open-participants.csv'"""
    return f"{'-'.join(tournament_name.split())}-{suffix}"


def export_tournament_json(record: Dict[str, Any]) -> str:
    """Pretty JSON of a full tournament record (already JSON-safe)."""
    return json.dumps(record, indent=2)


def export_participants_csv(participants, matches) -> str:
    """Participants with match/win/loss counts, in roster order.

    participants / matches are engine dataclasses.
    """
    stats = participant_stats(participants, matches)
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=CSV_EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for index, p in enumerate(participants):
        s = stats[p.id]
        writer.writerow(
            {
                "seed": p.seed or index + 1,
                "name": p.name,
                "country": p.country or "",
                "category": p.category or "",
                "matches": s.matches,
                "wins": s.wins,
                "losses": s.losses,
            }
        )
    return buf.getvalue()
