"""
Services Layer

- bracket_engine: pure bracket generation / advancement / reset over dataclasses
- bracket_service: loads and persists matches around the engine
- import_export: roster import parsers and tournament exports

Services do NOT depend on HTTP request/response objects.
"""

# Force SQLModel table registration at test discovery time
from tourney.models.match import Match  # noqa: F401
from tourney.models.participant import Participant  # noqa: F401
from tourney.models.tournament import Tournament  # noqa: F401
