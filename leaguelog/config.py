# leaguelog/config.py

import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

DEFAULT_DB = "data/leaguelog.db"

PLAYERS_RANGE_FALLBACK = "Player OVR!A2:J"
SERIES_RANGE_FALLBACK = "Match Log!A2:I"
MAPS_RANGE_FALLBACK = "Map Log!A2:F"
PLAYER_LOG_RANGE_FALLBACK = "Player Log!A2:P"
SCHEDULE_RANGE_FALLBACK = "schedule!A2:J"

SERIES_GRID = "A2:I"
MAPS_GRID = "A2:F"
PLAYER_LOG_GRID = "A2:P"
SCHEDULE_GRID = "A2:J"

SCHEDULE_SHEET = "schedule"

# Legacy seasons live on their own worksheets with the same column grid.
SEASON_SHEETS: Dict[int, Dict[str, str]] = {
    0: {"series": "match_log_s0", "maps": "map_log_s0", "player_log": "player_log_s0"},
    1: {"series": "match_log_s1", "maps": "map_log_s1", "player_log": "player_log_s1"},
    2: {"series": "Match Log", "maps": "Map Log", "player_log": "Player Log"},
}


def _env(environ: Mapping[str, str], key: str, fallback: Optional[str] = None) -> Optional[str]:
    value = environ.get(key, "")
    value = value.strip() if value else ""
    return value or fallback


@dataclass(frozen=True)
class IngestConfig:
    sheet_id: Optional[str] = None
    api_key: Optional[str] = None
    players_range: str = PLAYERS_RANGE_FALLBACK
    series_range: str = SERIES_RANGE_FALLBACK
    maps_range: str = MAPS_RANGE_FALLBACK
    player_log_range: str = PLAYER_LOG_RANGE_FALLBACK
    schedule_range: str = SCHEDULE_RANGE_FALLBACK
    db_path: str = DEFAULT_DB

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "IngestConfig":
        env = os.environ if environ is None else environ
        return cls(
            sheet_id=_env(env, "SHEET_ID"),
            api_key=_env(env, "SHEETS_API_KEY"),
            players_range=_env(env, "SHEET_RANGE_PLAYERS", PLAYERS_RANGE_FALLBACK),
            series_range=_env(env, "SHEET_RANGE_SERIES", SERIES_RANGE_FALLBACK),
            maps_range=_env(env, "SHEET_RANGE_MAPS", MAPS_RANGE_FALLBACK),
            player_log_range=_env(env, "SHEET_RANGE_PLAYER_LOG", PLAYER_LOG_RANGE_FALLBACK),
            schedule_range=_env(env, "SHEET_RANGE_SCHEDULE", SCHEDULE_RANGE_FALLBACK),
            db_path=_env(env, "LEAGUELOG_DB_PATH", DEFAULT_DB),
        )
