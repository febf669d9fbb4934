# tests/helpers.py

import os
import tempfile
from typing import Any, Dict, List, Optional, Sequence

from leaguelog.database import Database
from leaguelog.models import (
    AssignedLogRow,
    MapRecord,
    MatchSeries,
    Player,
    PlayerLogRow,
    Resolved,
    Unresolved,
)


def create_temp_db() -> Database:
    """Create a fresh database in a temporary file. Caller removes it via remove_temp_db."""
    fd, db_path = tempfile.mkstemp(suffix='.db')
    os.close(fd)
    return Database(db_path)


def remove_temp_db(database: Database) -> None:
    database.close()
    for suffix in ("", "-wal", "-shm"):
        path = database.db_path + suffix
        if os.path.exists(path):
            os.remove(path)


def make_row(
    source_row: int,
    mode: str = "Hardpoint",
    match_id: str = "M1",
    discord_id: Optional[str] = None,
    team: str = "Aegis",
    season: int = 2,
    kills: int = 10,
    deaths: int = 5,
    write_in: Optional[str] = None,
) -> PlayerLogRow:
    return PlayerLogRow(
        match_id=match_id,
        discord_id=discord_id or f"p{source_row}",
        mode=mode,
        season=season,
        source_row=source_row,
        team=team,
        kills=kills,
        deaths=deaths,
        write_in=write_in,
    )


def make_map(
    map_num: int,
    mode: str,
    match_id: str = "M1",
    winner: str = "Aegis",
    loser: str = "Tempest",
    season: int = 2,
    map_name: str = "Den",
) -> MapRecord:
    return MapRecord(
        match_id=match_id,
        map_num=map_num,
        mode=mode,
        map_name=map_name,
        winner_team=winner,
        loser_team=loser,
        season=season,
        source_row=map_num + 1,
    )


def make_series(
    match_id: str,
    home: str,
    away: str,
    home_wins: int,
    away_wins: int,
    season: int = 2,
    match_date: str = "2025-03-01",
) -> MatchSeries:
    return MatchSeries(
        match_id=match_id,
        match_date=match_date,
        home_team=home,
        away_team=away,
        home_wins=home_wins,
        away_wins=away_wins,
        season=season,
    )


def resolved(row: PlayerLogRow, map_num: int) -> AssignedLogRow:
    return AssignedLogRow(row, Resolved(map_num))


def unresolved(row: PlayerLogRow, reason: str = "not_consumed") -> AssignedLogRow:
    return AssignedLogRow(row, Unresolved(reason))


def make_player(discord_id: str, team: str = "Aegis", rank: Optional[float] = 3.0, **kwargs) -> Player:
    return Player(
        discord_id=discord_id,
        discord_name=kwargs.pop("discord_name", f"name-{discord_id}"),
        ign=kwargs.pop("ign", f"ign-{discord_id}"),
        rank_value=rank,
        rank_is_na=rank is None,
        team=team,
        **kwargs,
    )


class FakeSource:
    """In-memory stand-in for the spreadsheet, keyed by exact A1 range."""

    def __init__(self, ranges: Dict[str, List[List[Any]]]):
        self.ranges = ranges
        self.requests: List[List[str]] = []

    def batch_get(self, ranges: Sequence[str]) -> List[List[List[Any]]]:
        self.requests.append(list(ranges))
        return [self.ranges.get(r, []) for r in ranges]


def player_log_sheet_row(
    match_id: str,
    team: str,
    player: str,
    discord_id: str,
    mode: str,
    kills: int,
    deaths: int,
    date: str = "2025-03-01",
    write_in: str = "",
) -> List[Any]:
    """A row in Player Log column order (A..P)."""
    row: List[Any] = [""] * 16
    row[0] = match_id
    row[2] = date
    row[4] = team
    row[5] = player
    row[6] = discord_id
    row[7] = mode
    row[8] = str(kills)
    row[9] = str(deaths)
    row[15] = write_in
    return row


# Two Lowers series for season 2:
#   S2-001 Aegis 2-0 Tempest (Hardpoint, SnD)
#   S2-002 Aegis 1-2 Kyber   (Hardpoint lost, SnD won, Control lost)
SERIES_SHEET = [
    ["S2-001", "", "2025-03-01", "", "Aegis", "Tempest", "2", "0", "Aegis"],
    ["S2-002", "", "3/8", "", "Aegis", "Kyber", "1", "2", "Kyber"],
]

MAPS_SHEET = [
    ["S2-001", "1", "Hardpoint", "Den", "Aegis", "Tempest"],
    ["S2-001", "2", "SnD", "Raid", "Aegis", "Tempest"],
    ["S2-002", "1", "Hardpoint", "Scar", "Kyber", "Aegis"],
    ["S2-002", "2", "SnD", "Den", "Aegis", "Kyber"],
    ["S2-002", "3", "Control", "Exposure", "Kyber", "Aegis"],
]

PLAYERS_SHEET = [
    ["ace#1", "a1", "Ace", "", "3", "Aegis", "Active"],
    ["bolt#2", "a2", "Bolt", "", "4.5", "Kyber", "Active"],
    ["nova#3", "w1", "Nova", "", "NA", "", "", "Registered", "Nova", "2"],
    ["no-id"],
]

SCHEDULE_SHEET = [
    ["1", "2025-03-01", "2025-03-07", "lowers", "Aegis", "Tempest", "", "", "8pm", ""],
    ["2", "2025-03-08", "2025-03-14", "lowers", "Aegis", "Kyber", "", "", "9pm", ""],
    ["3", "2025-03-15", "2025-03-21", "lowers", "Kyber", "Tempest", "", "", "", ""],
]


def _block(match_id: str, date: str, mode: str, home: str, away: str) -> List[List[Any]]:
    rows = []
    for n in range(1, 5):
        rows.append(player_log_sheet_row(match_id, home, f"{home}{n}", f"a{n}", mode, 10, 5, date))
    for n in range(1, 5):
        rows.append(player_log_sheet_row(match_id, away, f"{away}{n}", f"{away.lower()}{n}", mode, 5, 10, date))
    return rows


def player_log_sheet() -> List[List[Any]]:
    """Eight rows per map; one trailing S2-001 row has no map to land on."""
    rows: List[List[Any]] = []
    rows += _block("S2-001", "2025-03-01", "Hardpoint", "Aegis", "Tempest")
    rows += _block("S2-001", "2025-03-01", "SnD", "Aegis", "Tempest")
    rows.append(player_log_sheet_row("S2-001", "Aegis", "Aegis1", "a1", "Hardpoint", 7, 0, "2025-03-01"))
    rows += _block("S2-002", "2025-03-08", "Hardpoint", "Aegis", "Kyber")
    rows += _block("S2-002", "2025-03-08", "SnD", "Aegis", "Kyber")
    rows += _block("S2-002", "2025-03-08", "Control", "Aegis", "Kyber")
    return rows


def league_sheet() -> Dict[str, List[List[Any]]]:
    """Ranges for a season-2 ingest with default configuration."""
    return {
        "Player OVR!A2:J": PLAYERS_SHEET,
        "Match Log!A2:I": SERIES_SHEET,
        "Map Log!A2:F": MAPS_SHEET,
        "Player Log!A2:P": player_log_sheet(),
        "schedule!A2:J": SCHEDULE_SHEET,
    }
