# leaguelog/normalizer.py

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

from leaguelog.models import (
    AssignedLogRow,
    MapRecord,
    MatchSeries,
    NormalizeResult,
    Player,
    PlayerLogRow,
    ScheduleEntry,
)
from leaguelog.schedule import build_schedule_id, build_schedule_slug, normalize_division

logger = logging.getLogger(__name__)

ALLOWED_MODES = ("Hardpoint", "SnD", "Control")

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
MONTH_DAY_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})$")

# Formats tried by the generic parse, in order.
GENERIC_DATE_FORMATS = (
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%Y/%m/%d",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%a, %d %b %Y",
    "%A, %B %d, %Y",
)

MAP_COLUMNS = {
    "match_id": (["match id", "match_id"], 0),
    "map_num": (["map #", "map number", "map_num"], 1),
    "mode": (["mode", "game mode"], 2),
    "map_name": (["map", "map name"], 3),
    "winner_team": (["winner team", "winning team", "winner"], 4),
    "loser_team": (["losing team", "loser"], 5),
}

PLAYER_LOG_COLUMNS = {
    "match_id": (["match id", "match_id"], 0),
    "match_date": (["match date", "date"], 2),
    "team": (["team", "team name"], 4),
    "player": (["player", "player name"], 5),
    "discord_id": (["discord id", "discord_id", "discord"], 6),
    "mode": (["mode", "game mode"], 7),
    "kills": (["k", "kills"], 8),
    "deaths": (["d", "deaths"], 9),
    "assists": (["a", "assists"], None),
    "hp_time": (["hp time", "hardpoint time", "hill time"], 11),
    "plants": (["plants"], 12),
    "defuses": (["defuses"], 13),
    "ticks": (["ticks"], 14),
    "write_in": (["write in", "write_in"], 15),
}

SCHEDULE_COLUMNS = {
    "week": (["week"], 0),
    "start_date": (["start date", "start"], 1),
    "end_date": (["end date", "end"], 2),
    "division": (["division"], 3),
    "home_team": (["home team", "home"], 4),
    "away_team": (["away team", "away"], 5),
    "home_gm": (["home gm", "home gm name"], 6),
    "away_gm": (["away gm", "away gm name"], 7),
    "match_time": (["match time", "time"], 8),
    "stream_link": (["stream link/vod", "stream link", "vod"], 9),
}


def to_number(value: Any) -> float:
    """Coerce a sheet cell to a finite float; anything else becomes 0."""
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        numeric = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return 0.0
        try:
            numeric = float(text)
        except ValueError:
            return 0.0
    return numeric if math.isfinite(numeric) else 0.0


def to_int(value: Any) -> int:
    # Half-up, not banker's rounding.
    return int(math.floor(to_number(value) + 0.5))


def to_optional_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(str(value).strip().replace(",", ""))
    except ValueError:
        return None
    return numeric if math.isfinite(numeric) else None


def to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_mode(value: Any) -> Optional[str]:
    text = to_text(value)
    if not text:
        return None
    for mode in ALLOWED_MODES:
        if mode.lower() == text.lower():
            return mode
    return None


def parse_rank(value: Any) -> Tuple[Optional[float], bool]:
    """Return (rank_value, rank_is_na). Blank, "NA" and out-of-range ranks are NA."""
    text = to_text(value)
    if text is None or text.lower() == "na":
        return None, True
    try:
        numeric = float(text)
    except ValueError:
        return None, True
    if not math.isfinite(numeric) or numeric < 0.5 or numeric > 18.0:
        return None, True
    return numeric, False


def normalize_header(value: Any) -> str:
    return re.sub(r"\s+", " ", str(value or "").lower()).strip()


def build_header_index(headers: Sequence[Any]) -> Dict[str, int]:
    index: Dict[str, int] = {}
    for position, header in enumerate(headers or []):
        key = normalize_header(header)
        if key:
            index[key] = position
    return index


def resolve_columns(header_index: Dict[str, int], layout: Dict[str, Tuple[List[str], Optional[int]]]) -> Dict[str, Optional[int]]:
    """Map each field to a column position: first matching header candidate, else the fallback."""
    columns: Dict[str, Optional[int]] = {}
    for field_name, (candidates, fallback) in layout.items():
        position = fallback
        for candidate in candidates:
            match = header_index.get(normalize_header(candidate))
            if match is not None:
                position = match
                break
        columns[field_name] = position
    return columns


def cell(row: Sequence[Any], position: Optional[int]) -> Any:
    if position is None or position < 0 or position >= len(row):
        return None
    return row[position]


def dedupe_first(records: Iterable[Any], key_fn: Callable[[Any], Hashable]) -> Tuple[List[Any], int]:
    """Keep the first record per natural key in input order. Returns (kept, dropped)."""
    seen = set()
    kept: List[Any] = []
    dropped = 0
    for record in records:
        key = key_fn(record)
        if key in seen:
            dropped += 1
            continue
        seen.add(key)
        kept.append(record)
    return kept, dropped


def series_key(series: MatchSeries) -> Hashable:
    return series.match_id


def map_key(map_record: MapRecord) -> Hashable:
    return (map_record.match_id, map_record.map_num)


def player_stat_key(assigned: AssignedLogRow) -> str:
    """Natural key of a player-map stat row. Unresolved rows are keyed by source row."""
    slot = str(assigned.map_num) if assigned.is_resolved else f"u{assigned.row.source_row}"
    return f"{assigned.row.match_id}|{slot}|{assigned.row.discord_id}"


class IngestionNormalizer:
    """
    Turn positional sheet rows into typed records.

    Every ``normalize_*`` method takes the raw rows of one range, the sheet row
    number of the first data row, and (where columns can drift between
    seasons) the header row. Rows that cannot be converted are dropped and
    counted, never raised.
    """

    def __init__(self, today: Optional[date] = None):
        self.today = today

    @property
    def current_year(self) -> int:
        return (self.today or date.today()).year

    def normalize_date(self, value: Any) -> Optional[str]:
        """
        Normalize a match date to YYYY-MM-DD.

        Args:
            value: Raw cell ("2024-04-12", "4/12", "April 12, 2024", ...)

        Returns:
            The normalized date, or None when no strategy can read it
        """
        raw = to_text(value)
        if raw is None:
            return None

        if ISO_DATE_RE.match(raw):
            return raw

        month_day = MONTH_DAY_RE.match(raw)
        if month_day:
            month, day = int(month_day.group(1)), int(month_day.group(2))
            if 1 <= month <= 12 and 1 <= day <= 31:
                return f"{self.current_year}-{month:02d}-{day:02d}"

        return self._parse_generic_date(raw)

    @staticmethod
    def _parse_generic_date(raw: str) -> Optional[str]:
        try:
            return datetime.fromisoformat(raw.replace("Z", "+00:00")).strftime("%Y-%m-%d")
        except ValueError:
            pass
        for fmt in GENERIC_DATE_FORMATS:
            try:
                return datetime.strptime(raw, fmt).strftime("%Y-%m-%d")
            except ValueError:
                continue
        return None

    # --- Players ---

    def map_player_row(self, row: Sequence[Any]) -> Optional[Player]:
        if len(row) < 2:
            return None
        discord_id = to_text(cell(row, 1))
        if not discord_id:
            return None
        rank_value, rank_is_na = parse_rank(cell(row, 4))
        return Player(
            discord_id=discord_id,
            discord_name=to_text(cell(row, 0)),
            ign=to_text(cell(row, 2)),
            rank_value=rank_value,
            rank_is_na=rank_is_na,
            team=to_text(cell(row, 5)),
            status=to_text(cell(row, 6)),
            women_status=to_text(cell(row, 7)),
            womens_team=to_text(cell(row, 8)),
            womens_rank=to_optional_number(cell(row, 9)),
        )

    def normalize_players(self, rows: Sequence[Sequence[Any]], start_row: int = 2) -> NormalizeResult:
        result = NormalizeResult()
        players: List[Player] = []
        for offset, row in enumerate(rows or []):
            player = self.map_player_row(row)
            if player is None:
                result.rejected += 1
                logger.debug("Dropped player row %s: missing discord id", start_row + offset)
                continue
            players.append(player)
        result.records, result.duplicates = dedupe_first(players, lambda p: p.discord_id)
        self._log_result("players", result)
        return result

    # --- Series ---

    def map_series_row(self, row: Sequence[Any], season: int, source_row: int) -> Optional[MatchSeries]:
        match_id = to_text(cell(row, 0))
        if not match_id:
            return None
        match_date = self.normalize_date(cell(row, 2))
        if match_date is None:
            return None
        return MatchSeries(
            match_id=match_id,
            match_date=match_date,
            home_team=to_text(cell(row, 4)),
            away_team=to_text(cell(row, 5)),
            home_wins=to_int(cell(row, 6)),
            away_wins=to_int(cell(row, 7)),
            series_winner=to_text(cell(row, 8)),
            season=season,
            source_row=source_row,
        )

    def normalize_series(self, rows: Sequence[Sequence[Any]], season: int, start_row: int = 2) -> NormalizeResult:
        result = NormalizeResult()
        series: List[MatchSeries] = []
        for offset, row in enumerate(rows or []):
            source_row = start_row + offset
            record = self.map_series_row(row, season, source_row)
            if record is None:
                result.rejected += 1
                logger.debug("Dropped series row %s: missing match id or unparseable date", source_row)
                continue
            series.append(record)
        result.records, result.duplicates = dedupe_first(series, series_key)
        self._log_result(f"season {season} series", result)
        return result

    # --- Maps ---

    def map_map_row(
        self,
        row: Sequence[Any],
        columns: Dict[str, Optional[int]],
        season: int,
        source_row: int,
    ) -> Optional[MapRecord]:
        match_id = to_text(cell(row, columns["match_id"]))
        map_num = to_int(cell(row, columns["map_num"]))
        mode = normalize_mode(cell(row, columns["mode"]))
        if not match_id or not map_num or not mode:
            return None
        return MapRecord(
            match_id=match_id,
            map_num=map_num,
            mode=mode,
            map_name=to_text(cell(row, columns["map_name"])) or "",
            winner_team=to_text(cell(row, columns["winner_team"])) or "",
            loser_team=to_text(cell(row, columns["loser_team"])) or "",
            season=season,
            source_row=source_row,
        )

    def normalize_maps(
        self,
        rows: Sequence[Sequence[Any]],
        season: int,
        start_row: int = 2,
        headers: Optional[Sequence[Any]] = None,
    ) -> NormalizeResult:
        columns = resolve_columns(build_header_index(headers or []), MAP_COLUMNS)
        result = NormalizeResult()
        maps: List[MapRecord] = []
        for offset, row in enumerate(rows or []):
            source_row = start_row + offset
            record = self.map_map_row(row, columns, season, source_row)
            if record is None:
                result.rejected += 1
                logger.debug("Dropped map row %s: missing match id, map number or mode", source_row)
                continue
            maps.append(record)
        result.records, result.duplicates = dedupe_first(maps, map_key)
        self._log_result(f"season {season} maps", result)
        return result

    # --- Player log ---

    def map_player_log_row(
        self,
        row: Sequence[Any],
        columns: Dict[str, Optional[int]],
        season: int,
        source_row: int,
    ) -> Optional[PlayerLogRow]:
        match_id = to_text(cell(row, columns["match_id"]))
        discord_id = to_text(cell(row, columns["discord_id"]))
        mode = normalize_mode(cell(row, columns["mode"]))
        if not match_id or not discord_id or not mode:
            return None

        # Mode-specific counters only exist for their own mode.
        hp_time = to_int(cell(row, columns["hp_time"])) if mode == "Hardpoint" else None
        plants = to_int(cell(row, columns["plants"])) if mode == "SnD" else None
        defuses = to_int(cell(row, columns["defuses"])) if mode == "SnD" else None
        ticks = to_int(cell(row, columns["ticks"])) if mode == "Control" else None

        return PlayerLogRow(
            match_id=match_id,
            discord_id=discord_id,
            mode=mode,
            season=season,
            source_row=source_row,
            team=to_text(cell(row, columns["team"])),
            player=to_text(cell(row, columns["player"])),
            match_date=self.normalize_date(cell(row, columns["match_date"])),
            kills=to_int(cell(row, columns["kills"])),
            deaths=to_int(cell(row, columns["deaths"])),
            assists=to_int(cell(row, columns["assists"])),
            hp_time=hp_time,
            plants=plants,
            defuses=defuses,
            ticks=ticks,
            write_in=to_text(cell(row, columns["write_in"])),
        )

    def normalize_player_log(
        self,
        rows: Sequence[Sequence[Any]],
        season: int,
        start_row: int = 2,
        headers: Optional[Sequence[Any]] = None,
    ) -> NormalizeResult:
        """
        Convert player-log rows. Duplicates are not removed here: the natural
        key needs the map number, which only exists after map assignment
        (see ``dedupe_player_stats``).
        """
        columns = resolve_columns(build_header_index(headers or []), PLAYER_LOG_COLUMNS)
        result = NormalizeResult()
        for offset, row in enumerate(rows or []):
            source_row = start_row + offset
            record = self.map_player_log_row(row, columns, season, source_row)
            if record is None:
                result.rejected += 1
                logger.debug("Dropped player log row %s: missing match id, discord id or mode", source_row)
                continue
            result.records.append(record)
        self._log_result(f"season {season} player log", result)
        return result

    @staticmethod
    def dedupe_player_stats(assigned_rows: Iterable[AssignedLogRow]) -> Tuple[List[AssignedLogRow], int]:
        return dedupe_first(assigned_rows, player_stat_key)

    # --- Schedule ---

    def map_schedule_row(
        self,
        row: Sequence[Any],
        columns: Dict[str, Optional[int]],
        season: int,
        source_row: int,
    ) -> Optional[ScheduleEntry]:
        week_cell = cell(row, columns["week"])
        week = to_int(week_cell) if to_text(week_cell) else None
        division = normalize_division(to_text(cell(row, columns["division"])))
        home_team = to_text(cell(row, columns["home_team"]))
        away_team = to_text(cell(row, columns["away_team"]))
        if not home_team and not away_team and not division and not week:
            return None

        fields = {
            "week": week,
            "start_date": self.normalize_date(cell(row, columns["start_date"])),
            "end_date": self.normalize_date(cell(row, columns["end_date"])),
            "division": division,
            "home_team": home_team,
            "away_team": away_team,
            "home_gm": to_text(cell(row, columns["home_gm"])),
            "away_gm": to_text(cell(row, columns["away_gm"])),
            "match_time": to_text(cell(row, columns["match_time"])),
            "stream_link": to_text(cell(row, columns["stream_link"])),
        }
        return ScheduleEntry(
            schedule_id=build_schedule_id([season, *fields.values()]),
            season=season,
            slug=build_schedule_slug(season, home_team, away_team),
            source_row=source_row,
            **fields,
        )

    def normalize_schedule(
        self,
        rows: Sequence[Sequence[Any]],
        season: int,
        start_row: int = 2,
        headers: Optional[Sequence[Any]] = None,
    ) -> NormalizeResult:
        columns = resolve_columns(build_header_index(headers or []), SCHEDULE_COLUMNS)
        result = NormalizeResult()
        entries: List[ScheduleEntry] = []
        for offset, row in enumerate(rows or []):
            source_row = start_row + offset
            entry = self.map_schedule_row(row, columns, season, source_row)
            if entry is None:
                result.rejected += 1
                continue
            entries.append(entry)
        result.records, result.duplicates = dedupe_first(entries, lambda e: e.schedule_id)
        self._log_result(f"season {season} schedule", result)
        return result

    @staticmethod
    def _log_result(label: str, result: NormalizeResult) -> None:
        logger.info(
            "Normalized %s: %d accepted, %d rejected, %d duplicates dropped",
            label,
            result.accepted,
            result.rejected,
            result.duplicates,
        )
