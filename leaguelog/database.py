# leaguelog/database.py

import json
import logging
import os
import sqlite3
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from leaguelog.models import (
    AssignedLogRow,
    MapRecord,
    MatchSeries,
    Player,
    PlayerLogRow,
    Resolved,
    ScheduleEntry,
    Unresolved,
    UpsertCounts,
)

logger = logging.getLogger(__name__)

# SQLite caps bound parameters per statement; stay well under it.
IN_CHUNK_SIZE = 500


class PersistenceError(RuntimeError):
    """Raised when a batch write fails; the batch is rolled back."""

    def __init__(self, entity: str, attempted: int, message: str):
        super().__init__(f"Failed to upsert {attempted} {entity} rows: {message}")
        self.entity = entity
        self.attempted = attempted


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _chunks(values: Sequence[Any], size: int = IN_CHUNK_SIZE) -> Iterable[Sequence[Any]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class Database:
    """League store: sheet-sourced entities plus the ingest run ledger."""

    def __init__(self, db_path: str = 'data/leaguelog.db'):
        self.db_path = self._resolve_db_path(db_path)
        self.conn = None
        self.init_database()

    @staticmethod
    def _resolve_db_path(db_path: str) -> str:
        """Return an absolute database path anchored to project root when relative."""
        if db_path == ":memory:":
            return db_path
        path = Path(db_path)
        if path.is_absolute():
            return str(path)

        project_root = Path(__file__).resolve().parents[1]
        return str(project_root / path)

    def init_database(self):
        """Create tables if they don't exist."""
        try:
            db_dir = os.path.dirname(self.db_path)
            if db_dir:
                try:
                    os.makedirs(db_dir, exist_ok=True)
                except OSError as e:
                    raise RuntimeError(f"Failed to create database directory '{db_dir}': {e}")

            self.conn = sqlite3.connect(self.db_path, timeout=30.0, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA busy_timeout = 30000")
            self.conn.execute("PRAGMA foreign_keys = ON")
            self._set_wal_mode_best_effort()

            cursor = self.conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS player_ovr (
                    discord_id TEXT PRIMARY KEY,
                    discord_name TEXT,
                    ign TEXT,
                    rank_value REAL,
                    rank_is_na INTEGER NOT NULL DEFAULT 1,
                    team TEXT,
                    status TEXT,
                    women_status TEXT,
                    womens_team TEXT,
                    womens_rank REAL,
                    updated_at TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS match_log (
                    match_id TEXT PRIMARY KEY,
                    season INTEGER NOT NULL,
                    match_date TEXT NOT NULL,
                    home_team TEXT,
                    away_team TEXT,
                    home_wins INTEGER NOT NULL DEFAULT 0,
                    away_wins INTEGER NOT NULL DEFAULT 0,
                    series_winner TEXT,
                    source_row INTEGER,
                    updated_at TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS map_log (
                    match_id TEXT NOT NULL,
                    map_num INTEGER NOT NULL,
                    season INTEGER NOT NULL,
                    mode TEXT NOT NULL,
                    map_name TEXT,
                    winner_team TEXT,
                    loser_team TEXT,
                    source_row INTEGER,
                    updated_at TEXT,
                    PRIMARY KEY (match_id, map_num)
                )
            """)

            # map_num is NULL for rows the resolver could not place.
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS player_log (
                    stat_key TEXT PRIMARY KEY,
                    match_id TEXT NOT NULL,
                    map_num INTEGER,
                    unresolved_reason TEXT,
                    discord_id TEXT NOT NULL,
                    season INTEGER NOT NULL,
                    team TEXT,
                    player TEXT,
                    match_date TEXT,
                    mode TEXT NOT NULL,
                    kills INTEGER NOT NULL DEFAULT 0,
                    deaths INTEGER NOT NULL DEFAULT 0,
                    assists INTEGER NOT NULL DEFAULT 0,
                    hp_time INTEGER,
                    plants INTEGER,
                    defuses INTEGER,
                    ticks INTEGER,
                    write_in TEXT,
                    source_row INTEGER NOT NULL,
                    updated_at TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schedule (
                    schedule_id TEXT PRIMARY KEY,
                    season INTEGER NOT NULL,
                    slug TEXT NOT NULL,
                    week INTEGER,
                    start_date TEXT,
                    end_date TEXT,
                    division TEXT,
                    home_team TEXT,
                    away_team TEXT,
                    home_gm TEXT,
                    away_gm TEXT,
                    match_time TEXT,
                    stream_link TEXT,
                    source_row INTEGER,
                    updated_at TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS ingest_runs (
                    run_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    seasons TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    finished_at TEXT,
                    success INTEGER,
                    error TEXT,
                    summary_json TEXT
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_match_log_season ON match_log(season)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_map_log_season ON map_log(season)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_player_log_discord ON player_log(discord_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_player_log_match ON player_log(match_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_schedule_season ON schedule(season)")

            self._migrate_schema()
            self._commit_with_retry(context="initialize database")
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to initialize database at '{self.db_path}': {e}")

    def _migrate_schema(self) -> None:
        """Add columns introduced after a store was first created."""
        self._add_column_if_missing("player_log", "assists INTEGER NOT NULL DEFAULT 0", "assists")
        self._add_column_if_missing("player_log", "unresolved_reason TEXT", "unresolved_reason")
        self._add_column_if_missing("match_log", "series_winner TEXT", "series_winner")

    def _commit_with_retry(self, retries: int = 8, delay_seconds: float = 0.25, context: str = "commit") -> None:
        """
        Retry commit on transient SQLITE_BUSY/locked errors.
        """
        last_error = None
        for attempt in range(retries):
            try:
                self.conn.commit()
                return
            except sqlite3.OperationalError as e:
                last_error = e
                if "locked" not in str(e).lower() and "busy" not in str(e).lower():
                    raise
                if attempt == retries - 1:
                    break
                time.sleep(delay_seconds)
        raise RuntimeError(
            f"Failed to {context}: database remained locked after {retries} attempts ({last_error})"
        )

    def _set_wal_mode_best_effort(self, retries: int = 5, delay_seconds: float = 0.2) -> None:
        """Try to enable WAL without failing startup if the DB is temporarily locked."""
        for attempt in range(retries):
            try:
                self.conn.execute("PRAGMA journal_mode = WAL")
                return
            except sqlite3.OperationalError as e:
                msg = str(e).lower()
                if "locked" not in msg and "busy" not in msg:
                    raise
                if attempt == retries - 1:
                    logger.warning("Could not enable WAL mode (database locked); continuing. (%s)", e)
                    return
                time.sleep(delay_seconds)

    def _get_table_columns(self, table_name: str) -> set:
        cursor = self.conn.cursor()
        cursor.execute(f"PRAGMA table_info({table_name})")
        return {row["name"] for row in cursor.fetchall()}

    def _add_column_if_missing(self, table_name: str, column_sql: str, column_name: str) -> None:
        columns = self._get_table_columns(table_name)
        if column_name not in columns:
            cursor = self.conn.cursor()
            cursor.execute(f"ALTER TABLE {table_name} ADD COLUMN {column_sql}")

    # --- Upserts ---

    def _upsert(
        self,
        entity: str,
        table: str,
        key_columns: Sequence[str],
        rows: List[Dict[str, Any]],
        prepare: Optional[Callable[[sqlite3.Cursor], None]] = None,
    ) -> UpsertCounts:
        """
        Insert-or-update ``rows`` keyed by ``key_columns`` in one transaction.

        Counts a row as updated when its key already existed before the write.
        ``prepare`` runs first inside the same transaction.
        """
        if not rows:
            return UpsertCounts()

        columns = list(rows[0].keys()) + ["updated_at"]
        update_columns = [c for c in columns if c not in key_columns]
        insert_sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT({', '.join(key_columns)}) DO UPDATE SET "
            + ", ".join(f"{c} = excluded.{c}" for c in update_columns)
        )
        exists_sql = f"SELECT 1 FROM {table} WHERE " + " AND ".join(f"{c} = ?" for c in key_columns)

        inserted = 0
        updated = 0
        stamp = _now()
        cursor = self.conn.cursor()
        try:
            if prepare is not None:
                prepare(cursor)
            for row in rows:
                cursor.execute(exists_sql, tuple(row[c] for c in key_columns))
                if cursor.fetchone():
                    updated += 1
                else:
                    inserted += 1
                cursor.execute(insert_sql, tuple(row[c] for c in columns[:-1]) + (stamp,))
            self._commit_with_retry(context=f"upsert {entity}")
        except (sqlite3.Error, RuntimeError) as e:
            self.conn.rollback()
            logger.error("Upsert of %d %s rows failed: %s", len(rows), entity, e)
            raise PersistenceError(entity, len(rows), str(e)) from e

        logger.info("Upserted %s: %d inserted, %d updated", entity, inserted, updated)
        return UpsertCounts(inserted=inserted, updated=updated)

    def upsert_players(self, players: Sequence[Player]) -> UpsertCounts:
        rows = [
            {
                "discord_id": p.discord_id,
                "discord_name": p.discord_name,
                "ign": p.ign,
                "rank_value": p.rank_value,
                "rank_is_na": 1 if p.rank_is_na else 0,
                "team": p.team,
                "status": p.status,
                "women_status": p.women_status,
                "womens_team": p.womens_team,
                "womens_rank": p.womens_rank,
            }
            for p in players
        ]
        return self._upsert("players", "player_ovr", ["discord_id"], rows)

    def upsert_series(self, series: Sequence[MatchSeries]) -> UpsertCounts:
        rows = [
            {
                "match_id": s.match_id,
                "season": s.season,
                "match_date": s.match_date,
                "home_team": s.home_team,
                "away_team": s.away_team,
                "home_wins": s.home_wins,
                "away_wins": s.away_wins,
                "series_winner": s.series_winner,
                "source_row": s.source_row,
            }
            for s in series
        ]
        return self._upsert("series", "match_log", ["match_id"], rows)

    def upsert_maps(self, maps: Sequence[MapRecord]) -> UpsertCounts:
        rows = [
            {
                "match_id": m.match_id,
                "map_num": m.map_num,
                "season": m.season,
                "mode": m.mode,
                "map_name": m.map_name,
                "winner_team": m.winner_team,
                "loser_team": m.loser_team,
                "source_row": m.source_row,
            }
            for m in maps
        ]
        return self._upsert("maps", "map_log", ["match_id", "map_num"], rows)

    def upsert_player_stats(self, keyed_rows: Sequence[tuple]) -> UpsertCounts:
        """
        Upsert player-map stat rows.

        Args:
            keyed_rows: ``(stat_key, AssignedLogRow)`` pairs, already deduplicated

        Rows stored by an earlier run for the same matches are removed first
        when their key is absent from this batch. A sheet correction that moves
        a row to another map (or in or out of unresolved) is then not counted twice.
        """
        rows = []
        for stat_key, assigned in keyed_rows:
            row = assigned.row
            reason = assigned.assignment.reason if isinstance(assigned.assignment, Unresolved) else None
            rows.append({
                "stat_key": stat_key,
                "match_id": row.match_id,
                "map_num": assigned.map_num,
                "unresolved_reason": reason,
                "discord_id": row.discord_id,
                "season": row.season,
                "team": row.team,
                "player": row.player,
                "match_date": row.match_date,
                "mode": row.mode,
                "kills": row.kills,
                "deaths": row.deaths,
                "assists": row.assists,
                "hp_time": row.hp_time,
                "plants": row.plants,
                "defuses": row.defuses,
                "ticks": row.ticks,
                "write_in": row.write_in,
                "source_row": row.source_row,
            })
        return self._upsert(
            "player_stats",
            "player_log",
            ["stat_key"],
            rows,
            prepare=lambda cursor: self._delete_stale_stats(cursor, rows),
        )

    @staticmethod
    def _delete_stale_stats(cursor: sqlite3.Cursor, rows: List[Dict[str, Any]]) -> None:
        """Drop stored rows of the batch's matches whose key the batch no longer produces."""
        keys_by_match: Dict[str, set] = {}
        for row in rows:
            keys_by_match.setdefault(row["match_id"], set()).add(row["stat_key"])
        for match_id, keys in keys_by_match.items():
            cursor.execute(
                "SELECT stat_key FROM player_log WHERE match_id = ?",
                (match_id,),
            )
            stale = [r["stat_key"] for r in cursor.fetchall() if r["stat_key"] not in keys]
            for stat_key in stale:
                cursor.execute("DELETE FROM player_log WHERE stat_key = ?", (stat_key,))

    def upsert_schedule(self, entries: Sequence[ScheduleEntry]) -> UpsertCounts:
        rows = [
            {
                "schedule_id": e.schedule_id,
                "season": e.season,
                "slug": e.slug,
                "week": e.week,
                "start_date": e.start_date,
                "end_date": e.end_date,
                "division": e.division,
                "home_team": e.home_team,
                "away_team": e.away_team,
                "home_gm": e.home_gm,
                "away_gm": e.away_gm,
                "match_time": e.match_time,
                "stream_link": e.stream_link,
                "source_row": e.source_row,
            }
            for e in entries
        ]
        return self._upsert("schedule", "schedule", ["schedule_id"], rows)

    # --- Ingest runs ---

    def create_ingest_run(self, seasons: Sequence[int]) -> int:
        cursor = self.conn.cursor()
        cursor.execute(
            "INSERT INTO ingest_runs (seasons, started_at) VALUES (?, ?)",
            (",".join(str(s) for s in seasons), _now()),
        )
        self._commit_with_retry(context="create ingest run")
        return cursor.lastrowid

    def finalize_ingest_run(
        self,
        run_id: int,
        summary: Dict[str, Any],
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        cursor = self.conn.cursor()
        cursor.execute(
            """
            UPDATE ingest_runs
            SET finished_at = ?, success = ?, error = ?, summary_json = ?
            WHERE run_id = ?
            """,
            (_now(), 1 if success else 0, error, json.dumps(summary, sort_keys=True), run_id),
        )
        self._commit_with_retry(context="finalize ingest run")

    def get_ingest_run(self, run_id: int) -> Optional[Dict]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM ingest_runs WHERE run_id = ?", (run_id,))
        row = cursor.fetchone()
        if not row:
            return None
        run = dict(row)
        run["summary"] = json.loads(run.pop("summary_json") or "{}")
        run["success"] = None if run["success"] is None else bool(run["success"])
        return run

    # --- Reads ---

    @staticmethod
    def _player_from_row(row: sqlite3.Row) -> Player:
        return Player(
            discord_id=row["discord_id"],
            discord_name=row["discord_name"],
            ign=row["ign"],
            rank_value=row["rank_value"],
            rank_is_na=bool(row["rank_is_na"]),
            team=row["team"],
            status=row["status"],
            women_status=row["women_status"],
            womens_team=row["womens_team"],
            womens_rank=row["womens_rank"],
        )

    @staticmethod
    def _series_from_row(row: sqlite3.Row) -> MatchSeries:
        return MatchSeries(
            match_id=row["match_id"],
            match_date=row["match_date"],
            home_team=row["home_team"],
            away_team=row["away_team"],
            home_wins=row["home_wins"],
            away_wins=row["away_wins"],
            season=row["season"],
            series_winner=row["series_winner"],
            source_row=row["source_row"] or 0,
        )

    @staticmethod
    def _map_from_row(row: sqlite3.Row) -> MapRecord:
        return MapRecord(
            match_id=row["match_id"],
            map_num=row["map_num"],
            mode=row["mode"],
            map_name=row["map_name"] or "",
            winner_team=row["winner_team"] or "",
            loser_team=row["loser_team"] or "",
            season=row["season"],
            source_row=row["source_row"] or 0,
        )

    @staticmethod
    def _assigned_from_row(row: sqlite3.Row) -> AssignedLogRow:
        log_row = PlayerLogRow(
            match_id=row["match_id"],
            discord_id=row["discord_id"],
            mode=row["mode"],
            season=row["season"],
            source_row=row["source_row"],
            team=row["team"],
            player=row["player"],
            match_date=row["match_date"],
            kills=row["kills"],
            deaths=row["deaths"],
            assists=row["assists"],
            hp_time=row["hp_time"],
            plants=row["plants"],
            defuses=row["defuses"],
            ticks=row["ticks"],
            write_in=row["write_in"],
        )
        if row["map_num"] is not None:
            return AssignedLogRow(log_row, Resolved(row["map_num"]))
        return AssignedLogRow(log_row, Unresolved(row["unresolved_reason"] or "unknown"))

    def _select_in(self, sql: str, column: str, values: Sequence[Any], order_by: str) -> List[sqlite3.Row]:
        out: List[sqlite3.Row] = []
        values = list(dict.fromkeys(values))
        cursor = self.conn.cursor()
        for chunk in _chunks(values):
            placeholders = ", ".join("?" for _ in chunk)
            cursor.execute(f"{sql} WHERE {column} IN ({placeholders}) ORDER BY {order_by}", tuple(chunk))
            out.extend(cursor.fetchall())
        return out

    def get_player(self, discord_id: str) -> Optional[Player]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM player_ovr WHERE discord_id = ?", (discord_id,))
        row = cursor.fetchone()
        return self._player_from_row(row) if row else None

    def get_players(self, discord_ids: Optional[Sequence[str]] = None) -> List[Player]:
        if discord_ids is None:
            cursor = self.conn.cursor()
            cursor.execute("SELECT * FROM player_ovr ORDER BY discord_id")
            rows = cursor.fetchall()
        else:
            rows = self._select_in("SELECT * FROM player_ovr", "discord_id", discord_ids, "discord_id")
        return [self._player_from_row(r) for r in rows]

    def get_series(self, match_id: str) -> Optional[MatchSeries]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM match_log WHERE match_id = ?", (match_id,))
        row = cursor.fetchone()
        return self._series_from_row(row) if row else None

    def get_series_by_season(self, season: int) -> List[MatchSeries]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM match_log WHERE season = ? ORDER BY match_date, match_id", (season,))
        return [self._series_from_row(r) for r in cursor.fetchall()]

    def get_series_for_matches(self, match_ids: Sequence[str]) -> List[MatchSeries]:
        rows = self._select_in("SELECT * FROM match_log", "match_id", match_ids, "match_date, match_id")
        return [self._series_from_row(r) for r in rows]

    def get_maps_for_matches(self, match_ids: Sequence[str]) -> List[MapRecord]:
        rows = self._select_in("SELECT * FROM map_log", "match_id", match_ids, "match_id, map_num")
        return [self._map_from_row(r) for r in rows]

    def get_player_log_for_player(self, discord_id: str, seasons: Optional[Sequence[int]] = None) -> List[AssignedLogRow]:
        cursor = self.conn.cursor()
        query = "SELECT * FROM player_log WHERE discord_id = ?"
        params: List[Any] = [discord_id]
        if seasons:
            query += f" AND season IN ({', '.join('?' for _ in seasons)})"
            params.extend(seasons)
        query += " ORDER BY match_id, source_row"
        cursor.execute(query, tuple(params))
        return [self._assigned_from_row(r) for r in cursor.fetchall()]

    def get_player_log_for_matches(self, match_ids: Sequence[str]) -> List[AssignedLogRow]:
        rows = self._select_in("SELECT * FROM player_log", "match_id", match_ids, "match_id, source_row")
        return [self._assigned_from_row(r) for r in rows]

    def get_schedule(self, season: int) -> List[ScheduleEntry]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM schedule WHERE season = ? ORDER BY source_row", (season,))
        entries = []
        for row in cursor.fetchall():
            data = dict(row)
            data.pop("updated_at", None)
            entries.append(ScheduleEntry(**data))
        return entries

    def get_unresolved_counts(self, season: Optional[int] = None) -> List[Dict]:
        """Matches with player rows that have no map, most unresolved first."""
        cursor = self.conn.cursor()
        query = """
            SELECT match_id, season, COUNT(*) AS unresolved,
                   GROUP_CONCAT(DISTINCT unresolved_reason) AS reasons
            FROM player_log
            WHERE map_num IS NULL
        """
        params: tuple = ()
        if season is not None:
            query += " AND season = ?"
            params = (season,)
        query += " GROUP BY match_id, season ORDER BY unresolved DESC, match_id"
        cursor.execute(query, params)
        return [dict(r) for r in cursor.fetchall()]

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
