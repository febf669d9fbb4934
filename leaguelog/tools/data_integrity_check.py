"""SQLite diagnostics for player-log map assignment.

Run:
    python -m leaguelog.tools.data_integrity_check
or:
    python -m leaguelog.tools.data_integrity_check --db data/leaguelog.db --season 1 --show-schema
"""

from __future__ import annotations

import argparse
import os
import sqlite3
from pathlib import Path
from typing import Iterable

from leaguelog.match_mapping import ROWS_PER_MAP
from leaguelog.seasons import CURRENT_SEASON

DEFAULT_DB = "data/leaguelog.db"


def resolve_db_path(arg_db: str | None) -> Path:
    env_db = os.getenv("LEAGUELOG_DB_PATH", "").strip()
    chosen = arg_db or env_db or DEFAULT_DB
    path = Path(chosen)
    if not path.is_absolute():
        path = Path(__file__).resolve().parents[2] / path
    return path


def fetch_one_int(cur: sqlite3.Cursor, sql: str, params: Iterable[object] = ()) -> int:
    cur.execute(sql, tuple(params))
    row = cur.fetchone()
    if not row:
        return 0
    value = row[0]
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def print_table_schema(cur: sqlite3.Cursor, table_name: str) -> None:
    print(f"\n[{table_name}] schema")
    cur.execute(f"PRAGMA table_info({table_name})")
    rows = cur.fetchall()
    if not rows:
        print("  (table missing)")
        return
    for cid, name, col_type, notnull, dflt_value, pk in rows:
        parts = [f"{name} {col_type or 'TEXT'}"]
        if pk:
            parts.append("PRIMARY KEY")
        if notnull:
            parts.append("NOT NULL")
        if dflt_value is not None:
            parts.append(f"DEFAULT {dflt_value}")
        print("  - " + " ".join(parts))


def _season_clause(season: int | None, column: str = "season") -> tuple[str, tuple]:
    if season is None:
        return "", ()
    return f" AND {column} = ?", (season,)


def print_counts(cur: sqlite3.Cursor, season: int | None = None) -> None:
    clause, params = _season_clause(season)
    print("\nA) Totals")
    for table in ("match_log", "map_log", "player_log"):
        total = fetch_one_int(cur, f"SELECT COUNT(*) FROM {table} WHERE 1 = 1{clause}", params)
        print(f"  {table}: {total}")

    print("\nB) Map assignment")
    total_rows = fetch_one_int(cur, f"SELECT COUNT(*) FROM player_log WHERE 1 = 1{clause}", params)
    unresolved = fetch_one_int(cur, f"SELECT COUNT(*) FROM player_log WHERE map_num IS NULL{clause}", params)
    denominator = total_rows if total_rows > 0 else 1
    print(f"  unresolved player rows: {unresolved} ({(unresolved / denominator) * 100.0:.1f}% of {total_rows})")

    cur.execute(
        f"""
        SELECT COALESCE(unresolved_reason, '<NONE>') AS reason, COUNT(*) AS c
        FROM player_log
        WHERE map_num IS NULL{clause}
        GROUP BY reason
        ORDER BY c DESC, reason ASC
        """,
        params,
    )
    for reason, count in cur.fetchall():
        print(f"    - {reason}: {count}")


def print_unresolved_matches(cur: sqlite3.Cursor, season: int | None = None, limit: int = 25) -> None:
    clause, params = _season_clause(season)
    print(f"\nC) Matches with unresolved player rows (top {limit})")
    cur.execute(
        f"""
        SELECT match_id, season, COUNT(*) AS unresolved
        FROM player_log
        WHERE map_num IS NULL{clause}
        GROUP BY match_id, season
        ORDER BY unresolved DESC, match_id ASC
        LIMIT ?
        """,
        params + (int(limit),),
    )
    rows = cur.fetchall()
    if not rows:
        print("    (none)")
        return
    for match_id, match_season, count in rows:
        print(f"    - {match_id} | season={match_season} | unresolved={count}")


def print_block_size_drift(cur: sqlite3.Cursor, limit: int = 25) -> None:
    """Current-season matches whose row count is not one fixed block per map."""
    print(f"\nD) Season {CURRENT_SEASON} matches not matching {ROWS_PER_MAP} rows per map")
    cur.execute(
        """
        SELECT m.match_id, m.map_count, COALESCE(p.row_count, 0) AS row_count
        FROM (
            SELECT match_id, COUNT(*) AS map_count
            FROM map_log
            WHERE season = ?
            GROUP BY match_id
        ) m
        LEFT JOIN (
            SELECT match_id, COUNT(*) AS row_count
            FROM player_log
            WHERE season = ?
            GROUP BY match_id
        ) p ON p.match_id = m.match_id
        WHERE COALESCE(p.row_count, 0) != m.map_count * ?
        ORDER BY m.match_id ASC
        LIMIT ?
        """,
        (CURRENT_SEASON, CURRENT_SEASON, ROWS_PER_MAP, int(limit)),
    )
    rows = cur.fetchall()
    if not rows:
        print("    (none)")
        return
    for match_id, map_count, row_count in rows:
        print(f"    - {match_id} | maps={map_count} | rows={row_count} (expected {map_count * ROWS_PER_MAP})")


def main() -> int:
    parser = argparse.ArgumentParser(description="Leaguelog map assignment diagnostics")
    parser.add_argument("--db", default="", help="SQLite DB path (defaults to LEAGUELOG_DB_PATH or data/leaguelog.db)")
    parser.add_argument("--season", type=int, default=None, help="Restrict counts to one season")
    parser.add_argument("--limit", type=int, default=25, help="Max matches listed per section")
    parser.add_argument("--show-schema", action="store_true", help="Print relevant table schemas")
    args = parser.parse_args()

    db_path = resolve_db_path(args.db.strip() or None)
    print(f"DB path: {db_path}")
    if not db_path.exists():
        print("ERROR: DB file does not exist.")
        return 2

    conn = sqlite3.connect(str(db_path))
    try:
        cur = conn.cursor()
        if args.show_schema:
            for table in ("match_log", "map_log", "player_log"):
                print_table_schema(cur, table)
        print_counts(cur, args.season)
        print_unresolved_matches(cur, args.season, limit=args.limit)
        print_block_size_drift(cur, limit=args.limit)
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
