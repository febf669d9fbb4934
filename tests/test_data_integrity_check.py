import sqlite3
import sys

from leaguelog.normalizer import player_stat_key
from leaguelog.tools import data_integrity_check as tool
from tests.helpers import create_temp_db, make_map, make_row, remove_temp_db, resolved, unresolved


def _seed(db):
    db.upsert_maps([make_map(1, "Hardpoint", match_id="S1")])
    assigned = [resolved(make_row(i, match_id="S1"), 1) for i in range(8)]
    assigned.append(unresolved(make_row(8, match_id="S1"), "beyond_map_list"))
    db.upsert_player_stats([(player_stat_key(a), a) for a in assigned])


def test_reports_unresolved_rows_and_drift(capsys):
    db = create_temp_db()
    try:
        _seed(db)
        conn = sqlite3.connect(db.db_path)
        try:
            cur = conn.cursor()
            tool.print_counts(cur)
            tool.print_unresolved_matches(cur)
            tool.print_block_size_drift(cur)
        finally:
            conn.close()
    finally:
        remove_temp_db(db)

    out = capsys.readouterr().out
    assert "unresolved player rows: 1" in out
    assert "beyond_map_list: 1" in out
    assert "S1 | season=2 | unresolved=1" in out
    assert "S1 | maps=1 | rows=9 (expected 8)" in out


def test_main_with_missing_db(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr(sys, "argv", ["data_integrity_check", "--db", str(tmp_path / "missing.db")])
    assert tool.main() == 2
    assert "does not exist" in capsys.readouterr().out


def test_main_prints_schema(monkeypatch, capsys):
    db = create_temp_db()
    try:
        _seed(db)
        monkeypatch.setattr(sys, "argv", ["data_integrity_check", "--db", db.db_path, "--show-schema", "--season", "2"])
        assert tool.main() == 0
    finally:
        remove_temp_db(db)

    out = capsys.readouterr().out
    assert "[player_log] schema" in out
    assert "stat_key TEXT PRIMARY KEY" in out
