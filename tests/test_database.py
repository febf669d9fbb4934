# tests/test_database.py

import pytest

from leaguelog.database import Database, PersistenceError
from leaguelog.models import ScheduleEntry
from leaguelog.normalizer import player_stat_key
from tests.helpers import (
    create_temp_db,
    make_map,
    make_player,
    make_row,
    make_series,
    remove_temp_db,
    resolved,
    unresolved,
)


def _keyed(*assigned_rows):
    return [(player_stat_key(a), a) for a in assigned_rows]


class TestDatabase:
    """Test suite for the league store."""

    @pytest.fixture
    def db(self):
        """Create a temporary database for testing."""
        database = create_temp_db()
        yield database
        remove_temp_db(database)

    def test_init_creates_tables(self, db):
        cursor = db.conn.cursor()
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row["name"] for row in cursor.fetchall()}
        assert {"player_ovr", "match_log", "map_log", "player_log", "schedule", "ingest_runs"} <= tables

    def test_reopen_existing_store(self, db):
        db.upsert_series([make_series("S1", "Aegis", "Tempest", 3, 1)])
        reopened = Database(db.db_path)
        try:
            assert reopened.get_series("S1").home_wins == 3
        finally:
            reopened.close()

    def test_memory_path_passes_through(self):
        memory = Database(":memory:")
        try:
            assert memory.db_path == ":memory:"
        finally:
            memory.close()

    def test_upsert_is_idempotent(self, db):
        series = [make_series("S1", "Aegis", "Tempest", 3, 1), make_series("S2", "Kyber", "Templar", 0, 3)]

        first = db.upsert_series(series)
        second = db.upsert_series(series)

        assert (first.inserted, first.updated) == (2, 0)
        assert (second.inserted, second.updated) == (0, 2)
        assert len(db.get_series_by_season(2)) == 2

    def test_upsert_overwrites_values(self, db):
        db.upsert_series([make_series("S1", "Aegis", "Tempest", 1, 1)])
        db.upsert_series([make_series("S1", "Aegis", "Tempest", 3, 1)])
        assert db.get_series("S1").home_wins == 3

    def test_failed_batch_rolls_back(self, db):
        good = make_series("S1", "Aegis", "Tempest", 3, 1)
        bad = make_series("S2", "Aegis", "Kyber", 3, 1, match_date=None)

        with pytest.raises(PersistenceError) as exc_info:
            db.upsert_series([good, bad])

        assert exc_info.value.entity == "series"
        assert exc_info.value.attempted == 2
        assert db.get_series("S1") is None

    def test_empty_batch(self, db):
        assert db.upsert_maps([]).total == 0

    def test_players_round_trip(self, db):
        db.upsert_players([make_player("111", rank=None), make_player("222", womens_team="Nova", womens_rank=4.0)])

        players = {p.discord_id: p for p in db.get_players()}
        assert players["111"].rank_is_na
        assert players["222"].womens_team == "Nova"
        assert [p.discord_id for p in db.get_players(["222"])] == ["222"]

    def test_maps_keyed_by_match_and_number(self, db):
        counts = db.upsert_maps([make_map(1, "Hardpoint", match_id="S1"), make_map(2, "SnD", match_id="S1")])
        assert counts.inserted == 2
        maps = db.get_maps_for_matches(["S1", "S1"])
        assert [m.map_num for m in maps] == [1, 2]

    def test_player_stats_keep_assignment(self, db):
        db.upsert_player_stats(_keyed(
            resolved(make_row(2, match_id="S1", discord_id="ace"), 1),
            unresolved(make_row(9, match_id="S1", discord_id="ace"), "beyond_map_list"),
        ))

        rows = db.get_player_log_for_player("ace")
        assert [r.map_num for r in rows] == [1, None]
        assert rows[1].assignment.reason == "beyond_map_list"

    def test_stale_unresolved_rows_removed(self, db):
        row = make_row(9, match_id="S1", discord_id="ace")
        db.upsert_player_stats(_keyed(unresolved(row)))

        counts = db.upsert_player_stats(_keyed(resolved(row, 2)))

        assert counts.inserted == 1
        rows = db.get_player_log_for_matches(["S1"])
        assert len(rows) == 1
        assert rows[0].map_num == 2

    def test_stale_resolved_rows_removed(self, db):
        row = make_row(9, match_id="S1", discord_id="ace", kills=10)
        other = make_row(2, match_id="S2", discord_id="ace", kills=4)
        db.upsert_player_stats(_keyed(resolved(row, 1), resolved(other, 1)))

        db.upsert_player_stats(_keyed(resolved(row, 2)))

        rows = db.get_player_log_for_player("ace")
        assert [(r.row.match_id, r.map_num) for r in rows] == [("S1", 2), ("S2", 1)]
        assert sum(r.row.kills for r in rows) == 14

    def test_unresolved_counts(self, db):
        db.upsert_player_stats(_keyed(
            unresolved(make_row(9, match_id="S1"), "beyond_map_list"),
            unresolved(make_row(10, match_id="S1"), "beyond_map_list"),
            unresolved(make_row(3, match_id="S2", season=1), "not_consumed"),
            resolved(make_row(2, match_id="S1"), 1),
        ))

        counts = db.get_unresolved_counts()
        assert [(c["match_id"], c["unresolved"]) for c in counts] == [("S1", 2), ("S2", 1)]
        assert db.get_unresolved_counts(season=1)[0]["reasons"] == "not_consumed"

    def test_player_log_filtered_by_season(self, db):
        db.upsert_player_stats(_keyed(
            resolved(make_row(2, match_id="A", season=1, discord_id="ace"), 1),
            resolved(make_row(2, match_id="B", season=2, discord_id="ace"), 1),
        ))
        rows = db.get_player_log_for_player("ace", seasons=[2])
        assert [r.row.match_id for r in rows] == ["B"]

    def test_schedule_round_trip(self, db):
        entry = ScheduleEntry(schedule_id="abc", season=2, slug="s2-aegis-vs-tempest", week=1, home_team="Aegis")
        db.upsert_schedule([entry])
        assert db.get_schedule(2) == [entry]

    def test_ingest_run_ledger(self, db):
        run_id = db.create_ingest_run([1, 2])
        assert db.get_ingest_run(run_id)["success"] is None

        db.finalize_ingest_run(run_id, {"seasons": {}}, success=False, error="boom")

        run = db.get_ingest_run(run_id)
        assert run["seasons"] == "1,2"
        assert run["success"] is False
        assert run["error"] == "boom"
        assert run["summary"] == {"seasons": {}}
        assert run["finished_at"]

    def test_missing_ingest_run(self, db):
        assert db.get_ingest_run(999) is None
