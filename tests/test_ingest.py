# tests/test_ingest.py

from datetime import date

import pytest

from leaguelog.config import IngestConfig
from leaguelog.database import PersistenceError
from leaguelog.ingest import IngestError, IngestRunner
from tests.helpers import FakeSource, create_temp_db, league_sheet, remove_temp_db

TODAY = date(2025, 6, 1)


@pytest.fixture
def db():
    database = create_temp_db()
    yield database
    remove_temp_db(database)


@pytest.fixture
def source():
    return FakeSource(league_sheet())


def _runner(db, source, config=None):
    return IngestRunner(db, config or IngestConfig(), source=source, today=TODAY)


class TestIngestRun:
    """End-to-end ingestion against an in-memory sheet."""

    def test_first_run_inserts_everything(self, db, source):
        summary = _runner(db, source).run([2])

        assert summary.players.inserted == 3
        assert summary.players_rejected == 1
        season = summary.seasons[2]
        assert season.series.inserted == 2
        assert season.maps.inserted == 5
        assert season.player_stats.inserted == 41
        assert season.schedule.inserted == 3
        assert season.unresolved_by_match == {"S2-001": 1}

    def test_second_run_only_updates(self, db, source):
        _runner(db, source).run([2])
        summary = _runner(db, source).run([2])

        season = summary.seasons[2]
        assert (season.series.inserted, season.series.updated) == (0, 2)
        assert (season.player_stats.inserted, season.player_stats.updated) == (0, 41)
        assert len(db.get_player_log_for_matches(["S2-001", "S2-002"])) == 41

    def test_requested_ranges(self, db, source):
        _runner(db, source).run([2])

        assert source.requests[0] == ["Player OVR!A2:J"]
        assert source.requests[1] == [
            "Match Log!A2:I",
            "Map Log!A2:F",
            "Player Log!A2:P",
            "schedule!A2:J",
            "Map Log!A1:F1",
            "Player Log!A1:P1",
            "schedule!A1:J1",
        ]

    def test_legacy_season_has_no_schedule(self, db):
        ranges = _runner(db, None).season_ranges(1)
        assert ranges == {
            "series": "match_log_s1!A2:I",
            "maps": "map_log_s1!A2:F",
            "player_log": "player_log_s1!A2:P",
        }

    def test_configured_grid_applies_to_legacy_sheets(self, db):
        config = IngestConfig(series_range="Match Log!A3:I")
        assert _runner(db, None, config).season_ranges(0)["series"] == "match_log_s0!A3:I"

    def test_map_assignment_stored(self, db, source):
        _runner(db, source).run([2])

        rows = db.get_player_log_for_player("a1", seasons=[2])
        by_match = {}
        for row in rows:
            by_match.setdefault(row.row.match_id, []).append(row.map_num)
        assert by_match["S2-001"] == [1, 2, None]
        assert by_match["S2-002"] == [1, 2, 3]

    def test_corrected_map_mode_replaces_stored_rows(self, db, source):
        _runner(db, source).run([2])

        corrected = dict(league_sheet())
        corrected["Map Log!A2:F"] = [
            ["S2-001", "2", "Control", "Raid", "Aegis", "Tempest"] if row[:2] == ["S2-001", "2"] else row
            for row in corrected["Map Log!A2:F"]
        ]
        summary = _runner(db, FakeSource(corrected)).run([2])

        assert summary.seasons[2].unresolved_by_match == {"S2-001": 9}
        assert len(db.get_player_log_for_matches(["S2-001"])) == 17
        rows = db.get_player_log_for_player("a1", seasons=[2])
        assert sum(r.row.kills for r in rows) == 57
        assert [r.map_num for r in rows if r.row.match_id == "S2-001"] == [1, None, None]

    def test_month_day_dates_use_current_year(self, db, source):
        _runner(db, source).run([2])
        assert db.get_series("S2-002").match_date == "2025-03-08"

    def test_run_recorded_as_success(self, db, source):
        summary = _runner(db, source).run([2])

        run = db.get_ingest_run(summary.run_id)
        assert run["success"] is True
        assert run["summary"]["seasons"]["2"]["unresolved_rows"] == 1
        assert run["summary"]["player_ovr"] == {"inserted": 3, "updated": 0}

    def test_empty_source(self, db):
        summary = _runner(db, FakeSource({})).run([0, 1])
        assert summary.seasons[0].series.total == 0
        assert summary.seasons[1].unresolved_rows == 0


class TestIngestFailures:
    def test_missing_credentials_fail_the_run(self, db):
        runner = IngestRunner(db, IngestConfig(sheet_id=None, api_key=None), today=TODAY)

        with pytest.raises(IngestError):
            runner.run([2])

        run = db.get_ingest_run(1)
        assert run["success"] is False
        assert "SHEET_ID" in run["error"]

    def test_store_failure_fails_the_run(self, db, source, monkeypatch):
        def broken(*_args, **_kwargs):
            raise PersistenceError("maps", 5, "disk full")

        monkeypatch.setattr(db, "upsert_maps", broken)

        with pytest.raises(IngestError):
            _runner(db, source).run([2])

        run = db.get_ingest_run(1)
        assert run["success"] is False
        assert run["summary"]["player_ovr"]["inserted"] == 3

    def test_unknown_season_rejected_before_run(self, db, source):
        with pytest.raises(ValueError):
            _runner(db, source).run([5])
        assert db.get_ingest_run(1) is None

    def test_transport_error_fails_the_run(self, db):
        class DroppedConnection:
            def batch_get(self, ranges):
                raise TimeoutError("read timed out")

        with pytest.raises(IngestError, match="read timed out"):
            _runner(db, DroppedConnection()).run([2])

        run = db.get_ingest_run(1)
        assert run["success"] is False
        assert run["finished_at"] is not None
