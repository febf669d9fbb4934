# tests/test_queries.py

from datetime import date

import pytest

from leaguelog.config import IngestConfig
from leaguelog.ingest import IngestRunner
from leaguelog.queries import LeagueQueries
from tests.helpers import FakeSource, create_temp_db, league_sheet, remove_temp_db


@pytest.fixture(scope="module")
def queries():
    """A store loaded with the season-2 sheet once for the whole module."""
    database = create_temp_db()
    IngestRunner(database, IngestConfig(), source=FakeSource(league_sheet()), today=date(2025, 6, 1)).run([2])
    yield LeagueQueries(database)
    remove_temp_db(database)


class TestPlayerQueries:
    def test_aggregate(self, queries):
        overall = queries.player_aggregate("a1", [2]).to_dict()["overall"]

        assert (overall["kills"], overall["deaths"]) == (57, 25)
        assert overall["kd"] == "2.28"
        assert (overall["map_wins"], overall["map_losses"]) == (3, 2)
        assert (overall["series_wins"], overall["series_losses"]) == (1, 1)

    def test_unresolved_row_counts_toward_mode_kills_only(self, queries):
        hardpoint = queries.player_aggregate("a1", [2]).modes["Hardpoint"]
        assert hardpoint.kills == 27
        assert (hardpoint.map_wins, hardpoint.map_losses) == (1, 1)

    def test_opponent_aggregate(self, queries):
        aggregate = queries.player_aggregate("kyber1")
        assert (aggregate.series_wins, aggregate.series_losses) == (1, 0)
        assert (aggregate.map_wins, aggregate.map_losses) == (2, 1)

    def test_map_breakdowns(self, queries):
        breakdowns = {b["mode"]: b for b in queries.player_map_breakdowns("a1", 2)}
        den_hp = next(m for m in breakdowns["Hardpoint"]["maps"] if m["name"] == "Den")
        assert den_hp == {"name": "Den", "kills": 10, "deaths": 5, "wins": 1, "losses": 0}
        assert breakdowns["Control"]["label"] == "Overload"

    def test_match_history(self, queries):
        history = queries.player_match_history("a1")

        assert [h["match_id"] for h in history] == ["S2-001", "S2-002"]
        assert history[0]["totals"]["unresolved_rows"] == 1
        assert history[1]["series_result"] == "L"
        assert history[1]["opponent"] == "Kyber"

    def test_released_player_tagged(self, queries):
        history = queries.player_match_history("a2")
        assert history[0]["series_tags"]["released"] is True

    def test_dashboard_shape(self, queries):
        dashboard = queries.player_season_dashboard("a1")

        assert dashboard["player"]["ign"] == "Ace"
        assert set(dashboard["seasons"]) == {"0", "1", "2"}
        assert dashboard["seasons"]["1"]["aggregates"]["overall"]["kd"] == "no data"
        assert dashboard["lifetime"]["bo7"]["aggregates"]["overall"]["kills"] == 57
        assert "Overload" in dashboard["lifetime"]["all"]["aggregates"]["modes"]
        assert len(dashboard["lifetime_match_history"]) == 2

    def test_unknown_player(self, queries):
        dashboard = queries.player_season_dashboard("nobody")
        assert dashboard["player"] is None
        assert dashboard["lifetime_match_history"] == []


class TestLeagueQueries:
    def test_standings_tie_broken_by_name(self, queries):
        lowers = queries.standings(2, "Lowers")["Lowers"]

        top = [(r["team"], r["series_wins"], r["map_diff"]) for r in lowers[:2]]
        assert top == [("Aegis", 1, 1), ("Kyber", 1, 1)]
        assert lowers[-1]["team"] == "Tempest"
        assert len(lowers) == 12

    def test_all_leagues(self, queries):
        assert list(queries.standings()) == ["Lowers", "Uppers", "Legends", "Womens"]

    def test_unknown_league(self, queries):
        with pytest.raises(ValueError):
            queries.standings(1, "Legends")

    def test_series_detail(self, queries):
        detail = queries.series_detail("S2-001")

        assert detail["league"] == "Lowers"
        assert detail["unresolved_rows"] == 1
        assert [m["map"] for m in detail["maps"]] == ["Den", "Raid"]
        assert len(detail["maps"][0]["players"]) == 8

    def test_missing_series(self, queries):
        assert queries.series_detail("nope") is None

    def test_schedule_linked_to_series(self, queries):
        entries = queries.schedule(2)
        assert [e["match_id"] for e in entries] == ["S2-001", "S2-002", None]
        assert entries[0]["division"] == "Lowers"
