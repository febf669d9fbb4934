# leaguelog/queries.py

import logging
from dataclasses import asdict
from typing import Dict, List, Optional, Sequence

from leaguelog.calculator import StatsCalculator, alltime_mode_key
from leaguelog.database import Database
from leaguelog.history import build_player_match_history, build_series_maps
from leaguelog.models import AssignedLogRow, MapRecord, MatchSeries, PlayerAggregate
from leaguelog.schedule import link_schedule_matches
from leaguelog.seasons import (
    BO6_MAP_POOL,
    BO7_MAP_POOL,
    CURRENT_SEASON,
    SEASONS,
    league_options,
    match_league,
    mode_label,
    validate_season,
)
from leaguelog.standings import build_standings, build_standings_by_league

logger = logging.getLogger(__name__)

LEGACY_SEASONS = tuple(s for s in SEASONS if s < CURRENT_SEASON)


class PlayerData:
    """A player's rows with the series and maps they touch, filterable by season."""

    def __init__(self, rows: List[AssignedLogRow], series: List[MatchSeries], maps: List[MapRecord]):
        self.rows = rows
        self.series = series
        self.maps = maps

    def for_seasons(self, seasons: Sequence[int]) -> "PlayerData":
        wanted = set(seasons)
        return PlayerData(
            [r for r in self.rows if r.row.season in wanted],
            [s for s in self.series if s.season in wanted],
            [m for m in self.maps if m.season in wanted],
        )

    @property
    def match_ids(self) -> List[str]:
        return list(dict.fromkeys(r.row.match_id for r in self.rows))


class LeagueQueries:
    """Read-side queries over a Database, recomputing every aggregate on demand."""

    def __init__(self, db: Database):
        self.db = db
        self.calculator = StatsCalculator()

    def _player_data(self, discord_id: str, seasons: Optional[Sequence[int]] = None) -> PlayerData:
        rows = self.db.get_player_log_for_player(discord_id, seasons)
        match_ids = list(dict.fromkeys(r.row.match_id for r in rows))
        return PlayerData(
            rows,
            self.db.get_series_for_matches(match_ids),
            self.db.get_maps_for_matches(match_ids),
        )

    def player_aggregate(self, discord_id: str, seasons: Optional[Sequence[int]] = None) -> PlayerAggregate:
        data = self._player_data(discord_id, seasons)
        return self.calculator.player_aggregate(data.rows, data.series, data.maps)

    def player_map_breakdowns(self, discord_id: str, season: int = CURRENT_SEASON) -> List[Dict]:
        validate_season(season)
        data = self._player_data(discord_id, [season])
        return self.calculator.season_map_breakdowns(data.rows, data.maps, season)

    def player_match_history(self, discord_id: str, seasons: Optional[Sequence[int]] = None) -> List[Dict]:
        data = self._player_data(discord_id, seasons)
        return self._history(discord_id, data)

    def _history(self, discord_id: str, data: PlayerData) -> List[Dict]:
        match_rows = self.db.get_player_log_for_matches(data.match_ids)
        return build_player_match_history(
            discord_id,
            data.series,
            data.maps,
            match_rows,
            player=self.db.get_player(discord_id),
        )

    def player_season_dashboard(self, discord_id: str) -> Dict:
        """
        Everything a player page needs in one read.

        Per-season aggregates, map breakdowns and history; lifetime totals split
        by game generation; and an all-time aggregate where current-season
        Control is reported as Overload.
        """
        data = self._player_data(discord_id)
        calc = self.calculator

        seasons = {}
        for season in SEASONS:
            season_data = data.for_seasons([season])
            seasons[str(season)] = {
                "aggregates": calc.player_aggregate(season_data.rows, season_data.series, season_data.maps).to_dict(),
                "map_breakdowns": calc.season_map_breakdowns(season_data.rows, season_data.maps, season),
                "match_history": self._history(discord_id, season_data),
            }

        bo6 = data.for_seasons(LEGACY_SEASONS)
        bo7 = data.for_seasons([CURRENT_SEASON])
        lifetime = {
            "bo6": {
                "aggregates": calc.player_aggregate(bo6.rows, bo6.series, bo6.maps).to_dict(),
                "map_breakdowns": calc.map_breakdowns(bo6.rows, bo6.maps, BO6_MAP_POOL),
            },
            "bo7": {
                "aggregates": calc.player_aggregate(bo7.rows, bo7.series, bo7.maps).to_dict(),
                "map_breakdowns": calc.map_breakdowns(
                    bo7.rows, bo7.maps, BO7_MAP_POOL, label_fn=lambda mode: mode_label(mode, CURRENT_SEASON)
                ),
            },
            "all": {
                "aggregates": calc.player_aggregate(
                    data.rows, data.series, data.maps, mode_key=alltime_mode_key
                ).to_dict(),
            },
        }

        player = self.db.get_player(discord_id)
        return {
            "player": asdict(player) if player else None,
            "seasons": seasons,
            "lifetime": lifetime,
            "lifetime_match_history": self._history(discord_id, data),
        }

    def standings(self, season: int = CURRENT_SEASON, league: Optional[str] = None) -> Dict[str, List[Dict]]:
        validate_season(season)
        series = self.db.get_series_by_season(season)
        if league is not None:
            if league not in league_options(season):
                raise ValueError(f"Unknown league {league!r} for season {season}")
            return {league: [row.to_dict() for row in build_standings(league, series, season)]}
        return {
            name: [row.to_dict() for row in rows]
            for name, rows in build_standings_by_league(series, season).items()
        }

    def series_detail(self, match_id: str) -> Optional[Dict]:
        series = self.db.get_series(match_id)
        if series is None:
            return None
        maps = self.db.get_maps_for_matches([match_id])
        rows = self.db.get_player_log_for_matches([match_id])
        players = {p.discord_id: p for p in self.db.get_players(list({r.row.discord_id for r in rows}))}
        data = asdict(series)
        data["league"] = match_league(series.season, series.home_team, series.away_team)
        data["maps"] = build_series_maps(series, maps, rows, players)
        data["unresolved_rows"] = sum(1 for r in rows if not r.is_resolved)
        return data

    def schedule(self, season: int = CURRENT_SEASON) -> List[Dict]:
        validate_season(season)
        entries = self.db.get_schedule(season)
        series = self.db.get_series_by_season(season)
        return [linked.to_dict() for linked in link_schedule_matches(entries, series)]
