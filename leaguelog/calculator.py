# leaguelog/calculator.py

import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from leaguelog.models import (
    AssignedLogRow,
    KdRatio,
    MapRecord,
    MatchSeries,
    ModeAggregate,
    PlayerAggregate,
)
from leaguelog.seasons import map_pool_for_season, mode_label

LOGGER = logging.getLogger(__name__)

ModeKeyFn = Callable[[str, int], str]


def _default_mode_key(mode: str, season: int) -> str:
    return mode


def alltime_mode_key(mode: str, season: int) -> str:
    """Mode key for cross-generation totals, where current-season Control is Overload."""
    return mode_label(mode, season)


def series_outcome(series: MatchSeries, team: Optional[str]) -> Optional[str]:
    """Series result for ``team`` as W, L or T (draw); None if the team did not play."""
    score = series.map_score_for(team)
    if score is None:
        return None
    team_wins, opp_wins = score
    if team_wins > opp_wins:
        return "W"
    if team_wins < opp_wins:
        return "L"
    return "T"


def map_outcome(map_record: MapRecord, team: Optional[str]) -> Optional[str]:
    if not team:
        return None
    if map_record.winner_team == team:
        return "W"
    if map_record.loser_team == team:
        return "L"
    return None


class StatsCalculator:
    """Pure aggregation over assigned player rows, series and maps."""

    @staticmethod
    def kd(kills: int, deaths: int) -> KdRatio:
        return KdRatio(kills, deaths)

    @staticmethod
    def team_by_match(rows: Iterable[AssignedLogRow]) -> Dict[str, Optional[str]]:
        """The player's team in each match, taken from their earliest row."""
        teams: Dict[str, Tuple[int, Optional[str]]] = {}
        for assigned in rows:
            row = assigned.row
            current = teams.get(row.match_id)
            if current is None or row.source_row < current[0]:
                teams[row.match_id] = (row.source_row, row.team)
        return {match_id: team for match_id, (_, team) in teams.items()}

    @staticmethod
    def index_maps(maps: Iterable[MapRecord]) -> Dict[Tuple[str, int], MapRecord]:
        return {(m.match_id, m.map_num): m for m in maps}

    def player_aggregate(
        self,
        rows: Sequence[AssignedLogRow],
        series: Sequence[MatchSeries],
        maps: Sequence[MapRecord],
        mode_key: Optional[ModeKeyFn] = None,
    ) -> PlayerAggregate:
        """
        Aggregate one player's rows.

        Kills and deaths are summed over every row, resolved or not. Map
        results only come from resolved rows, counted once per map. Series
        results use the player's team in that match; a drawn series counts
        as neither a win nor a loss.

        Args:
            rows: The player's assigned rows
            series: Series the player appeared in
            maps: Map records of those series
            mode_key: Maps (mode, season) to the breakdown key

        Returns:
            PlayerAggregate with overall totals and a per-mode breakdown
        """
        key_fn = mode_key or _default_mode_key
        aggregate = PlayerAggregate()

        for assigned in rows:
            row = assigned.row
            aggregate.kills += row.kills
            aggregate.deaths += row.deaths
            mode_agg = aggregate.modes.setdefault(key_fn(row.mode, row.season), ModeAggregate())
            mode_agg.kills += row.kills
            mode_agg.deaths += row.deaths

        maps_by_key = self.index_maps(maps)
        counted = set()
        for assigned in rows:
            if not assigned.is_resolved:
                continue
            key = (assigned.row.match_id, assigned.map_num)
            if key in counted:
                continue
            map_record = maps_by_key.get(key)
            if map_record is None:
                LOGGER.debug("No map record for %s map %s", key[0], key[1])
                continue
            counted.add(key)

            outcome = map_outcome(map_record, assigned.row.team)
            if outcome is None:
                continue
            mode_agg = aggregate.modes.setdefault(key_fn(map_record.mode, map_record.season), ModeAggregate())
            if outcome == "W":
                aggregate.map_wins += 1
                mode_agg.map_wins += 1
            else:
                aggregate.map_losses += 1
                mode_agg.map_losses += 1

        teams = self.team_by_match(rows)
        for match in series:
            outcome = series_outcome(match, teams.get(match.match_id))
            if outcome == "W":
                aggregate.series_wins += 1
            elif outcome == "L":
                aggregate.series_losses += 1

        return aggregate

    def map_breakdowns(
        self,
        rows: Sequence[AssignedLogRow],
        maps: Sequence[MapRecord],
        map_pool: Dict[str, List[str]],
        label_fn: Optional[Callable[[str], str]] = None,
    ) -> List[Dict]:
        """Per canonical map: kills, deaths, wins and losses from resolved rows on that map."""
        breakdowns = []
        entries: Dict[Tuple[str, str], Dict] = {}
        for mode, names in map_pool.items():
            mode_maps = []
            for name in names:
                entry = {"name": name, "kills": 0, "deaths": 0, "wins": 0, "losses": 0}
                entries[(mode, name)] = entry
                mode_maps.append(entry)
            breakdowns.append({"mode": mode, "label": label_fn(mode) if label_fn else mode, "maps": mode_maps})

        maps_by_key = self.index_maps(maps)
        counted = set()
        for assigned in rows:
            if not assigned.is_resolved:
                continue
            key = (assigned.row.match_id, assigned.map_num)
            map_record = maps_by_key.get(key)
            if map_record is None:
                continue
            entry = entries.get((map_record.mode, map_record.map_name))
            if entry is None:
                continue
            entry["kills"] += assigned.row.kills
            entry["deaths"] += assigned.row.deaths
            if key in counted:
                continue
            counted.add(key)
            outcome = map_outcome(map_record, assigned.row.team)
            if outcome == "W":
                entry["wins"] += 1
            elif outcome == "L":
                entry["losses"] += 1

        return breakdowns

    def season_map_breakdowns(
        self,
        rows: Sequence[AssignedLogRow],
        maps: Sequence[MapRecord],
        season: int,
    ) -> List[Dict]:
        return self.map_breakdowns(
            rows,
            maps,
            map_pool_for_season(season),
            label_fn=lambda mode: mode_label(mode, season),
        )
