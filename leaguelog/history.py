# leaguelog/history.py

from typing import Dict, List, Optional, Sequence

from leaguelog.calculator import StatsCalculator, series_outcome
from leaguelog.match_mapping import ESUB_TAG, group_by_match, player_tag_label, sort_maps
from leaguelog.models import AssignedLogRow, MapRecord, MatchSeries, Player, PlayerLogRow
from leaguelog.seasons import (
    CURRENT_SEASON,
    UNKNOWN_LEAGUE,
    WOMENS,
    is_womens_registered,
    league_for_rank,
    match_league,
    player_team_for_league,
)


def row_stats(row: PlayerLogRow, tag: Optional[str] = None) -> Dict:
    return {
        "discord_id": row.discord_id,
        "player": row.player,
        "team": row.team,
        "kills": row.kills,
        "deaths": row.deaths,
        "assists": row.assists,
        "hp_time": row.hp_time,
        "plants": row.plants,
        "defuses": row.defuses,
        "ticks": row.ticks,
        "write_in": row.write_in,
        "tag": tag,
    }


def map_dict(map_record: MapRecord) -> Dict:
    return {
        "map_num": map_record.map_num,
        "mode": map_record.mode,
        "map": map_record.map_name,
        "winner_team": map_record.winner_team,
        "loser_team": map_record.loser_team,
    }


def rows_by_map_num(rows: Sequence[AssignedLogRow]) -> Dict[int, List[AssignedLogRow]]:
    grouped: Dict[int, List[AssignedLogRow]] = {}
    for assigned in rows:
        if assigned.is_resolved:
            grouped.setdefault(assigned.map_num, []).append(assigned)
    return grouped


def _eligible_for_league(player: Optional[Player], league: str) -> bool:
    if player is None or league == UNKNOWN_LEAGUE:
        return True
    if league == WOMENS:
        return is_womens_registered(player)
    return league_for_rank(player.rank_value, player.rank_is_na) == league


def build_series_maps(
    series: MatchSeries,
    maps: Sequence[MapRecord],
    rows: Sequence[AssignedLogRow],
    players: Optional[Dict[str, Player]] = None,
) -> List[Dict]:
    """Ordered maps of one series, each with the stats of every player placed on it."""
    league = match_league(series.season, series.home_team, series.away_team)
    players = players or {}
    placed = rows_by_map_num(rows)
    result = []
    for map_record in sort_maps(maps):
        entry = map_dict(map_record)
        entry["players"] = [
            row_stats(a.row, player_tag_label(a.row, league, series.season, players.get(a.row.discord_id)))
            for a in placed.get(map_record.map_num, [])
        ]
        result.append(entry)
    return result


def build_player_match_history(
    discord_id: str,
    series: Sequence[MatchSeries],
    maps: Sequence[MapRecord],
    match_rows: Sequence[AssignedLogRow],
    player: Optional[Player] = None,
) -> List[Dict]:
    """
    One entry per series the player appeared in.

    ``match_rows`` holds the assigned rows of every player in those series so
    each map can list who played it; the player's own line on each map sits
    in ``player_stats``.
    """
    calculator = StatsCalculator()
    assigned_by_match: Dict[str, List[AssignedLogRow]] = {}
    for assigned in match_rows:
        assigned_by_match.setdefault(assigned.row.match_id, []).append(assigned)
    maps_by_match = group_by_match(maps)
    own_rows = [a for a in match_rows if a.row.discord_id == discord_id]
    teams = calculator.team_by_match(own_rows)

    history = []
    for match in series:
        mine = [a for a in own_rows if a.row.match_id == match.match_id]
        if not mine:
            continue
        team = teams.get(match.match_id)
        league = match_league(match.season, match.home_team, match.away_team)
        placed = rows_by_map_num(assigned_by_match.get(match.match_id, []))

        map_entries = []
        esub_maps = 0
        for map_record in sort_maps(maps_by_match.get(match.match_id, [])):
            entry = map_dict(map_record)
            own = next((a for a in placed.get(map_record.map_num, []) if a.row.discord_id == discord_id), None)
            if own is not None:
                tag = player_tag_label(own.row, league, match.season, player)
                stats = row_stats(own.row, tag)
                stats["is_esub"] = match.season >= CURRENT_SEASON and own.row.write_in == ESUB_TAG
                esub_maps += 1 if stats["is_esub"] else 0
                entry["player_stats"] = stats
            else:
                entry["player_stats"] = None
            entry["players"] = [row_stats(a.row) for a in placed.get(map_record.map_num, [])]
            map_entries.append(entry)

        current_team = player_team_for_league(player, league) if player else None
        released = bool(
            match.season >= CURRENT_SEASON and esub_maps == 0 and team and current_team and team != current_team
        )
        series_tags = None
        if match.season >= CURRENT_SEASON and (esub_maps > 0 or released):
            series_tags = {
                "esub_maps": esub_maps,
                "released": released,
                "esub_ineligible": esub_maps > 0 and not _eligible_for_league(player, league),
            }

        history.append({
            "match_id": match.match_id,
            "match_date": match.match_date,
            "season": match.season,
            "league": league,
            "home_team": match.home_team,
            "away_team": match.away_team,
            "home_wins": match.home_wins,
            "away_wins": match.away_wins,
            "player_team": team,
            "opponent": match.opponent_of(team),
            "series_result": series_outcome(match, team),
            "totals": {
                "kills": sum(a.row.kills for a in mine),
                "deaths": sum(a.row.deaths for a in mine),
                "unresolved_rows": sum(1 for a in mine if not a.is_resolved),
            },
            "maps": map_entries,
            "series_tags": series_tags,
        })

    return history
