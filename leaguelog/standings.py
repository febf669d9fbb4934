# leaguelog/standings.py

import logging
from typing import Dict, List, Sequence

from leaguelog.models import MatchSeries, StandingRow
from leaguelog.seasons import CURRENT_SEASON, league_options, match_league, teams_for_league

logger = logging.getLogger(__name__)


def standing_sort_key(row: StandingRow):
    # Series wins desc, map diff desc, then team name (case-sensitive).
    return (-row.series_wins, -row.map_diff, row.team)


def _apply_result(entry: StandingRow, team_wins: int, opp_wins: int) -> None:
    entry.map_wins += team_wins
    entry.map_losses += opp_wins
    if team_wins > opp_wins:
        entry.series_wins += 1
    elif team_wins < opp_wins:
        entry.series_losses += 1


def build_standings(
    league: str,
    series: Sequence[MatchSeries],
    season: int = CURRENT_SEASON,
) -> List[StandingRow]:
    """
    Standings for one league.

    Every team of the league gets a row, played or not. Only series whose
    league resolves to ``league`` count; series between teams of different
    leagues, or with unknown teams, are ignored.
    """
    table: Dict[str, StandingRow] = {
        team.display_name: StandingRow(team=team.display_name, team_slug=team.slug, league=league)
        for team in teams_for_league(league, season)
    }

    skipped = 0
    for match in series:
        if match.season != season or match_league(season, match.home_team, match.away_team) != league:
            skipped += 1
            continue
        if match.home_team in table:
            _apply_result(table[match.home_team], match.home_wins, match.away_wins)
        if match.away_team in table:
            _apply_result(table[match.away_team], match.away_wins, match.home_wins)

    logger.debug("Standings %s season %s: %d series outside the league skipped", league, season, skipped)
    return sorted(table.values(), key=standing_sort_key)


def build_standings_by_league(series: Sequence[MatchSeries], season: int = CURRENT_SEASON) -> Dict[str, List[StandingRow]]:
    return {league: build_standings(league, series, season) for league in league_options(season)}
