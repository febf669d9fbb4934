# leaguelog/models.py
"""
Typed records produced at the ingestion boundary and consumed by the resolver
and aggregation code. Nothing downstream of the normalizer sees raw cells.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union


@dataclass(frozen=True)
class Player:
    discord_id: str
    discord_name: Optional[str] = None
    ign: Optional[str] = None
    rank_value: Optional[float] = None
    rank_is_na: bool = True
    team: Optional[str] = None
    status: Optional[str] = None
    women_status: Optional[str] = None
    womens_team: Optional[str] = None
    womens_rank: Optional[float] = None


@dataclass(frozen=True)
class MatchSeries:
    match_id: str
    match_date: str
    home_team: Optional[str]
    away_team: Optional[str]
    home_wins: int
    away_wins: int
    season: int
    series_winner: Optional[str] = None
    source_row: int = 0

    def opponent_of(self, team: Optional[str]) -> Optional[str]:
        if not team or not self.home_team or not self.away_team:
            return None
        if team == self.home_team:
            return self.away_team
        if team == self.away_team:
            return self.home_team
        return None

    def map_score_for(self, team: Optional[str]) -> Optional[tuple]:
        """(team map wins, opponent map wins), or None if the team did not play."""
        if team and team == self.home_team:
            return self.home_wins, self.away_wins
        if team and team == self.away_team:
            return self.away_wins, self.home_wins
        return None


@dataclass(frozen=True)
class MapRecord:
    match_id: str
    map_num: int
    mode: str
    map_name: str
    winner_team: str
    loser_team: str
    season: int
    source_row: int = 0


@dataclass(frozen=True)
class PlayerLogRow:
    match_id: str
    discord_id: str
    mode: str
    season: int
    source_row: int
    team: Optional[str] = None
    player: Optional[str] = None
    match_date: Optional[str] = None
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    hp_time: Optional[int] = None
    plants: Optional[int] = None
    defuses: Optional[int] = None
    ticks: Optional[int] = None
    write_in: Optional[str] = None


@dataclass(frozen=True)
class Resolved:
    map_num: int


@dataclass(frozen=True)
class Unresolved:
    reason: str


MapAssignment = Union[Resolved, Unresolved]


@dataclass(frozen=True)
class AssignedLogRow:
    row: PlayerLogRow
    assignment: MapAssignment

    @property
    def map_num(self) -> Optional[int]:
        if isinstance(self.assignment, Resolved):
            return self.assignment.map_num
        return None

    @property
    def is_resolved(self) -> bool:
        return isinstance(self.assignment, Resolved)


@dataclass(frozen=True)
class ScheduleEntry:
    schedule_id: str
    season: int
    slug: str
    week: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    division: Optional[str] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    home_gm: Optional[str] = None
    away_gm: Optional[str] = None
    match_time: Optional[str] = None
    stream_link: Optional[str] = None
    source_row: int = 0


@dataclass(frozen=True)
class KdRatio:
    """Kill/death ratio that keeps "no data" and "infinite" apart from numbers."""

    kills: int
    deaths: int

    @property
    def is_no_data(self) -> bool:
        return self.kills == 0 and self.deaths == 0

    @property
    def is_infinite(self) -> bool:
        return self.deaths == 0 and self.kills > 0

    @property
    def value(self) -> Optional[float]:
        if self.is_no_data:
            return None
        if self.deaths == 0:
            return math.inf
        return self.kills / self.deaths

    def format(self) -> str:
        if self.is_no_data:
            return "no data"
        if self.is_infinite:
            return "infinite"
        return f"{self.kills / self.deaths:.2f}"


@dataclass
class ModeAggregate:
    kills: int = 0
    deaths: int = 0
    map_wins: int = 0
    map_losses: int = 0

    @property
    def kd(self) -> KdRatio:
        return KdRatio(self.kills, self.deaths)

    def to_dict(self) -> Dict:
        return {
            "kills": self.kills,
            "deaths": self.deaths,
            "kd": self.kd.format(),
            "map_wins": self.map_wins,
            "map_losses": self.map_losses,
        }


@dataclass
class PlayerAggregate:
    kills: int = 0
    deaths: int = 0
    series_wins: int = 0
    series_losses: int = 0
    map_wins: int = 0
    map_losses: int = 0
    modes: Dict[str, ModeAggregate] = field(default_factory=dict)

    @property
    def kd(self) -> KdRatio:
        return KdRatio(self.kills, self.deaths)

    def to_dict(self) -> Dict:
        return {
            "overall": {
                "kills": self.kills,
                "deaths": self.deaths,
                "kd": self.kd.format(),
                "series_wins": self.series_wins,
                "series_losses": self.series_losses,
                "map_wins": self.map_wins,
                "map_losses": self.map_losses,
            },
            "modes": {mode: agg.to_dict() for mode, agg in self.modes.items()},
        }


@dataclass
class StandingRow:
    team: str
    team_slug: str
    league: str
    series_wins: int = 0
    series_losses: int = 0
    map_wins: int = 0
    map_losses: int = 0

    @property
    def map_diff(self) -> int:
        return self.map_wins - self.map_losses

    def to_dict(self) -> Dict:
        return {
            "team": self.team,
            "team_slug": self.team_slug,
            "league": self.league,
            "series_wins": self.series_wins,
            "series_losses": self.series_losses,
            "map_wins": self.map_wins,
            "map_losses": self.map_losses,
            "map_diff": self.map_diff,
        }


@dataclass(frozen=True)
class UpsertCounts:
    inserted: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated

    def to_dict(self) -> Dict[str, int]:
        return {"inserted": self.inserted, "updated": self.updated}


@dataclass
class NormalizeResult:
    """Records that survived normalization plus what was thrown away."""

    records: List = field(default_factory=list)
    rejected: int = 0
    duplicates: int = 0

    @property
    def accepted(self) -> int:
        return len(self.records)


@dataclass
class SeasonIngestSummary:
    season: int
    series: UpsertCounts = field(default_factory=UpsertCounts)
    maps: UpsertCounts = field(default_factory=UpsertCounts)
    player_stats: UpsertCounts = field(default_factory=UpsertCounts)
    schedule: UpsertCounts = field(default_factory=UpsertCounts)
    rejected: Dict[str, int] = field(default_factory=dict)
    duplicates: Dict[str, int] = field(default_factory=dict)
    unresolved_by_match: Dict[str, int] = field(default_factory=dict)

    @property
    def unresolved_rows(self) -> int:
        return sum(self.unresolved_by_match.values())

    def to_dict(self) -> Dict:
        return {
            "series": self.series.to_dict(),
            "maps": self.maps.to_dict(),
            "player_stats": self.player_stats.to_dict(),
            "schedule": self.schedule.to_dict(),
            "rejected": dict(self.rejected),
            "duplicates": dict(self.duplicates),
            "unresolved_rows": self.unresolved_rows,
            "unresolved_by_match": dict(self.unresolved_by_match),
        }


@dataclass
class IngestSummary:
    """What one ingestion run wrote, dropped and could not place."""

    run_id: Optional[int] = None
    players: UpsertCounts = field(default_factory=UpsertCounts)
    players_rejected: int = 0
    seasons: Dict[int, SeasonIngestSummary] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "run_id": self.run_id,
            "player_ovr": self.players.to_dict(),
            "players_rejected": self.players_rejected,
            "seasons": {str(season): s.to_dict() for season, s in self.seasons.items()},
        }
