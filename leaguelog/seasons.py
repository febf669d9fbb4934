# leaguelog/seasons.py

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from leaguelog.models import Player

CURRENT_SEASON = 2
SEASONS = (0, 1, 2)

LEAGUES = ("Lowers", "Uppers", "Legends", "Womens")
LEGACY_LEAGUES = ("Lowers", "Uppers")
WOMENS = "Womens"
UNKNOWN_LEAGUE = "unknown"

# Closed intervals; ranks in the gaps (e.g. 6.3) belong to no league.
RANK_INTERVALS = (
    ("Lowers", 0.5, 6.0),
    ("Uppers", 6.5, 12.0),
    ("Legends", 12.5, 18.0),
)

SEASON_TEAMS: Dict[int, Dict[str, List[str]]] = {
    0: {
        "Lowers": [
            "Las Vegas Shockwave",
            "Miami Mirage",
            "Milwaukee Saints",
            "New York Nexus",
            "Tampa Bay Vortex",
            "Juneau Glaciers",
        ],
        "Uppers": [
            "Baltimore Sluggers",
            "Boston Blaze",
            "Brooklyn Blitz",
            "Dallas Rattlesnakes",
            "Detroit Mobsters",
            "Honolulu Pirates",
            "Myrtle Beach Parrots",
            "Phoenix Nightstalkers",
            "San Francisco Fusion",
            "Seattle Spark",
        ],
    },
    1: {
        "Lowers": ["Aegis", "Obsidian", "Clockwork", "Templar", "Tempest", "Rift", "Anarchy", "Maelstrom"],
        "Uppers": [
            "Orcsbane", "Phoenix", "Hydra", "Vanguard", "Citadel", "Ironclad",
            "Voidborn", "Orbitals", "Nebula", "Nightshade", "Wisps", "Reapers",
        ],
    },
    2: {
        "Lowers": [
            "Aegis", "Tempest", "Tarnished", "Templar", "Syndicate", "Autheryum",
            "BornToShootL", "Sleepers", "0utlawz", "Leverage", "Hellstrom", "Kyber",
        ],
        "Uppers": [
            "Orcsbane", "BornToShootU", "Celestial", "RawHoney", "Citadel", "Ironclad",
            "Voidborn", "Obsidian", "Nebula", "Nightshade", "Wisps", "Reapers",
            "Anarchy", "Avocados", "Haunted", "1OF1",
        ],
        "Legends": [
            "FaYz", "Legends", "Clockwork", "Contenders", "Phoenix", "Hydra",
            "Vanguard", "Orbitals", "Legacy", "Enigma", "SuperSe7eN", "Challengers",
        ],
        "Womens": ["Rift", "Nova", "HEX", "CelestialStars", "Valkyries", "Roseblade", "Sirens", "PiinkPonyClub"],
    },
}

# Canonical map pools per game generation, keyed by mode.
BO6_MAP_POOL: Dict[str, List[str]] = {
    "Hardpoint": ["Skyline", "Vault", "Hacienda", "Protocol", "Red Card", "Rewind"],
    "SnD": ["Vault", "Hacienda", "Rewind", "Protocol", "Red Card", "Dealership"],
    "Control": ["Hacienda", "Protocol", "Vault"],
}

BO7_MAP_POOL: Dict[str, List[str]] = {
    "Hardpoint": ["Blackheart", "Colossus", "Den", "Exposure", "Scar"],
    "SnD": ["Raid", "Colossus", "Den", "Exposure", "Scar"],
    "Control": ["Den", "Exposure", "Scar"],
}


@dataclass(frozen=True)
class TeamDefinition:
    league: str
    display_name: str
    slug: str


def validate_season(season: int) -> int:
    if season not in SEASONS:
        raise ValueError(f"Unknown season {season!r}; expected one of {SEASONS}")
    return season


def parse_seasons_param(value: Optional[str]) -> List[int]:
    """Parse a comma-separated seasons list ("0,1,2"). Blank means the current season."""
    parts = [part.strip() for part in (value or "").split(",") if part.strip()]
    if not parts:
        return [CURRENT_SEASON]
    seasons: List[int] = []
    for part in parts:
        try:
            season = int(part)
        except ValueError:
            raise ValueError(f"Invalid seasons parameter {value!r}. Use comma-separated values: 0,1,2.")
        validate_season(season)
        if season not in seasons:
            seasons.append(season)
    return seasons


def slugify_team(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower().strip())
    return slug.strip("-")


def league_options(season: int) -> List[str]:
    validate_season(season)
    if season < CURRENT_SEASON:
        return list(LEGACY_LEAGUES)
    return list(LEAGUES)


def teams_for_league(league: str, season: int = CURRENT_SEASON) -> List[TeamDefinition]:
    validate_season(season)
    names = SEASON_TEAMS[season].get(league, [])
    return [TeamDefinition(league=league, display_name=name, slug=slugify_team(name)) for name in names]


def team_definitions(season: int = CURRENT_SEASON) -> List[TeamDefinition]:
    defs: List[TeamDefinition] = []
    for league in league_options(season):
        defs.extend(teams_for_league(league, season))
    return defs


def team_by_name(name: Optional[str], season: int = CURRENT_SEASON) -> Optional[TeamDefinition]:
    if not name:
        return None
    for team in team_definitions(season):
        if team.display_name == name:
            return team
    return None


def team_by_slug(slug: str, season: int = CURRENT_SEASON) -> Optional[TeamDefinition]:
    for team in team_definitions(season):
        if team.slug == slug:
            return team
    return None


def league_for_team(name: Optional[str], season: int) -> Optional[str]:
    team = team_by_name(name, season)
    return team.league if team else None


def league_for_rank(rank_value: Optional[float], rank_is_na: bool = False) -> Optional[str]:
    if rank_is_na or rank_value is None:
        return None
    for league, low, high in RANK_INTERVALS:
        if low <= rank_value <= high:
            return league
    return None


def match_league(season: int, home_team: Optional[str], away_team: Optional[str]) -> str:
    """League of a series, or "unknown" unless both teams sit in the same league that season."""
    home_league = league_for_team(home_team, season)
    away_league = league_for_team(away_team, season)
    if not home_league or not away_league or home_league != away_league:
        return UNKNOWN_LEAGUE
    return home_league


def _is_real_team(team: Optional[str]) -> bool:
    return bool(team) and team.strip().lower() != "na"


def is_womens_registered(player: Player) -> bool:
    if (player.women_status or "").lower() == "unregistered":
        return False
    return player.womens_rank is not None and _is_real_team(player.womens_team)


def player_in_league(player: Player, league: str) -> bool:
    if league == WOMENS:
        return is_womens_registered(player)
    return league_for_rank(player.rank_value, player.rank_is_na) == league


def player_team_for_league(player: Player, league: str) -> Optional[str]:
    return player.womens_team if league == WOMENS else player.team


def map_pool_for_season(season: int) -> Dict[str, List[str]]:
    return BO7_MAP_POOL if season >= CURRENT_SEASON else BO6_MAP_POOL


def mode_label(mode: str, season: int) -> str:
    # Control was renamed Overload in the current game.
    if season >= CURRENT_SEASON and mode == "Control":
        return "Overload"
    return mode
