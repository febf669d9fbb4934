# leaguelog/schedule.py

import hashlib
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Iterable, List, Optional, Sequence

from leaguelog.models import MatchSeries, ScheduleEntry
from leaguelog.seasons import slugify_team

DIVISION_ALIASES = {
    "legend": "Legends",
    "legends": "Legends",
    "women": "Womens",
    "womens": "Womens",
    "women's": "Womens",
    "lowers": "Lowers",
    "uppers": "Uppers",
}


@dataclass(frozen=True)
class LinkedScheduleEntry:
    entry: ScheduleEntry
    match_id: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self.entry)
        data["match_id"] = self.match_id
        return data


def normalize_division(value: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    return DIVISION_ALIASES.get(value.strip().lower(), value.strip())


def build_schedule_id(values: Iterable[Any]) -> str:
    payload = "|".join("" if v is None else str(v) for v in values)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def build_schedule_slug(season: int, home_team: Optional[str], away_team: Optional[str]) -> str:
    return f"s{season}-{slugify_team(home_team or 'tbd')}-vs-{slugify_team(away_team or 'tbd')}"


def _parse_iso(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def date_in_window(match_date: Optional[str], start_date: Optional[str], end_date: Optional[str]) -> bool:
    played = _parse_iso(match_date)
    if played is None:
        return False
    start = _parse_iso(start_date)
    end = _parse_iso(end_date)
    if start and played < start:
        return False
    if end and played > end:
        return False
    return True


def link_schedule_matches(
    schedule: Sequence[ScheduleEntry],
    series: Sequence[MatchSeries],
) -> List[LinkedScheduleEntry]:
    """
    Pair each schedule entry with the series that fulfilled it.

    Entries are visited in order; each takes the earliest unused series with
    the same home and away teams whose date falls inside the entry's window.
    """
    ordered = sorted(series, key=lambda s: (_parse_iso(s.match_date) or date.max, s.match_id))
    used = set()
    linked: List[LinkedScheduleEntry] = []

    for entry in schedule:
        match_id = None
        for candidate in ordered:
            if candidate.match_id in used:
                continue
            if candidate.home_team != entry.home_team or candidate.away_team != entry.away_team:
                continue
            if date_in_window(candidate.match_date, entry.start_date, entry.end_date):
                match_id = candidate.match_id
                used.add(match_id)
                break
        linked.append(LinkedScheduleEntry(entry=entry, match_id=match_id))

    return linked
