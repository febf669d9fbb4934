# leaguelog/match_mapping.py
"""
Assign player-log rows to the maps of their series.

Older seasons never recorded a map number on player rows, so the map a row
belongs to is reconstructed from its position in the sheet. Two strategies
exist and the season picks one:

- FixedChunkAssignment (current format): exactly one block of rows per map.
- LegacyRunAssignment: walk the maps in order and consume runs of rows whose
  mode matches, holding back rows for back-to-back maps of the same mode.

Rows that cannot be placed are kept and marked ``Unresolved``; they still
count toward per-mode kill/death totals but never toward map results.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

from leaguelog.models import (
    AssignedLogRow,
    MapAssignment,
    MapRecord,
    Player,
    PlayerLogRow,
    Resolved,
    Unresolved,
)
from leaguelog.seasons import CURRENT_SEASON, player_team_for_league

logger = logging.getLogger(__name__)

ROWS_PER_MAP = 8

# Unresolved reasons
NO_MAPS = "no_maps"
BEYOND_MAP_LIST = "beyond_map_list"
MODE_MISMATCH = "mode_mismatch"
NOT_CONSUMED = "not_consumed"

ESUB_TAG = "ESub"
RELEASED_TAG = "Released"


def sort_rows(rows: Sequence[PlayerLogRow]) -> List[PlayerLogRow]:
    # sorted() is stable, so equal source rows keep their input order.
    return sorted(rows, key=lambda r: r.source_row)


def sort_maps(maps: Sequence[MapRecord]) -> List[MapRecord]:
    return sorted(maps, key=lambda m: m.map_num)


def count_same_mode_maps_ahead(maps: Sequence[MapRecord], start: int) -> int:
    """Consecutive maps from ``start`` (inclusive) sharing that map's mode."""
    if start >= len(maps):
        return 0
    mode = maps[start].mode
    count = 0
    for map_record in maps[start:]:
        if map_record.mode != mode:
            break
        count += 1
    return count


@dataclass(frozen=True)
class FixedChunkAssignment:
    """
    Row ``i`` (in source order) belongs to map ``i // rows_per_map + 1``.

    A row whose block lands on a map of a different mode stays
    ``Unresolved(mode_mismatch)`` instead of being credited to that map.
    """

    rows_per_map: int = ROWS_PER_MAP

    def assign(self, rows: Sequence[PlayerLogRow], maps: Sequence[MapRecord]) -> List[MapAssignment]:
        by_num = {m.map_num: m for m in maps}
        assignments: List[MapAssignment] = []
        for index, row in enumerate(rows):
            map_num = index // self.rows_per_map + 1
            if map_num > len(maps):
                assignments.append(Unresolved(BEYOND_MAP_LIST))
                continue
            map_record = by_num.get(map_num)
            if map_record is None or map_record.mode != row.mode:
                assignments.append(Unresolved(MODE_MISMATCH))
                continue
            assignments.append(Resolved(map_num))
        return assignments


@dataclass(frozen=True)
class LegacyRunAssignment:
    max_rows_per_map: int = ROWS_PER_MAP

    def assign(self, rows: Sequence[PlayerLogRow], maps: Sequence[MapRecord]) -> List[MapAssignment]:
        """
        Walk maps in order with a cursor over the rows.

        A map whose mode differs from the row at the cursor is skipped without
        moving the cursor. Otherwise the map takes
        ``min(max_rows_per_map, run_length - (same_mode_maps_ahead - 1))`` rows,
        clamped at zero.
        """
        assignments: List[Optional[MapAssignment]] = [None] * len(rows)
        cursor = 0

        for map_index, map_record in enumerate(maps):
            if cursor >= len(rows):
                break
            if rows[cursor].mode != map_record.mode:
                continue

            run_length = 0
            while cursor + run_length < len(rows) and rows[cursor + run_length].mode == map_record.mode:
                run_length += 1

            same_mode_ahead = count_same_mode_maps_ahead(maps, map_index)
            take = max(0, min(self.max_rows_per_map, run_length - (same_mode_ahead - 1)))

            for offset in range(take):
                assignments[cursor + offset] = Resolved(map_record.map_num)
            cursor += take

        return [a if a is not None else Unresolved(NOT_CONSUMED) for a in assignments]


AssignmentStrategy = Union[FixedChunkAssignment, LegacyRunAssignment]


def strategy_for_season(season: int) -> AssignmentStrategy:
    if season >= CURRENT_SEASON:
        return FixedChunkAssignment()
    return LegacyRunAssignment()


@dataclass
class MatchAssignment:
    """Assigned rows of one match plus how many could not be placed."""

    match_id: str
    rows: List[AssignedLogRow] = field(default_factory=list)

    @property
    def unresolved_count(self) -> int:
        return sum(1 for r in self.rows if not r.is_resolved)

    @property
    def resolved_rows(self) -> List[AssignedLogRow]:
        return [r for r in self.rows if r.is_resolved]


def assign_map_numbers(
    rows: Sequence[PlayerLogRow],
    maps: Sequence[MapRecord],
    season: Optional[int] = None,
    strategy: Optional[AssignmentStrategy] = None,
) -> List[AssignedLogRow]:
    """
    Assign every row of a single match to one of its maps.

    Args:
        rows: Player-log rows of one match, any order
        maps: Map records of the same match, any order
        season: Picks the strategy when ``strategy`` is not given
        strategy: Explicit strategy value

    Returns:
        One AssignedLogRow per input row, ordered by source row
    """
    if strategy is None:
        if season is None:
            raise ValueError("assign_map_numbers needs a season or a strategy")
        strategy = strategy_for_season(season)

    sorted_rows = sort_rows(rows)
    if not maps:
        return [AssignedLogRow(row, Unresolved(NO_MAPS)) for row in sorted_rows]

    assignments = strategy.assign(sorted_rows, sort_maps(maps))
    return [AssignedLogRow(row, assignment) for row, assignment in zip(sorted_rows, assignments)]


def group_by_match(items: Sequence) -> Dict[str, List]:
    grouped: Dict[str, List] = {}
    for item in items:
        grouped.setdefault(item.match_id, []).append(item)
    return grouped


def resolve_matches(
    rows: Sequence[PlayerLogRow],
    maps: Sequence[MapRecord],
    season: int,
) -> List[MatchAssignment]:
    """Run assignment for every match present in ``rows``, one strategy per season."""
    strategy = strategy_for_season(season)
    maps_by_match = group_by_match(maps)
    results: List[MatchAssignment] = []

    for match_id, match_rows in group_by_match(rows).items():
        match_maps = maps_by_match.get(match_id, [])
        result = MatchAssignment(
            match_id=match_id,
            rows=assign_map_numbers(match_rows, match_maps, strategy=strategy),
        )

        if isinstance(strategy, FixedChunkAssignment) and match_maps:
            expected = strategy.rows_per_map * len(match_maps)
            if len(match_rows) != expected:
                logger.warning(
                    "Match %s has %d player rows for %d maps (expected %d); block assignment may be misaligned",
                    match_id,
                    len(match_rows),
                    len(match_maps),
                    expected,
                )

        if result.unresolved_count:
            logger.info("Match %s: %d player rows left unresolved", match_id, result.unresolved_count)
        results.append(result)

    return results


def player_tag_label(
    row: PlayerLogRow,
    match_league: str,
    season: int,
    player: Optional[Player] = None,
) -> Optional[str]:
    """
    Display tag for a row: "ESub" for write-in subs, "Released" when the row's
    team is no longer the player's team in that league. Current season only.
    """
    if season < CURRENT_SEASON:
        return None
    if row.write_in == ESUB_TAG:
        return ESUB_TAG
    current_team = player_team_for_league(player, match_league) if player else None
    if row.team and current_team and row.team != current_team:
        return RELEASED_TAG
    return None

