# leaguelog/ingest.py
"""
Ingestion run: pull every range from the spreadsheet, normalize, place
player rows on maps, and upsert everything by natural key.

Row-level problems are counted in the run summary. Anything that stops the
run (no credentials, unreachable sheet, failed write) is recorded on the
ingest run and re-raised as a single ``IngestError``.
"""

import logging
from datetime import date
from typing import Any, List, Optional, Protocol, Sequence

from leaguelog.config import (
    MAPS_GRID,
    PLAYER_LOG_GRID,
    SCHEDULE_GRID,
    SCHEDULE_SHEET,
    SEASON_SHEETS,
    SERIES_GRID,
    IngestConfig,
)
from leaguelog.database import Database
from leaguelog.match_mapping import resolve_matches
from leaguelog.models import IngestSummary, SeasonIngestSummary
from leaguelog.normalizer import IngestionNormalizer, player_stat_key
from leaguelog.seasons import CURRENT_SEASON, validate_season
from leaguelog.sheets_client import (
    SheetsClient,
    grid_range,
    header_range,
    season_range,
    split_range,
    start_row,
)

logger = logging.getLogger(__name__)


class IngestError(Exception):
    """Raised when an ingestion run fails as a whole."""


class RangeSource(Protocol):
    def batch_get(self, ranges: Sequence[str]) -> List[List[List[Any]]]:
        ...


class IngestRunner:
    def __init__(
        self,
        db: Database,
        config: IngestConfig,
        source: Optional[RangeSource] = None,
        today: Optional[date] = None,
    ):
        self.db = db
        self.config = config
        self.source = source
        self.normalizer = IngestionNormalizer(today=today)

    def run(self, seasons: Sequence[int]) -> IngestSummary:
        """
        Ingest players once, then each season in order.

        Returns:
            IngestSummary with upsert counts, rejected/duplicate counts and
            unresolved player rows per match

        Raises:
            IngestError: the source or the store failed; the run is recorded
                as failed with the partial summary
        """
        seasons = [validate_season(s) for s in seasons]
        run_id = self.db.create_ingest_run(seasons)
        summary = IngestSummary(run_id=run_id)
        logger.info("Ingest run %s started for seasons %s", run_id, seasons)

        try:
            source = self.source or SheetsClient(self.config.sheet_id, self.config.api_key)
            self._ingest_players(source, summary)
            for season in seasons:
                summary.seasons[season] = self._ingest_season(source, season)
        except Exception as exc:
            logger.error("Ingest run %s failed: %s", run_id, exc)
            self.db.finalize_ingest_run(run_id, summary.to_dict(), success=False, error=str(exc))
            raise IngestError(str(exc)) from exc

        self.db.finalize_ingest_run(run_id, summary.to_dict(), success=True)
        logger.info("Ingest run %s finished", run_id)
        return summary

    def _ingest_players(self, source: RangeSource, summary: IngestSummary) -> None:
        players_range = self.config.players_range
        values = source.batch_get([players_range])
        result = self.normalizer.normalize_players(values[0] if values else [], start_row(players_range))
        summary.players_rejected = result.rejected
        summary.players = self.db.upsert_players(result.records)

    def season_ranges(self, season: int) -> dict:
        """Data ranges for one season; the schedule only exists for the current season."""
        sheets = SEASON_SHEETS[season]
        ranges = {
            "series": season_range(sheets["series"], grid_range(self.config.series_range, SERIES_GRID)),
            "maps": season_range(sheets["maps"], grid_range(self.config.maps_range, MAPS_GRID)),
            "player_log": season_range(sheets["player_log"], grid_range(self.config.player_log_range, PLAYER_LOG_GRID)),
        }
        if season == CURRENT_SEASON:
            schedule_sheet = split_range(self.config.schedule_range)[0] or SCHEDULE_SHEET
            ranges["schedule"] = season_range(schedule_sheet, grid_range(self.config.schedule_range, SCHEDULE_GRID))
        return ranges

    def _fetch_season(self, source: RangeSource, season: int) -> dict:
        ranges = self.season_ranges(season)
        names = list(ranges)
        header_names = [n for n in names if n != "series" and header_range(ranges[n])]
        request = [ranges[n] for n in names] + [header_range(ranges[n]) for n in header_names]

        values = source.batch_get(request)
        values = list(values) + [[] for _ in range(len(request) - len(values))]

        fetched = {}
        for index, name in enumerate(names):
            fetched[name] = {"rows": values[index], "start_row": start_row(ranges[name]), "headers": []}
        for offset, name in enumerate(header_names):
            header_rows = values[len(names) + offset]
            fetched[name]["headers"] = header_rows[0] if header_rows else []
        return fetched

    def _ingest_season(self, source: RangeSource, season: int) -> SeasonIngestSummary:
        fetched = self._fetch_season(source, season)
        summary = SeasonIngestSummary(season=season)
        normalizer = self.normalizer

        series = normalizer.normalize_series(fetched["series"]["rows"], season, fetched["series"]["start_row"])
        maps = normalizer.normalize_maps(
            fetched["maps"]["rows"], season, fetched["maps"]["start_row"], fetched["maps"]["headers"]
        )
        log = normalizer.normalize_player_log(
            fetched["player_log"]["rows"], season, fetched["player_log"]["start_row"], fetched["player_log"]["headers"]
        )

        matches = resolve_matches(log.records, maps.records, season)
        assigned = [row for match in matches for row in match.rows]
        player_stats, stat_duplicates = normalizer.dedupe_player_stats(assigned)
        summary.unresolved_by_match = {m.match_id: m.unresolved_count for m in matches if m.unresolved_count}

        summary.rejected = {"series": series.rejected, "maps": maps.rejected, "player_stats": log.rejected}
        summary.duplicates = {"series": series.duplicates, "maps": maps.duplicates, "player_stats": stat_duplicates}

        summary.series = self.db.upsert_series(series.records)
        summary.maps = self.db.upsert_maps(maps.records)
        summary.player_stats = self.db.upsert_player_stats([(player_stat_key(a), a) for a in player_stats])

        if "schedule" in fetched:
            schedule = normalizer.normalize_schedule(
                fetched["schedule"]["rows"], season, fetched["schedule"]["start_row"], fetched["schedule"]["headers"]
            )
            summary.rejected["schedule"] = schedule.rejected
            summary.duplicates["schedule"] = schedule.duplicates
            summary.schedule = self.db.upsert_schedule(schedule.records)

        logger.info(
            "Season %s: %d series, %d maps, %d player stats written; %d player rows unresolved",
            season,
            summary.series.total,
            summary.maps.total,
            summary.player_stats.total,
            summary.unresolved_rows,
        )
        return summary
