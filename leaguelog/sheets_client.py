# leaguelog/sheets_client.py

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, List, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

logger = logging.getLogger(__name__)

A1_GRID_RE = re.compile(r"^([A-Z]+)(\d+)(:([A-Z]+)(\d+)?)?$", re.IGNORECASE)


class SourceUnavailableError(Exception):
    """Raised when the spreadsheet cannot be reached or credentials are missing."""


def split_range(a1_range: str) -> tuple:
    sheet, _, grid = a1_range.partition("!")
    return sheet, grid


def grid_range(a1_range: str, fallback: str) -> str:
    """Grid part of ``Sheet!A2:I`` ("A2:I"), or ``fallback`` if there is none."""
    _, grid = split_range(a1_range)
    return grid or fallback


def season_range(sheet_name: str, grid: str) -> str:
    return f"{sheet_name}!{grid}"


def header_range(a1_range: str) -> Optional[str]:
    """Row-1 range covering the same columns: ``Map Log!A2:F`` -> ``Map Log!A1:F1``."""
    sheet, grid = split_range(a1_range)
    if not sheet or not grid:
        return None
    match = A1_GRID_RE.match(grid)
    if not match:
        return None
    start_col = match.group(1)
    end_col = match.group(4) or start_col
    return f"{sheet}!{start_col}1:{end_col}1"


def start_row(a1_range: str) -> int:
    """Sheet row number of the first data row in the range (1-based)."""
    _, grid = split_range(a1_range)
    match = A1_GRID_RE.match(grid)
    return int(match.group(2)) if match else 1


class SheetsClient:
    """Read-only client for the Google Sheets v4 values API, authenticated by API key."""

    BASE = "https://sheets.googleapis.com/v4/spreadsheets"
    HEADERS = {"Accept": "application/json"}

    def __init__(
        self,
        sheet_id: Optional[str],
        api_key: Optional[str],
        timeout_seconds: int = 20,
        retry_sleep_seconds: float = 5.0,
    ):
        if not sheet_id:
            raise SourceUnavailableError("SHEET_ID is not set")
        if not api_key:
            raise SourceUnavailableError("SHEETS_API_KEY is not set")
        self.sheet_id = sheet_id
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.retry_sleep_seconds = retry_sleep_seconds

    def _get_json(self, url: str, retry_429: bool = True) -> dict:
        req = Request(url, headers=self.HEADERS, method="GET")
        try:
            with urlopen(req, timeout=self.timeout_seconds) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except HTTPError as exc:
            if exc.code == 429 and retry_429:
                logger.warning("Sheets API rate limited; retrying once in %.1fs", self.retry_sleep_seconds)
                time.sleep(self.retry_sleep_seconds)
                return self._get_json(url, retry_429=False)
            raise SourceUnavailableError(f"Sheets API returned HTTP {exc.code}: {exc.reason}") from exc
        except URLError as exc:
            raise SourceUnavailableError(f"Sheets API unreachable: {exc.reason}") from exc
        except OSError as exc:
            raise SourceUnavailableError(f"Sheets API read failed: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise SourceUnavailableError(f"Sheets API returned invalid JSON: {exc}") from exc

    def batch_get_url(self, ranges: Sequence[str]) -> str:
        params = [("ranges", r) for r in ranges]
        params.append(("key", self.api_key))
        return f"{self.BASE}/{quote(self.sheet_id, safe='')}/values:batchGet?{urlencode(params)}"

    def batch_get(self, ranges: Sequence[str]) -> List[List[List[Any]]]:
        """
        Fetch several A1 ranges in one request.

        Returns:
            One list of rows per requested range, in request order. Ranges the
            API returns without values come back as empty lists.
        """
        if not ranges:
            return []
        payload = self._get_json(self.batch_get_url(ranges))
        value_ranges = payload.get("valueRanges", []) if isinstance(payload, dict) else []
        out: List[List[List[Any]]] = []
        for index in range(len(ranges)):
            node = value_ranges[index] if index < len(value_ranges) else {}
            out.append(node.get("values", []) if isinstance(node, dict) else [])
        logger.debug("Fetched %d ranges: %s", len(ranges), ", ".join(ranges))
        return out
