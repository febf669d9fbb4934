from fastapi import FastAPI, HTTPException, Request
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from leaguelog.config import IngestConfig
from leaguelog.database import Database
from leaguelog.ingest import IngestError, IngestRunner
from leaguelog.queries import LeagueQueries
from leaguelog.seasons import CURRENT_SEASON, parse_seasons_param

logger = logging.getLogger(__name__)

app = FastAPI(title="leaguelog")


def get_db(request: Request) -> Database:
    """The app's store, opened from LEAGUELOG_DB_PATH on first use unless one was attached."""
    db = getattr(request.app.state, "db", None)
    if db is None:
        db = Database(IngestConfig.from_env().db_path)
        request.app.state.db = db
        logger.info("Using database at: %s", os.path.abspath(db.db_path))
    return db


@app.post("/api/ingest-sheets")
async def ingest_sheets(request: Request, seasons: str = "") -> dict:
    try:
        season_list = parse_seasons_param(seasons)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    config = getattr(request.app.state, "config", None) or IngestConfig.from_env()
    runner = IngestRunner(get_db(request), config, source=getattr(request.app.state, "source", None))
    try:
        summary = runner.run(season_list)
        return {"ok": True, "seasons": season_list, "summary": summary.to_dict()}
    except IngestError as e:
        raise HTTPException(status_code=500, detail=f"Ingestion failed: {str(e)}")


@app.get("/api/standings")
async def standings(request: Request, season: int = CURRENT_SEASON, league: str = "") -> dict:
    try:
        table = LeagueQueries(get_db(request)).standings(season=season, league=league.strip() or None)
        return {"season": season, "standings": table}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to build standings: {str(e)}")


@app.get("/api/player/{discord_id}")
async def player(request: Request, discord_id: str) -> dict:
    clean_id = str(discord_id or "").strip()
    if not clean_id:
        raise HTTPException(status_code=400, detail="discord_id is required")
    try:
        dashboard = LeagueQueries(get_db(request)).player_season_dashboard(clean_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load player: {str(e)}")
    if dashboard["player"] is None and not dashboard["lifetime_match_history"]:
        raise HTTPException(status_code=404, detail=f"Player {clean_id} not found")
    return {"discord_id": clean_id, **dashboard}


@app.get("/api/series/{match_id}")
async def series(request: Request, match_id: str) -> dict:
    try:
        detail = LeagueQueries(get_db(request)).series_detail(match_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load series: {str(e)}")
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Series {match_id} not found")
    return detail


@app.get("/api/schedule")
async def schedule(request: Request, season: int = CURRENT_SEASON) -> dict:
    try:
        entries = LeagueQueries(get_db(request)).schedule(season)
        return {"season": season, "schedule": entries, "count": len(entries)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load schedule: {str(e)}")


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    print("Starting leaguelog API...")
    print("Open http://localhost:5000/docs in your browser")
    uvicorn.run(app, host="127.0.0.1", port=5000)
