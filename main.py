# main.py

import argparse
import json
import logging
import sys

from leaguelog.config import IngestConfig
from leaguelog.database import Database
from leaguelog.ingest import IngestError, IngestRunner
from leaguelog.queries import LeagueQueries
from leaguelog.seasons import CURRENT_SEASON, parse_seasons_param, validate_season


def _print_standings(table: dict) -> None:
    for league, rows in table.items():
        print(f"\n{league}")
        print(f"  {'#':>2}  {'Team':<18} {'Series':>7} {'Maps':>7} {'Diff':>5}")
        for position, row in enumerate(rows, start=1):
            series = f"{row['series_wins']}-{row['series_losses']}"
            maps = f"{row['map_wins']}-{row['map_losses']}"
            print(f"  {position:>2}  {row['team']:<18} {series:>7} {maps:>7} {row['map_diff']:>+5}")


def _print_player(discord_id: str, dashboard: dict, season: int) -> None:
    player = dashboard.get("player") or {}
    name = player.get("ign") or player.get("discord_name") or discord_id
    overall = dashboard["seasons"][str(season)]["aggregates"]["overall"]
    print(f"\n{name} - season {season}")
    print(f"  K/D: {overall['kills']}/{overall['deaths']} ({overall['kd']})")
    print(f"  Series: {overall['series_wins']}-{overall['series_losses']}")
    print(f"  Maps: {overall['map_wins']}-{overall['map_losses']}")
    for mode, agg in dashboard["seasons"][str(season)]["aggregates"]["modes"].items():
        print(f"    {mode:<10} {agg['kills']:>4}/{agg['deaths']:<4} kd={agg['kd']:<9} maps {agg['map_wins']}-{agg['map_losses']}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="League stats ingestion and standings")
    parser.add_argument("--db", default="", help="SQLite DB path (defaults to LEAGUELOG_DB_PATH or data/leaguelog.db)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Pull the spreadsheet into the local store")
    ingest.add_argument("--seasons", default="", help="Comma-separated seasons, e.g. 0,1,2 (default: current)")

    standings = sub.add_parser("standings", help="Print league standings")
    standings.add_argument("--season", type=int, default=CURRENT_SEASON)
    standings.add_argument("--league", default="", help="Only this league")

    player = sub.add_parser("player", help="Print a player's season summary")
    player.add_argument("discord_id")
    player.add_argument("--season", type=int, default=CURRENT_SEASON)
    player.add_argument("--json", action="store_true", help="Dump the full dashboard as JSON")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = IngestConfig.from_env()
    db = Database(args.db.strip() or config.db_path)
    try:
        if args.command == "ingest":
            try:
                seasons = parse_seasons_param(args.seasons)
            except ValueError as e:
                print(f"ERROR: {e}")
                return 2
            try:
                summary = IngestRunner(db, config).run(seasons)
            except IngestError as e:
                print(f"ERROR: ingestion failed: {e}")
                return 1
            print(json.dumps(summary.to_dict(), indent=2))
            return 0

        queries = LeagueQueries(db)
        if args.command == "standings":
            try:
                table = queries.standings(season=args.season, league=args.league.strip() or None)
            except ValueError as e:
                print(f"ERROR: {e}")
                return 2
            _print_standings(table)
            return 0

        if args.command == "player":
            try:
                validate_season(args.season)
            except ValueError as e:
                print(f"ERROR: {e}")
                return 2
            dashboard = queries.player_season_dashboard(args.discord_id)
            if args.json:
                print(json.dumps(dashboard, indent=2, default=str))
            else:
                _print_player(args.discord_id, dashboard, args.season)
            return 0
    finally:
        db.close()
    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
