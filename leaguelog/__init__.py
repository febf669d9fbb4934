# leaguelog/__init__.py
"""
League stats core: ingests the league spreadsheet, reconciles player-log rows
against each series' map list, and derives player aggregates and standings.
"""
