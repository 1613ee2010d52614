"""ETL module for the BetsAPI live feed."""

from goalwatch.etl.base import LiveFeedProvider, LiveMatch
from goalwatch.etl.betsapi import BetsAPIProvider
from goalwatch.etl.leagues import DEFAULT_LEAGUES, LeagueRegistry, LeagueTarget

__all__ = [
    "LiveFeedProvider",
    "LiveMatch",
    "BetsAPIProvider",
    "LeagueTarget",
    "LeagueRegistry",
    "DEFAULT_LEAGUES",
]
