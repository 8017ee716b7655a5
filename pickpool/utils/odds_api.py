"""
The Odds API client

Fetches the spread and total of every NFL game in a week window and stores
them on the games table. Lines are frozen once a game kicks off so live
in-game odds never change how picks are graded.
"""

import logging

import requests
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from pickpool import cache, db
from pickpool.models import Game
from pickpool.utils.cache_utils import make_cache_key
from pickpool.utils.data_sync import DataSyncError, RateLimitedClient
from pickpool.utils.nfl_calendar import get_week_window
from pickpool.utils.timezone_utils import parse_api_datetime

logger = logging.getLogger(__name__)

SPORT_KEY = "americanfootball_nfl"


class OddsApiError(Exception):
    """Raised when lines cannot be fetched"""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


def _market(bookmaker, key):
    for market in bookmaker.get("markets", []):
        if market.get("key") == key:
            return market
    return None


def _home_point(outcomes, home_team, away_team):
    """Home-relative line from a spreads market, None when no team matches"""
    points = {
        o["name"]: o["point"]
        for o in outcomes
        if o.get("name") and o.get("point") is not None
    }
    if home_team in points:
        return points[home_team]
    if away_team in points:
        # Away line mirrors the home line
        return -points[away_team] if points[away_team] else points[away_team]
    return None


class OddsApiClient(RateLimitedClient):
    """
    Thin wrapper over the /odds endpoint of The Odds API v4
    """

    def __init__(self, api_key=None, base_url=None, cache_timeout=None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.base_url = (base_url or "https://api.the-odds-api.com/v4").rstrip("/")
        self.cache_timeout = cache_timeout if cache_timeout is not None else 7 * 24 * 3600

    @classmethod
    def from_app(cls, app=None):
        app = app or current_app
        return cls(
            api_key=app.config.get("ODDS_API_KEY"),
            base_url=app.config.get("ODDS_API_BASE_URL"),
            cache_timeout=app.config.get("ODDS_CACHE_TIMEOUT"),
            timeout=app.config.get("API_REQUEST_TIMEOUT", 10),
        )

    @staticmethod
    def parse_game(data):
        """
        Flatten one event of the odds feed.

        The spread is the home team's point on the first bookmaker whose
        spreads market names either team, negated when only the away outcome
        matches. The total is the first totals outcome point. Missing markets
        come back as None.
        """
        home_team = data.get("home_team")
        away_team = data.get("away_team")
        spread = None
        over_under = None

        for bookmaker in data.get("bookmakers", []):
            spreads = _market(bookmaker, "spreads")
            if spread is None and spreads and spreads.get("outcomes"):
                spread = _home_point(spreads["outcomes"], home_team, away_team)

            totals = _market(bookmaker, "totals")
            if over_under is None and totals and totals.get("outcomes"):
                over_under = totals["outcomes"][0].get("point")

            if spread is not None and over_under is not None:
                break

        return {
            "external_id": data.get("id"),
            "home_team": home_team,
            "away_team": away_team,
            "game_time": parse_api_datetime(data.get("commence_time")),
            "spread": float(spread) if spread is not None else None,
            "over_under": float(over_under) if over_under is not None else None,
        }

    def fetch_odds(self, start, end):
        """Raw events kicking off between two aware UTC datetimes"""
        if not self.api_key:
            raise OddsApiError("ODDS_API_KEY is not configured")

        params = {
            "apiKey": self.api_key,
            "regions": "us",
            "markets": "spreads,totals",
            "oddsFormat": "american",
            "commenceTimeFrom": start.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "commenceTimeTo": end.strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        url = f"{self.base_url}/sports/{SPORT_KEY}/odds/"

        try:
            response = self._make_api_request(url, params)
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 401:
                raise OddsApiError("Invalid API key", status) from e
            raise OddsApiError(f"API request failed: {status}", status) from e
        except (requests.exceptions.RequestException, DataSyncError) as e:
            raise OddsApiError(f"API request failed: {e}") from e

        remaining = response.headers.get("x-requests-remaining")
        if remaining is not None:
            logger.info(f"Odds API requests remaining: {remaining}")

        try:
            return response.json()
        except ValueError as e:
            raise OddsApiError(f"Invalid odds payload: {e}") from e

    def fetch_week(self, season, week, use_cache=True):
        """Parsed games of a week, cached for the configured timeout"""
        cache_key = make_cache_key("odds", season, week)
        if use_cache:
            cached = cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Odds cache hit for {season} week {week}")
                return cached

        start, end = get_week_window(season, week)
        games = [self.parse_game(event) for event in self.fetch_odds(start, end)]
        games = [g for g in games if g["home_team"] and g["away_team"] and g["game_time"]]

        cache.set(cache_key, games, timeout=self.cache_timeout)
        logger.info(f"Fetched lines for {len(games)} games in {season} week {week}")
        return games

    def sync_week(self, season, week, use_cache=True):
        """
        Upsert the games of a week by external id, then by matchup.

        Returns:
            (created, updated)
        """
        created = 0
        updated = 0
        for data in self.fetch_week(season, week, use_cache=use_cache):
            game = Game.query.filter_by(external_id=data["external_id"]).first()
            if game is None:
                game = Game.find_matchup(
                    season, week, data["home_team"], data["away_team"]
                )

            if game is None:
                game = Game(
                    external_id=data["external_id"],
                    season=season,
                    week=week,
                    home_team=data["home_team"],
                    away_team=data["away_team"],
                    game_time=data["game_time"],
                    spread=data["spread"],
                    over_under=data["over_under"],
                )
                db.session.add(game)
                created += 1
                continue

            if not game.external_id:
                game.external_id = data["external_id"]
            if not game.is_pickable():
                continue
            game.game_time = data["game_time"]
            game.update_lines(data["spread"], data["over_under"])
            updated += 1

        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(f"Failed to store lines for {season} week {week}")
            raise

        logger.info(f"Lines sync {season} week {week}: {created} created, {updated} updated")
        return created, updated
