import logging
import time
from functools import wraps

import requests
from sqlalchemy.exc import SQLAlchemyError

from pickpool import db
from pickpool.models import Game
from pickpool.models.game import STATUS_FINAL, STATUS_IN_PROGRESS, STATUS_SCHEDULED
from pickpool.utils.nfl_calendar import get_current_season_and_week
from pickpool.utils.teams import team_name_for
from pickpool.utils.timezone_utils import parse_api_datetime

logger = logging.getLogger(__name__)

REGULAR_SEASON = 2

IN_PROGRESS_STATUSES = {
    "STATUS_IN_PROGRESS",
    "STATUS_HALFTIME",
    "STATUS_END_PERIOD",
    "STATUS_END_OF_REGULATION",
    "STATUS_OVERTIME",
}


class DataSyncError(Exception):
    """Raised when a third-party feed cannot be read"""


def rate_limit_decorator(max_retries=3, base_delay=1.0, backoff_factor=2.0):
    """
    Decorator to handle API rate limiting with exponential backoff
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            last_error = None
            for attempt in range(max_retries):
                try:
                    return func(self, *args, **kwargs)

                except requests.exceptions.HTTPError as e:
                    last_error = e
                    status = e.response.status_code if e.response is not None else 0
                    if status == 429:
                        delay = float(
                            e.response.headers.get(
                                "Retry-After", base_delay * (backoff_factor**attempt)
                            )
                        )
                        logger.warning(
                            f"Rate limited. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                        )
                    elif status >= 500:
                        delay = base_delay * (backoff_factor**attempt)
                        logger.warning(
                            f"Server error {status}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                        )
                    else:
                        # Client errors will not improve on retry
                        raise

                except requests.exceptions.RequestException as e:
                    last_error = e
                    delay = base_delay * (backoff_factor**attempt)
                    logger.warning(
                        f"Request failed: {e}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )

                if attempt < max_retries - 1:
                    time.sleep(delay)

            raise DataSyncError(
                f"Max retries ({max_retries}) exceeded: {last_error}"
            ) from last_error

        return wrapper

    return decorator


class RateLimitedClient:
    """
    requests.Session wrapper with a client-side request budget
    """

    user_agent = "pickpool/1.0"

    def __init__(self, timeout=10, min_request_interval=0.5, max_requests_per_minute=60):
        self.session = requests.Session()
        self.session.headers.update(
            {"User-Agent": self.user_agent, "Accept": "application/json"}
        )
        self.timeout = timeout

        self.request_count = 0
        self.last_request_time = 0
        self.min_request_interval = min_request_interval
        self.max_requests_per_minute = max_requests_per_minute
        self.request_timestamps = []

    def _enforce_rate_limit(self):
        """Enforce rate limiting before making requests"""
        current_time = time.time()

        # Remove timestamps older than 1 minute
        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        if len(self.request_timestamps) >= self.max_requests_per_minute:
            sleep_time = 60 - (current_time - self.request_timestamps[0])
            if sleep_time > 0:
                logger.info(f"Rate limit reached. Sleeping for {sleep_time:.1f}s")
                time.sleep(sleep_time)
                self.request_timestamps = []

        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_request_interval:
            time.sleep(self.min_request_interval - time_since_last)

        self.last_request_time = time.time()
        self.request_timestamps.append(self.last_request_time)
        self.request_count += 1

    @rate_limit_decorator(max_retries=3, base_delay=2.0)
    def _make_api_request(self, url, params=None):
        """Make API request with rate limiting and retry logic"""
        self._enforce_rate_limit()

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response

        except requests.exceptions.Timeout:
            logger.warning(f"Request timeout for {url}")
            raise
        except requests.exceptions.ConnectionError:
            logger.warning(f"Connection error for {url}")
            raise
        except requests.exceptions.HTTPError as e:
            logger.warning(f"HTTP error {e.response.status_code}: {url}")
            raise


class DataSync(RateLimitedClient):
    """
    Pulls live and final scores from the ESPN scoreboard feed
    """

    def __init__(self, api_base_url=None, **kwargs):
        super().__init__(**kwargs)
        self.api_base_url = (
            api_base_url or "https://site.api.espn.com/apis/site/v2/sports/football/nfl"
        ).rstrip("/")

    @staticmethod
    def parse_status(status):
        """Map an ESPN status block onto a game status"""
        status_type = (status or {}).get("type", {})
        name = status_type.get("name")
        if status_type.get("completed") or name == "STATUS_FINAL":
            return STATUS_FINAL
        if name in IN_PROGRESS_STATUSES or status_type.get("state") == "in":
            return STATUS_IN_PROGRESS
        return STATUS_SCHEDULED

    @staticmethod
    def _parse_score(value):
        if value in (None, ""):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @classmethod
    def parse_event(cls, event):
        """
        Flatten one scoreboard event.

        Returns None when the event has no usable competition.
        """
        competitions = event.get("competitions") or []
        if not competitions:
            return None
        competition = competitions[0]

        home = away = None
        for competitor in competition.get("competitors", []):
            if competitor.get("homeAway") == "home":
                home = competitor
            elif competitor.get("homeAway") == "away":
                away = competitor
        if not home or not away:
            return None

        def name_of(competitor):
            team = competitor.get("team", {})
            return team_name_for(team.get("abbreviation"), team.get("displayName"))

        status = cls.parse_status(competition.get("status") or event.get("status"))
        home_score = cls._parse_score(home.get("score"))
        away_score = cls._parse_score(away.get("score"))
        if status == STATUS_SCHEDULED:
            # Pregame feeds report 0-0
            home_score = away_score = None

        return {
            "espn_id": str(event.get("id")) if event.get("id") else None,
            "home_team": name_of(home),
            "away_team": name_of(away),
            "home_score": home_score,
            "away_score": away_score,
            "status": status,
            "game_time": parse_api_datetime(event.get("date") or competition.get("date")),
        }

    def fetch_scoreboard(self, season=None, week=None):
        """Parsed events of the scoreboard, the live one when week is None"""
        params = {}
        if week is not None:
            params = {"seasontype": REGULAR_SEASON, "week": week}
            if season is not None:
                params["dates"] = season

        response = self._make_api_request(f"{self.api_base_url}/scoreboard", params)
        try:
            payload = response.json()
        except ValueError as e:
            raise DataSyncError(f"Invalid scoreboard payload: {e}") from e

        events = []
        for event in payload.get("events", []):
            parsed = self.parse_event(event)
            if parsed:
                events.append(parsed)
        logger.info(f"Fetched {len(events)} games from ESPN scoreboard")
        return events

    def _find_game(self, data, season, week):
        game = None
        if data["espn_id"]:
            game = Game.query.filter_by(espn_id=data["espn_id"]).first()
        if game is None:
            game = Game.find_matchup(season, week, data["home_team"], data["away_team"])
        return game

    def update_scores(self, season=None, week=None, create_missing=False):
        """
        Update stored games from the scoreboard of a week.

        Args:
            season, week: the week to poll, defaults to the current one
            create_missing: add games that are not stored yet

        Returns:
            (updated, errors, finalized_game_ids)
        """
        if season is None or week is None:
            season, week = get_current_season_and_week()

        events = self.fetch_scoreboard(season, week)

        updated = 0
        errors = 0
        finalized = []
        for data in events:
            try:
                game = self._find_game(data, season, week)
                if game is None:
                    if not create_missing or not data["game_time"]:
                        logger.debug(
                            f"Game not stored: {data['away_team']} @ {data['home_team']}"
                        )
                        continue
                    game = Game(
                        season=season,
                        week=week,
                        home_team=data["home_team"],
                        away_team=data["away_team"],
                        game_time=data["game_time"],
                    )
                    db.session.add(game)
                    db.session.flush()

                if data["espn_id"] and not game.espn_id:
                    game.espn_id = data["espn_id"]

                changed, just_final = self._apply(game, data)
                if changed:
                    updated += 1
                if just_final:
                    finalized.append(game.id)
            except ValueError as e:
                logger.error(f"Error updating {data.get('espn_id')}: {e}")
                errors += 1

        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to commit score updates")
            raise

        logger.info(
            f"ESPN sync {season} week {week}: {updated} updated, {errors} errors, "
            f"{len(finalized)} newly final"
        )
        return updated, errors, finalized

    @staticmethod
    def _apply(game, data):
        """Copy feed values onto a game, returns (changed, just_went_final)"""
        changed = False
        if data["game_time"] and game.game_time != data["game_time"]:
            game.game_time = data["game_time"]
            changed = True

        if data["status"] == STATUS_SCHEDULED:
            if game.status != STATUS_SCHEDULED and game.status != STATUS_FINAL:
                game.status = STATUS_SCHEDULED
                changed = True
            return changed, False

        if (
            game.home_score != data["home_score"]
            or game.away_score != data["away_score"]
            or game.status != data["status"]
        ):
            just_final = game.update_score(
                data["home_score"], data["away_score"], data["status"]
            )
            return True, just_final
        return changed, False
