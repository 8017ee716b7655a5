"""
Background sync scheduler

Keeps scores and lines current with APScheduler: a live score sync on game
days, a daily full sync with scoring, and the Wednesday lines fetch.
"""

import atexit
import logging
from datetime import datetime, timezone

import pytz
import requests
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError

from pickpool import db
from pickpool.models import Game
from pickpool.models.game import STATUS_IN_PROGRESS
from pickpool.services.scoring_service import score_week
from pickpool.utils.data_sync import DataSync, DataSyncError
from pickpool.utils.nfl_calendar import get_current_season_and_week
from pickpool.utils.odds_api import OddsApiClient, OddsApiError

logger = logging.getLogger(__name__)

EASTERN = pytz.timezone("America/New_York")

# Thursday, Saturday, Sunday, Monday
GAME_DAYS = (3, 5, 6, 0)

# International games kick off at 9:30 AM Eastern
FIRST_KICKOFF_HOUR = 9

SYNC_ERRORS = (
    DataSyncError,
    OddsApiError,
    requests.exceptions.RequestException,
    SQLAlchemyError,
)


def is_game_time(now=None):
    """True during the US Eastern hours NFL games are played"""
    now = now or datetime.now(timezone.utc)
    eastern = now.astimezone(EASTERN)

    # Late games run past midnight into the next day
    if eastern.hour < 2:
        return (eastern.weekday() - 1) % 7 in GAME_DAYS
    return eastern.weekday() in GAME_DAYS and eastern.hour >= FIRST_KICKOFF_HOUR


class SchedulerService:
    """Manages automatic background scheduling for score and line syncing"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.is_running = False
        self.sync_stats = {
            "last_sync": None,
            "total_syncs": 0,
            "successful_syncs": 0,
            "failed_syncs": 0,
            "last_error": None,
            "games_updated": 0,
        }

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        atexit.register(self.shutdown)

        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        if self.is_running:
            return

        self.scheduler.remove_all_jobs()
        self._add_core_jobs()
        self.scheduler.start()
        self.is_running = True
        logger.info("Scheduler started successfully")

    def stop(self):
        if not self.is_running:
            return

        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Scheduler stopped")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        interval = self.app.config.get("SCORE_SYNC_INTERVAL_MINUTES", 5)

        self.scheduler.add_job(
            func=self._sync_live_scores,
            trigger=IntervalTrigger(minutes=interval),
            id="sync_live_scores",
            name="Sync Live Scores",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )

        # 09:00 UTC, after the last Monday night game
        self.scheduler.add_job(
            func=self._daily_maintenance,
            trigger=CronTrigger(hour=9, minute=0),
            id="daily_maintenance",
            name="Daily Score Sync and Scoring",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        self.scheduler.add_job(
            func=self._weekly_lines_sync,
            trigger=CronTrigger(day_of_week="wed", hour=12, minute=0),
            id="weekly_lines_sync",
            name="Weekly Lines Fetch",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        logger.info("Core scheduled jobs added")

    def run_score_cycle(self, season=None, week=None):
        """
        Poll ESPN and score the week when a game went final.

        Returns (updated, finalized_game_ids).
        """
        if season is None or week is None:
            season, week = get_current_season_and_week()

        sync = DataSync(
            self.app.config.get("NFL_API_BASE_URL"),
            timeout=self.app.config.get("API_REQUEST_TIMEOUT", 10),
        )
        updated, errors, finalized = sync.update_scores(season, week)
        if errors:
            logger.warning(f"{errors} games failed to update for {season} week {week}")

        if updated:
            self._emit_live_games(season, week)
        if finalized:
            score_week(season, week)
            self._emit_final_games(finalized)

        return updated, finalized

    def _sync_live_scores(self):
        """Score sync during game hours"""
        if not is_game_time():
            return

        with self.app.app_context():
            try:
                updated, finalized = self.run_score_cycle()
                self._update_stats(True, updated)
                if updated:
                    logger.info(
                        f"Live sync updated {updated} games, {len(finalized)} final"
                    )
            except SYNC_ERRORS as e:
                db.session.rollback()
                self._update_stats(False, error=e)
                logger.error(f"Error in live score sync: {e}", exc_info=True)

    def _daily_maintenance(self):
        """Full sync of the current week, then rescore it"""
        with self.app.app_context():
            try:
                season, week = get_current_season_and_week()
                logger.info(f"Running daily maintenance for {season} week {week}")
                updated, finalized = self.run_score_cycle(season, week)
                if not finalized:
                    score_week(season, week)
                self._update_stats(True, updated)
            except SYNC_ERRORS as e:
                db.session.rollback()
                self._update_stats(False, error=e)
                logger.error(f"Error in daily maintenance: {e}", exc_info=True)

    def _weekly_lines_sync(self):
        """Fetch the spreads and totals of the current week"""
        with self.app.app_context():
            try:
                season, week = get_current_season_and_week()
                created, updated = OddsApiClient.from_app(self.app).sync_week(
                    season, week, use_cache=False
                )
                self._update_stats(True, created + updated)
                logger.info(
                    f"Weekly lines sync: {created} new games, {updated} lines updated"
                )
            except SYNC_ERRORS as e:
                db.session.rollback()
                self._update_stats(False, error=e)
                logger.error(f"Error in weekly lines sync: {e}", exc_info=True)

    def _emit_live_games(self, season, week):
        from pickpool.socketio_handlers import broadcast_score_update

        for game in Game.query.filter_by(
            season=season, week=week, status=STATUS_IN_PROGRESS
        ).all():
            broadcast_score_update(game)

    def _emit_final_games(self, game_ids):
        from pickpool.socketio_handlers import broadcast_game_final

        for game in Game.query.filter(Game.id.in_(game_ids)).all():
            broadcast_game_final(game)

    def _update_stats(self, success, games_updated=0, error=None):
        self.sync_stats["last_sync"] = datetime.now(timezone.utc)
        self.sync_stats["total_syncs"] += 1

        if success:
            self.sync_stats["successful_syncs"] += 1
            self.sync_stats["games_updated"] += games_updated
            self.sync_stats["last_error"] = None
        else:
            self.sync_stats["failed_syncs"] += 1
            self.sync_stats["last_error"] = str(error) if error else None

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = getattr(job, "next_run_time", None)
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        stats = dict(self.sync_stats)
        if stats["last_sync"]:
            stats["last_sync"] = stats["last_sync"].isoformat()
        return {"is_running": self.is_running, "jobs": jobs, "stats": stats}


# Global scheduler instance
scheduler_service = SchedulerService()
