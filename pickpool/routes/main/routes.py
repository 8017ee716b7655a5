from datetime import datetime, timezone

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pickpool import db, limiter
from pickpool.models import Game
from pickpool.models.game import STATUS_IN_PROGRESS
from pickpool.routes.main import bp
from pickpool.utils.api_utils import error_response, success_response
from pickpool.utils.nfl_calendar import get_current_season_and_week


@bp.route("/")
def index():
    season, week = get_current_season_and_week()
    return success_response(
        {"name": "pickpool", "current_season": season, "current_week": week}
    )


@bp.route("/health")
@limiter.exempt
def health():
    """Health check endpoint - exempt from rate limiting for monitoring systems"""
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db.session.rollback()
        return error_response("Database unavailable", 503, status="unhealthy")

    return success_response(
        {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
    )


@bp.route("/api/scores/live")
def live_scores():
    """Games in progress for the current week"""
    season, week = get_current_season_and_week()
    live_games = Game.query.filter_by(
        season=season, week=week, status=STATUS_IN_PROGRESS
    ).all()

    return success_response(
        {
            "games": [game.to_dict() for game in live_games],
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }
    )
