import hmac
import logging
from datetime import datetime, timezone

import requests
from flask import current_app, request
from flask_login import current_user, login_required
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from wtforms.validators import ValidationError

from pickpool import csrf, db, limiter
from pickpool.forms.picks import ScoreWeekForm, SubmitPicksForm, WeekQueryForm
from pickpool.models import Game, GroupMember, Pick
from pickpool.routes.api import bp
from pickpool.services.scoring_service import (
    score_current_week,
    score_week,
    weekly_score_rows,
)
from pickpool.utils.api_utils import (
    admin_required,
    error_response,
    form_error_response,
    no_store,
    resolve_week,
    success_response,
)
from pickpool.utils.cache_utils import CacheManager
from pickpool.utils.data_sync import DataSync, DataSyncError
from pickpool.utils.odds_api import OddsApiClient, OddsApiError

logger = logging.getLogger(__name__)


def _member_group_ids(user):
    return [
        m.group_id
        for m in GroupMember.query.filter_by(user_id=user.id, is_active=True).all()
    ]


def _week_from_args():
    form = WeekQueryForm.from_json(request.args.to_dict())
    if not form.validate():
        return None, None, form_error_response(form)
    season, week = resolve_week(form)
    return season, week, None


def _can_view_group(group_id):
    return current_user.is_admin or group_id in _member_group_ids(current_user)


def _score_sync(season=None, week=None, create_missing=False):
    sync = DataSync(
        current_app.config.get("NFL_API_BASE_URL"),
        timeout=current_app.config.get("API_REQUEST_TIMEOUT", 10),
    )
    return sync.update_scores(season, week, create_missing=create_missing)


def _fill_week(season, week):
    """Pull the games of an incomplete week from the odds feed, then ESPN"""
    try:
        created, updated = OddsApiClient.from_app().sync_week(season, week)
        logger.info(f"Odds sync for {season} week {week}: {created} new, {updated} updated")
        return
    except OddsApiError as e:
        logger.warning(f"Odds API unavailable for {season} week {week}: {e}")

    try:
        _score_sync(season, week, create_missing=True)
    except (DataSyncError, requests.exceptions.RequestException) as e:
        logger.warning(f"ESPN schedule unavailable for {season} week {week}: {e}")


@bp.route("/games")
@limiter.limit("60 per minute")
def games():
    """Games of a week, defaulting to the current NFL week"""
    season, week, error = _week_from_args()
    if error:
        return error

    games = Game.get_games_for_week(season, week)
    min_games = current_app.config.get("MIN_GAMES_PER_WEEK", 16)
    if len(games) < min_games and current_app.config.get("GAMES_AUTO_SYNC", True):
        logger.info(
            f"Only {len(games)} games stored for {season} week {week}, fetching"
        )
        _fill_week(season, week)
        games = Game.get_games_for_week(season, week)

    return success_response(
        {"week": week, "season": season, "games": [game.to_dict() for game in games]}
    )


@bp.route("/picks", methods=["GET"])
@login_required
@no_store
def get_picks():
    """The caller's picks in a group, optionally for one week"""
    group_id = request.args.get("group_id", type=int)
    if not group_id:
        return error_response("group_id is required", 400)
    if group_id not in _member_group_ids(current_user):
        return error_response("Not a member of this group", 403)

    query = (
        Pick.query.join(Game)
        .filter(Pick.user_id == current_user.id, Pick.group_id == group_id)
        .order_by(Game.season, Game.week, Game.game_time)
    )
    week = request.args.get("week", type=int)
    season = request.args.get("season", type=int)
    if week:
        query = query.filter(Game.week == week)
    if season:
        query = query.filter(Game.season == season)

    return success_response([pick.to_dict(include_game=True) for pick in query.all()])


@bp.route("/picks", methods=["POST"])
@login_required
@limiter.limit("60 per minute")
def submit_picks():
    """
    Create or update the caller's picks in a group.

    The batch is all-or-nothing: one started game or one invalid value
    rejects every pick in it.
    """
    payload = request.get_json(silent=True) or {}
    form = SubmitPicksForm.from_json(payload)
    if not form.validate():
        return form_error_response(form)

    try:
        submitted = SubmitPicksForm.parse_picks(payload)
    except ValidationError as e:
        return error_response(str(e), 400)

    group_id = form.group_id.data
    if group_id not in _member_group_ids(current_user):
        return error_response("Not a member of this group", 403)

    game_ids = [item["game_id"] for item in submitted]
    games = {g.id: g for g in Game.query.filter(Game.id.in_(game_ids)).all()}
    missing = [game_id for game_id in game_ids if game_id not in games]
    if missing:
        return error_response("Some games were not found", 404, missing_games=missing)

    now = datetime.now(timezone.utc)
    locked = [game_id for game_id in game_ids if not games[game_id].is_pickable(now)]
    if locked:
        return error_response(
            "Picks are locked for games that have started", 400, locked_games=locked
        )

    try:
        values = {
            item["game_id"]: Pick.normalize_pick_value(games[item["game_id"]], item["pick"])
            for item in submitted
        }
    except ValueError as e:
        return error_response(str(e), 400)

    existing = {
        p.game_id: p
        for p in Pick.query.filter(
            Pick.user_id == current_user.id,
            Pick.group_id == group_id,
            Pick.game_id.in_(game_ids),
        ).all()
    }

    created = 0
    updated = 0
    for item in submitted:
        pick = existing.get(item["game_id"])
        if pick is None:
            pick = Pick(
                user_id=current_user.id,
                group_id=group_id,
                game_id=item["game_id"],
            )
            db.session.add(pick)
            created += 1
        else:
            updated += 1
        pick.pick = values[item["game_id"]]
        pick.confidence = item["confidence"]
        pick.result = None

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response("Picks were changed by another request, try again", 409)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(f"Failed to save picks for user {current_user.id}")
        return error_response("Failed to save picks", 500)

    logger.info(
        f"User {current_user.username} saved {len(submitted)} picks in group {group_id}"
    )
    picks = Pick.query.filter(
        Pick.user_id == current_user.id,
        Pick.group_id == group_id,
        Pick.game_id.in_(game_ids),
    ).all()
    return success_response(
        [pick.to_dict() for pick in picks],
        message="Picks saved successfully",
        created=created,
        updated=updated,
    )


@bp.route("/pick-results")
@login_required
@no_store
def pick_results():
    """Picks of a week graded against the current scores"""
    season, week, error = _week_from_args()
    if error:
        return error

    group_id = request.args.get("group_id", type=int)
    user_id = request.args.get("user_id", type=int)

    games = Game.get_games_for_week(season, week)
    data = {"week": week, "season": season, "picks": [], "games": []}
    if not games:
        return success_response(data)

    query = Pick.query.filter(Pick.game_id.in_([g.id for g in games]))
    if group_id:
        if not _can_view_group(group_id):
            return error_response("Not a member of this group", 403)
        query = query.filter(Pick.group_id == group_id)
    elif not current_user.is_admin:
        query = query.filter(Pick.group_id.in_(_member_group_ids(current_user)))
    if user_id:
        query = query.filter(Pick.user_id == user_id)

    for pick in query.all():
        row = pick.to_dict(include_game=True)
        row["result"] = pick.grade()
        row["username"] = pick.user.username
        row["name"] = pick.user.full_name
        row["game_result"] = pick.game.result_summary()
        data["picks"].append(row)
    data["games"] = [game.to_dict() for game in games]
    return success_response(data)


@bp.route("/weekly-scores")
@login_required
def weekly_scores():
    """Stored weekly records, best first"""
    season, week, error = _week_from_args()
    if error:
        return error

    group_id = request.args.get("group_id", type=int)
    if group_id:
        if not _can_view_group(group_id):
            return error_response("Not a member of this group", 403)
        scores = weekly_score_rows(season, week, group_id=group_id)
    else:
        scores = weekly_score_rows(season, week)
        if not current_user.is_admin:
            allowed = set(_member_group_ids(current_user))
            scores = [row for row in scores if row["group_id"] in allowed]

    return success_response({"week": week, "season": season, "scores": scores})


@bp.route("/score-picks", methods=["POST"])
@login_required
@admin_required
def score_picks():
    """Grade a week and rebuild its weekly scores"""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    payload.update(request.args.to_dict())
    form = ScoreWeekForm.from_json(payload)
    if not form.validate():
        return form_error_response(form)

    try:
        summary = score_week(form.season.data, form.week.data, group_id=form.group_id.data)
    except SQLAlchemyError:
        return error_response("Failed to score picks", 500)

    return success_response(summary, message="Picks scored successfully")


@bp.route("/update-scores", methods=["POST"])
@login_required
@admin_required
def update_scores():
    """Poll ESPN for the scores of a week"""
    season, week, error = _week_from_args()
    if error:
        return error

    try:
        updated, errors, finalized = _score_sync(season, week)
    except (DataSyncError, requests.exceptions.RequestException) as e:
        logger.error(f"Score update failed: {e}")
        return error_response("Failed to fetch scores", 502)

    return success_response(
        {
            "week": week,
            "season": season,
            "updated": updated,
            "errors": errors,
            "finalized_games": finalized,
        },
        message=f"Updated {updated} games",
    )


@bp.route("/fetch-lines", methods=["POST"])
@login_required
@admin_required
def fetch_lines():
    """Refresh spreads and totals of a week from the odds feed"""
    season, week, error = _week_from_args()
    if error:
        return error

    try:
        created, updated = OddsApiClient.from_app().sync_week(season, week, use_cache=False)
    except OddsApiError as e:
        logger.error(f"Lines fetch failed: {e}")
        return error_response(str(e), 502)

    return success_response(
        {"week": week, "season": season, "created": created, "updated": updated}
    )


def _cron_authorized():
    if current_user.is_authenticated and current_user.is_admin:
        return True
    secret = current_app.config.get("CRON_SECRET")
    header = request.headers.get("Authorization", "")
    if not secret or not header.startswith("Bearer "):
        return False
    return hmac.compare_digest(header[len("Bearer "):], secret)


@bp.route("/cron", methods=["GET", "POST"])
@csrf.exempt
def cron():
    """Update scores from ESPN, then score the current week"""
    if not _cron_authorized():
        return error_response("Unauthorized", 401)

    logger.info("Cron run started")
    try:
        updated, errors, finalized = _score_sync()
    except (DataSyncError, requests.exceptions.RequestException) as e:
        logger.error(f"Cron score update failed: {e}")
        return error_response("Cron job failed", 500)

    try:
        summary = score_current_week()
    except SQLAlchemyError:
        return error_response("Cron job failed", 500)

    logger.info(f"Cron run finished: {updated} games updated, {len(finalized)} final")
    return success_response(
        {
            "games_updated": updated,
            "errors": errors,
            "finalized_games": finalized,
            "scoring": summary,
        },
        message="Cron job completed successfully",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@bp.route("/admin/scheduler")
@login_required
@admin_required
@no_store
def scheduler_status():
    from pickpool.services.scheduler_service import scheduler_service
    from pickpool.socketio_handlers import get_connection_stats

    return success_response(
        {
            "scheduler": scheduler_service.get_status(),
            "cache": CacheManager.get_cache_stats(),
            "connections": get_connection_stats(),
        }
    )
