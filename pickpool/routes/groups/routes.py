import logging

from flask import current_app, request
from flask_login import current_user, login_required
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pickpool import db, limiter
from pickpool.forms.base import sanitize_input
from pickpool.forms.groups import CreateGroupForm, JoinByCodeForm, JoinGroupForm
from pickpool.forms.picks import WeekQueryForm
from pickpool.models import Game, Group, Pick, User
from pickpool.routes.groups import bp
from pickpool.services.scoring_service import weekly_score_rows
from pickpool.utils.api_utils import (
    error_response,
    form_error_response,
    no_store,
    resolve_week,
    success_response,
)

logger = logging.getLogger(__name__)


def _get_group(group_id):
    group = db.session.get(Group, group_id)
    if group is None or not group.is_active:
        return None
    return group


def _member_group_or_error(group_id):
    """(group, None) for a member of an active group, else (None, response)"""
    group = _get_group(group_id)
    if group is None:
        return None, error_response("Group not found", 404)
    if not group.is_user_member(current_user.id) and not current_user.is_admin:
        return None, error_response("Not a member of this group", 403)
    return group, None


def _week_args():
    form = WeekQueryForm.from_json(request.args.to_dict())
    if not form.validate():
        return None, None, form_error_response(form)
    season, week = resolve_week(form)
    return season, week, None


def _week_picks(group, season, week, user_id=None):
    query = (
        Pick.query.join(Game)
        .filter(Pick.group_id == group.id, Game.season == season, Game.week == week)
        .order_by(Game.game_time, Game.id)
    )
    if user_id is not None:
        query = query.filter(Pick.user_id == user_id)
    return query.all()


def _join(group, success_status=200):
    ok, message = group.add_member(current_user)
    if not ok:
        return error_response(message, 400)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response("Already a member of this group", 400)

    logger.info(f"User {current_user.username} joined group {group.id}")
    return success_response(
        group.to_dict(include_invite_code=True), success_status, message=message
    )


@bp.route("", methods=["GET"])
@login_required
def list_groups():
    """Active groups with member counts"""
    groups = Group.query.filter_by(is_active=True).order_by(Group.created_at.desc()).all()
    return success_response([group.to_dict() for group in groups])


@bp.route("", methods=["POST"])
@login_required
@limiter.limit("20 per hour")
def create_group():
    form = CreateGroupForm.from_json()
    if not form.validate():
        return form_error_response(form)

    group = Group(
        name=sanitize_input(form.name.data),
        description=sanitize_input(form.description.data),
        max_members=form.max_members.data
        or current_app.config.get("DEFAULT_MAX_MEMBERS", 50),
        creator_id=current_user.id,
    )
    group.set_password(form.password.data)

    try:
        db.session.add(group)
        db.session.flush()
        group.add_member(current_user, is_admin=True)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to create group")
        return error_response("Failed to create group", 500)

    logger.info(f"Group {group.id} created by {current_user.username}")
    return success_response(
        group.to_dict(include_members=True, include_invite_code=True),
        201,
        message="Group created successfully",
    )


@bp.route("/mine")
@login_required
@no_store
def my_groups():
    groups = current_user.get_groups()
    return success_response(
        [group.to_dict(include_invite_code=True) for group in groups]
    )


@bp.route("/<int:group_id>", methods=["GET"])
@login_required
def get_group(group_id):
    group = _get_group(group_id)
    if group is None:
        return error_response("Group not found", 404)

    is_member = group.is_user_member(current_user.id)
    data = group.to_dict(include_members=True, include_invite_code=is_member)
    data["is_member"] = is_member
    data["is_creator"] = group.creator_id == current_user.id
    return success_response(data)


@bp.route("/<int:group_id>", methods=["DELETE"])
@login_required
def delete_group(group_id):
    group = _get_group(group_id)
    if group is None:
        return error_response("Group not found", 404)

    if group.creator_id != current_user.id:
        return error_response("Only the group creator can delete this group", 403)

    db.session.delete(group)
    db.session.commit()
    logger.info(f"Group {group_id} deleted by {current_user.username}")
    return success_response(message="Group deleted successfully")


@bp.route("/<int:group_id>/join", methods=["POST"])
@login_required
@limiter.limit("30 per hour")
def join_group(group_id):
    group = _get_group(group_id)
    if group is None:
        return error_response("Group not found", 404)

    form = JoinGroupForm.from_json()
    if not group.check_password(form.password.data):
        logger.warning(f"Wrong join password for group {group_id} by {current_user.username}")
        return error_response("Incorrect password", 401)

    return _join(group)


@bp.route("/join", methods=["POST"])
@login_required
@limiter.limit("30 per hour")
def join_by_code():
    form = JoinByCodeForm.from_json()
    if not form.validate():
        return form_error_response(form)

    code = form.invite_code.data.strip().upper()
    group = Group.query.filter_by(invite_code=code, is_active=True).first()
    if group is None:
        return error_response("Invalid invite code", 404)

    return _join(group)


@bp.route("/<int:group_id>/leave", methods=["POST"])
@login_required
def leave_group(group_id):
    group = _get_group(group_id)
    if group is None:
        return error_response("Group not found", 404)

    if group.creator_id == current_user.id:
        return error_response(
            "The group creator cannot leave, delete the group instead", 400
        )

    ok, message = group.remove_member(current_user.id)
    if not ok:
        return error_response(message, 400)
    db.session.commit()
    return success_response(message=message)


@bp.route("/<int:group_id>/members")
@login_required
def group_members(group_id):
    """Members with their pick count and record for a week"""
    group, error = _member_group_or_error(group_id)
    if error:
        return error
    season, week, error = _week_args()
    if error:
        return error

    pick_counts = {}
    for pick in _week_picks(group, season, week):
        pick_counts[pick.user_id] = pick_counts.get(pick.user_id, 0) + 1

    members = []
    for row in group.get_weekly_standings(season, week):
        count = pick_counts.get(row["user_id"], 0)
        members.append(
            {
                "id": row["user_id"],
                "username": row["username"],
                "name": row["name"],
                "has_picks": count > 0,
                "pick_count": count,
                "wins": row["wins"],
                "losses": row["losses"],
                "ties": row["ties"],
            }
        )

    return success_response({"members": members, "week": week, "season": season})


@bp.route("/<int:group_id>/picks")
@login_required
def group_picks(group_id):
    """Every member's picks for a week with game info"""
    group, error = _member_group_or_error(group_id)
    if error:
        return error
    season, week, error = _week_args()
    if error:
        return error

    picks = []
    for pick in _week_picks(group, season, week):
        data = pick.to_dict(include_game=True)
        data["username"] = pick.user.username
        data["name"] = pick.user.full_name
        picks.append(data)

    return success_response({"picks": picks, "week": week, "season": season})


@bp.route("/<int:group_id>/members/<int:user_id>/picks")
@login_required
def member_picks(group_id, user_id):
    """One member's picks for a week"""
    group, error = _member_group_or_error(group_id)
    if error:
        return error
    season, week, error = _week_args()
    if error:
        return error

    user = db.session.get(User, user_id)
    if user is None:
        return error_response("User not found", 404)

    picks = [p.to_dict(include_game=True) for p in _week_picks(group, season, week, user.id)]
    return success_response(
        {
            "user": {"id": user.id, "username": user.username, "name": user.full_name},
            "picks": picks,
            "week": week,
            "season": season,
        }
    )


@bp.route("/<int:group_id>/weekly-scores")
@login_required
def group_weekly_scores(group_id):
    group, error = _member_group_or_error(group_id)
    if error:
        return error
    season, week, error = _week_args()
    if error:
        return error

    scores = weekly_score_rows(season, week, group_id=group.id)
    return success_response({"scores": scores, "week": week, "season": season})


@bp.route("/<int:group_id>/past-weeks")
@login_required
def past_weeks(group_id):
    """Results of the weeks before the given week, the current one by default"""
    group, error = _member_group_or_error(group_id)
    if error:
        return error

    season, week, error = _week_args()
    if error:
        return error

    weeks = group.get_past_weeks(season, week)
    return success_response({"weeks": weeks, "total_weeks": len(weeks)})
