"""
Helpers shared by the JSON blueprints
"""

from functools import wraps

from flask import jsonify
from flask_login import current_user

from pickpool.utils.nfl_calendar import get_current_season_and_week


def success_response(data=None, status=200, **extra):
    """{"success": true, "data": ...} envelope"""
    body = {"success": True, "data": data}
    body.update(extra)
    return jsonify(body), status


def error_response(message, status=400, **extra):
    """{"success": false, "error": ...} envelope"""
    body = {"success": False, "error": message}
    body.update(extra)
    return jsonify(body), status


def form_error_response(form, status=400):
    return error_response(form.first_error(), status, errors=form.errors)


def no_store(f):
    """Keep per-user API responses out of shared caches"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        rv = f(*args, **kwargs)
        response, status = rv if isinstance(rv, tuple) else (rv, None)
        if hasattr(response, "headers"):
            response.headers["Cache-Control"] = (
                "no-store, no-cache, must-revalidate, max-age=0"
            )
        return rv if status is None else (response, status)

    return decorated_function


def admin_required(f):
    """Site admin only, to be stacked under login_required"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return error_response("Authentication required", 401)
        if not current_user.is_admin:
            return error_response("Admin access required", 403)
        return f(*args, **kwargs)

    return decorated_function


def resolve_week(form):
    """Season and week from a WeekQueryForm, defaulting to the current week"""
    current_season, current_week = get_current_season_and_week()
    season = form.season.data or current_season
    week = form.week.data or current_week
    return season, week
