import logging

from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import IntegrityError

from pickpool import db, limiter, login_manager
from pickpool.forms.auth import SigninForm, SignupForm
from pickpool.models import User
from pickpool.routes.auth import bp
from pickpool.utils.api_utils import (
    error_response,
    form_error_response,
    no_store,
    success_response,
)

logger = logging.getLogger(__name__)


@login_manager.user_loader
def load_user(user_id):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


@login_manager.unauthorized_handler
def unauthorized():
    return error_response("Authentication required", 401)


@bp.route("/csrf-token")
def csrf_token():
    """Token for the X-CSRFToken header of state-changing requests"""
    return success_response({"csrf_token": generate_csrf()})


@bp.route("/signup", methods=["POST"])
@limiter.limit("5 per hour")
def signup():
    form = SignupForm.from_json()
    if not form.validate():
        return form_error_response(form)

    user = User(
        username=form.username.data.strip(),
        email=form.email.data.strip() if form.email.data else None,
    )
    user.set_name(form.name.data)
    user.set_password(form.password.data)

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with another signup for the same name
        db.session.rollback()
        return error_response("Username already exists", 400)

    login_user(user)
    logger.info(f"New user registered: {user.username}")
    return success_response(user.to_dict(), 201, message="User created successfully")


@bp.route("/signin", methods=["POST"])
@limiter.limit("10 per minute")
def signin():
    form = SigninForm.from_json()
    if not form.validate():
        return form_error_response(form)

    user = User.query.filter_by(username=form.username.data.strip()).first()
    if not user or not user.check_password(form.password.data):
        logger.warning(f"Failed sign-in for username '{form.username.data}'")
        return error_response("Invalid credentials", 401)

    if not user.is_active:
        return error_response("Account has been deactivated", 403)

    login_user(user)
    user.update_last_login()
    return success_response(user.to_dict(), message="Signed in successfully")


@bp.route("/signout", methods=["POST"])
@login_required
def signout():
    logout_user()
    return success_response(message="Signed out successfully")


@bp.route("/me")
@login_required
@no_store
def me():
    data = current_user.to_dict()
    data["groups"] = [group.to_dict() for group in current_user.get_groups()]
    return success_response(data)
