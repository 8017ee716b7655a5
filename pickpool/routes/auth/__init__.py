from flask import Blueprint

bp = Blueprint("auth", __name__)

from pickpool.routes.auth import routes  # noqa: F401, E402
