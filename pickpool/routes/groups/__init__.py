from flask import Blueprint

bp = Blueprint("groups", __name__)

from pickpool.routes.groups import routes  # noqa: F401, E402
