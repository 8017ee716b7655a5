from pickpool import db  # noqa: F401 - imported for model imports

from .game import Game
from .group import Group
from .group_member import GroupMember
from .pick import Pick
from .user import User
from .weekly_score import WeeklyScore

__all__ = [
    "User",
    "Group",
    "GroupMember",
    "Game",
    "Pick",
    "WeeklyScore",
]
