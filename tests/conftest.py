import itertools
from datetime import datetime, timedelta, timezone

import pytest

from pickpool import create_app, db
from pickpool.models import Game, Group, Pick, User

SEASON = 2025
WEEK = 5
PASSWORD = "password123"


class Factory:
    """Model builders for tests, call them inside an app context"""

    _ids = itertools.count(1)

    def user(self, username=None, password=PASSWORD, name=None, is_admin=False):
        username = username or f"user{next(self._ids)}"
        user = User(username=username, is_admin=is_admin)
        user.set_name(name or username.title())
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    def group(self, creator, name=None, password=None, max_members=50, members=()):
        group = Group(
            name=name or f"Group {next(self._ids)}",
            creator_id=creator.id,
            max_members=max_members,
        )
        group.set_password(password)
        db.session.add(group)
        db.session.flush()
        group.add_member(creator, is_admin=True)
        for member in members:
            group.add_member(member)
        db.session.commit()
        return group

    def game(
        self,
        home="Kansas City Chiefs",
        away="Buffalo Bills",
        season=SEASON,
        week=WEEK,
        kickoff=None,
        spread=None,
        over_under=None,
        status="scheduled",
        home_score=None,
        away_score=None,
    ):
        if kickoff is None:
            kickoff = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(days=2)
        game = Game(
            season=season,
            week=week,
            home_team=home,
            away_team=away,
            game_time=kickoff,
            spread=spread,
            over_under=over_under,
            status=status,
            home_score=home_score,
            away_score=away_score,
        )
        db.session.add(game)
        db.session.commit()
        return game

    def final_game(self, home_score, away_score, **kwargs):
        kwargs.setdefault(
            "kickoff", datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=1)
        )
        return self.game(
            status="final", home_score=home_score, away_score=away_score, **kwargs
        )

    def pick(self, user, game, group, value):
        pick = Pick(user_id=user.id, game_id=game.id, group_id=group.id, pick=value)
        db.session.add(pick)
        db.session.commit()
        return pick

    @staticmethod
    def login(client, username, password=PASSWORD):
        response = client.post(
            "/api/auth/signin", json={"username": username, "password": password}
        )
        assert response.status_code == 200, response.get_json()
        return response


@pytest.fixture
def app():
    app = create_app("testing")
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def factory():
    return Factory()
