import json
from datetime import datetime
from unittest import mock

import pytest
import requests

from pickpool import db
from pickpool.models import Game
from pickpool.utils.data_sync import DataSync, DataSyncError
from tests.conftest import SEASON, WEEK


def _response(status, payload=None):
    response = requests.Response()
    response.status_code = status
    response.url = "https://espn.test/scoreboard"
    response._content = json.dumps(payload or {}).encode()
    return response


def _event(home="KC", away="BUF", home_score="27", away_score="20", state="post",
           name="STATUS_FINAL", completed=True, event_id="401772"):
    return {
        "id": event_id,
        "date": "2025-10-05T20:25Z",
        "competitions": [
            {
                "status": {
                    "type": {"name": name, "state": state, "completed": completed}
                },
                "competitors": [
                    {
                        "homeAway": "home",
                        "score": home_score,
                        "team": {"abbreviation": home},
                    },
                    {
                        "homeAway": "away",
                        "score": away_score,
                        "team": {"abbreviation": away},
                    },
                ],
            }
        ],
    }


@pytest.mark.parametrize(
    "status, expected",
    [
        ({"type": {"name": "STATUS_FINAL", "completed": True}}, "final"),
        ({"type": {"name": "STATUS_FINAL_OVERTIME", "completed": True}}, "final"),
        ({"type": {"name": "STATUS_HALFTIME", "state": "in"}}, "in_progress"),
        ({"type": {"name": "STATUS_END_PERIOD"}}, "in_progress"),
        ({"type": {"name": "STATUS_SCHEDULED", "state": "pre"}}, "scheduled"),
        ({"type": {"name": "STATUS_POSTPONED"}}, "scheduled"),
        (None, "scheduled"),
    ],
)
def test_parse_status(status, expected):
    assert DataSync.parse_status(status) == expected


def test_parse_final_event():
    data = DataSync.parse_event(_event())

    assert data == {
        "espn_id": "401772",
        "home_team": "Kansas City Chiefs",
        "away_team": "Buffalo Bills",
        "home_score": 27,
        "away_score": 20,
        "status": "final",
        "game_time": datetime(2025, 10, 5, 20, 25),
    }


def test_parse_scheduled_event_drops_pregame_zeros():
    data = DataSync.parse_event(
        _event(home_score="0", away_score="0", state="pre",
               name="STATUS_SCHEDULED", completed=False)
    )

    assert data["status"] == "scheduled"
    assert data["home_score"] is None
    assert data["away_score"] is None


def test_parse_event_aliases_and_incomplete_events():
    data = DataSync.parse_event(_event(home="WSH", away="JAC"))
    assert data["home_team"] == "Washington Commanders"
    assert data["away_team"] == "Jacksonville Jaguars"

    assert DataSync.parse_event({"id": "1", "competitions": []}) is None
    broken = _event()
    broken["competitions"][0]["competitors"].pop()
    assert DataSync.parse_event(broken) is None


def test_update_scores_finalizes_stored_games(app_ctx, factory):
    game = factory.game(kickoff=datetime(2025, 10, 5, 20, 25))
    sync = DataSync(min_request_interval=0)

    events = [DataSync.parse_event(_event())]
    with mock.patch.object(DataSync, "fetch_scoreboard", return_value=events):
        updated, errors, finalized = sync.update_scores(SEASON, WEEK)

    assert (updated, errors, finalized) == (1, 0, [game.id])
    stored = db.session.get(Game, game.id)
    assert stored.status == "final"
    assert (stored.home_score, stored.away_score) == (27, 20)
    assert stored.espn_id == "401772"

    # A second poll of the same final score changes nothing
    with mock.patch.object(DataSync, "fetch_scoreboard", return_value=events):
        assert sync.update_scores(SEASON, WEEK) == (0, 0, [])


def test_update_scores_live_game_is_not_finalized(app_ctx, factory):
    game = factory.game(kickoff=datetime(2025, 10, 5, 20, 25))
    events = [
        DataSync.parse_event(
            _event(home_score="10", away_score="7", state="in",
                   name="STATUS_IN_PROGRESS", completed=False)
        )
    ]

    with mock.patch.object(DataSync, "fetch_scoreboard", return_value=events):
        updated, _, finalized = DataSync().update_scores(SEASON, WEEK)

    assert updated == 1
    assert finalized == []
    assert db.session.get(Game, game.id).status == "in_progress"


def test_update_scores_creates_missing_games_on_request(app_ctx):
    events = [DataSync.parse_event(_event(home="DET", away="CHI"))]
    sync = DataSync()

    with mock.patch.object(DataSync, "fetch_scoreboard", return_value=events):
        sync.update_scores(SEASON, WEEK)
        assert Game.query.count() == 0

        sync.update_scores(SEASON, WEEK, create_missing=True)

    game = Game.query.one()
    assert (game.home_team, game.away_team) == ("Detroit Lions", "Chicago Bears")
    assert game.season == SEASON
    assert game.week == WEEK
    assert game.is_final


def test_fetch_scoreboard_requests_a_week():
    sync = DataSync("https://espn.test", min_request_interval=0)
    payload = {"events": [_event(), {"id": "2", "competitions": []}]}

    with mock.patch.object(sync.session, "get", return_value=_response(200, payload)) as get:
        events = sync.fetch_scoreboard(SEASON, WEEK)

    assert len(events) == 1
    get.assert_called_once_with(
        "https://espn.test/scoreboard",
        params={"seasontype": 2, "week": WEEK, "dates": SEASON},
        timeout=10,
    )


@mock.patch("pickpool.utils.data_sync.time.sleep")
def test_server_errors_are_retried(sleep):
    sync = DataSync(min_request_interval=0)
    responses = [_response(503), _response(200, {"events": []})]

    with mock.patch.object(sync.session, "get", side_effect=responses) as get:
        assert sync.fetch_scoreboard() == []

    assert get.call_count == 2
    sleep.assert_called()


@mock.patch("pickpool.utils.data_sync.time.sleep")
def test_retries_give_up(sleep):
    sync = DataSync(min_request_interval=0)

    with mock.patch.object(sync.session, "get", return_value=_response(502)) as get:
        with pytest.raises(DataSyncError):
            sync.fetch_scoreboard()

    assert get.call_count == 3


@mock.patch("pickpool.utils.data_sync.time.sleep")
def test_client_errors_are_not_retried(sleep):
    sync = DataSync(min_request_interval=0)

    with mock.patch.object(sync.session, "get", return_value=_response(404)) as get:
        with pytest.raises(requests.exceptions.HTTPError):
            sync.fetch_scoreboard()

    assert get.call_count == 1
