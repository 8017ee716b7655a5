from unittest import mock

from pickpool.models import Pick, WeeklyScore
from pickpool.services.scoring_service import score_week
from pickpool.utils.odds_api import OddsApiError
from tests.conftest import SEASON, WEEK

CRON_HEADERS = {"Authorization": "Bearer testing-cron-secret"}


def _scored_week(app, factory):
    with app.app_context():
        admin = factory.user("admin", is_admin=True)
        alice = factory.user("alice")
        bob = factory.user("bob")
        group = factory.group(alice, members=[bob])
        game = factory.final_game(27, 20, spread=-3.5, over_under=44.5)
        push = factory.final_game(
            24, 21, home="Baltimore Ravens", away="Miami Dolphins", spread=-3
        )
        factory.pick(alice, game, group, "Kansas City Chiefs")
        factory.pick(alice, push, group, "Miami Dolphins")
        factory.pick(bob, game, group, "under")
        return {"admin": admin.id, "group": group.id, "game": game.id}


def test_games_for_week(app, client, factory):
    with app.app_context():
        factory.game()
        factory.game(home="Detroit Lions", away="Chicago Bears", week=WEEK + 1)

    response = client.get(f"/api/games?week={WEEK}&season={SEASON}")

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["week"] == WEEK
    assert [g["home_team"] for g in data["games"]] == ["Kansas City Chiefs"]
    assert data["games"][0]["is_pickable"] is True
    assert data["games"][0]["game_time"].endswith("+00:00")


def test_games_fill_incomplete_week_from_odds_feed(app, client):
    app.config["GAMES_AUTO_SYNC"] = True
    with mock.patch(
        "pickpool.routes.api.routes.OddsApiClient.sync_week", return_value=(0, 0)
    ) as sync_week:
        response = client.get(f"/api/games?week={WEEK}&season={SEASON}")

    assert response.status_code == 200
    sync_week.assert_called_once_with(SEASON, WEEK)


def test_games_fall_back_to_espn_schedule(app, client):
    app.config["GAMES_AUTO_SYNC"] = True
    with mock.patch(
        "pickpool.routes.api.routes.OddsApiClient.sync_week",
        side_effect=OddsApiError("ODDS_API_KEY is not configured"),
    ), mock.patch(
        "pickpool.routes.api.routes.DataSync.update_scores", return_value=(0, 0, [])
    ) as update_scores:
        response = client.get(f"/api/games?week={WEEK}&season={SEASON}")

    assert response.status_code == 200
    update_scores.assert_called_once_with(SEASON, WEEK, create_missing=True)


def test_weekly_scores(app, client, factory):
    ids = _scored_week(app, factory)
    with app.app_context():
        score_week(SEASON, WEEK)
    factory.login(client, "bob")

    response = client.get(
        f"/api/weekly-scores?week={WEEK}&season={SEASON}&group_id={ids['group']}"
    )

    scores = response.get_json()["data"]["scores"]
    assert [s["username"] for s in scores] == ["alice", "bob"]
    assert scores[0]["wins"] == 1
    assert scores[0]["ties"] == 1
    assert scores[0]["total_picks"] == 2
    assert scores[0]["win_percentage"] == 50


def test_weekly_scores_hide_other_groups(app, client, factory):
    ids = _scored_week(app, factory)
    with app.app_context():
        score_week(SEASON, WEEK)
        factory.user("stranger")
    factory.login(client, "stranger")

    all_rows = client.get(f"/api/weekly-scores?week={WEEK}&season={SEASON}")
    assert all_rows.get_json()["data"]["scores"] == []

    one_group = client.get(f"/api/weekly-scores?group_id={ids['group']}")
    assert one_group.status_code == 403


def test_pick_results_grade_on_the_fly(app, client, factory):
    ids = _scored_week(app, factory)
    factory.login(client, "alice")

    response = client.get(
        f"/api/pick-results?week={WEEK}&season={SEASON}&group_id={ids['group']}"
    )

    data = response.get_json()["data"]
    results = {(p["username"], p["pick"]): p["result"] for p in data["picks"]}
    assert results == {
        ("alice", "Kansas City Chiefs"): "correct",
        ("alice", "Miami Dolphins"): "tie",
        ("bob", "under"): "incorrect",
    }
    summary = next(p for p in data["picks"] if p["game_id"] == ids["game"])["game_result"]
    assert summary["winner"] == "Kansas City Chiefs"
    assert summary["home_against_spread"] == "correct"
    assert summary["over_under_result"] == "correct"
    assert len(data["games"]) == 2


def test_pick_results_empty_week(app, client, factory):
    with app.app_context():
        factory.user("alice")
    factory.login(client, "alice")

    response = client.get(f"/api/pick-results?week=1&season={SEASON}")

    assert response.get_json()["data"]["picks"] == []


def test_score_picks_requires_admin(app, client, factory):
    _scored_week(app, factory)
    factory.login(client, "alice")

    response = client.post(f"/api/score-picks?week={WEEK}&season={SEASON}")
    assert response.status_code == 403


def test_score_picks_requires_week_and_season(app, client, factory):
    _scored_week(app, factory)
    factory.login(client, "admin")

    response = client.post("/api/score-picks", json={"week": WEEK})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Week and season are required"


def test_score_picks_ignores_non_object_body(app, client, factory):
    _scored_week(app, factory)
    factory.login(client, "admin")

    missing = client.post("/api/score-picks", json=[WEEK, SEASON])
    assert missing.status_code == 400

    response = client.post(
        f"/api/score-picks?week={WEEK}&season={SEASON}", json=[WEEK, SEASON]
    )
    assert response.status_code == 200
    assert response.get_json()["data"]["picks_processed"] == 3


def test_score_picks_is_repeatable(app, client, factory):
    ids = _scored_week(app, factory)
    factory.login(client, "admin")

    first = client.post("/api/score-picks", json={"week": WEEK, "season": SEASON})
    second = client.post(f"/api/score-picks?week={WEEK}&season={SEASON}")

    assert first.status_code == 200
    assert first.get_json()["data"]["picks_processed"] == 3
    assert second.get_json()["data"] == first.get_json()["data"]
    with app.app_context():
        records = {
            s.user.username: (s.wins, s.losses, s.ties)
            for s in WeeklyScore.query.filter_by(group_id=ids["group"]).all()
        }
        assert records == {"alice": (1, 0, 1), "bob": (0, 1, 0)}
        assert Pick.query.filter(Pick.result.is_(None)).count() == 0


def test_update_scores(app, client, factory):
    _scored_week(app, factory)
    factory.login(client, "admin")

    with mock.patch(
        "pickpool.routes.api.routes.DataSync.update_scores", return_value=(3, 0, [7])
    ):
        response = client.post(f"/api/update-scores?week={WEEK}&season={SEASON}")

    data = response.get_json()["data"]
    assert data["updated"] == 3
    assert data["finalized_games"] == [7]


def test_fetch_lines_reports_feed_errors(app, client, factory):
    _scored_week(app, factory)
    factory.login(client, "admin")

    # No ODDS_API_KEY in testing
    response = client.post(f"/api/fetch-lines?week={WEEK}&season={SEASON}")

    assert response.status_code == 502
    assert "ODDS_API_KEY" in response.get_json()["error"]


def test_cron_requires_secret(client):
    assert client.post("/api/cron").status_code == 401
    assert (
        client.post("/api/cron", headers={"Authorization": "Bearer wrong"}).status_code
        == 401
    )


def test_cron_updates_then_scores(app, client):
    summary = {"season": SEASON, "week": WEEK, "games_processed": 0}
    with mock.patch(
        "pickpool.routes.api.routes.DataSync.update_scores", return_value=(2, 0, [])
    ) as update_scores, mock.patch(
        "pickpool.routes.api.routes.score_current_week", return_value=summary
    ) as scorer:
        response = client.get("/api/cron", headers=CRON_HEADERS)

    assert response.status_code == 200
    body = response.get_json()
    assert body["data"]["games_updated"] == 2
    assert body["data"]["scoring"] == summary
    update_scores.assert_called_once()
    scorer.assert_called_once_with()


def test_admin_scheduler_status(app, client, factory):
    _scored_week(app, factory)
    factory.login(client, "admin")

    response = client.get("/api/admin/scheduler")

    data = response.get_json()["data"]
    assert data["scheduler"]["is_running"] is False
    assert data["cache"]["type"] == "NullCache"


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json()["data"]["status"] == "healthy"


def test_unknown_route_uses_json_envelope(client):
    response = client.get("/api/nowhere")

    assert response.status_code == 404
    assert response.get_json() == {"success": False, "error": "Resource not found"}
