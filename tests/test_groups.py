from pickpool import db
from pickpool.models import Group, GroupMember
from pickpool.services.scoring_service import score_week
from tests.conftest import SEASON, WEEK


def _setup(app, factory, password=None, max_members=50):
    with app.app_context():
        owner = factory.user("owner")
        factory.user("joiner")
        group = factory.group(owner, name="Sunday Crew", password=password, max_members=max_members)
        return group.id, group.invite_code


def test_create_group(app, client, factory):
    with app.app_context():
        factory.user("owner")
    factory.login(client, "owner")

    response = client.post(
        "/api/groups",
        json={"name": "Office Pool", "description": "Work friends", "password": "letmein"},
    )

    assert response.status_code == 201
    data = response.get_json()["data"]
    assert data["name"] == "Office Pool"
    assert data["has_password"] is True
    assert data["member_count"] == 1
    assert data["members"][0]["is_admin"] is True
    assert len(data["invite_code"]) == 8

    with app.app_context():
        group = db.session.get(Group, data["id"])
        assert group.password_hash != "letmein"
        assert group.check_password("letmein")
        assert group.max_members == 50


def test_create_group_validates_name(app, client, factory):
    with app.app_context():
        factory.user("owner")
    factory.login(client, "owner")

    response = client.post("/api/groups", json={"name": "ab"})

    assert response.status_code == 400
    assert "between 3 and 100" in response.get_json()["error"]


def test_groups_require_login(client):
    assert client.get("/api/groups").status_code == 401


def test_list_groups_with_member_counts(app, client, factory):
    _setup(app, factory)
    factory.login(client, "joiner")

    response = client.get("/api/groups")

    groups = response.get_json()["data"]
    assert [g["name"] for g in groups] == ["Sunday Crew"]
    assert groups[0]["member_count"] == 1
    assert "invite_code" not in groups[0]


def test_join_with_password(app, client, factory):
    group_id, _ = _setup(app, factory, password="secret")
    factory.login(client, "joiner")

    wrong = client.post(f"/api/groups/{group_id}/join", json={"password": "nope"})
    assert wrong.status_code == 401
    assert wrong.get_json()["error"] == "Incorrect password"

    missing = client.post(f"/api/groups/{group_id}/join", json={})
    assert missing.status_code == 401

    joined = client.post(f"/api/groups/{group_id}/join", json={"password": "secret"})
    assert joined.status_code == 200
    assert joined.get_json()["data"]["member_count"] == 2

    again = client.post(f"/api/groups/{group_id}/join", json={"password": "secret"})
    assert again.status_code == 400
    assert again.get_json()["error"] == "Already a member of this group"


def test_join_open_group_without_password(app, client, factory):
    group_id, _ = _setup(app, factory)
    factory.login(client, "joiner")

    assert client.post(f"/api/groups/{group_id}/join", json={}).status_code == 200


def test_join_full_group(app, client, factory):
    group_id, _ = _setup(app, factory, max_members=1)
    factory.login(client, "joiner")

    response = client.post(f"/api/groups/{group_id}/join", json={})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Group is full"


def test_join_by_invite_code(app, client, factory):
    group_id, code = _setup(app, factory, password="secret")
    factory.login(client, "joiner")

    bad = client.post("/api/groups/join", json={"invite_code": "ZZZZZZZZ"})
    assert bad.status_code == 404

    response = client.post("/api/groups/join", json={"invite_code": code.lower()})
    assert response.status_code == 200
    assert response.get_json()["data"]["id"] == group_id


def test_invite_code_only_shown_to_members(app, client, factory):
    group_id, code = _setup(app, factory)
    factory.login(client, "joiner")

    outsider_view = client.get(f"/api/groups/{group_id}").get_json()["data"]
    assert "invite_code" not in outsider_view
    assert outsider_view["is_member"] is False

    client.post(f"/api/groups/{group_id}/join", json={})
    member_view = client.get(f"/api/groups/{group_id}").get_json()["data"]
    assert member_view["invite_code"] == code


def test_only_creator_can_delete(app, client, factory):
    group_id, _ = _setup(app, factory)

    factory.login(client, "joiner")
    client.post(f"/api/groups/{group_id}/join", json={})
    assert client.delete(f"/api/groups/{group_id}").status_code == 403
    client.post("/api/auth/signout")

    factory.login(client, "owner")
    assert client.delete(f"/api/groups/{group_id}").status_code == 200
    assert client.get(f"/api/groups/{group_id}").status_code == 404

    with app.app_context():
        assert GroupMember.query.filter_by(group_id=group_id).count() == 0


def test_leave_group(app, client, factory):
    group_id, _ = _setup(app, factory)

    factory.login(client, "owner")
    assert client.post(f"/api/groups/{group_id}/leave").status_code == 400
    client.post("/api/auth/signout")

    factory.login(client, "joiner")
    client.post(f"/api/groups/{group_id}/join", json={})
    assert client.post(f"/api/groups/{group_id}/leave").status_code == 200
    assert client.get("/api/groups/mine").get_json()["data"] == []

    # Rejoining reactivates the old membership
    assert client.post(f"/api/groups/{group_id}/join", json={}).status_code == 200
    with app.app_context():
        assert GroupMember.query.filter_by(group_id=group_id).count() == 2


def test_group_details_need_membership(app, client, factory):
    group_id, _ = _setup(app, factory)
    factory.login(client, "joiner")

    for path in ("members", "picks", "weekly-scores", "past-weeks"):
        response = client.get(f"/api/groups/{group_id}/{path}?week={WEEK}&season={SEASON}")
        assert response.status_code == 403, path


def test_unknown_group(app, client, factory):
    with app.app_context():
        factory.user("owner")
    factory.login(client, "owner")

    assert client.get("/api/groups/999").status_code == 404
    assert client.post("/api/groups/999/join", json={}).status_code == 404


def _week_with_picks(app, factory):
    with app.app_context():
        owner = factory.user("owner")
        friend = factory.user("friend")
        lurker = factory.user("lurker")
        group = factory.group(owner, members=[friend, lurker])
        game = factory.final_game(27, 20, spread=-3.5, over_under=44.5)
        factory.pick(owner, game, group, "home")
        factory.pick(friend, game, group, "over")
        score_week(SEASON, WEEK)
        return group.id, friend.id, game.id


def test_members_for_week(app, client, factory):
    group_id, _, _ = _week_with_picks(app, factory)
    factory.login(client, "owner")

    response = client.get(f"/api/groups/{group_id}/members?week={WEEK}&season={SEASON}")

    data = response.get_json()["data"]
    assert data["week"] == WEEK
    members = {m["username"]: m for m in data["members"]}
    assert members["owner"]["has_picks"] is True
    assert members["owner"]["pick_count"] == 1
    assert members["owner"]["wins"] == 1
    assert members["lurker"]["has_picks"] is False
    assert members["lurker"]["wins"] == 0


def test_group_picks_resolve_legacy_sides(app, client, factory):
    group_id, _, game_id = _week_with_picks(app, factory)
    factory.login(client, "friend")

    response = client.get(f"/api/groups/{group_id}/picks?week={WEEK}&season={SEASON}")

    picks = {p["username"]: p for p in response.get_json()["data"]["picks"]}
    assert picks["owner"]["pick"] == "Kansas City Chiefs"
    assert picks["owner"]["game"]["id"] == game_id
    assert picks["friend"]["pick"] == "over"


def test_member_picks(app, client, factory):
    group_id, friend_id, _ = _week_with_picks(app, factory)
    factory.login(client, "owner")

    response = client.get(
        f"/api/groups/{group_id}/members/{friend_id}/picks?week={WEEK}&season={SEASON}"
    )
    data = response.get_json()["data"]
    assert data["user"]["username"] == "friend"
    assert [p["pick"] for p in data["picks"]] == ["over"]
    assert data["picks"][0]["result"] == "correct"

    missing = client.get(f"/api/groups/{group_id}/members/999/picks")
    assert missing.status_code == 404


def test_group_weekly_scores(app, client, factory):
    group_id, _, _ = _week_with_picks(app, factory)
    factory.login(client, "owner")

    response = client.get(
        f"/api/groups/{group_id}/weekly-scores?week={WEEK}&season={SEASON}"
    )

    scores = response.get_json()["data"]["scores"]
    assert [s["username"] for s in scores] == ["friend", "owner"]
    assert all(s["wins"] == 1 for s in scores)


def test_past_weeks_endpoint(app, client, factory):
    group_id, _, _ = _week_with_picks(app, factory)
    factory.login(client, "owner")

    response = client.get(
        f"/api/groups/{group_id}/past-weeks?week={WEEK + 1}&season={SEASON}"
    )

    data = response.get_json()["data"]
    assert data["total_weeks"] == 1
    week = data["weeks"][0]
    assert week["week"] == WEEK
    assert [row["username"] for row in week["standings"]] == ["friend", "owner", "lurker"]
    assert week["winner"]["username"] == "friend"

    # The requested week itself is not a past week
    same_week = client.get(f"/api/groups/{group_id}/past-weeks?week={WEEK}&season={SEASON}")
    assert same_week.get_json()["data"]["total_weeks"] == 0

    invalid = client.get(f"/api/groups/{group_id}/past-weeks?week=25&season={SEASON}")
    assert invalid.status_code == 400


def test_week_filters_are_validated(app, client, factory):
    group_id, _, _ = _week_with_picks(app, factory)
    factory.login(client, "owner")

    response = client.get(f"/api/groups/{group_id}/members?week=25")
    assert response.status_code == 400
