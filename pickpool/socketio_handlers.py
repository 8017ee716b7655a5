"""
SocketIO event handlers for live score updates

Clients connect to the /scores namespace and subscribe to the rooms of the
groups they belong to. Score changes are pushed to everyone in the
namespace; finished games also push each member's pick results to their
group room.
"""

import logging

from flask import request
from flask_login import current_user
from flask_socketio import emit, join_room, leave_room

from pickpool import socketio
from pickpool.models import Game, Pick
from pickpool.models.game import STATUS_IN_PROGRESS

logger = logging.getLogger(__name__)

NAMESPACE = "/scores"

# Track connected clients and their group rooms
connected_users = {}


def group_room(group_id):
    return f"group_{group_id}"


@socketio.on("connect", namespace=NAMESPACE)
def on_connect():
    """Handle client connection and send the games in progress"""
    user_id = current_user.id if current_user.is_authenticated else None
    client_id = request.sid
    connected_users[client_id] = {"user_id": user_id, "subscriptions": set()}
    logger.info(f"Client connected to {NAMESPACE}: {client_id} (user: {user_id})")

    live_games = Game.query.filter_by(status=STATUS_IN_PROGRESS).all()
    emit("live_games_data", {"games": [game.to_dict() for game in live_games]})


@socketio.on("disconnect", namespace=NAMESPACE)
def on_disconnect():
    client = connected_users.pop(request.sid, None)
    if client:
        logger.info(
            f"Client disconnected from {NAMESPACE}: {request.sid} (user: {client['user_id']})"
        )


@socketio.on("subscribe_group", namespace=NAMESPACE)
def on_subscribe_group(data):
    """Join a group room, members only"""
    if not current_user.is_authenticated:
        emit("error", {"error": "Authentication required"})
        return

    group_id = (data or {}).get("group_id")
    if not group_id or not current_user.is_member_of_group(group_id):
        emit("error", {"error": "Not a member of this group"})
        return

    client = connected_users.setdefault(
        request.sid, {"user_id": current_user.id, "subscriptions": set()}
    )
    room = group_room(group_id)
    if room in client["subscriptions"]:
        return
    client["subscriptions"].add(room)
    join_room(room)
    emit("subscribed", {"group_id": group_id})
    logger.debug(f"Client {request.sid} subscribed to {room}")


@socketio.on("unsubscribe_group", namespace=NAMESPACE)
def on_unsubscribe_group(data):
    group_id = (data or {}).get("group_id")
    if not group_id:
        return
    room = group_room(group_id)
    client = connected_users.get(request.sid)
    if client:
        client["subscriptions"].discard(room)
    leave_room(room)


# Broadcast functions, called from the scheduler
def broadcast_score_update(game):
    """Push a score change to every connected client"""
    socketio.emit("score_update", game.to_dict(), namespace=NAMESPACE)
    logger.debug(f"Broadcasted score update for game {game.id}")


def broadcast_game_final(game):
    """Push a final score and the graded picks of each group"""
    socketio.emit("game_final", game.to_dict(), namespace=NAMESPACE)

    picks_by_group = {}
    for pick in Pick.query.filter_by(game_id=game.id).all():
        picks_by_group.setdefault(pick.group_id, []).append(
            {
                "pick_id": pick.id,
                "user_id": pick.user_id,
                "game_id": pick.game_id,
                "pick": pick.display_pick,
                "result": pick.result,
            }
        )

    for group_id, results in picks_by_group.items():
        socketio.emit(
            "pick_results",
            {"game_id": game.id, "results": results},
            room=group_room(group_id),
            namespace=NAMESPACE,
        )

    logger.info(
        f"Broadcasted game final for game {game.id} to {len(picks_by_group)} groups"
    )


def get_connection_stats():
    return {
        "total_connections": len(connected_users),
        "authenticated_users": len(
            [u for u in connected_users.values() if u["user_id"]]
        ),
        "total_subscriptions": sum(
            len(u["subscriptions"]) for u in connected_users.values()
        ),
    }
