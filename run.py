# Eventlet monkey patching must run before any other imports
import eventlet

eventlet.monkey_patch()

from pickpool import create_app, db, socketio  # noqa: E402
from pickpool.models import (  # noqa: E402
    Game,
    Group,
    GroupMember,
    Pick,
    User,
    WeeklyScore,
)

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "User": User,
        "Group": Group,
        "GroupMember": GroupMember,
        "Game": Game,
        "Pick": Pick,
        "WeeklyScore": WeeklyScore,
    }


if __name__ == "__main__":
    socketio.run(app, host="0.0.0.0", port=5000, debug=app.config.get("DEBUG"))
