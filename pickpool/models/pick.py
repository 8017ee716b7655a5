from datetime import datetime, timezone

from pickpool import db
from pickpool.utils.scoring import (
    OVER,
    RESULT_PENDING,
    UNDER,
    grade_pick,
    normalize_team,
)


class Pick(db.Model):
    __tablename__ = "picks"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey("games.id"), nullable=False)
    group_id = db.Column(db.Integer, db.ForeignKey("groups.id"), nullable=False)

    # Team name, or "over" / "under"
    pick = db.Column(db.String(64), nullable=False)
    confidence = db.Column(db.Integer)

    # correct / incorrect / tie / pending, None until first graded
    result = db.Column(db.String(16))

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "game_id", "group_id", name="unique_user_game_group_pick"
        ),
        db.Index("idx_pick_user_group", "user_id", "group_id"),
        db.Index("idx_pick_game", "game_id"),
        db.Index("idx_pick_group", "group_id"),
    )

    def __repr__(self):
        return f"<Pick user_id={self.user_id} game_id={self.game_id} pick={self.pick}>"

    @property
    def week(self):
        """Get the week number from the associated game"""
        return self.game.week if self.game else None

    @staticmethod
    def normalize_pick_value(game, value):
        """
        Canonical stored value for a submitted pick.

        "home" / "away" become the team name, team names are matched without
        regard to case, and "over" / "under" need a posted total. Raises
        ValueError for anything else.
        """
        if value is None or not str(value).strip():
            raise ValueError("Pick value is required")

        cleaned = str(value).strip()
        lowered = cleaned.lower()

        if lowered in ("home", "away"):
            return game.team_for_side(lowered)

        if lowered in (OVER, UNDER):
            if game.over_under is None:
                raise ValueError(
                    f"No over/under line posted for {game.away_team} @ {game.home_team}"
                )
            return lowered

        for team in (game.home_team, game.away_team):
            if normalize_team(team) == normalize_team(cleaned):
                return team

        raise ValueError(
            f"Invalid pick '{cleaned}' for {game.away_team} @ {game.home_team}"
        )

    @property
    def display_pick(self):
        """Pick value with legacy side values resolved to team names"""
        if self.game and self.pick in ("home", "away"):
            return self.game.team_for_side(self.pick)
        return self.pick

    def grade(self):
        """Compute the result of this pick without storing it"""
        game = self.game
        if not game:
            return RESULT_PENDING
        return grade_pick(
            self.pick,
            game.home_team,
            game.away_team,
            game.home_score,
            game.away_score,
            spread=game.spread,
            over_under=game.over_under,
            is_final=game.is_final,
        )

    def update_result(self):
        """Grade and store the result, returns the new value"""
        self.result = self.grade()
        return self.result

    def to_dict(self, include_game=False):
        """Convert pick to dictionary for API responses"""
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "game_id": self.game_id,
            "group_id": self.group_id,
            "week": self.week,
            "pick": self.display_pick,
            "confidence": self.confidence,
            "result": self.result,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_game:
            data["game"] = self.game.to_dict() if self.game else None
        return data
