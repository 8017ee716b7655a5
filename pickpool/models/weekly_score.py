from datetime import datetime, timezone

from pickpool import db


class WeeklyScore(db.Model):
    __tablename__ = "weekly_scores"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    group_id = db.Column(db.Integer, db.ForeignKey("groups.id"), nullable=False)
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)

    wins = db.Column(db.Integer, nullable=False, default=0)
    losses = db.Column(db.Integer, nullable=False, default=0)
    ties = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "group_id", "week", "season", name="unique_user_group_week"
        ),
        db.Index("idx_weekly_score_group_week", "group_id", "season", "week"),
    )

    def __repr__(self):
        return (
            f"<WeeklyScore user_id={self.user_id} group_id={self.group_id} "
            f"{self.season}/{self.week} {self.wins}-{self.losses}-{self.ties}>"
        )

    @staticmethod
    def total_for(wins, losses, ties):
        return (wins or 0) + (losses or 0) + (ties or 0)

    @property
    def total_picks(self):
        return WeeklyScore.total_for(self.wins, self.losses, self.ties)

    @property
    def win_percentage(self):
        from pickpool.utils.scoring import win_percentage

        return win_percentage(self.wins, self.losses, self.ties)

    @staticmethod
    def get_or_create(user_id, group_id, season, week):
        """Fetch the row for (user, group, season, week), adding an empty one if missing"""
        score = WeeklyScore.query.filter_by(
            user_id=user_id, group_id=group_id, season=season, week=week
        ).first()
        if score is None:
            score = WeeklyScore(
                user_id=user_id,
                group_id=group_id,
                season=season,
                week=week,
                wins=0,
                losses=0,
                ties=0,
            )
            db.session.add(score)
        return score

    def to_dict(self):
        """Convert weekly score to dictionary for API responses"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "name": self.user.full_name if self.user else None,
            "group_id": self.group_id,
            "season": self.season,
            "week": self.week,
            "wins": self.wins,
            "losses": self.losses,
            "ties": self.ties,
            "total_picks": self.total_picks,
            "win_percentage": self.win_percentage,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
