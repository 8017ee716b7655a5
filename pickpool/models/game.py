from datetime import datetime, timezone

from pickpool import db

STATUS_SCHEDULED = "scheduled"
STATUS_IN_PROGRESS = "in_progress"
STATUS_FINAL = "final"
GAME_STATUSES = (STATUS_SCHEDULED, STATUS_IN_PROGRESS, STATUS_FINAL)


class Game(db.Model):
    __tablename__ = "games"

    id = db.Column(db.Integer, primary_key=True)

    # External IDs for API integration
    external_id = db.Column(db.String(64), unique=True, index=True)  # The Odds API
    espn_id = db.Column(db.String(50), unique=True, index=True)

    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)

    # Full team names, e.g. "Kansas City Chiefs"
    home_team = db.Column(db.String(64), nullable=False)
    away_team = db.Column(db.String(64), nullable=False)

    # Stored as naive UTC
    game_time = db.Column(db.DateTime, nullable=False)

    home_score = db.Column(db.Integer)
    away_score = db.Column(db.Integer)
    status = db.Column(db.String(20), nullable=False, default=STATUS_SCHEDULED)

    # Home-team line, negative means the home team is favored
    spread = db.Column(db.Float)
    over_under = db.Column(db.Float)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    picks = db.relationship(
        "Pick", backref="game", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_game_season_week", "season", "week"),
        db.Index("idx_game_time", "game_time"),
        db.UniqueConstraint(
            "season", "week", "home_team", "away_team", name="unique_week_matchup"
        ),
        db.CheckConstraint("home_team != away_team", name="different_teams"),
    )

    def __init__(self, **kwargs):
        super(Game, self).__init__(**kwargs)
        if not self.status:
            self.status = STATUS_SCHEDULED

    def __repr__(self):
        return f"<Game {self.away_team} @ {self.home_team} Week {self.week}>"

    @property
    def is_final(self):
        return self.status == STATUS_FINAL

    @property
    def total_score(self):
        """Get total combined score"""
        if self.home_score is None or self.away_score is None:
            return None
        return self.home_score + self.away_score

    @property
    def winning_team(self):
        """Straight-up winner (None if game not final or tie)"""
        if not self.is_final or self.total_score is None:
            return None
        if self.home_score == self.away_score:
            return None
        return self.home_team if self.home_score > self.away_score else self.away_team

    def has_started(self, now=None):
        """Check if game has started"""
        if not self.game_time:
            return False
        now_utc = now or datetime.now(timezone.utc)
        game_time = self.game_time

        # Stored times are naive UTC
        if game_time.tzinfo is None:
            game_time = game_time.replace(tzinfo=timezone.utc)

        return now_utc >= game_time

    def is_pickable(self, now=None):
        """Check if game is available for picks (hasn't started yet)"""
        return self.status == STATUS_SCHEDULED and not self.has_started(now)

    def team_for_side(self, side):
        """Map a 'home' / 'away' side to the team name"""
        if side == "home":
            return self.home_team
        if side == "away":
            return self.away_team
        return None

    def update_score(self, home_score, away_score, status=None):
        """Update scores and status, returns True when the game just went final"""
        was_final = self.is_final
        self.home_score = home_score
        self.away_score = away_score
        if status:
            if status not in GAME_STATUSES:
                raise ValueError(f"Unknown game status: {status}")
            self.status = status
        return self.is_final and not was_final

    def update_lines(self, spread=None, over_under=None):
        """Store the latest lines, keeping the old value when a market is missing"""
        if spread is not None:
            self.spread = spread
        if over_under is not None:
            self.over_under = over_under

    def result_summary(self):
        """Scoreline and outcomes against the lines, None until final"""
        if not self.is_final or self.total_score is None:
            return None

        from pickpool.utils.scoring import grade_spread, grade_total

        return {
            "home_score": self.home_score,
            "away_score": self.away_score,
            "total": self.total_score,
            "winner": self.winning_team,
            "home_against_spread": grade_spread(
                self.home_score, self.away_score, self.spread, "home"
            ),
            "over_under_result": (
                grade_total(self.home_score, self.away_score, self.over_under, "over")
                if self.over_under is not None
                else None
            ),
        }

    @staticmethod
    def get_games_for_week(season, week):
        """Get all games for a specific week in kickoff order"""
        return (
            Game.query.filter_by(season=season, week=week)
            .order_by(Game.game_time, Game.id)
            .all()
        )

    @staticmethod
    def find_matchup(season, week, home_team, away_team):
        return Game.query.filter_by(
            season=season, week=week, home_team=home_team, away_team=away_team
        ).first()

    def to_dict(self):
        """Convert game to dictionary for API responses"""
        from pickpool.utils.timezone_utils import format_game_time

        return {
            "id": self.id,
            "external_id": self.external_id,
            "espn_id": self.espn_id,
            "season": self.season,
            "week": self.week,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "game_time": (
                self.game_time.replace(tzinfo=timezone.utc).isoformat()
                if self.game_time
                else None
            ),
            "game_time_local": format_game_time(self.game_time),
            "home_score": self.home_score,
            "away_score": self.away_score,
            "spread": self.spread,
            "over_under": self.over_under,
            "status": self.status,
            "is_final": self.is_final,
            "is_pickable": self.is_pickable(),
        }
