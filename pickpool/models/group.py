import secrets
from datetime import datetime, timezone

from werkzeug.security import check_password_hash, generate_password_hash

from pickpool import db


class Group(db.Model):
    __tablename__ = "groups"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)

    # Optional join password, stored hashed
    password_hash = db.Column(db.String(255))

    is_active = db.Column(db.Boolean, default=True)
    max_members = db.Column(db.Integer, default=50)

    # Group code for joining without browsing
    invite_code = db.Column(db.String(8), unique=True, nullable=False, index=True)

    creator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    members = db.relationship(
        "GroupMember", backref="group", lazy="dynamic", cascade="all, delete-orphan"
    )
    picks = db.relationship(
        "Pick", backref="group", lazy="dynamic", cascade="all, delete-orphan"
    )
    weekly_scores = db.relationship(
        "WeeklyScore", backref="group", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_group_creator", "creator_id"),
        db.Index("idx_group_active", "is_active"),
        db.Index("idx_group_created_at", "created_at"),
    )

    def __repr__(self):
        return f"<Group {self.name}>"

    def __init__(self, **kwargs):
        super(Group, self).__init__(**kwargs)
        if not self.invite_code:
            self.invite_code = self.generate_invite_code()

    @staticmethod
    def generate_invite_code():
        """Generate a unique 8-character invite code"""
        while True:
            code = secrets.token_urlsafe(6)[:8].upper()
            if not Group.query.filter_by(invite_code=code).first():
                return code

    def set_password(self, password):
        """Set or clear the join password"""
        self.password_hash = generate_password_hash(password) if password else None

    def check_password(self, password):
        """Groups without a password accept any value"""
        if not self.password_hash:
            return True
        return bool(password) and check_password_hash(self.password_hash, password)

    @property
    def has_password(self):
        return self.password_hash is not None

    def get_active_members(self):
        """Get all active members of the group"""
        from sqlalchemy.orm import joinedload

        from .group_member import GroupMember

        return (
            self.members.filter_by(is_active=True)
            .options(joinedload(GroupMember.user))
            .order_by(GroupMember.joined_at)
            .all()
        )

    def get_member_count(self):
        """Get count of active members"""
        return self.members.filter_by(is_active=True).count()

    def is_full(self):
        """Check if group has reached maximum capacity"""
        return self.get_member_count() >= self.max_members

    def is_user_member(self, user_id):
        """Check if user is an active member"""
        return (
            self.members.filter_by(user_id=user_id, is_active=True).first() is not None
        )

    def add_member(self, user, is_admin=False):
        """Add a user to the group"""
        from .group_member import GroupMember

        existing = self.members.filter_by(user_id=user.id).first()
        if existing and existing.is_active:
            return False, "Already a member of this group"

        if self.is_full():
            return False, "Group is full"

        if existing:
            existing.reactivate()
            return True, "Membership reactivated"

        membership = GroupMember(user_id=user.id, group_id=self.id, is_admin=is_admin)
        db.session.add(membership)
        return True, "Joined group successfully"

    def remove_member(self, user_id):
        """Remove a user from the group"""
        member = self.members.filter_by(user_id=user_id, is_active=True).first()
        if member:
            member.deactivate()
            return True, "Left group successfully"
        return False, "Not a member of this group"

    def get_weekly_standings(self, season, week):
        """
        Records of every active member for one week.

        Members without a stored score are listed at 0-0-0. Rows are sorted
        wins desc, losses asc, ties desc, then by username.
        """
        from pickpool.utils.scoring import standings_sort_key, win_percentage

        from .weekly_score import WeeklyScore

        scores = {
            s.user_id: s
            for s in self.weekly_scores.filter_by(season=season, week=week).all()
        }

        standings = []
        for member in self.get_active_members():
            score = scores.get(member.user_id)
            wins = score.wins if score else 0
            losses = score.losses if score else 0
            ties = score.ties if score else 0
            standings.append(
                {
                    "user_id": member.user_id,
                    "username": member.user.username,
                    "name": member.user.full_name,
                    "wins": wins,
                    "losses": losses,
                    "ties": ties,
                    "total_picks": WeeklyScore.total_for(wins, losses, ties),
                    "win_percentage": win_percentage(wins, losses, ties),
                }
            )

        standings.sort(key=standings_sort_key)
        return standings

    def get_past_weeks(self, season, current_week):
        """
        Standings and winner of every scored week before current_week.

        Newest week first. The winner is the top member when they have at
        least one win.
        """
        from .weekly_score import WeeklyScore

        scored_weeks = (
            db.session.query(WeeklyScore.week)
            .filter(
                WeeklyScore.group_id == self.id,
                WeeklyScore.season == season,
                WeeklyScore.week < current_week,
            )
            .distinct()
            .order_by(WeeklyScore.week.desc())
            .all()
        )

        weeks = []
        for (week,) in scored_weeks:
            standings = self.get_weekly_standings(season, week)
            leader = standings[0] if standings else None
            winner = leader if leader and leader["wins"] > 0 else None
            weeks.append(
                {
                    "week": week,
                    "season": season,
                    "standings": standings,
                    "winner": winner,
                }
            )
        return weeks

    def to_dict(self, include_members=False, include_invite_code=False):
        """Convert group to dictionary for API responses

        The invite code admits a user without the join password, so it is
        only included for members.
        """
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "has_password": self.has_password,
            "member_count": self.get_member_count(),
            "max_members": self.max_members,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "creator_id": self.creator_id,
            "creator": self.creator.username if self.creator else None,
        }

        if include_invite_code:
            data["invite_code"] = self.invite_code

        if include_members:
            data["members"] = [member.to_dict() for member in self.get_active_members()]

        return data
