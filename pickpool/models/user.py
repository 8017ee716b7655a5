import html
from datetime import datetime, timezone

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from pickpool import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    name = db.Column(db.String(100))
    email = db.Column(db.String(120), unique=True, nullable=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    # Account status
    is_active = db.Column(db.Boolean, default=True)
    is_admin = db.Column(db.Boolean, default=False)  # Site-wide admin privileges

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    last_login = db.Column(db.DateTime)

    # Relationships
    picks = db.relationship(
        "Pick", backref="user", lazy="dynamic", cascade="all, delete-orphan"
    )
    group_memberships = db.relationship(
        "GroupMember", backref="user", lazy="dynamic", cascade="all, delete-orphan"
    )
    weekly_scores = db.relationship(
        "WeeklyScore", backref="user", lazy="dynamic", cascade="all, delete-orphan"
    )
    created_groups = db.relationship("Group", backref="creator", lazy="dynamic")

    __table_args__ = (
        db.Index("idx_user_last_login", "last_login"),
        db.Index("idx_user_active_status", "is_active"),
    )

    def __repr__(self):
        return f"<User {self.username}>"

    def set_password(self, password):
        """Set password hash"""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Check password against hash"""
        return check_password_hash(self.password_hash, password)

    def set_name(self, name):
        """Set display name with sanitization"""
        self.name = html.escape(name.strip()) if name else name

    @property
    def full_name(self):
        """Return display name or username"""
        return self.name or self.username

    def get_groups(self):
        """Get all active groups this user is an active member of"""
        from .group_member import GroupMember

        memberships = (
            db.session.query(GroupMember)
            .filter_by(user_id=self.id, is_active=True)
            .all()
        )
        return [m.group for m in memberships if m.group.is_active]

    def is_member_of_group(self, group_id):
        """Check if user is an active member of a specific group"""
        from .group_member import GroupMember

        return (
            GroupMember.query.filter_by(
                user_id=self.id, group_id=group_id, is_active=True
            ).first()
            is not None
        )

    def update_last_login(self):
        """Update last login timestamp"""
        self.last_login = datetime.now(timezone.utc)
        db.session.commit()

    def to_dict(self):
        """Convert user to dictionary for API responses"""
        return {
            "id": self.id,
            "username": self.username,
            "name": self.full_name,
            "email": self.email,
            "is_admin": self.is_admin,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_login": self.last_login.isoformat() if self.last_login else None,
        }
