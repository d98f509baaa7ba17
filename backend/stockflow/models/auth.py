from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


ROLES = ("admin", "manager", "staff")


class User(db.Model):
    """
    Authenticated actor.

    Registration and profile editing are handled elsewhere; this table only
    backs login and the location scope baked into issued credentials.
    Admins implicitly have every location; managers and staff are limited
    to the locations granted through UserLocationAccess.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(16), nullable=False, default="staff")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    location_access = db.relationship(
        "UserLocationAccess",
        backref="user",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    def location_ids(self) -> list[int]:
        return sorted(a.location_id for a in self.location_access)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "locations": self.location_ids(),
            "created_at": to_utc_z(self.created_at),
        }


class UserLocationAccess(db.Model):
    __tablename__ = "user_location_access"
    __table_args__ = (
        db.UniqueConstraint("user_id", "location_id", name="uq_user_location_access"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
