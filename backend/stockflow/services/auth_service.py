# Overview: Service-layer operations for auth; password hashing, user creation and login.

"""
Authentication Service

Every write is attributable to a user. Passwords are hashed with bcrypt
(cost factor 12 unless BCRYPT_ROUNDS says otherwise) and must pass the
strength rules below.

Location access is granted per user through UserLocationAccess and baked
into the credential issued at login; admins need no grants.
"""

import re

import bcrypt
from flask import current_app

from ..errors import BadRequest, Conflict, NotFound, Unauthorized
from ..extensions import db
from ..models import Location, User, UserLocationAccess
from ..models.auth import ROLES


class PasswordValidationError(BadRequest):
    """Raised when password doesn't meet strength requirements."""

    def __init__(self, message: str):
        super().__init__(message, {"field": "password"})


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe check of password against a bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # malformed stored hash
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    role: str = "staff",
    location_ids: list[int] | None = None,
) -> User:
    """
    Create a user with a bcrypt password hash and optional location grants.

    Raises:
        BadRequest: unknown role or weak password
        Conflict: username or email already taken
        NotFound: a granted location does not exist
    """
    if role not in ROLES:
        raise BadRequest(f"Unknown role: {role}", {"field": "role"})

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise Conflict("Username or email already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.flush()

    for location_id in location_ids or []:
        grant_location_access(user, location_id)

    db.session.commit()
    return user


def grant_location_access(user: User, location_id: int) -> UserLocationAccess:
    """Grant a location to a user. Idempotent; caller commits."""
    if db.session.get(Location, location_id) is None:
        raise NotFound(f"Location {location_id} not found")

    existing = db.session.query(UserLocationAccess).filter_by(
        user_id=user.id, location_id=location_id
    ).first()
    if existing:
        return existing

    access = UserLocationAccess(user_id=user.id, location_id=location_id)
    user.location_access.append(access)
    return access


def authenticate(username: str, password: str) -> User:
    """
    Authenticate by username (or email) and password.

    Raises Unauthorized with the same message for unknown users, wrong
    passwords and deactivated accounts.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
    ).first()

    if not user or not user.is_active or not verify_password(password, user.password_hash):
        raise Unauthorized("Invalid username or password")

    return user
