# Overview: Signed bearer credentials carrying {user id, role, locations}.

"""
Credentials are stateless: itsdangerous signs the principal with
CREDENTIAL_SIGNING_KEY and stamps the issue time; verification checks the
signature and rejects anything older than CREDENTIAL_TTL seconds.
"""
from __future__ import annotations

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from ..errors import Internal, Unauthorized
from ..models.auth import ROLES
from .authorization import Principal


CREDENTIAL_SALT = "stockflow.credential"


def _serializer() -> URLSafeTimedSerializer:
    key = current_app.config.get("CREDENTIAL_SIGNING_KEY")
    if not key:
        raise Internal("Credential signing is not configured")
    return URLSafeTimedSerializer(key, salt=CREDENTIAL_SALT)


def principal_for_user(user) -> Principal:
    return Principal(
        user_id=user.id,
        role=user.role,
        accessible_locations=frozenset(user.location_ids()),
        username=user.username,
    )


def issue_for_principal(principal: Principal) -> str:
    payload = {
        "uid": principal.user_id,
        "role": principal.role,
        "locations": sorted(principal.accessible_locations),
        "username": principal.username,
    }
    return _serializer().dumps(payload)


def issue_credential(user) -> str:
    """Sign a credential for an active user."""
    return issue_for_principal(principal_for_user(user))


def verify_credential(token: str) -> Principal:
    """
    Verify signature and expiry, returning the embedded Principal.

    Raises Unauthorized on a bad signature, an expired credential or a
    payload that does not describe a principal.
    """
    ttl = current_app.config.get("CREDENTIAL_TTL", 86400)
    try:
        data = _serializer().loads(token, max_age=ttl)
    except SignatureExpired:
        raise Unauthorized("Credential expired")
    except BadSignature:
        raise Unauthorized("Invalid credential")

    if not isinstance(data, dict):
        raise Unauthorized("Invalid credential")
    uid = data.get("uid")
    role = data.get("role")
    locations = data.get("locations") or []
    if not isinstance(uid, int) or role not in ROLES or not isinstance(locations, list):
        raise Unauthorized("Invalid credential")
    if not all(isinstance(loc, int) and not isinstance(loc, bool) for loc in locations):
        raise Unauthorized("Invalid credential")

    return Principal(
        user_id=uid,
        role=role,
        accessible_locations=frozenset(locations),
        username=data.get("username"),
    )
