# Overview: Adapter for the external identity provider's actor tokens.

"""
Actor tokens.

Authentication lives outside this service. The identity provider signs a
small payload ``{"uid": <user id>}`` with the shared SECRET_KEY and the
client presents it as ``Authorization: Bearer <token>``. This module only
verifies that signature and maps it back to a local User row.
"""

from __future__ import annotations

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .extensions import db
from .models import User

_TOKEN_SALT = "repairdesk.actor"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=_TOKEN_SALT)


def issue_actor_token(user_id: int) -> str:
    """Sign an actor token (used by the identity provider, the CLI and tests)."""
    return _serializer().dumps({"uid": user_id})


def resolve_actor_token(token: str) -> User | None:
    """Return the active User behind a token, or None for anything invalid."""
    if not token:
        return None
    try:
        payload = _serializer().loads(token, max_age=current_app.config["ACTOR_TOKEN_MAX_AGE_SECONDS"])
    except SignatureExpired:
        return None
    except BadSignature:
        return None

    user_id = payload.get("uid") if isinstance(payload, dict) else None
    if not isinstance(user_id, int):
        return None

    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    if user.tenant_id is not None and (user.tenant is None or not user.tenant.is_active):
        return None
    return user
