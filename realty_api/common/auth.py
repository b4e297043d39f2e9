# realty_api/common/auth.py
from __future__ import annotations

from functools import wraps
from typing import Set

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from realty_api.common.http import fail
from realty_api.extensions import db
from realty_api.models.user import User


def _roles_from_db(uid) -> Set[str]:
    try:
        user = db.session.get(User, int(uid))
    except (TypeError, ValueError):
        return set()
    if not user or not user.is_active:
        return set()
    return {user.user_type}


def current_identity():
    """Return (kind, id) for the bearer of the current token."""
    claims = get_jwt() or {}
    uid = get_jwt_identity()
    return claims.get("kind", "user"), int(uid) if uid is not None else None


def requires_roles(*codes: str):
    """
    Require that the current bearer has AT LEAST ONE of the given role codes.
    - Uses roles in JWT if present; falls back to DB for user tokens.
    - 'admin' role always passes.
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            claims = get_jwt() or {}
            roles = set(claims.get("roles") or [])

            if not roles and claims.get("kind", "user") == "user":
                uid = get_jwt_identity()
                if uid is None:
                    return fail("Unauthorized", status=401)
                roles = _roles_from_db(uid)

            if "admin" in roles:
                return fn(*args, **kwargs)

            if not any(r in roles for r in codes):
                return fail("Forbidden", status=403)

            return fn(*args, **kwargs)
        return inner
    return outer
