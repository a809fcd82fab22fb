# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .permissions import VALID_ROLES, ActorContext


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    value = raw.strip()
    if not value.isdigit():
        raise ValueError(f"{name} must be an integer")
    return int(value)


def require_actor(f):
    """
    Establish the calling actor from gateway headers.

    Authentication happens upstream; the gateway forwards the identity as:
    - X-Actor-Id: user id (required)
    - X-Actor-Role: SuperAdmin, Owner, Manager or Employee (required)
    - X-Business-Id: tenant the actor belongs to (required unless SuperAdmin)

    Sets g.actor to an ActorContext. Returns 401 when the identity is
    missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            user_id = _header_int("X-Actor-Id")
            business_id = _header_int("X-Business-Id")
        except ValueError as e:
            return jsonify({"error": str(e)}), 401

        role = (request.headers.get("X-Actor-Role") or "").strip()

        if user_id is None or not role:
            return jsonify({"error": "Actor identity required"}), 401
        if role not in VALID_ROLES:
            return jsonify({"error": f"Unknown role: {role}"}), 401

        actor = ActorContext(user_id=user_id, role=role, business_id=business_id)
        if business_id is None and not actor.is_super_admin:
            return jsonify({"error": "X-Business-Id required"}), 401

        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function
