# Overview: Request decorators that resolve the caller's identity for API routes.

from functools import wraps
from flask import request, jsonify, g

from .permissions import ActorContext, parse_role

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"
ACTOR_LOCATION_HEADER = "X-Actor-Location"


def _actor_from_headers() -> ActorContext | None:
    """
    Build the ActorContext from identity headers set by the upstream gateway.

    Returns None when the id is missing; raises ValueError for an unknown
    role or a malformed location id.
    """
    user_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
    if not user_id:
        return None

    role = parse_role(request.headers.get(ACTOR_ROLE_HEADER))

    raw_location = (request.headers.get(ACTOR_LOCATION_HEADER) or "").strip()
    location_id = int(raw_location) if raw_location else None

    return ActorContext(user_id=user_id, role=role, location_id=location_id)


def require_actor(f):
    """
    Require a resolved identity.

    Sets g.actor (ActorContext) for the route and the services it calls.

    SECURITY: Returns 401 if:
    - No X-Actor-Id header
    - Unknown X-Actor-Role
    - Non-integer X-Actor-Location
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            actor = _actor_from_headers()
        except ValueError as exc:
            return jsonify({"error": "Invalid identity headers", "details": {"reason": str(exc)}}), 401

        if actor is None:
            return jsonify({"error": "Authentication required", "details": {}}), 401

        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function
