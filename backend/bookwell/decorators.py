# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


ACTOR_ID_HEADER = "X-User-Id"
ACTOR_NAME_HEADER = "X-User-Name"


def require_actor(f):
    """
    Require an identified caller.

    Authentication happens upstream (gateway / auth service); this engine
    only consumes the identity it forwards. Sets on Flask g:
    - g.actor_id: caller id, recorded as user_id on change records
    - g.actor: display name (falls back to the id), recorded in status history

    Returns 401 if the X-User-Id header is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
        if not actor_id:
            return jsonify({"error": "Authentication required"}), 401

        actor_name = (request.headers.get(ACTOR_NAME_HEADER) or "").strip()

        g.actor_id = actor_id
        g.actor = actor_name or actor_id

        return f(*args, **kwargs)

    return decorated_function
