from functools import wraps
from flask import abort
from flask_jwt_extended import verify_jwt_in_request
from repairdesk.services.policy import current_permissions


def require_permissions(*codes: str):
    """Require a valid JWT carrying every listed permission code (403 otherwise)."""
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            granted = current_permissions()
            missing = [c for c in codes if c not in granted]
            if missing:
                abort(403, description=f"Missing permission: {', '.join(missing)}")
            return fn(*args, **kwargs)
        return wrapper
    return outer
