# Overview: Request decorators that bind tenant and operator identity for API routes.

from functools import wraps
from flask import request, jsonify, g

from .models import User
from .extensions import db
from .services.tenant_context import tenant_scope

TENANT_HEADER = "X-Tenant-Id"
USER_HEADER = "X-User-Id"


def _header_int(name: str):
    raw = (request.headers.get(name) or "").strip()
    if not raw.isdigit() or int(raw) <= 0:
        return None
    return int(raw)


def require_identity(f):
    """
    Resolve the tenant and acting operator, then run the view inside
    tenant_scope(tenant_id).

    Sets the following Flask g attributes:
    - g.tenant_id: bound tenant
    - g.current_user: the active User row (loaded through the tenant guard)
    - g.user_id / g.role: shortcuts for services

    SECURITY: Returns 401 when either header is missing or malformed, and
    when the user does not exist inside the resolved tenant. A user id from
    another tenant looks exactly like an unknown one.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant_id = _header_int(TENANT_HEADER)
        user_id = _header_int(USER_HEADER)
        if tenant_id is None or user_id is None:
            return jsonify({"error": "Tenant and user identity required", "code": "IDENTITY_REQUIRED", "details": None}), 401

        with tenant_scope(tenant_id):
            user = db.session.query(User).filter_by(id=user_id).first()
            if user is None:
                return jsonify({"error": "Unknown user", "code": "UNKNOWN_USER", "details": None}), 401
            if not user.is_active:
                return jsonify({"error": "User account is deactivated", "code": "USER_INACTIVE", "details": None}), 403

            g.tenant_id = tenant_id
            g.current_user = user
            g.user_id = user.id
            g.role = user.role
            return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Restrict a view to operators holding one of roles.

    Must be applied after @require_identity.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if getattr(g, "role", None) not in roles:
                return jsonify({
                    "error": "Operation not allowed for this role",
                    "code": "ROLE_FORBIDDEN",
                    "details": {"required": list(roles)},
                }), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator
