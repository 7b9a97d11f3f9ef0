# Overview: Request decorators that resolve the caller and gate API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import identity_service
from .services.identity_service import Credential

POS_LOGIN_REDIRECT = "/pos/login"


def _establish_context():
    """Resolve the request's credentials and store the result on g."""
    credential = Credential.from_request(request)
    g.auth_context = identity_service.resolve(credential)
    g.tenant_id = g.auth_context.tenant_id if g.auth_context else None
    return g.auth_context


def _deny(decision, *, pos: bool):
    body = {"error": decision.reason}
    if pos and decision.status == 401:
        body["redirect"] = POS_LOGIN_REDIRECT
    return jsonify(body), decision.status


def _gate(f, *, pos: bool):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        ctx = _establish_context()
        decision = identity_service.authorize(request.path, ctx)
        if not decision.allowed:
            return _deny(decision, pos=pos)
        return f(*args, **kwargs)

    return decorated_function


def require_pos_auth(f):
    """
    Require a restaurant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.auth_context: the resolved AuthContext
    - g.tenant_id: the restaurant every query must be scoped to

    Accepts a tenant, an impersonated tenant, or an admin with a target
    restaurant attached. 401 responses carry a redirect to the POS login.
    """
    return _gate(f, pos=True)


def require_admin_auth(f):
    """Require an admin or superadmin context (g.auth_context)."""
    return _gate(f, pos=False)


def require_superadmin(f):
    """Admin gate plus role check; use on top of nothing else."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        ctx = _establish_context()
        decision = identity_service.authorize(request.path, ctx)
        if not decision.allowed:
            return _deny(decision, pos=False)
        if not ctx.is_superadmin:
            return jsonify({"error": "Only superadmins can perform this action"}), 403
        return f(*args, **kwargs)

    return decorated_function
