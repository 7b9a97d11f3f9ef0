# Overview: Resolve the caller of a request to an AuthContext and gate routes on it.

"""
Session/Identity Resolver

WHY: Every read and write is scoped by a tenant id that comes from the
authenticated principal, never from client input. This module is the only
place that turns request credentials into that tenant id.

Resolution order:
1. Bearer credential, verified by the admin or pos identity app
   - impersonation claim: needs the claim AND a live impersonation session
     issued by the same admin (two separate checks)
   - admin record: admin / superadmin, with an optional target restaurant
     from the impersonation cookie when that restaurant is active
   - restaurant record that is active: tenant
2. No bearer: the POS cookie pair (session token, restaurant id)

Resolution never raises and never writes; anything that does not check out
is simply unauthenticated (None).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..extensions import db
from ..models import AdminUser, Restaurant, RestaurantSession
from .identity_provider import admin_identity, pos_identity
from .session_service import hash_token
from dinepos.time_utils import utcnow

logger = logging.getLogger(__name__)

# Cookie names (the two surfaces never share a cookie)
POS_SESSION_COOKIE = "pos_session_token"
POS_RESTAURANT_COOKIE = "pos_restaurant_id"
ADMIN_IMPERSONATION_COOKIE = "admin_impersonation_restaurant_id"

ADMIN = "admin"
SUPERADMIN = "superadmin"
TENANT = "tenant"
IMPERSONATED_TENANT = "impersonated-tenant"

POS_PREFIXES = ("/api/pos/", "/api/get-restaurant-id")
ADMIN_PREFIXES = ("/api/admin/", "/api/restaurants/", "/api/update-user")
PUBLIC_PATHS = frozenset({"/api/pos/login", "/api/pos/logout", "/api/admin/login"})


@dataclass(frozen=True)
class Credential:
    """Everything a request presents about who it is."""
    bearer: str | None = None
    session_token: str | None = None
    restaurant_id: str | None = None
    target_restaurant_id: str | None = None

    @classmethod
    def from_request(cls, request) -> "Credential":
        bearer = None
        header = request.headers.get("Authorization", "")
        if header.startswith("Bearer "):
            bearer = header.split(" ", 1)[1].strip() or None
        return cls(
            bearer=bearer,
            session_token=request.cookies.get(POS_SESSION_COOKIE),
            restaurant_id=request.cookies.get(POS_RESTAURANT_COOKIE),
            target_restaurant_id=request.cookies.get(ADMIN_IMPERSONATION_COOKIE),
        )


@dataclass(frozen=True)
class AuthContext:
    principal_id: int
    principal_kind: str
    tenant_id: int | None = None
    session: RestaurantSession | None = None
    admin_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.principal_kind in (ADMIN, SUPERADMIN)

    @property
    def is_superadmin(self) -> bool:
        return self.principal_kind == SUPERADMIN

    @property
    def is_tenant(self) -> bool:
        return self.principal_kind in (TENANT, IMPERSONATED_TENANT)

    def to_dict(self) -> dict:
        return {
            "principal_id": self.principal_id,
            "principal_kind": self.principal_kind,
            "tenant_id": self.tenant_id,
            "admin_id": self.admin_id,
        }


@dataclass(frozen=True)
class Decision:
    allowed: bool
    status: int = 200
    reason: str | None = None


ALLOW = Decision(True)


def _as_int(value) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _active_restaurant(restaurant_id: int | None) -> Restaurant | None:
    if restaurant_id is None:
        return None
    restaurant = db.session.get(Restaurant, restaurant_id)
    if restaurant is None or not restaurant.is_active:
        return None
    return restaurant


def _live_session(principal_id: int, now) -> RestaurantSession | None:
    session = db.session.query(RestaurantSession).filter_by(principal_id=principal_id).first()
    if session is None or session.is_expired(now):
        return None
    return session


def _resolve_impersonation(claims: dict, now) -> AuthContext | None:
    restaurant_id = claims["sub"]

    # Capability 1: the credential itself grants impersonation
    admin_id = _as_int(claims.get("adm"))
    if claims.get("imp") is not True or admin_id is None:
        logger.warning("Rejected impersonation credential without a valid grant for %s", restaurant_id)
        return None

    # Capability 2: a live impersonation session from that same admin
    session = _live_session(restaurant_id, now)
    if session is None or not session.is_impersonation or session.admin_id != admin_id:
        logger.warning(
            "Rejected impersonation of restaurant %s by admin %s: no matching session",
            restaurant_id,
            admin_id,
        )
        return None

    if _active_restaurant(restaurant_id) is None:
        return None

    return AuthContext(
        principal_id=restaurant_id,
        principal_kind=IMPERSONATED_TENANT,
        tenant_id=restaurant_id,
        session=session,
        admin_id=admin_id,
    )


def _resolve_bearer(credential: Credential, now) -> AuthContext | None:
    claims = admin_identity().verify_credential(credential.bearer)
    if claims is not None:
        admin = db.session.get(AdminUser, claims["sub"])
        if admin is None:
            return None
        kind = SUPERADMIN if admin.is_superadmin else ADMIN

        tenant_id = None
        target = _as_int(credential.target_restaurant_id)
        if target is not None:
            if _active_restaurant(target) is not None:
                tenant_id = target
            else:
                logger.warning("Admin %s targeted inactive or unknown restaurant %s", admin.id, target)
        return AuthContext(principal_id=admin.id, principal_kind=kind, tenant_id=tenant_id)

    claims = pos_identity().verify_credential(credential.bearer)
    if claims is None:
        return None

    if "imp" in claims or "adm" in claims:
        return _resolve_impersonation(claims, now)

    restaurant = _active_restaurant(claims["sub"])
    if restaurant is None:
        return None
    return AuthContext(principal_id=restaurant.id, principal_kind=TENANT, tenant_id=restaurant.id)


def _resolve_cookies(credential: Credential, now) -> AuthContext | None:
    restaurant_id = _as_int(credential.restaurant_id)
    if not credential.session_token or restaurant_id is None:
        return None

    session = _live_session(restaurant_id, now)
    if session is None or session.token_hash != hash_token(credential.session_token):
        return None
    if _active_restaurant(restaurant_id) is None:
        return None

    kind = IMPERSONATED_TENANT if session.is_impersonation else TENANT
    return AuthContext(
        principal_id=restaurant_id,
        principal_kind=kind,
        tenant_id=restaurant_id,
        session=session,
        admin_id=session.admin_id,
    )


def resolve(credential: Credential, now=None) -> AuthContext | None:
    """Map a request's credentials to an AuthContext, or None when unauthenticated."""
    now = now or utcnow()
    if credential.bearer:
        return _resolve_bearer(credential, now)
    return _resolve_cookies(credential, now)


def is_pos_path(path: str) -> bool:
    return path.startswith(POS_PREFIXES)


def is_admin_path(path: str) -> bool:
    return path.startswith(ADMIN_PREFIXES)


def authorize(path: str, ctx: AuthContext | None) -> Decision:
    """
    Route gate.

    POS routes need a tenant, an impersonated tenant, or an admin with a
    target restaurant attached. Admin routes need admin or superadmin.
    """
    if path in PUBLIC_PATHS:
        return ALLOW

    if is_pos_path(path):
        if ctx is None:
            return Decision(False, 401, "Authentication required")
        if ctx.is_tenant:
            return ALLOW
        if ctx.is_admin and ctx.tenant_id is not None:
            return ALLOW
        return Decision(False, 403, "Restaurant access required")

    if is_admin_path(path):
        if ctx is None:
            return Decision(False, 401, "Authentication required")
        if ctx.is_admin:
            return ALLOW
        return Decision(False, 403, "Admin access required")

    if path.startswith("/api/") and ctx is None:
        return Decision(False, 401, "Authentication required")
    return ALLOW
