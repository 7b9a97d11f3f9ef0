# Overview: Service-layer operations for sign-in, POS sessions and impersonation.

"""
Session Token Management Service

WHY: The POS keeps a long-lived opaque session next to the short-lived
bearer credential, so a restaurant stays signed in on its terminal and an
admin can be forced out of nothing but the session row.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- One live session per principal: issuing replaces the previous row
- 7-day sessions for restaurant login, 24-hour sessions for impersonation
- Every rejected login signs the just-verified identity back out
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import AdminUser, Restaurant, RestaurantSession
from ..validation import NotFoundError, ValidationError
from .identity_provider import admin_identity, pos_identity
from .tenant_service import TenantAccessError, get_restaurant
from dinepos.time_utils import utcnow, format_date

logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(days=7)
IMPERSONATION_TTL = timedelta(hours=24)


@dataclass
class LoginResult:
    """What a successful sign-in hands back to the client."""
    principal_id: int
    token: str | None  # opaque POS session token, None for admins
    credential: str  # bearer credential
    expires_at: object | None = None
    restaurant: Restaurant | None = None
    admin: AdminUser | None = None


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_session(
    principal_id: int,
    *,
    now=None,
    ttl: timedelta = SESSION_TTL,
    admin_id: int | None = None,
) -> tuple[RestaurantSession, str]:
    """
    Write the session for principal_id, replacing any prior one.

    Returns (session_record, plaintext_token).
    """
    now = now or utcnow()
    token = generate_token()

    db.session.query(RestaurantSession).filter_by(principal_id=principal_id).delete()
    db.session.flush()

    session = RestaurantSession(
        principal_id=principal_id,
        token_hash=hash_token(token),
        issued_at=now,
        expires_at=now + ttl,
        is_impersonation=admin_id is not None,
        admin_id=admin_id,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def get_session(principal_id: int) -> RestaurantSession | None:
    return db.session.query(RestaurantSession).filter_by(principal_id=principal_id).first()


def _rejection_message(restaurant: Restaurant, now) -> str | None:
    if not restaurant.is_active:
        return "This account has been deactivated"
    if now < restaurant.activation_date:
        return f"This account is not yet active. Activation date: {format_date(restaurant.activation_date)}"
    if now > restaurant.expiry_date:
        return f"This account has expired. Expiry date: {format_date(restaurant.expiry_date)}"
    return None


def login_restaurant(email: str, password: str, now=None) -> LoginResult:
    """
    Restaurant sign-in on the pos identity app.

    Raises:
        TenantAccessError: bad credentials, no restaurant record, or the
            restaurant is outside its activation window. The verified
            identity is signed out again before raising.
    """
    if not email or not password:
        raise ValidationError("Email and password are required")

    now = now or utcnow()
    identity = pos_identity()
    account = identity.sign_in_with_password(email, password)
    if not account:
        raise TenantAccessError("Invalid email or password")

    restaurant = db.session.get(Restaurant, account.id)
    if not restaurant:
        identity.sign_out(account.id)
        raise TenantAccessError("Invalid email or password")

    message = _rejection_message(restaurant, now)
    if message:
        identity.sign_out(account.id)
        logger.info("Rejected login for restaurant %s: %s", restaurant.id, message)
        raise TenantAccessError(message)

    session, token = issue_session(restaurant.id, now=now)
    credential = identity.issue_credential(account)
    return LoginResult(
        principal_id=restaurant.id,
        token=token,
        credential=credential,
        expires_at=session.expires_at,
        restaurant=restaurant,
    )


def login_admin(email: str, password: str) -> LoginResult:
    """Admin sign-in on the admin identity app; requires an AdminUser record."""
    if not email or not password:
        raise ValidationError("Email and password are required")

    identity = admin_identity()
    account = identity.sign_in_with_password(email, password)
    if not account:
        raise TenantAccessError("Invalid email or password")

    admin = db.session.get(AdminUser, account.id)
    if not admin:
        identity.sign_out(account.id)
        raise TenantAccessError("Access denied: not an admin account")

    return LoginResult(
        principal_id=admin.id,
        token=None,
        credential=identity.issue_credential(account),
        admin=admin,
    )


def logout_admin(admin_id: int) -> None:
    admin_identity().sign_out(admin_id)


def impersonate(admin_ctx, restaurant_id: int, now=None) -> LoginResult:
    """
    Let an admin act as a restaurant.

    Writes a 24-hour impersonation session carrying the admin's id and
    returns it with an impersonation credential (imp=true, adm=<admin id>).
    """
    if admin_ctx is None or not admin_ctx.is_admin:
        raise TenantAccessError("Admin authentication required")

    restaurant = get_restaurant(restaurant_id)
    identity = pos_identity()
    account = identity.get_account(restaurant.id)
    if not account:
        raise NotFoundError("Restaurant identity not found")

    session, token = issue_session(
        restaurant.id, now=now, ttl=IMPERSONATION_TTL, admin_id=admin_ctx.principal_id
    )
    credential = identity.issue_credential(
        account,
        extra_claims={"imp": True, "adm": admin_ctx.principal_id},
        ttl=IMPERSONATION_TTL,
    )
    logger.info("Admin %s is impersonating restaurant %s", admin_ctx.principal_id, restaurant.id)
    return LoginResult(
        principal_id=restaurant.id,
        token=token,
        credential=credential,
        expires_at=session.expires_at,
        restaurant=restaurant,
    )


def _dispose_inventory(restaurant_id: int) -> None:
    registry = current_app.extensions.get("dinepos.inventory")
    if registry is not None:
        registry.dispose(restaurant_id)


def logout_restaurant(token: str | None) -> int:
    """
    Delete the session matching the token and sign its identity out.

    Returns the restaurant id. Raises TenantAccessError when no session
    matches.
    """
    if not token:
        raise TenantAccessError("Not signed in")

    session = db.session.query(RestaurantSession).filter_by(token_hash=hash_token(token)).first()
    if not session:
        raise TenantAccessError("Invalid session")

    restaurant_id = session.principal_id
    db.session.delete(session)
    db.session.commit()

    pos_identity().sign_out(restaurant_id)
    _dispose_inventory(restaurant_id)
    return restaurant_id


def force_logout(restaurant_id: int) -> bool:
    """Admin action: end a restaurant's session. Returns False if it had none."""
    get_restaurant(restaurant_id)

    deleted = db.session.query(RestaurantSession).filter_by(principal_id=restaurant_id).delete()
    db.session.commit()

    pos_identity().sign_out(restaurant_id)
    _dispose_inventory(restaurant_id)
    logger.info("Forced logout of restaurant %s (sessions removed: %s)", restaurant_id, deleted)
    return bool(deleted)


def cleanup_expired_sessions(now=None) -> int:
    """Delete every expired session row. Returns the count deleted."""
    now = now or utcnow()
    deleted = db.session.query(RestaurantSession).filter(
        RestaurantSession.expires_at < now
    ).delete()
    db.session.commit()
    return deleted
