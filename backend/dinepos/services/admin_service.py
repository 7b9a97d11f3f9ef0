# Overview: Service-layer operations for platform admins and cross-account credential edits.

"""
Admin management

SECURITY: Only a superadmin may create, edit or delete admin records or
change another admin's credentials. The acting role always comes from
the resolved AuthContext, never from the request body. A rejected call
leaves every record unchanged.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import AdminUser, Restaurant
from ..validation import (
    ValidationError,
    ConflictError,
    NotFoundError,
    require_fields,
    validate_password,
)
from .identity_provider import admin_identity, pos_identity

logger = logging.getLogger(__name__)


class PermissionDeniedError(Exception):
    """403: the acting principal's role does not allow this operation."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _require_superadmin(actor, action: str) -> None:
    if actor is None or not actor.is_superadmin:
        logger.warning(
            "Denied %s for principal %s (%s)",
            action,
            getattr(actor, "principal_id", None),
            getattr(actor, "principal_kind", None),
        )
        raise PermissionDeniedError(f"Only superadmins can {action}")


def _validate_role(role) -> str:
    if role not in AdminUser.ROLES:
        raise ValidationError("Invalid role")
    return role


def list_admins() -> list[AdminUser]:
    return db.session.query(AdminUser).order_by(AdminUser.created_at.desc(), AdminUser.id.desc()).all()


def get_admin(admin_id: int) -> AdminUser:
    admin = db.session.get(AdminUser, admin_id)
    if not admin:
        raise NotFoundError("Admin not found")
    return admin


def create_admin(actor, payload: dict) -> AdminUser:
    _require_superadmin(actor, "create admins")
    return provision_admin(payload)


def provision_admin(payload: dict) -> AdminUser:
    """Create identity and AdminUser record. No role check (CLI bootstrap)."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    require_fields(payload, "name", "email", "password", "role")
    validate_password(payload["password"])
    role = _validate_role(payload["role"])

    try:
        account = admin_identity().create_identity(
            payload["email"], payload["password"], display_name=payload["name"]
        )
        admin = AdminUser(
            id=account.id,
            name=str(payload["name"]).strip(),
            email=account.email,
            role=role,
        )
        db.session.add(admin)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Created %s %s", admin.role, admin.email)
    return admin


def update_admin(actor, admin_id: int, payload: dict) -> AdminUser:
    _require_superadmin(actor, "edit admins")
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    allowed = {"name", "email", "password", "role"}
    unknown = set(payload) - allowed
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    admin = get_admin(admin_id)
    try:
        if "role" in payload:
            admin.role = _validate_role(payload["role"])
        if payload.get("name") is not None:
            name = str(payload["name"]).strip()
            if not name:
                raise ValidationError("name cannot be blank")
            admin.name = name
        if payload.get("email") or payload.get("password"):
            account = admin_identity().update_identity(
                admin.id, email=payload.get("email"), password=payload.get("password")
            )
            admin.email = account.email
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return admin


def update_own_profile(actor, payload: dict) -> AdminUser:
    """An admin editing their own name, email or password; role stays as is."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    if "role" in payload:
        raise PermissionDeniedError("Admins cannot change their own role")

    admin = get_admin(actor.principal_id)
    try:
        if payload.get("name") is not None:
            name = str(payload["name"]).strip()
            if not name:
                raise ValidationError("name cannot be blank")
            admin.name = name
        if payload.get("email") or payload.get("password"):
            account = admin_identity().update_identity(
                admin.id, email=payload.get("email"), password=payload.get("password")
            )
            admin.email = account.email
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return admin


def delete_admin(actor, admin_id: int) -> None:
    _require_superadmin(actor, "delete admins")
    admin = get_admin(admin_id)
    if admin.id == actor.principal_id:
        raise ConflictError("You cannot delete your own account")

    try:
        db.session.delete(admin)
        admin_identity().delete_identity(admin_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Admin %s deleted by %s", admin_id, actor.principal_id)


def update_user(actor, uid: int, *, email: str | None = None, password: str | None = None) -> str:
    """
    Change the email and/or password of an admin or a restaurant account.

    Superadmins may update admins; any admin may update restaurants; an
    admin may always update themselves. Returns "admin" or "restaurant".
    """
    if not email and not password:
        raise ValidationError("No updates provided (email or password required)")
    if password:
        validate_password(password)

    admin = db.session.get(AdminUser, uid)
    if admin is not None:
        if not actor.is_superadmin and actor.principal_id != uid:
            _require_superadmin(actor, "update admin profiles")
        try:
            account = admin_identity().update_identity(uid, email=email, password=password)
            admin.email = account.email
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return "admin"

    restaurant = db.session.get(Restaurant, uid)
    if restaurant is None:
        raise NotFoundError("User or restaurant not found")
    if not actor.is_admin:
        raise PermissionDeniedError("Unauthorized")

    try:
        account = pos_identity().update_identity(uid, email=email, password=password)
        restaurant.email = account.email
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return "restaurant"
