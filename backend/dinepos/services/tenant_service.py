# Overview: Service-layer operations for restaurants (tenants); provisioning, edits and deletion.

"""
Tenant Directory

WHY: A restaurant is the tenant boundary. Creating one provisions a pos
identity plus the Restaurant record (same id); deleting one invalidates
its session, removes its catalog, then the record and the identity.

SECURITY INVARIANTS:
1. The tenant id always comes from the authenticated principal
2. Tenant self-edits may only touch name and contact fields
3. A restaurant can sign in iff is_active and
   activation_date <= now <= expiry_date (both bounds inclusive)
"""

from __future__ import annotations

import logging
import secrets

from flask import current_app

from ..extensions import db
from ..models import (
    Restaurant,
    RestaurantSession,
    Category,
    Subcategory,
    Product,
)
from ..validation import (
    ValidationError,
    NotFoundError,
    require_fields,
    parse_datetime_field,
    validate_phone,
    validate_bool,
)
from .identity_provider import pos_identity
from . import image_store
from dinepos.time_utils import utcnow

logger = logging.getLogger(__name__)

# Fields a restaurant may change on its own profile
PROFILE_FIELDS = ("name", "owner_name", "address", "phone_number")

# Fields an admin may change directly on the record
ADMIN_FIELDS = PROFILE_FIELDS + ("is_active", "activation_token")


class TenantAccessError(Exception):
    """Raised when a restaurant may not sign in or cross-tenant access is attempted."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def generate_activation_token() -> str:
    """Opaque provisioning secret (32 hex chars)."""
    return secrets.token_hex(16)


def can_login(restaurant: Restaurant | None, now=None) -> bool:
    if restaurant is None or not restaurant.is_active:
        return False
    now = now or utcnow()
    return restaurant.activation_date <= now <= restaurant.expiry_date


def get_restaurant(restaurant_id: int) -> Restaurant:
    restaurant = db.session.get(Restaurant, restaurant_id)
    if not restaurant:
        raise NotFoundError("Restaurant not found")
    return restaurant


def list_restaurants(*, active_only: bool = False) -> list[Restaurant]:
    query = db.session.query(Restaurant)
    if active_only:
        query = query.filter(Restaurant.is_active.is_(True))
    return query.order_by(Restaurant.created_at.desc(), Restaurant.id.desc()).all()


def _validate_window(activation_date, expiry_date) -> None:
    if activation_date and expiry_date and expiry_date < activation_date:
        raise ValidationError("expiry_date must be on or after activation_date")


def create_restaurant(payload: dict) -> Restaurant:
    """
    Provision a restaurant: pos identity, record, activation token.

    Required: name, owner_name, email, password, activation_date, expiry_date.
    The activation token is generated when not supplied.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    require_fields(payload, "name", "owner_name", "email", "password")

    activation_date = parse_datetime_field(payload, "activation_date")
    expiry_date = parse_datetime_field(payload, "expiry_date")
    _validate_window(activation_date, expiry_date)

    phone = payload.get("phone_number")
    if phone:
        phone = validate_phone(phone)
    is_active = validate_bool(payload.get("is_active", True), "is_active")

    try:
        account = pos_identity().create_identity(
            payload["email"], payload["password"], display_name=payload["name"]
        )
        restaurant = Restaurant(
            id=account.id,
            name=str(payload["name"]).strip(),
            owner_name=str(payload["owner_name"]).strip(),
            email=account.email,
            address=(payload.get("address") or "").strip(),
            phone_number=phone or "",
            is_active=is_active,
            activation_date=activation_date,
            expiry_date=expiry_date,
            activation_token=payload.get("activation_token") or generate_activation_token(),
        )
        db.session.add(restaurant)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Provisioned restaurant %s (%s)", restaurant.id, restaurant.email)
    return restaurant


def update_restaurant(restaurant_id: int, payload: dict) -> Restaurant:
    """
    Admin edit: status, dates, token rotation, contact fields and email.

    Email and password changes are applied to the pos identity as well.
    Pass "activation_token": true (or "rotate_token": true) to rotate.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    restaurant = get_restaurant(restaurant_id)

    unknown = set(payload) - set(ADMIN_FIELDS) - {
        "email", "password", "activation_date", "expiry_date", "rotate_token"
    }
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    activation_date = parse_datetime_field(payload, "activation_date", required=False)
    expiry_date = parse_datetime_field(payload, "expiry_date", required=False)
    _validate_window(
        activation_date or restaurant.activation_date,
        expiry_date or restaurant.expiry_date,
    )

    if payload.get("phone_number"):
        payload = {**payload, "phone_number": validate_phone(payload["phone_number"])}
    if "is_active" in payload:
        is_active = validate_bool(payload["is_active"], "is_active")

    try:
        if payload.get("email") or payload.get("password"):
            account = pos_identity().update_identity(
                restaurant.id,
                email=payload.get("email"),
                password=payload.get("password"),
            )
            restaurant.email = account.email

        for field in PROFILE_FIELDS:
            if field in payload and payload[field] is not None:
                value = str(payload[field]).strip()
                if field in ("name", "owner_name") and not value:
                    raise ValidationError(f"{field} cannot be blank")
                setattr(restaurant, field, value)

        if "is_active" in payload:
            restaurant.is_active = is_active
        if activation_date:
            restaurant.activation_date = activation_date
        if expiry_date:
            restaurant.expiry_date = expiry_date

        token = payload.get("activation_token")
        if token is True or payload.get("rotate_token"):
            restaurant.activation_token = generate_activation_token()
        elif isinstance(token, str) and token.strip():
            restaurant.activation_token = token.strip()

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return restaurant


def update_profile(restaurant_id: int, payload: dict) -> Restaurant:
    """Restaurant self-edit: name and contact fields only."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    forbidden = set(payload) - set(PROFILE_FIELDS)
    if forbidden:
        raise ValidationError(f"Field not allowed: {sorted(forbidden)[0]}")

    restaurant = get_restaurant(restaurant_id)
    for field in PROFILE_FIELDS:
        if field not in payload or payload[field] is None:
            continue
        value = str(payload[field]).strip()
        if field == "phone_number" and value:
            value = validate_phone(value)
        if field in ("name", "owner_name") and not value:
            raise ValidationError(f"{field} cannot be blank")
        setattr(restaurant, field, value)

    db.session.commit()
    return restaurant


def delete_restaurant(restaurant_id: int) -> None:
    """
    Remove a tenant: session first, then catalog (with images), then the
    record and its identity. Orders are kept as history and are not deleted.
    """
    restaurant = get_restaurant(restaurant_id)

    # Session first so the tenant cannot act while its data disappears
    db.session.query(RestaurantSession).filter_by(principal_id=restaurant_id).delete()
    db.session.commit()

    registry = current_app.extensions.get("dinepos.inventory")
    if registry is not None:
        registry.dispose(restaurant_id)

    image_urls = []
    try:
        products = db.session.query(Product).filter_by(restaurant_id=restaurant_id).all()
        for product in products:
            image_urls.extend(image_store.product_image_urls(product))
            db.session.delete(product)
        db.session.query(Subcategory).filter_by(restaurant_id=restaurant_id).delete()
        db.session.query(Category).filter_by(restaurant_id=restaurant_id).delete()
        db.session.flush()

        # Restaurant shares its id with the identity; orders keep restaurant_id
        db.session.delete(restaurant)
        pos_identity().delete_identity(restaurant_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    image_store.delete_urls(image_urls)
    logger.info("Deleted restaurant %s", restaurant_id)
