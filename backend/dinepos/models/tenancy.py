from __future__ import annotations

from ..extensions import db
from dinepos.time_utils import to_utc_z


class Restaurant(db.Model):
    """
    Multi-tenant root: every tenant is a Restaurant.

    The tenant id is the id of the owning pos Account, so the authenticated
    principal *is* the tenant id. Every catalog and order row carries
    restaurant_id and every query filters on it.

    A restaurant can sign in iff is_active and
    activation_date <= now <= expiry_date.
    """
    __tablename__ = "restaurants"

    id = db.Column(db.Integer, db.ForeignKey("accounts.id"), primary_key=True, autoincrement=False)
    name = db.Column(db.String(255), nullable=False)
    owner_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(500), nullable=False, default="")
    phone_number = db.Column(db.String(32), nullable=False, default="")

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    activation_date = db.Column(db.DateTime(timezone=True), nullable=False)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=False)

    # Provisioning secret handed to the restaurant; never used for runtime auth
    activation_token = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    account = db.relationship("Account")

    def __repr__(self) -> str:
        return f"<Restaurant id={self.id} name={self.name!r}>"

    def to_dict(self, include_token: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "owner_name": self.owner_name,
            "email": self.email,
            "address": self.address,
            "phone_number": self.phone_number,
            "is_active": self.is_active,
            "activation_date": to_utc_z(self.activation_date),
            "expiry_date": to_utc_z(self.expiry_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_token:
            data["activation_token"] = self.activation_token
        return data


class RestaurantSession(db.Model):
    """
    The one live POS session for a principal.

    principal_id is unique: issuing a session replaces the previous row, so
    there is never more than one valid token per restaurant. Only the
    SHA-256 of the token is stored.
    """
    __tablename__ = "restaurant_sessions"

    id = db.Column(db.Integer, primary_key=True)
    principal_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, unique=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    issued_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_impersonation = db.Column(db.Boolean, nullable=False, default=False)
    admin_id = db.Column(db.Integer, db.ForeignKey("admin_users.id", ondelete="SET NULL"), nullable=True)

    restaurant = db.relationship("Restaurant")

    def is_expired(self, now) -> bool:
        return self.expires_at < now

    def to_dict(self) -> dict:
        return {
            "principal_id": self.principal_id,
            "issued_at": to_utc_z(self.issued_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_impersonation": self.is_impersonation,
            "admin_id": self.admin_id,
        }
