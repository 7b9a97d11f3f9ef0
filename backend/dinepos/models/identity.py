from __future__ import annotations

from ..extensions import db
from dinepos.time_utils import to_utc_z


class Account(db.Model):
    """
    Identity-provider record: the credential behind an admin or a restaurant.

    Each identity app (admin, pos) keeps its own account namespace, so the
    same email may exist once per app. Profile data lives on AdminUser /
    Restaurant, keyed by the same id.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("identity_app", "email", name="uq_accounts_app_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    identity_app = db.Column(db.String(16), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    display_name = db.Column(db.String(255), nullable=True)

    is_disabled = db.Column(db.Boolean, nullable=False, default=False)

    # Bumped on sign-out; credentials carry the version they were minted with.
    credential_version = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_sign_in_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Account id={self.id} app={self.identity_app} email={self.email!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "identity_app": self.identity_app,
            "email": self.email,
            "display_name": self.display_name,
            "is_disabled": self.is_disabled,
            "created_at": to_utc_z(self.created_at),
            "last_sign_in_at": to_utc_z(self.last_sign_in_at),
        }


class AdminUser(db.Model):
    """
    Platform admin profile.

    Only a superadmin may create, edit or delete admin records, or rotate
    another admin's password.
    """
    __tablename__ = "admin_users"

    ROLES = ("admin", "superadmin")

    id = db.Column(db.Integer, db.ForeignKey("accounts.id"), primary_key=True, autoincrement=False)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    role = db.Column(db.String(16), nullable=False, default="admin")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    account = db.relationship("Account")

    @property
    def is_superadmin(self) -> bool:
        return self.role == "superadmin"

    def __repr__(self) -> str:
        return f"<AdminUser id={self.id} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
