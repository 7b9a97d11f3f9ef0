"""
Identity provider: password verification and bearer credentials.

Two independent apps share the accounts table: "admin" for platform admins
and "pos" for restaurants. Each app signs its credentials with its own key
(SECRET_KEY + app salt), so a credential minted for one app never verifies
under the other. Signing in as an admin in one tab cannot clobber a
restaurant session in another.

Credentials are JWTs:
    sub  principal id (string)
    app  identity app name
    ver  account credential_version at mint time (sign_out bumps it)
    imp  optional, impersonation grant
    adm  optional, id of the impersonating admin
"""

from __future__ import annotations

import logging
from datetime import timedelta

import bcrypt
import jwt
from jwt.exceptions import PyJWTError
from flask import current_app

from ..extensions import db
from ..models import Account
from ..validation import ConflictError, NotFoundError, validate_password
from dinepos.time_utils import utcnow

logger = logging.getLogger(__name__)

ADMIN_APP = "admin"
POS_APP = "pos"
ALGORITHM = "HS256"


def hash_password(password: str, rounds: int | None = None) -> str:
    validate_password(password)
    if rounds is None:
        rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except (ValueError, TypeError) as e:
        logger.warning("Password verification error: %s", e)
        return False


class IdentityProvider:
    """One identity app: its account namespace and its signing key."""

    def __init__(self, app_name: str, secret_key: str, salt: str, ttl: timedelta):
        self.app_name = app_name
        self._signing_key = f"{secret_key}:{salt}"
        self.ttl = ttl

    def __repr__(self) -> str:
        return f"<IdentityProvider app={self.app_name}>"

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_account(self, principal_id: int) -> Account | None:
        return db.session.query(Account).filter_by(
            id=principal_id, identity_app=self.app_name
        ).first()

    def create_identity(self, email: str, password: str, display_name: str | None = None) -> Account:
        """Provision an account. Does not commit."""
        email = (email or "").strip().lower()
        if not email:
            raise ConflictError("Email is required")
        existing = db.session.query(Account).filter_by(identity_app=self.app_name, email=email).first()
        if existing:
            raise ConflictError("Email already in use")

        account = Account(
            identity_app=self.app_name,
            email=email,
            password_hash=hash_password(password),
            display_name=display_name,
        )
        db.session.add(account)
        db.session.flush()
        return account

    def update_identity(self, principal_id: int, *, email: str | None = None, password: str | None = None) -> Account:
        """Change email and/or password. Does not commit."""
        account = self.get_account(principal_id)
        if not account:
            raise NotFoundError("Account not found")

        if email:
            email = email.strip().lower()
            clash = db.session.query(Account).filter(
                Account.identity_app == self.app_name,
                Account.email == email,
                Account.id != principal_id,
            ).first()
            if clash:
                raise ConflictError("Email already in use")
            account.email = email

        if password:
            account.password_hash = hash_password(password)
            # A new password ends every credential minted under the old one
            account.credential_version += 1

        return account

    def delete_identity(self, principal_id: int) -> None:
        account = self.get_account(principal_id)
        if account:
            db.session.delete(account)

    # ------------------------------------------------------------------
    # Sign-in and credentials
    # ------------------------------------------------------------------

    def sign_in_with_password(self, email: str, password: str) -> Account | None:
        email = (email or "").strip().lower()
        account = db.session.query(Account).filter_by(identity_app=self.app_name, email=email).first()
        if not account or account.is_disabled:
            return None
        if not verify_password(password or "", account.password_hash):
            return None
        account.last_sign_in_at = utcnow()
        db.session.commit()
        return account

    def sign_out(self, principal_id: int) -> None:
        """Invalidate every credential issued to this principal so far."""
        account = self.get_account(principal_id)
        if account:
            account.credential_version += 1
            db.session.commit()

    def issue_credential(
        self,
        account: Account,
        extra_claims: dict | None = None,
        ttl: timedelta | None = None,
    ) -> str:
        now = utcnow()
        claims = {
            "sub": str(account.id),
            "app": self.app_name,
            "ver": account.credential_version,
            "iat": now,
            "exp": now + (ttl or self.ttl),
        }
        if extra_claims:
            claims.update(extra_claims)
        return jwt.encode(claims, self._signing_key, algorithm=ALGORITHM)

    def verify_credential(self, token: str) -> dict | None:
        """
        Return the verified claims (with integer "sub"), or None.

        Never raises: expired, malformed, foreign-app and revoked credentials
        are all simply unauthenticated.
        """
        try:
            claims = jwt.decode(
                token,
                self._signing_key,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "sub"]},
            )
        except PyJWTError as e:
            logger.debug("Credential rejected by %s app: %s", self.app_name, e)
            return None

        if claims.get("app") != self.app_name:
            return None

        try:
            principal_id = int(claims["sub"])
        except (TypeError, ValueError):
            return None

        account = self.get_account(principal_id)
        if not account or account.is_disabled:
            return None
        if claims.get("ver") != account.credential_version:
            return None

        claims["sub"] = principal_id
        return claims


def get_identity_provider(app_name: str) -> IdentityProvider:
    """Provider for the current Flask app, created once per app."""
    providers = current_app.extensions.setdefault("dinepos.identity", {})
    provider = providers.get(app_name)
    if provider is None:
        config = current_app.config
        salt = config["ADMIN_IDENTITY_SALT"] if app_name == ADMIN_APP else config["POS_IDENTITY_SALT"]
        provider = IdentityProvider(
            app_name,
            secret_key=config["SECRET_KEY"],
            salt=salt,
            ttl=timedelta(minutes=config.get("CREDENTIAL_TTL_MINUTES", 60)),
        )
        providers[app_name] = provider
    return provider


def admin_identity() -> IdentityProvider:
    return get_identity_provider(ADMIN_APP)


def pos_identity() -> IdentityProvider:
    return get_identity_provider(POS_APP)
