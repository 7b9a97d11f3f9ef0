# Overview: Pytest coverage for resolving request credentials and gating routes.

"""
Identity Resolution and Route Gating Tests

The tenant id a request acts on comes only from its credentials:
- a pos bearer credential for an active restaurant
- the POS cookie pair (session token + restaurant id)
- an impersonation credential backed by a live session from the same admin
- an admin bearer with a target-restaurant cookie
"""

import pytest
from dinepos.extensions import db
from dinepos.services import session_service, tenant_service
from dinepos.services.identity_provider import admin_identity, pos_identity
from dinepos.services.identity_service import (
    ADMIN,
    ADMIN_IMPERSONATION_COOKIE,
    IMPERSONATED_TENANT,
    SUPERADMIN,
    TENANT,
    AuthContext,
    Credential,
    authorize,
    resolve,
)

from conftest import PASSWORD, admin_login, bearer, pos_cookies, pos_login


def _admin_ctx(admin):
    return AuthContext(principal_id=admin.id, principal_kind=ADMIN)


class TestResolve:

    def test_nothing_presented(self, db_session):
        assert resolve(Credential()) is None

    def test_pos_credential_resolves_tenant(self, restaurant_a):
        result = session_service.login_restaurant(restaurant_a.email, PASSWORD)
        ctx = resolve(Credential(bearer=result.credential))
        assert ctx.principal_kind == TENANT
        assert ctx.tenant_id == restaurant_a.id

    def test_cookie_pair_resolves_tenant(self, restaurant_a):
        result = session_service.login_restaurant(restaurant_a.email, PASSWORD)
        ctx = resolve(Credential(session_token=result.token, restaurant_id=str(restaurant_a.id)))
        assert ctx.principal_kind == TENANT
        assert ctx.tenant_id == restaurant_a.id

    def test_cookie_for_another_restaurant_rejected(self, restaurant_a, restaurant_b):
        result = session_service.login_restaurant(restaurant_a.email, PASSWORD)
        session_service.login_restaurant(restaurant_b.email, PASSWORD)
        ctx = resolve(Credential(session_token=result.token, restaurant_id=str(restaurant_b.id)))
        assert ctx is None

    def test_malformed_bearer(self, db_session):
        assert resolve(Credential(bearer="not-a-jwt")) is None

    def test_signed_out_credential_rejected(self, restaurant_a):
        result = session_service.login_restaurant(restaurant_a.email, PASSWORD)
        pos_identity().sign_out(restaurant_a.id)
        assert resolve(Credential(bearer=result.credential)) is None

    def test_deactivated_restaurant_rejected(self, restaurant_a):
        result = session_service.login_restaurant(restaurant_a.email, PASSWORD)
        tenant_service.update_restaurant(restaurant_a.id, {"is_active": False})

        assert resolve(Credential(bearer=result.credential)) is None
        assert resolve(Credential(session_token=result.token, restaurant_id=str(restaurant_a.id))) is None

    def test_admin_credential(self, superadmin, admin):
        for user, kind in ((superadmin, SUPERADMIN), (admin, ADMIN)):
            result = session_service.login_admin(user.email, PASSWORD)
            ctx = resolve(Credential(bearer=result.credential))
            assert ctx.principal_kind == kind
            assert ctx.tenant_id is None

    def test_admin_target_restaurant(self, admin, restaurant_a):
        result = session_service.login_admin(admin.email, PASSWORD)
        ctx = resolve(Credential(bearer=result.credential, target_restaurant_id=str(restaurant_a.id)))
        assert ctx.is_admin
        assert ctx.tenant_id == restaurant_a.id

    def test_admin_target_must_be_active(self, admin, make_restaurant):
        inactive = make_restaurant(is_active=False)
        result = session_service.login_admin(admin.email, PASSWORD)
        ctx = resolve(Credential(bearer=result.credential, target_restaurant_id=str(inactive.id)))
        assert ctx.is_admin
        assert ctx.tenant_id is None

    def test_credentials_do_not_cross_apps(self, admin, restaurant_a):
        """Each identity app signs with its own key."""
        admin_credential = session_service.login_admin(admin.email, PASSWORD).credential
        pos_credential = session_service.login_restaurant(restaurant_a.email, PASSWORD).credential

        assert pos_identity().verify_credential(admin_credential) is None
        assert admin_identity().verify_credential(pos_credential) is None

    def test_non_admin_account_cannot_sign_in_as_admin(self, db_session):
        admin_identity().create_identity("ghost@dinepos.example", PASSWORD)
        db.session.commit()
        with pytest.raises(tenant_service.TenantAccessError) as exc:
            session_service.login_admin("ghost@dinepos.example", PASSWORD)
        assert str(exc.value) == "Access denied: not an admin account"


class TestImpersonation:

    def test_impersonation_resolves_with_admin_id(self, admin, restaurant_a):
        result = session_service.impersonate(_admin_ctx(admin), restaurant_a.id)

        ctx = resolve(Credential(bearer=result.credential))
        assert ctx.principal_kind == IMPERSONATED_TENANT
        assert ctx.tenant_id == restaurant_a.id
        assert ctx.admin_id == admin.id

        row = session_service.get_session(restaurant_a.id)
        assert row.is_impersonation is True
        assert row.expires_at - row.issued_at == session_service.IMPERSONATION_TTL

    def test_claim_without_session_rejected(self, admin, restaurant_a):
        account = pos_identity().get_account(restaurant_a.id)
        forged = pos_identity().issue_credential(account, extra_claims={"imp": True, "adm": admin.id})
        assert resolve(Credential(bearer=forged)) is None

    def test_claim_without_admin_id_rejected(self, admin, restaurant_a):
        session_service.impersonate(_admin_ctx(admin), restaurant_a.id)
        account = pos_identity().get_account(restaurant_a.id)
        partial = pos_identity().issue_credential(account, extra_claims={"imp": True})
        assert resolve(Credential(bearer=partial)) is None

    def test_session_from_another_admin_rejected(self, admin, other_admin, restaurant_a):
        mine = session_service.impersonate(_admin_ctx(admin), restaurant_a.id)
        session_service.impersonate(_admin_ctx(other_admin), restaurant_a.id)
        assert resolve(Credential(bearer=mine.credential)) is None

    def test_restaurant_login_ends_impersonation(self, admin, restaurant_a):
        result = session_service.impersonate(_admin_ctx(admin), restaurant_a.id)
        session_service.login_restaurant(restaurant_a.email, PASSWORD)
        assert resolve(Credential(bearer=result.credential)) is None

    def test_impersonation_cookie_pair(self, admin, restaurant_a):
        result = session_service.impersonate(_admin_ctx(admin), restaurant_a.id)
        ctx = resolve(Credential(session_token=result.token, restaurant_id=str(restaurant_a.id)))
        assert ctx.principal_kind == IMPERSONATED_TENANT
        assert ctx.admin_id == admin.id

    def test_requires_admin_context(self, restaurant_a, restaurant_b):
        tenant_ctx = AuthContext(principal_id=restaurant_b.id, principal_kind=TENANT, tenant_id=restaurant_b.id)
        with pytest.raises(tenant_service.TenantAccessError):
            session_service.impersonate(tenant_ctx, restaurant_a.id)


class TestAuthorize:

    @pytest.mark.parametrize("path", ["/api/pos/login", "/api/pos/logout", "/api/admin/login"])
    def test_public_paths(self, path):
        assert authorize(path, None).allowed

    def test_pos_path_decisions(self):
        tenant = AuthContext(principal_id=1, principal_kind=TENANT, tenant_id=1)
        admin = AuthContext(principal_id=2, principal_kind=ADMIN)
        targeted = AuthContext(principal_id=2, principal_kind=ADMIN, tenant_id=1)

        assert authorize("/api/pos/orders", None).status == 401
        assert authorize("/api/pos/orders", tenant).allowed
        assert authorize("/api/pos/orders", targeted).allowed
        denied = authorize("/api/pos/orders", admin)
        assert denied.status == 403
        assert denied.reason == "Restaurant access required"

    def test_admin_path_decisions(self):
        tenant = AuthContext(principal_id=1, principal_kind=TENANT, tenant_id=1)
        superadmin = AuthContext(principal_id=3, principal_kind=SUPERADMIN)

        assert authorize("/api/admin/admins", None).status == 401
        assert authorize("/api/restaurants/get", superadmin).allowed
        denied = authorize("/api/update-user", tenant)
        assert denied.status == 403
        assert denied.reason == "Admin access required"

    def test_other_api_paths_need_someone(self):
        assert authorize("/api/anything", None).status == 401
        assert authorize("/health", None).allowed


class TestRoutes:

    def test_pos_login_sets_cookies(self, client, restaurant_a):
        resp = client.post("/api/pos/login", json={"email": restaurant_a.email, "password": PASSWORD})
        assert resp.status_code == 200
        cookies = " ".join(resp.headers.getlist("Set-Cookie"))
        assert "pos_session_token=" in cookies
        assert "pos_restaurant_id=" in cookies
        assert "HttpOnly" in cookies

    def test_pos_login_rejection_is_401(self, client, make_restaurant):
        make_restaurant(email="off@window.example", is_active=False)
        resp = client.post("/api/pos/login", json={"email": "off@window.example", "password": PASSWORD})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "This account has been deactivated"

    def test_restaurant_id_from_bearer(self, client, restaurant_a, pos_headers_a):
        resp = client.get("/api/get-restaurant-id", headers=pos_headers_a)
        assert resp.status_code == 200
        assert resp.get_json()["restaurant_id"] == restaurant_a.id

    def test_restaurant_id_from_cookies(self, client, restaurant_a):
        body = pos_login(client, restaurant_a.email)
        resp = client.get("/api/get-restaurant-id", headers=pos_cookies(body["token"], body["restaurant_id"]))
        assert resp.status_code == 200
        assert resp.get_json()["restaurant_id"] == restaurant_a.id

    def test_pos_route_without_credentials_redirects(self, client, db_session):
        resp = client.get("/api/pos/me")
        assert resp.status_code == 401
        assert resp.get_json()["redirect"] == "/pos/login"

    def test_admin_credential_on_pos_route(self, client, admin):
        credential = admin_login(client, admin.email)
        resp = client.get("/api/pos/me", headers=bearer(credential))
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "Restaurant access required"

    def test_admin_with_target_cookie_on_pos_route(self, client, admin, restaurant_a):
        credential = admin_login(client, admin.email)
        headers = bearer(credential)
        headers["Cookie"] = f"{ADMIN_IMPERSONATION_COOKIE}={restaurant_a.id}"
        resp = client.get("/api/get-restaurant-id", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["restaurant_id"] == restaurant_a.id

    def test_pos_credential_on_admin_route(self, client, pos_headers_a):
        resp = client.get("/api/restaurants/get", headers=pos_headers_a)
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "Admin access required"
        assert "redirect" not in resp.get_json()

    def test_impersonate_route(self, client, admin, restaurant_a):
        credential = admin_login(client, admin.email)
        resp = client.post("/api/admin/impersonate", headers=bearer(credential),
                           json={"restaurant_id": restaurant_a.id})
        assert resp.status_code == 200
        body = resp.get_json()
        assert ADMIN_IMPERSONATION_COOKIE in " ".join(resp.headers.getlist("Set-Cookie"))

        me = client.get("/api/pos/me", headers=bearer(body["credential"])).get_json()
        assert me["is_impersonation"] is True
        assert me["auth"]["admin_id"] == admin.id
        assert me["restaurant"]["id"] == restaurant_a.id

    def test_impersonate_route_validates_id(self, client, admin):
        credential = admin_login(client, admin.email)
        resp = client.post("/api/admin/impersonate", headers=bearer(credential),
                           json={"restaurant_id": "abc"})
        assert resp.status_code == 400

    def test_pos_logout_by_cookie(self, client, restaurant_a):
        body = pos_login(client, restaurant_a.email)
        cookies = pos_cookies(body["token"], body["restaurant_id"])

        assert client.post("/api/pos/logout", headers=cookies).status_code == 200
        assert client.get("/api/pos/me", headers=cookies).status_code == 401
        assert client.get("/api/pos/me", headers=bearer(body["credential"])).status_code == 401

    def test_pos_logout_without_session(self, client, db_session):
        resp = client.post("/api/pos/logout")
        assert resp.status_code == 401
        assert resp.get_json()["redirect"] == "/pos/login"

    def test_admin_logout_revokes_credential(self, client, admin):
        credential = admin_login(client, admin.email)
        assert client.post("/api/admin/logout", headers=bearer(credential)).status_code == 200
        assert client.get("/api/admin/profile", headers=bearer(credential)).status_code == 401

    def test_force_logout_route(self, client, superadmin, restaurant_a):
        body = pos_login(client, restaurant_a.email)
        admin_credential = admin_login(client, superadmin.email)

        resp = client.post(f"/api/restaurants/logout-by-id/{restaurant_a.id}",
                           headers=bearer(admin_credential))
        assert resp.status_code == 200
        cookies = pos_cookies(body["token"], body["restaurant_id"])
        assert client.get("/api/pos/me", headers=cookies).status_code == 401
