"""
HTTP tests for the front door routes.

Tests cover:
- Tenant resolution by Origin / Referer with CORS headers, and 404s
- Login redirect, already-logged-in shortcut and the OAuth callback
- Session and service subscription checks
- Field mutation decisions and persistence
- Catalog and checkout
"""

from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

SHOP_APP_ID = "85a03867-dccf-4882-adde-1a79aeec50df"

SHOP = {"Origin": "https://shop.test"}


def _state_from(location):
    return parse_qs(urlparse(location).query)["state"][0]


class TestTenantResolution:
    """Test origin handling shared by every browser route."""

    def test_ping_sets_cors_headers(self, client):
        response = client.get("/ping", headers=SHOP)

        assert response.status_code == 200
        assert response.json() == {"message": "pong"}
        assert response.headers["access-control-allow-origin"] == "https://shop.test"
        assert response.headers["access-control-allow-credentials"] == "true"

    def test_referer_fallback(self, client):
        response = client.get("/ping", headers={"Referer": "https://a.test/some/page"})

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "https://a.test"

    def test_unknown_origin(self, client):
        response = client.get("/ping", headers={"Origin": "https://c.test"})

        assert response.status_code == 404
        assert response.text == "not found"
        assert response.headers["content-type"].startswith("text/plain")
        assert "access-control-allow-origin" not in response.headers

    def test_no_origin(self, client):
        assert client.get("/ping").status_code == 404

    def test_preflight(self, client):
        response = client.options("/api/mutate", headers=SHOP)

        assert response.status_code == 200
        assert response.text == "OK"
        assert response.headers["access-control-allow-origin"] == "https://shop.test"
        assert "POST" in response.headers["access-control-allow-methods"]

    def test_preflight_unknown_origin(self, client):
        response = client.options("/api/substatus", headers={"Origin": "https://c.test"})

        assert response.status_code == 404


class TestLogin:
    """Test the login endpoint."""

    def test_redirects_to_authorization_url(self, client, login_attempts):
        response = client.get("/auth/login", headers=SHOP)

        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith("https://auth.example.test/oauth2/authorize?")
        assert "code_challenge_method=S256" in location
        assert len(login_attempts) == 1

    def test_already_logged_in(self, client, alice, login_attempts):
        client.cookies.set("shop_session", "tok-alice")

        response = client.get("/auth/login", headers=SHOP)

        assert response.status_code == 200
        assert response.text == "already logged in"
        assert len(login_attempts) == 0

    def test_invalid_cookie_starts_new_login(self, client):
        client.cookies.set("shop_session", "expired")

        assert client.get("/auth/login", headers=SHOP).status_code == 302

    def test_unknown_origin(self, client):
        assert client.get("/auth/login", headers={"Origin": "https://c.test"}).status_code == 404


class TestOAuthCallback:
    """Test the callback endpoint."""

    def test_success_sets_cookie_and_redirects(self, client, identity, alice):
        state = _state_from(client.get("/auth/login", headers=SHOP).headers["location"])
        identity.add_code("code-1", "tok-alice")

        response = client.get(f"/auth/oauth-cb/{SHOP_APP_ID}", params={"state": state, "code": "code-1"})

        assert response.status_code == 302
        assert response.headers["location"] == "https://shop.test/welcome"
        cookie = response.headers["set-cookie"]
        assert cookie.startswith("shop_session=tok-alice")
        assert "HttpOnly" in cookie
        assert "SameSite=lax" in cookie
        assert "Secure" in cookie
        assert "Max-Age=3600" in cookie
        assert "Path=/" in cookie
        assert "Domain=shop.test" in cookie

    def test_form_post(self, client, identity, alice):
        state = _state_from(client.get("/auth/login", headers=SHOP).headers["location"])
        identity.add_code("code-1", "tok-alice")

        response = client.post(f"/auth/oauth-cb/{SHOP_APP_ID}", data={"state": state, "code": "code-1"})

        assert response.status_code == 302

    @pytest.mark.security
    def test_replayed_state(self, client, identity, alice):
        state = _state_from(client.get("/auth/login", headers=SHOP).headers["location"])
        identity.add_code("code-1", "tok-alice")
        identity.add_code("code-2", "tok-alice")

        client.get(f"/auth/oauth-cb/{SHOP_APP_ID}", params={"state": state, "code": "code-1"})
        response = client.get(f"/auth/oauth-cb/{SHOP_APP_ID}", params={"state": state, "code": "code-2"})

        assert response.status_code == 403
        assert response.text == "unauthorized"

    def test_duplicate_state_values(self, client):
        response = client.get(f"/auth/oauth-cb/{SHOP_APP_ID}?state=a&state=b&code=c")

        assert response.status_code == 403
        assert response.text == "unauthorized"

    def test_missing_code(self, client):
        assert client.get(f"/auth/oauth-cb/{SHOP_APP_ID}?state=a").status_code == 403

    def test_unknown_app(self, client):
        response = client.get("/auth/oauth-cb/unknown-app?state=a&code=c")

        assert response.status_code == 404
        assert response.text == "not found"


class TestLoggedIn:
    """Test the login state endpoint."""

    def test_logged_in(self, client, alice):
        client.cookies.set("shop_session", "tok-alice")

        response = client.get("/auth/loggedin", headers=SHOP)

        assert response.json() == {
            "logged_in": True,
            "user_id": "user-alice",
            "user_email": "alice@shop.test",
            "user_full_name": "Alice Example",
        }

    def test_logged_out(self, client):
        response = client.get("/auth/loggedin", headers=SHOP)

        assert response.status_code == 200
        assert response.json()["logged_in"] is False


class TestSubscriptionStatus:
    """Test the session-based subscription check."""

    def test_subscribed(self, client, alice, billing):
        billing.set_subscription("cus_alice", "prod_X")
        client.cookies.set("shop_session", "tok-alice")

        response = client.get("/api/substatus", params={"p": "prod_X"}, headers=SHOP)

        assert response.status_code == 200
        assert response.text == "true"

    def test_not_subscribed(self, client, bob):
        client.cookies.set("shop_session", "tok-bob")

        assert client.get("/api/substatus?p=prod_X", headers=SHOP).text == "false"

    def test_missing_product(self, client, alice):
        client.cookies.set("shop_session", "tok-alice")

        response = client.get("/api/substatus", headers=SHOP)

        assert response.status_code == 400
        assert response.text == "invalid p value"

    def test_no_session(self, client):
        response = client.get("/api/substatus?p=prod_X", headers=SHOP)

        assert response.status_code == 403
        assert response.text == "unauthorized"
        assert response.headers["access-control-allow-origin"] == "https://shop.test"

    def test_upstream_failure_hides_detail(self, client, alice, billing):
        billing.fail_lookups = True
        client.cookies.set("shop_session", "tok-alice")

        response = client.get("/api/substatus?p=prod_X", headers=SHOP)

        assert response.status_code == 500
        assert response.text == "server error"


class TestServiceSubscriptionStatus:
    """Test the API-key authenticated subscription check."""

    def test_by_user_id(self, client, alice, billing):
        billing.set_subscription("cus_alice", "prod_X")

        response = client.get(
            "/api/service/substatus",
            params={"p": "prod_X", "u": "user-alice"},
            headers={"X-API-Key": "shop-service-key"},
        )

        assert response.status_code == 200
        assert response.text == "true"

    def test_by_session_token(self, client, bob):
        response = client.get(
            "/api/service/substatus",
            params={"p": "prod_X", "s": "tok-bob"},
            headers={"X-API-Key": "shop-service-key"},
        )

        assert response.text == "false"

    def test_unknown_api_key(self, client):
        response = client.get(
            "/api/service/substatus",
            params={"p": "prod_X", "u": "user-alice"},
            headers={"X-API-Key": "wrong"},
        )

        assert response.status_code == 401

    def test_missing_api_key(self, client):
        assert client.get("/api/service/substatus?p=prod_X&u=user-alice").status_code == 401

    def test_invalid_session_token(self, client):
        response = client.get(
            "/api/service/substatus",
            params={"p": "prod_X", "s": "bogus"},
            headers={"X-API-Key": "shop-service-key"},
        )

        assert response.status_code == 403

    def test_missing_parameters(self, client):
        headers = {"X-API-Key": "shop-service-key"}

        assert client.get("/api/service/substatus?u=user-alice", headers=headers).status_code == 400
        assert client.get("/api/service/substatus?p=prod_X", headers=headers).status_code == 400

    def test_unknown_user_is_server_error(self, client):
        response = client.get(
            "/api/service/substatus",
            params={"p": "prod_X", "u": "nobody"},
            headers={"X-API-Key": "shop-service-key"},
        )

        assert response.status_code == 500
        assert response.text == "server error"


class TestMutate:
    """Test the mutation endpoint."""

    def test_user_field_persisted(self, client, alice, services):
        response = client.post("/api/mutate", json={"s": "tok-alice", "f": "nickname", "v": "Al"}, headers=SHOP)

        assert response.status_code == 200
        assert response.text == "OK"
        assert services.user_data.get_value(SHOP_APP_ID, "user-alice", "nickname") == "Al"

    def test_session_cookie_fallback(self, client, alice, services):
        client.cookies.set("shop_session", "tok-alice")

        response = client.post("/api/mutate", json={"f": "pref_color", "v": "red"}, headers=SHOP)

        assert response.status_code == 200

    def test_system_field_denied(self, client, alice, services):
        response = client.post("/api/mutate", json={"s": "tok-alice", "f": "plan", "v": "gold"}, headers=SHOP)

        assert response.status_code == 403
        assert response.text == "unauthorized"
        assert services.user_data.get_value(SHOP_APP_ID, "user-alice", "plan") is None

    def test_shared_secret_writes_system_field(self, client, services):
        response = client.post("/api/mutate", json={
            "k": "shop-mutation-secret", "f": "plan", "v": "gold", "u": "user-carol",
        }, headers=SHOP)

        assert response.status_code == 200
        assert services.user_data.get_value(SHOP_APP_ID, "user-carol", "plan") == "gold"

    def test_shared_secret_requires_target_user(self, client):
        response = client.post("/api/mutate", json={"k": "shop-mutation-secret", "f": "plan", "v": "gold"}, headers=SHOP)

        assert response.status_code == 400

    def test_domain_in_body_without_origin(self, client, alice):
        response = client.post("/api/mutate", json={"d": "shop.test", "s": "tok-alice", "f": "nickname", "v": "Al"})

        assert response.status_code == 200

    def test_unknown_domain(self, client, alice):
        response = client.post("/api/mutate", json={"d": "c.test", "s": "tok-alice", "f": "nickname", "v": "Al"})

        assert response.status_code == 404

    def test_missing_field(self, client, alice):
        response = client.post("/api/mutate", json={"s": "tok-alice", "v": "Al"}, headers=SHOP)

        assert response.status_code == 400

    def test_subscriber_field(self, client, alice, billing):
        body = {"s": "tok-alice", "f": "theme", "v": "dark"}
        billing.set_subscription("cus_alice", "prod_X", status="canceled")

        assert client.post("/api/mutate", json=body, headers=SHOP).status_code == 403

        billing.set_subscription("cus_alice", "prod_X")
        # Negative answer still cached
        assert client.post("/api/mutate", json=body, headers=SHOP).status_code == 403

    def test_subscriber_field_upstream_failure(self, client, alice, billing):
        billing.fail_lookups = True

        response = client.post("/api/mutate", json={"s": "tok-alice", "f": "theme", "v": "dark"}, headers=SHOP)

        assert response.status_code == 500
        assert response.text == "server error"

    def test_non_string_field_is_bad_request(self, client, alice):
        response = client.post("/api/mutate", json={"s": "tok-alice", "f": 123, "v": "Al"}, headers=SHOP)

        assert response.status_code == 400
        assert response.text == "bad request"
        assert response.headers["content-type"].startswith("text/plain")
        assert "123" not in response.text

    def test_body_not_json_is_bad_request(self, client):
        response = client.post(
            "/api/mutate",
            content="not json",
            headers={**SHOP, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.text == "bad request"
        assert response.headers["content-type"].startswith("text/plain")

    def test_unexpected_error_keeps_cors_headers(self, app, services, alice, monkeypatch):
        def fail(*args, **kwargs):
            raise RuntimeError("database vanished")

        monkeypatch.setattr(services.user_data, "set_value", fail)

        with TestClient(app, raise_server_exceptions=False) as test_client:
            response = test_client.post(
                "/api/mutate", json={"s": "tok-alice", "f": "nickname", "v": "Al"}, headers=SHOP,
            )

        assert response.status_code == 500
        assert response.text == "server error"
        assert response.headers["access-control-allow-origin"] == "https://shop.test"
        assert response.headers["access-control-allow-credentials"] == "true"


class TestUserData:
    """Test reading back user data."""

    def test_reads_matching_fields(self, client, alice):
        client.cookies.set("shop_session", "tok-alice")
        client.post("/api/mutate", json={"f": "pref_color", "v": "red"}, headers=SHOP)
        client.post("/api/mutate", json={"f": "pref_font", "v": "serif"}, headers=SHOP)
        client.post("/api/mutate", json={"f": "nickname", "v": "Al"}, headers=SHOP)

        response = client.get("/api/userdata", params={"f": "pref_%"}, headers=SHOP)

        assert response.status_code == 200
        assert response.json() == {"pref_color": "red", "pref_font": "serif"}

    def test_requires_session(self, client):
        assert client.get("/api/userdata?f=%25", headers=SHOP).status_code == 403


class TestCatalogRoutes:
    """Test products and checkout."""

    def test_products(self, client, catalog_prices):
        response = client.get("/api/products", headers=SHOP)

        assert response.status_code == 200
        (product,) = response.json()
        assert product["id"] == "prod_X"
        assert [p["id"] for p in product["prices"]] == ["price_month", "price_once"]

    def test_products_upstream_failure(self, client, billing):
        assert client.get("/api/products", headers=SHOP).status_code == 500

    def test_checkout(self, client, alice, catalog_prices):
        client.cookies.set("shop_session", "tok-alice")

        response = client.post("/api/create-checkout-session?ids=price_month&m=s", headers=SHOP)

        assert response.status_code == 200
        assert response.json() == {"id": "cs_test_1"}

    def test_checkout_invalid_mode(self, client, alice, catalog_prices):
        client.cookies.set("shop_session", "tok-alice")

        response = client.post("/api/create-checkout-session?ids=price_month&m=x", headers=SHOP)

        assert response.status_code == 400

    def test_checkout_requires_session(self, client, catalog_prices):
        assert client.post("/api/create-checkout-session?m=s", headers=SHOP).status_code == 403


class TestApplicationModule:
    """Test the module-level application used by `uvicorn main:app`."""

    def test_app_importable_without_services(self):
        import main

        assert isinstance(main.app, FastAPI)
        assert not hasattr(main.app.state, "services")
        paths = {route.path for route in main.app.routes}
        assert {"/ping", "/auth/login", "/api/mutate", "/api/substatus"} <= paths
