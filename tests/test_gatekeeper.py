import json

import pytest

from conftest import create_user
from gatekeeper import redirect_target


@pytest.mark.parametrize(
    "path,claims,expected",
    [
        ("/profile", None, "/login?redirect=%2Fprofile"),
        ("/orders/abc", None, "/login?redirect=%2Forders%2Fabc"),
        ("/profile", {"role": "USER"}, None),
        ("/login", {"role": "USER"}, "/"),
        ("/register", None, None),
        ("/dashboard", {"role": "USER"}, "/login?redirect=%2Fdashboard"),
        ("/dashboard", {"role": "ADMIN"}, None),
        ("/shop", None, None),
        ("/ordersummary", None, None),
        ("/api/orders", None, None),
    ],
)
def test_redirect_target(path, claims, expected):
    assert redirect_target(path, claims) == expected


def test_anonymous_visitor_redirected(client):
    r = client.get("/profile", follow_redirects=False)
    assert r.status_code == 307
    assert r.headers["location"] == "/login?redirect=%2Fprofile"


def test_client_written_cookie_is_not_trusted(client):
    forged = json.dumps({"state": {"isAuthenticated": True, "user": {"id": "1", "role": "ADMIN"}}})
    client.cookies.set("auth-storage", forged)
    r = client.get("/dashboard", follow_redirects=False)
    assert r.status_code == 307


def test_verified_token_passes(client, db):
    user_id = create_user(db)
    token, _ = client.app.state.tokens.issue(user_id)
    r = client.get("/profile", headers={"Authorization": f"Bearer {token}"}, follow_redirects=False)
    assert r.status_code != 307

    r = client.get("/login", headers={"Authorization": f"Bearer {token}"}, follow_redirects=False)
    assert r.status_code == 307
    assert r.headers["location"] == "/"


def test_api_paths_untouched(client):
    assert client.get("/api/health").status_code == 200
