"""
Tests for the login flow and the /api/send trigger.
"""
from urllib.parse import parse_qs, urlparse

import pytest

from services.works_token import WorksAuthError


class RecordingDispatcher:
    def __init__(self, result=None):
        self.result = result or {"success": True, "count": 2, "sent_count": 2, "skipped_count": 0, "errors": []}
        self.tokens = []

    def send_pending_messages(self, access_token=None):
        self.tokens.append(access_token)
        return self.result


@pytest.fixture
def dispatcher(app):
    d = RecordingDispatcher()
    app.extensions["dispatcher"] = d
    return d


@pytest.fixture
def exchange(app, monkeypatch):
    calls = []
    outcome = {"payload": {"access_token": "at-1", "refresh_token": "rt-1"}}

    def fake_exchange(code):
        calls.append(code)
        if isinstance(outcome["payload"], Exception):
            raise outcome["payload"]
        return outcome["payload"]

    monkeypatch.setattr(app.extensions["works_token"], "exchange_code", fake_exchange)
    return calls, outcome


# ---------------------------------------------------------------------------
# login / callback
# ---------------------------------------------------------------------------

def test_index_shows_login_without_session(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert "/login" in resp.get_data(as_text=True)


def test_login_redirects_to_authorize(client):
    resp = client.get("/login")
    assert resp.status_code == 302

    url = urlparse(resp.headers["Location"])
    query = parse_qs(url.query)
    assert url.netloc == "auth.worksmobile.com"
    assert query["client_id"] == ["client-id"]
    assert query["redirect_uri"] == ["https://example.com/callback"]
    assert query["response_type"] == ["code"]
    assert query["scope"] == ["bot user.read"]
    with client.session_transaction() as sess:
        assert query["state"] == [sess["oauth_state"]]


def test_callback_success_stores_session(client, exchange):
    calls, _ = exchange
    with client.session_transaction() as sess:
        sess["oauth_state"] = "s1"

    resp = client.get("/callback?code=abc&state=s1")
    assert resp.status_code == 302
    assert urlparse(resp.headers["Location"]).path == "/"
    assert calls == ["abc"]
    with client.session_transaction() as sess:
        assert sess["access_token"] == "at-1"
        assert sess["refresh_token"] == "rt-1"


@pytest.mark.parametrize("query", ["", "?error=access_denied&code=abc", "?code=abc&state=wrong"])
def test_callback_failures_go_back_to_start(client, exchange, query):
    calls, _ = exchange
    with client.session_transaction() as sess:
        sess["oauth_state"] = "s1"

    resp = client.get(f"/callback{query}")
    assert resp.status_code == 302
    assert urlparse(resp.headers["Location"]).path == "/"
    assert calls == []
    with client.session_transaction() as sess:
        assert "access_token" not in sess


def test_callback_without_stored_state_is_rejected(client, exchange):
    calls, _ = exchange
    resp = client.get("/callback?code=abc&state=anything")
    assert resp.status_code == 302
    assert urlparse(resp.headers["Location"]).path == "/"
    assert calls == []
    with client.session_transaction() as sess:
        assert "access_token" not in sess


def test_callback_exchange_failure(client, exchange):
    _, outcome = exchange
    outcome["payload"] = WorksAuthError("HTTP 400")

    with client.session_transaction() as sess:
        sess["oauth_state"] = "s1"

    resp = client.get("/callback?code=abc&state=s1")
    assert resp.status_code == 302
    with client.session_transaction() as sess:
        assert "access_token" not in sess


def test_api_token(client, exchange):
    calls, _ = exchange
    resp = client.post("/api/token", json={"code": "xyz"})
    assert resp.status_code == 200
    assert resp.get_json() == {"success": True}
    assert calls == ["xyz"]


def test_api_token_requires_code(client, exchange):
    resp = client.post("/api/token", json={})
    assert resp.status_code == 400
    assert exchange[0] == []


def test_api_token_exchange_failure(client, exchange):
    _, outcome = exchange
    outcome["payload"] = WorksAuthError("token endpoint returned HTTP 401")
    resp = client.post("/api/token", json={"code": "xyz"})
    assert resp.status_code == 502
    assert resp.get_json()["success"] is False


def test_logout_clears_session(client):
    with client.session_transaction() as sess:
        sess["access_token"] = "at"
    client.get("/logout")
    with client.session_transaction() as sess:
        assert "access_token" not in sess


# ---------------------------------------------------------------------------
# /api/send
# ---------------------------------------------------------------------------

def test_send_requires_auth(client, dispatcher):
    assert client.post("/api/send").status_code == 401
    assert client.post("/api/send?key=wrong").status_code == 401
    assert dispatcher.tokens == []


def test_send_with_key_uses_server_token(client, dispatcher):
    resp = client.post("/api/send?key=cron-key")
    assert resp.status_code == 200
    assert resp.get_json()["count"] == 2
    assert dispatcher.tokens == [None]


def test_send_with_explicit_token(client, dispatcher):
    client.post("/api/send?key=cron-key", json={"accessToken": "given"})
    assert dispatcher.tokens == ["given"]


def test_send_from_session(client, dispatcher):
    with client.session_transaction() as sess:
        sess["access_token"] = "session-token"
    resp = client.post("/api/send")
    assert resp.status_code == 200
    assert dispatcher.tokens == ["session-token"]


def test_send_fatal_result_is_500(client, dispatcher):
    dispatcher.result = {"success": False, "error": "sheet read failed"}
    resp = client.post("/api/send?key=cron-key")
    assert resp.status_code == 500
    assert resp.get_json() == {"success": False, "error": "sheet read failed"}


def test_dispatcher_built_from_config(app):
    from services.dispatcher import Dispatcher, get_dispatcher

    d = get_dispatcher(app)
    assert isinstance(d, Dispatcher)
    assert get_dispatcher(app) is d
    assert d.token_provider == app.extensions["works_token"].get_server_access_token
