# routes/auth.py

import secrets

from flask import (
    Blueprint, session, redirect, url_for, request,
    current_app, render_template_string, jsonify
)

from services.works_token import WorksAuthError

auth_bp = Blueprint("auth", __name__)

LOGIN_PAGE = """
  <h1>LINE WORKS ログイン</h1>
  <p><a href="{{ url_for('auth.login') }}">ログイン</a></p>
"""

MAIN_PAGE = """
  <h1>予約メッセージ送信</h1>
  <form method="post" action="{{ url_for('dispatch.send_pending') }}">
    <button type="submit">送信待機のメッセージを今すぐ送信</button>
  </form>
  <p><a href="{{ url_for('auth.logout') }}">ログアウト</a></p>
"""


def _tokens():
    return current_app.extensions["works_token"]


def _save_session(payload: dict):
    session["access_token"]  = payload.get("access_token")
    session["refresh_token"] = payload.get("refresh_token")
    session.permanent = True


@auth_bp.route("/")
def index():
    if not session.get("access_token"):
        current_app.logger.debug("Index: no token -> login page")
        return render_template_string(LOGIN_PAGE)
    return render_template_string(MAIN_PAGE)


@auth_bp.route("/login")
def login():
    """
    Redirect to the LINE WORKS authorize page.
    """
    state = secrets.token_urlsafe(16)
    session["oauth_state"] = state
    return redirect(_tokens().authorize_url(state))


@auth_bp.route("/callback")
def callback():
    """
    LINE WORKS redirects here with ?code=... ; exchange it for tokens.
    Any failure sends the user back to the start page.
    """
    # 1) OAuth error
    err = request.args.get("error")
    if err:
        current_app.logger.error("OAuth error: %s / %s", err, request.args.get("error_description", ""))
        return redirect(url_for("auth.index"))

    # 2) authorization code
    code = request.args.get("code")
    if not code:
        current_app.logger.error("callback without code parameter")
        return redirect(url_for("auth.index"))

    # 3) state check
    expected = session.pop("oauth_state", None)
    if not expected or request.args.get("state") != expected:
        current_app.logger.error("callback state missing or mismatched")
        return redirect(url_for("auth.index"))

    # 4) token exchange
    try:
        payload = _tokens().exchange_code(code)
    except WorksAuthError:
        current_app.logger.exception("token exchange failed")
        return redirect(url_for("auth.index"))

    _save_session(payload)
    current_app.logger.debug("login ok: access_token / refresh_token stored")
    return redirect(url_for("auth.index"))


@auth_bp.route("/api/token", methods=["POST"])
def token():
    """
    {"code": "..."} -> exchange for tokens (the tokens stay server side).
    """
    data = request.get_json(silent=True) or {}
    code = data.get("code")
    if not code:
        return jsonify({"success": False, "error": "code is required"}), 400

    try:
        payload = _tokens().exchange_code(code)
    except WorksAuthError as e:
        current_app.logger.exception("/api/token exchange failed")
        return jsonify({"success": False, "error": str(e)}), 502

    _save_session(payload)
    return jsonify({"success": True})


@auth_bp.route("/logout")
def logout():
    session.clear()
    current_app.logger.debug("session cleared")
    return redirect(url_for("auth.index"))
