# routes/dispatch.py
import hmac

from flask import Blueprint, current_app, jsonify, request, session

from services.dispatcher import get_dispatcher

dispatch_bp = Blueprint("dispatch", __name__)


def _authorized() -> bool:
    if session.get("access_token"):
        return True
    secret = current_app.config.get("DISPATCH_SECRET")
    key = request.args.get("key") or ""
    return bool(secret) and hmac.compare_digest(key, secret)


@dispatch_bp.route("/api/send", methods=["POST"])
def send_pending():
    """
    Run one dispatch pass. Called by cron (?key=DISPATCH_SECRET) or from the
    main page by a logged-in user.
    Optional body: {"accessToken": "..."}; otherwise the session token, then
    the server-side token.
    """
    if not _authorized():
        return jsonify({"success": False, "error": "unauthorized"}), 401

    data = request.get_json(silent=True) or {}
    access_token = data.get("accessToken") or session.get("access_token")

    result = get_dispatcher(current_app).send_pending_messages(access_token)
    current_app.logger.info("/api/send result: success=%s count=%s errors=%d",
                            result["success"], result.get("count"), len(result.get("errors", [])))
    return jsonify(result), (200 if result["success"] else 500)
