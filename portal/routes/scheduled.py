import secrets

from flask import Blueprint, current_app, jsonify, request

from portal.billing.subscriptions import send_renewal_reminders
from portal.errors import AuthenticationError
from portal.security.tokens import extract_bearer_token

bp = Blueprint("scheduled", __name__, url_prefix="/api/scheduled")


def _require_cron_secret():
    expected = current_app.config.get("CRON_SECRET")
    presented = extract_bearer_token(request.headers.get("Authorization"))
    if not expected or not presented or not secrets.compare_digest(presented.encode(), expected.encode()):
        raise AuthenticationError()


@bp.route("/renewal-reminders", methods=["GET"])
def renewal_reminders():
    _require_cron_secret()
    summary = send_renewal_reminders()
    return jsonify({"success": True, **summary}), 200
