from functools import wraps

from flask import Blueprint, jsonify, request
from flask_jwt_extended import current_user, jwt_required

from portal.billing.subscriptions import adjust_subscription, bulk_update_tier
from portal.errors import AuthorizationError, ValidationError
from portal.models.admin_activity import AdminActivityLog

bp = Blueprint("admin", __name__, url_prefix="/api/admin")

MAX_PAGE_SIZE = 100


def admin_required(fn):
    @wraps(fn)
    @jwt_required()
    def wrapper(*args, **kwargs):
        if not current_user.is_admin:
            raise AuthorizationError("Admin access required")
        return fn(*args, **kwargs)
    return wrapper


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON data")
    return data


@bp.route("/adjust-subscription", methods=["POST"])
@admin_required
def adjust():
    data = _json_body()
    action = data.get("action")

    result = adjust_subscription(current_user, data.get("user_id"), action, data.get("data"))
    return jsonify({"success": True, "action": action, "result": result}), 200


@bp.route("/bulk-action", methods=["POST"])
@admin_required
def bulk_action():
    data = _json_body()
    action = data.get("action")
    if not action or not isinstance(data.get("user_ids"), list):
        raise ValidationError("Invalid request. Provide action and user_ids array.")

    if action != "update-tier":
        raise ValidationError(f"Unknown action: {action}")

    options = data.get("data") or {}
    if not isinstance(options, dict):
        raise ValidationError("data must be an object")

    affected = bulk_update_tier(current_user, data["user_ids"], options.get("tier"))
    return jsonify({"success": True, "action": action, "affected_count": affected}), 200


@bp.route("/activity-logs", methods=["GET"])
@admin_required
def activity_logs():
    """Admin activity, newest first. Filters: ``action``, ``admin_id``."""
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", 50, type=int)
    if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}")

    query = AdminActivityLog.query
    action = request.args.get("action")
    if action:
        query = query.filter_by(action=action)
    admin_id = request.args.get("admin_id", type=int)
    if admin_id:
        query = query.filter_by(admin_id=admin_id)

    logs = (
        query.order_by(AdminActivityLog.created_at.desc(), AdminActivityLog.id.desc())
        .paginate(page=page, per_page=limit, error_out=False)
    )

    return jsonify({
        "logs": [log.to_dict() for log in logs.items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": logs.total,
            "pages": logs.pages,
        },
    }), 200
