from flask import Blueprint, current_app, jsonify

from portal.health.checks import run_health_checks

health_bp = Blueprint("health", __name__, url_prefix="/api")


@health_bp.route("/health", methods=["GET"])
def health():
    return jsonify({
        "status": "ok",
        "service": current_app.config.get("APP_NAME"),
        "version": current_app.config.get("APP_VERSION"),
    }), 200


@health_bp.route("/health/ready", methods=["GET"])
def ready():
    results = run_health_checks()

    status_code = 200
    if results["status"] == "degraded":
        status_code = 503

    return jsonify(results), status_code
