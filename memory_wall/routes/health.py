from flask import Blueprint, jsonify

from memory_wall.models.event import utcnow

health_bp = Blueprint("health", __name__)


@health_bp.route("/health", methods=["GET"])
def health():
    return jsonify({"ok": True, "service": "memory-wall-api", "time": utcnow().isoformat()})
