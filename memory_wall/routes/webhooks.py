# memory_wall/routes/webhooks.py
from flask import Blueprint, abort, current_app, jsonify, request

from memory_wall.extensions import db
from memory_wall.models import Media, RecordStatus

webhook_bp = Blueprint("webhook_bp", __name__)

SUBSCRIPTION_VALIDATION = "Microsoft.EventGrid.SubscriptionValidationEvent"
BLOB_CREATED = "Microsoft.Storage.BlobCreated"


def _check_webhook_key() -> None:
    expected = current_app.config.get("EVENTGRID_WEBHOOK_KEY")
    if not expected:
        return
    supplied = request.args.get("code") or request.headers.get("x-webhook-key", "")
    if supplied != expected:
        abort(401, description="Invalid webhook key")


def _apply_blob_created(data: dict) -> int:
    """Fill in size/content type of active media pointing at the new blob."""
    url = (data or {}).get("url")
    if not url:
        return 0

    matches = db.session.execute(
        db.select(Media).where(Media.blob_url == url, Media.status == RecordStatus.ACTIVE)
    ).scalars().all()

    updated = 0
    for media in matches:
        changed = False
        length = data.get("contentLength")
        if not media.size and isinstance(length, int) and length > 0:
            media.size = length
            changed = True
        content_type = data.get("contentType")
        if content_type and media.content_type in ("", "application/octet-stream"):
            media.content_type = content_type
            changed = True
        updated += int(changed)

    if updated:
        db.session.commit()
    return updated


@webhook_bp.route("/blob-created", methods=["POST"])
def blob_created_webhook():
    """
    Event Grid handler for storage events.
    Not behind user auth; optionally guarded by EVENTGRID_WEBHOOK_KEY.
    """
    _check_webhook_key()

    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list):
        abort(400, description="Invalid payload")

    updated = 0
    for event in payload:
        if not isinstance(event, dict):
            continue
        event_type = event.get("eventType")
        data = event.get("data") or {}

        if event_type == SUBSCRIPTION_VALIDATION:
            current_app.logger.info("Event Grid subscription validation for %s", event.get("topic"))
            return jsonify({"validationResponse": data.get("validationCode")}), 200

        if event_type == BLOB_CREATED:
            current_app.logger.info("Blob created: subject=%s url=%s", event.get("subject"), data.get("url"))
            updated += _apply_blob_created(data)
        else:
            current_app.logger.info("Unhandled event: %s", event_type)

    return jsonify({"status": "processed", "updated": updated}), 200
