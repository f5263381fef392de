# memory_wall/routes/media.py
import uuid

from flask import Blueprint, abort, current_app, jsonify

from memory_wall.extensions import db
from memory_wall.models import Media, MediaType
from memory_wall.models.event import utcnow
from memory_wall.services.blob import build_upload_blob_name, get_blob_store
from memory_wall.services.event_access import list_active_media, load_media, require_event_access
from memory_wall.services.lifecycle import soft_delete_media
from memory_wall.utils.auth import current_caller, load_caller, login_required
from memory_wall.utils.http import iso, read_json_body

media_bp = Blueprint("media", __name__)
media_bp.before_request(load_caller)


def _serialize_media(media: Media) -> dict:
    return {
        "id": media.media_id,
        "mediaId": media.media_id,
        "hostId": media.host_id,
        "eventId": media.event_id,
        "uploaderId": media.uploader_id,
        "blobUrl": media.blob_url,
        "type": media.type.value,
        "fileName": media.file_name,
        "contentType": media.content_type,
        "size": media.size,
        "status": media.status.value,
        "createdAt": iso(media.created_at),
        "deletedAt": iso(media.deleted_at),
    }


def _parse_media_type(value) -> MediaType:
    if value in (None, ""):
        return MediaType.IMAGE
    try:
        return MediaType(str(value).upper())
    except ValueError:
        abort(400, description="type must be IMAGE or VIDEO")


def _parse_size(value) -> int:
    if value in (None, ""):
        return 0
    try:
        size = int(value)
    except (TypeError, ValueError):
        abort(400, description="size must be a number")
    if size < 0:
        abort(400, description="size must not be negative")
    return size


# ---------------------- UPLOAD SAS ----------------------


@media_bp.route("/<event_id>/media/sas", methods=["POST"])
@login_required
def create_upload_sas(event_id: str):
    """
    Issues a short-lived create+write SAS for a direct upload to storage.
    Nothing is stored here; the client registers the blob afterwards.
    """
    caller = current_caller()
    event = require_event_access(caller, event_id)

    data = read_json_body()
    file_name = str(data.get("fileName") or "").strip()
    content_type = str(data.get("contentType") or "").strip()
    if not file_name or not content_type:
        abort(400, description="fileName and contentType are required")

    blob_name = build_upload_blob_name(caller.host_id, event.event_id, file_name)
    signed = get_blob_store().make_upload_sas(blob_name, minutes=current_app.config["UPLOAD_SAS_MINUTES"])

    return jsonify(
        {
            "uploadUrl": signed.url,
            "blobUrl": signed.blob_url,
            "blobName": signed.blob_name,
            "contentType": content_type,
            "expiresOn": signed.expires_on_iso,
        }
    )


# ---------------------- MEDIA MANAGEMENT ----------------------


@media_bp.route("/<event_id>/media", methods=["GET"])
@login_required
def list_event_media(event_id: str):
    caller = current_caller()
    event = require_event_access(caller, event_id)
    return jsonify([_serialize_media(m) for m in list_active_media(caller.host_id, event.event_id)])


@media_bp.route("/<event_id>/media", methods=["POST"])
@login_required
def attach_media_after_upload(event_id: str):
    """Records metadata for a blob the client has already uploaded."""
    caller = current_caller()
    event = require_event_access(caller, event_id)

    data = read_json_body()
    blob_url = str(data.get("blobUrl") or "").strip()
    file_name = str(data.get("fileName") or "").strip()
    if not blob_url or not file_name:
        abort(400, description="blobUrl and fileName are required")

    try:
        blob_name = get_blob_store().blob_name_from_url(blob_url)
    except ValueError as e:
        abort(400, description=str(e))
    if not blob_name.startswith(f"{caller.host_id}/{event.event_id}/"):
        abort(400, description="blobUrl does not belong to this event")

    media_id = str(data.get("mediaId") or "").strip() or f"media_{uuid.uuid4()}"
    if db.session.get(Media, media_id) is not None:
        abort(400, description=f"mediaId already exists: {media_id}")

    media = Media(
        media_id=media_id,
        host_id=caller.host_id,
        event_id=event.event_id,
        uploader_id=caller.user_id,
        blob_url=blob_url,
        type=_parse_media_type(data.get("type")),
        file_name=file_name,
        content_type=str(data.get("contentType") or "application/octet-stream"),
        size=_parse_size(data.get("size")),
        created_at=utcnow(),
    )
    db.session.add(media)
    db.session.commit()

    return jsonify(_serialize_media(media)), 201


@media_bp.route("/<event_id>/media/<media_id>", methods=["DELETE"])
@login_required
def delete_media(event_id: str, media_id: str):
    """Soft delete; the blob is removed best-effort and never fails the request."""
    caller = current_caller()
    event = require_event_access(caller, event_id)

    media = load_media(caller.host_id, event.event_id, media_id)
    if media is None or media.is_deleted:
        abort(404, description="Not found")

    report = soft_delete_media(media, get_blob_store())
    return jsonify(
        {
            "ok": True,
            "eventId": event.event_id,
            "mediaId": media.media_id,
            "blobDeleteFailures": report.failures,
        }
    ), 200


# ---------------------- READ SAS ----------------------


@media_bp.route("/<event_id>/media/<media_id>/sas", methods=["GET"])
@login_required
def get_media_read_sas(event_id: str, media_id: str):
    caller = current_caller()
    event = require_event_access(caller, event_id)

    media = load_media(caller.host_id, event.event_id, media_id)
    if media is None or media.is_deleted or not media.blob_url:
        abort(404, description="Media not found")

    signed = get_blob_store().make_read_sas(media.blob_url, minutes=current_app.config["READ_SAS_MINUTES"])
    return jsonify(
        {
            "readUrl": signed.url,
            "expiresOn": signed.expires_on_iso,
            "blobUrl": media.blob_url,
            "mediaId": media.media_id,
            "eventId": media.event_id,
        }
    )
