# memory_wall/routes/export.py
from urllib.parse import quote

from flask import Blueprint, Response, current_app, jsonify

from memory_wall.services.archive import ExportItem, iter_event_archive, safe_file_name
from memory_wall.services.blob import get_blob_store
from memory_wall.services.event_access import list_active_media, require_event_access
from memory_wall.utils.auth import current_caller, load_caller, login_required

export_bp = Blueprint("export", __name__)
export_bp.before_request(load_caller)


def _attachment_header(file_name: str) -> str:
    try:
        file_name.encode("latin-1")
    except UnicodeEncodeError:
        ascii_name = file_name.encode("ascii", "ignore").decode("ascii").strip() or "event.zip"
        return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(file_name)}"
    return f'attachment; filename="{file_name}"'


def _stream_archive(first_chunk: bytes, archive):
    try:
        yield first_chunk
        yield from archive
    finally:
        archive.close()


@export_bp.route("/<event_id>/download", methods=["GET"])
@login_required
def download_event_archive(event_id: str):
    """
    Streams a ZIP of every active media item of the event.

    Unreadable blobs are skipped. If the archive fails before the first byte
    is produced the client gets a JSON 500; after that the stream is aborted.
    """
    caller = current_caller()
    event = require_event_access(caller, event_id)

    items = [ExportItem.from_media(m) for m in list_active_media(caller.host_id, event.event_id)]
    try:
        archive = iter_event_archive(
            items,
            fetch=get_blob_store().open_download_stream,
            timeout=current_app.config["EXPORT_BLOB_TIMEOUT"],
            concurrency=current_app.config["EXPORT_CONCURRENCY"],
        )
        first_chunk = next(archive)
    except StopIteration:
        first_chunk = b""
    except Exception as e:
        current_app.logger.exception("EventDownload error for %s: %s", event.event_id, e)
        return jsonify({"error": "Internal server error", "message": str(e) or "Unknown error"}), 500

    zip_file_name = f"{safe_file_name(event.title, fallback='event')}.zip"
    current_app.logger.info("Streaming %s with %d media items", zip_file_name, len(items))

    return Response(
        _stream_archive(first_chunk, archive),
        mimetype="application/zip",
        headers={
            "Content-Disposition": _attachment_header(zip_file_name),
            "Cache-Control": "no-store",
        },
    )
