# memory_wall/routes/events.py
import uuid

from flask import Blueprint, abort, current_app, jsonify

from memory_wall.extensions import db
from memory_wall.models import Event, EventPatch, Visibility
from memory_wall.models.event import parse_timestamp, parse_title, parse_visibility, unique_ids, utcnow
from memory_wall.services.blob import get_blob_store
from memory_wall.services.event_access import (
    is_member,
    list_active_events,
    load_event_by_host_and_id,
    require_event_access,
)
from memory_wall.services.lifecycle import soft_delete_event_cascade
from memory_wall.utils.auth import admin_required, current_caller, load_caller, login_required
from memory_wall.utils.http import iso, read_json_body

events_bp = Blueprint("events", __name__)
events_bp.before_request(load_caller)


# ---------------------- HELPER FUNCTIONS ----------------------


def _serialize_event(event: Event) -> dict:
    return {
        "id": event.event_id,
        "eventId": event.event_id,
        "hostId": event.host_id,
        "title": event.title,
        "description": event.description,
        "startsAt": iso(event.starts_at),
        "endsAt": iso(event.ends_at),
        "visibility": event.visibility.value,
        "status": event.status.value,
        "ownerId": event.owner_id,
        "memberIds": list(event.member_ids or []),
        "createdAt": iso(event.created_at),
        "updatedAt": iso(event.updated_at),
        "deletedAt": iso(event.deleted_at),
    }


def _id_list(data: dict, *keys) -> list:
    """Ids from the first present key; accepts a single string or a list."""
    for key in keys:
        if key in data:
            value = data[key]
            if isinstance(value, (list, tuple)):
                return unique_ids(value)
            if isinstance(value, str):
                return unique_ids([value])
            abort(400, description=f"{key} must be a string or a list of strings")
    return []


def _load_active_event(event_id: str) -> Event:
    caller = current_caller()
    event = load_event_by_host_and_id(caller.host_id, event_id)
    if event is None or event.is_deleted:
        abort(404, description="Not found")
    return event


def _require_admin_or_member(event: Event) -> None:
    caller = current_caller()
    if not caller.is_admin and not is_member(event, caller.user_id):
        abort(403, description="Forbidden")


def _check_removal(event: Event, target: str) -> None:
    caller = current_caller()
    if target == str(event.owner_id):
        abort(400, description="The event owner cannot be removed")
    if not caller.is_admin and target == caller.user_id:
        abort(400, description="You cannot remove yourself from an event")


def _members_response(event: Event):
    return jsonify({"ok": True, "eventId": event.event_id, "memberIds": list(event.member_ids)}), 200


# ---------------------- EVENT LISTINGS ----------------------


@events_bp.route("", methods=["GET"])
@events_bp.route("/", methods=["GET"])
@login_required
def list_events():
    """Admins see every active event of the host; users only their own."""
    caller = current_caller()
    events = list_active_events(caller.host_id)
    if not caller.is_admin:
        events = [e for e in events if is_member(e, caller.user_id)]
    return jsonify([_serialize_event(e) for e in events])


# ---------------------- CREATE & UPDATE EVENT ----------------------


@events_bp.route("", methods=["POST"])
@events_bp.route("/", methods=["POST"])
@login_required
def create_event():
    caller = current_caller()
    data = read_json_body()

    try:
        title = parse_title(data.get("title"))
        starts_at = parse_timestamp(data.get("startsAt"), "startsAt")
        ends_at = parse_timestamp(data.get("endsAt"), "endsAt")
        visibility = parse_visibility(data["visibility"]) if data.get("visibility") else Visibility.PRIVATE
    except ValueError as e:
        abort(400, description=str(e))

    extra_members = _id_list(data, "memberIds")
    new_event_id = f"event_{uuid.uuid4()}"

    event = Event(
        event_id=new_event_id,
        host_id=caller.host_id,
        title=title,
        description=str(data.get("description") or ""),
        starts_at=starts_at,
        ends_at=ends_at,
        visibility=visibility,
        owner_id=caller.user_id,
        created_at=utcnow(),
    )
    event.set_members([caller.user_id, *extra_members])

    db.session.add(event)
    db.session.commit()

    current_app.logger.info("Event %s created by %s on host %s", event.event_id, caller.user_id, caller.host_id)
    return jsonify(_serialize_event(event)), 201


# ---------------------- EVENT DETAIL ----------------------


@events_bp.route("/<event_id>", methods=["GET"])
@login_required
def get_event(event_id: str):
    event = require_event_access(current_caller(), event_id)
    return jsonify(_serialize_event(event))


@events_bp.route("/<event_id>", methods=["PATCH"])
@admin_required
def update_event(event_id: str):
    """Only the fields present in the body are changed."""
    event = _load_active_event(event_id)
    data = read_json_body()

    try:
        patch = EventPatch.from_json(data)
    except ValueError as e:
        abort(400, description=str(e))

    patch.apply_to(event)
    db.session.commit()
    return jsonify(_serialize_event(event)), 200


@events_bp.route("/<event_id>", methods=["DELETE"])
@admin_required
def delete_event(event_id: str):
    """Soft-deletes the event and its media, then cleans up blobs best-effort."""
    event = _load_active_event(event_id)
    result = soft_delete_event_cascade(event, get_blob_store())
    return jsonify(result.to_dict()), 200


# ---------------------- MEMBERSHIP ----------------------


@events_bp.route("/<event_id>/members", methods=["POST"])
@login_required
def add_members(event_id: str):
    """
    Adds members. Accepts ``{"memberId": "u"}``, ``{"memberIds": [...]}`` or
    the patch form ``{"add": [...], "remove": [...]}``.
    Owner and caller always stay in the list.
    """
    caller = current_caller()
    event = _load_active_event(event_id)
    _require_admin_or_member(event)

    data = read_json_body()
    add = _id_list(data, "memberIds", "memberId", "add")
    remove = _id_list(data, "remove")
    if not add and not remove:
        abort(400, description="memberId or memberIds is required")

    for target in remove:
        _check_removal(event, target)

    current = [m for m in unique_ids(event.member_ids) if m not in remove]
    event.set_members([*current, *add, caller.user_id])
    event.updated_at = utcnow()
    db.session.commit()

    return _members_response(event)


@events_bp.route("/<event_id>/members", methods=["PUT"])
@admin_required
def replace_members(event_id: str):
    caller = current_caller()
    event = _load_active_event(event_id)

    data = read_json_body()
    if not isinstance(data.get("memberIds"), list):
        abort(400, description="memberIds must be a list")

    event.set_members([caller.user_id, *unique_ids(data["memberIds"])])
    event.updated_at = utcnow()
    db.session.commit()

    return _members_response(event)


@events_bp.route("/<event_id>/members/<member_id>", methods=["DELETE"])
@login_required
def remove_member(event_id: str, member_id: str):
    event = _load_active_event(event_id)
    _require_admin_or_member(event)

    target = member_id.strip()
    _check_removal(event, target)
    if not is_member(event, target):
        abort(404, description="Member not found")

    event.set_members([m for m in unique_ids(event.member_ids) if m != target])
    event.updated_at = utcnow()
    db.session.commit()

    return _members_response(event)
