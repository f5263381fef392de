# memory_wall/services/event_access.py
from typing import List, Optional

from flask import abort

from memory_wall.extensions import db
from memory_wall.models import Event, Media, RecordStatus
from memory_wall.utils.auth import CallerContext


def load_event_by_host_and_id(host_id: str, event_id: str) -> Optional[Event]:
    """The event with this id in the host's partition, deleted or not."""
    return db.session.execute(
        db.select(Event).where(Event.host_id == host_id, Event.event_id == event_id).limit(1)
    ).scalar_one_or_none()


def is_member(event: Optional[Event], user_id: Optional[str]) -> bool:
    if event is None or not user_id:
        return False
    return event.has_member(user_id)


def require_event_access(caller: CallerContext, event_id: str) -> Event:
    """Active event the caller may see: 404 when missing or deleted, 403 otherwise."""
    event = load_event_by_host_and_id(caller.host_id, event_id)
    if event is None or event.is_deleted:
        abort(404, description="Not found")
    if not caller.is_admin and not is_member(event, caller.user_id):
        abort(403, description="Forbidden")
    return event


def list_active_events(host_id: str) -> List[Event]:
    return list(
        db.session.execute(
            db.select(Event)
            .where(Event.host_id == host_id, Event.status != RecordStatus.DELETED)
            .order_by(Event.created_at.desc())
        ).scalars()
    )


def list_active_media(host_id: str, event_id: str, newest_first: bool = True) -> List[Media]:
    order = Media.created_at.desc() if newest_first else Media.created_at.asc()
    return list(
        db.session.execute(
            db.select(Media)
            .where(
                Media.host_id == host_id,
                Media.event_id == event_id,
                Media.status != RecordStatus.DELETED,
            )
            .order_by(order)
        ).scalars()
    )


def load_media(host_id: str, event_id: str, media_id: str) -> Optional[Media]:
    return db.session.execute(
        db.select(Media)
        .where(Media.host_id == host_id, Media.event_id == event_id, Media.media_id == media_id)
        .limit(1)
    ).scalar_one_or_none()
