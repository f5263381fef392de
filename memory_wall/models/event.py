# memory_wall/models/event.py
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import JSON, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from memory_wall.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"


class Visibility(str, enum.Enum):
    PRIVATE = "PRIVATE"
    PUBLIC = "PUBLIC"


class InvalidTransition(Exception):
    """Raised when a lifecycle change is requested from the wrong state."""


class Event(db.Model):
    __tablename__ = "events"

    event_id:       Mapped[str] = mapped_column(String(80), primary_key=True)
    host_id:        Mapped[str] = mapped_column(String(120), nullable=False, index=True)

    title:          Mapped[str] = mapped_column(String(200), nullable=False)
    description:    Mapped[str] = mapped_column(db.Text, default="", nullable=False)
    starts_at:      Mapped[Optional[datetime]] = mapped_column()
    ends_at:        Mapped[Optional[datetime]] = mapped_column()
    visibility:     Mapped[Visibility] = mapped_column(Enum(Visibility), default=Visibility.PRIVATE, nullable=False)
    status:         Mapped[RecordStatus] = mapped_column(Enum(RecordStatus), default=RecordStatus.ACTIVE, nullable=False)

    owner_id:       Mapped[str] = mapped_column(String(200), nullable=False)
    member_ids:     Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)

    created_at:     Mapped[datetime] = mapped_column(default=utcnow, nullable=False, index=True)
    updated_at:     Mapped[Optional[datetime]] = mapped_column()
    deleted_at:     Mapped[Optional[datetime]] = mapped_column()

    @property
    def is_deleted(self) -> bool:
        return self.status == RecordStatus.DELETED

    def has_member(self, user_id: str) -> bool:
        if not isinstance(self.member_ids, list):
            return False
        return str(user_id) in [str(m) for m in self.member_ids]

    def set_members(self, member_ids) -> None:
        """Store ``member_ids`` deduplicated, with the owner always first."""
        self.member_ids = unique_ids([self.owner_id, *member_ids])

    def soft_delete(self, now: Optional[datetime] = None) -> None:
        if self.is_deleted:
            raise InvalidTransition(f"event {self.event_id} is already deleted")
        self.status = RecordStatus.DELETED
        self.deleted_at = now or utcnow()

    def __repr__(self) -> str:
        return f"<Event id={self.event_id!r} host={self.host_id!r} title={self.title!r}>"


def unique_ids(values) -> List[str]:
    """Stringify, trim and deduplicate ids, keeping first-seen order."""
    seen = []
    for value in values or []:
        if value is None:
            continue
        text = str(value).strip()
        if text and text not in seen:
            seen.append(text)
    return seen


def parse_timestamp(value: Any, field_name: str) -> Optional[datetime]:
    """ISO-8601 string or null. Raises ValueError for anything else."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be an ISO-8601 string or null")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"{field_name} must be an ISO-8601 string or null") from None


def parse_title(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("title is required")
    return value.strip()


def parse_visibility(value: Any) -> Visibility:
    try:
        return Visibility(str(value).upper())
    except ValueError:
        raise ValueError("visibility must be PRIVATE or PUBLIC") from None


_MISSING = object()


@dataclass
class EventPatch:
    """Partial update of an event. Fields left as ``_MISSING`` are not touched."""

    title: Any = _MISSING
    description: Any = _MISSING
    starts_at: Any = _MISSING
    ends_at: Any = _MISSING
    visibility: Any = _MISSING

    @classmethod
    def from_json(cls, data: dict) -> "EventPatch":
        patch = cls()
        if "title" in data:
            patch.title = parse_title(data["title"])
        if "description" in data:
            patch.description = "" if data["description"] is None else str(data["description"])
        if "startsAt" in data:
            patch.starts_at = parse_timestamp(data["startsAt"], "startsAt")
        if "endsAt" in data:
            patch.ends_at = parse_timestamp(data["endsAt"], "endsAt")
        if "visibility" in data:
            patch.visibility = parse_visibility(data["visibility"])
        return patch

    def apply_to(self, event: Event, now: Optional[datetime] = None) -> Event:
        if event.is_deleted:
            raise InvalidTransition(f"event {event.event_id} is deleted")
        if self.title is not _MISSING:
            event.title = self.title
        if self.description is not _MISSING:
            event.description = self.description
        if self.starts_at is not _MISSING:
            event.starts_at = self.starts_at
        if self.ends_at is not _MISSING:
            event.ends_at = self.ends_at
        if self.visibility is not _MISSING:
            event.visibility = self.visibility
        event.updated_at = now or utcnow()
        return event
