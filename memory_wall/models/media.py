# memory_wall/models/media.py
from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from memory_wall.extensions import db
from .event import InvalidTransition, RecordStatus, utcnow


class MediaType(str, enum.Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


class Media(db.Model):
    __tablename__ = "media"

    media_id:       Mapped[str] = mapped_column(String(120), primary_key=True)
    host_id:        Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    event_id:       Mapped[str] = mapped_column(String(80), nullable=False, index=True)

    blob_url:       Mapped[str] = mapped_column(String(1024), nullable=False)
    file_name:      Mapped[str] = mapped_column(String(500), nullable=False)
    content_type:   Mapped[str] = mapped_column(String(120), default="application/octet-stream", nullable=False)
    size:           Mapped[int] = mapped_column(default=0, nullable=False)
    type:           Mapped[MediaType] = mapped_column(Enum(MediaType), default=MediaType.IMAGE, nullable=False)
    uploader_id:    Mapped[str] = mapped_column(String(200), nullable=False)
    status:         Mapped[RecordStatus] = mapped_column(Enum(RecordStatus), default=RecordStatus.ACTIVE, nullable=False)

    created_at:     Mapped[datetime] = mapped_column(default=utcnow, nullable=False, index=True)
    deleted_at:     Mapped[Optional[datetime]] = mapped_column()

    @property
    def is_deleted(self) -> bool:
        return self.status == RecordStatus.DELETED

    def soft_delete(self, now: Optional[datetime] = None) -> None:
        if self.is_deleted:
            raise InvalidTransition(f"media {self.media_id} is already deleted")
        self.status = RecordStatus.DELETED
        self.deleted_at = now or utcnow()

    def __repr__(self) -> str:
        return f"<Media id={self.media_id!r} event_id={self.event_id!r} name={self.file_name!r}>"
