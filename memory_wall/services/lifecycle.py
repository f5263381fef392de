# memory_wall/services/lifecycle.py
"""Soft deletes and the best-effort blob cleanup that follows them.

There is no transaction across the cascade: the event is committed as deleted
first, then each media record on its own. A crash halfway leaves the event
deleted with some media still active.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from memory_wall.extensions import db
from memory_wall.models import Event, Media
from memory_wall.models.event import utcnow
from memory_wall.services.event_access import list_active_media

logger = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    attempted: int = 0
    failures: int = 0
    errors: List[str] = field(default_factory=list)

    def record_failure(self, blob_url: str, exc: Exception) -> None:
        self.failures += 1
        self.errors.append(f"{blob_url}: {exc}")


@dataclass
class CascadeResult:
    event_id: str
    deleted_media_count: int
    cleanup: CleanupReport

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "eventId": self.event_id,
            "deletedMediaCount": self.deleted_media_count,
            "blobDeleteFailures": self.cleanup.failures,
        }


def delete_blob_best_effort(blob_store, blob_url: Optional[str], report: CleanupReport) -> None:
    """Try to delete one blob; failures go into ``report`` and never raise."""
    if not blob_url:
        return
    report.attempted += 1
    try:
        blob_store.delete_if_exists(blob_url)
    except Exception as exc:
        logger.warning("Blob delete failed (ignored) for %s: %s", blob_url, exc)
        report.record_failure(blob_url, exc)


def soft_delete_media(media: Media, blob_store) -> CleanupReport:
    media.soft_delete()
    db.session.commit()

    report = CleanupReport()
    delete_blob_best_effort(blob_store, media.blob_url, report)
    return report


def soft_delete_event_cascade(event: Event, blob_store) -> CascadeResult:
    now = utcnow()
    event.soft_delete(now)
    db.session.commit()

    report = CleanupReport()
    deleted = 0
    for media in list_active_media(event.host_id, event.event_id, newest_first=False):
        media.soft_delete(now)
        db.session.commit()
        deleted += 1

        delete_blob_best_effort(blob_store, media.blob_url, report)

    logger.info(
        "Event %s deleted: %d media soft-deleted, %d blob delete failures",
        event.event_id, deleted, report.failures,
    )
    return CascadeResult(event_id=event.event_id, deleted_media_count=deleted, cleanup=report)
