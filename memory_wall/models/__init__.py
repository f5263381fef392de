from .event import Event, EventPatch, InvalidTransition, RecordStatus, Visibility
from .media import Media, MediaType

__all__ = [
    "Event",
    "EventPatch",
    "InvalidTransition",
    "Media",
    "MediaType",
    "RecordStatus",
    "Visibility",
]
