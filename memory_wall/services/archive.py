# memory_wall/services/archive.py
"""Streaming ZIP export of an event's media.

Pipeline: plan entry names -> fetch each blob -> append it to the archive ->
write the central directory. Each blob is read completely into a spool file
before its entry starts, so a blob that cannot be read, at open time or
halfway through, is logged and skipped. A failure while writing the archive
itself propagates, so callers abort the response.
"""
from __future__ import annotations

import io
import itertools
import logging
import re
import zipfile
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from tempfile import SpooledTemporaryFile
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

logger = logging.getLogger(__name__)

# blobs above this size spill from memory to a temporary file
SPOOL_MAX_MEMORY = 16 * 1024 * 1024
COPY_CHUNK_SIZE = 1024 * 1024

EMPTY_ARCHIVE_ENTRY = "README.txt"
EMPTY_ARCHIVE_TEXT = "This event has no photos or videos yet.\n"

MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
}

_UNSAFE_ENTRY_CHARS = re.compile(r'[/\\?%*:|"<>]')
_WHITESPACE = re.compile(r"\s+")

# fetch(blob_url, timeout) -> iterable of byte chunks
Fetcher = Callable[[str, int], Iterable[bytes]]


@dataclass(frozen=True)
class ExportItem:
    media_id: str
    blob_url: Optional[str]
    file_name: Optional[str]
    content_type: Optional[str]

    @classmethod
    def from_media(cls, media) -> "ExportItem":
        return cls(
            media_id=media.media_id,
            blob_url=media.blob_url,
            file_name=media.file_name,
            content_type=media.content_type,
        )


def safe_file_name(name: Optional[str], fallback: str = "file") -> str:
    text = _UNSAFE_ENTRY_CHARS.sub("_", str(name or ""))
    text = _WHITESPACE.sub(" ", text).strip()
    return text or fallback


def guess_extension(content_type: Optional[str]) -> str:
    value = str(content_type or "").lower()
    for mime, ext in MIME_EXTENSIONS.items():
        if mime in value:
            return ext
    return ""


def unique_name(used: Set[str], desired: str) -> str:
    """``desired`` if unused, else ``stem_2.ext``, ``stem_3.ext``, ..."""
    if desired not in used:
        used.add(desired)
        return desired

    dot = desired.rfind(".")
    stem, ext = (desired[:dot], desired[dot:]) if dot > 0 else (desired, "")

    i = 2
    while f"{stem}_{i}{ext}" in used:
        i += 1
    name = f"{stem}_{i}{ext}"
    used.add(name)
    return name


def plan_entries(items: Sequence[ExportItem]) -> List[Tuple[ExportItem, str]]:
    """Archive entry name for every item that points at a blob."""
    used: Set[str] = set()
    planned = []
    for item in items:
        if not item.blob_url:
            continue
        base = safe_file_name(item.file_name or item.media_id, fallback="media")
        ext = "" if "." in base else guess_extension(item.content_type)
        planned.append((item, unique_name(used, f"{base}{ext}")))
    return planned


class _ChunkSink(io.RawIOBase):
    """Write-only, non-seekable buffer that zipfile streams into.

    zipfile falls back to data descriptors when ``tell``/``seek`` are not
    supported, so each entry can be emitted as soon as it is written.
    """

    def __init__(self):
        super().__init__()
        self._chunks = deque()

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        if data:
            self._chunks.append(bytes(data))
        return len(data)

    def drain(self) -> Iterator[bytes]:
        while self._chunks:
            yield self._chunks.popleft()


def _close_stream(stream) -> None:
    close = getattr(stream, "close", None)
    if close is not None:
        close()


def _spool_item(item: ExportItem, fetch: Fetcher, timeout: int) -> Optional[SpooledTemporaryFile]:
    """Read a whole blob into a spool file, or return None if it is unreadable.

    The blob is complete before its entry is opened, so a read that fails
    halfway skips the item instead of breaking the archive.
    """
    spooled = SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY)
    stream = None
    try:
        stream = fetch(item.blob_url, timeout)
        for chunk in stream:
            spooled.write(chunk)
    except Exception as exc:
        logger.warning("Failed to read blob for ZIP, skipping %s: %s", item.media_id, exc)
        spooled.close()
        return None
    finally:
        if stream is not None:
            _close_stream(stream)
    spooled.seek(0)
    return spooled


def _fetched(planned, fetch: Fetcher, timeout: int, concurrency: int):
    """Yield ``(name, spooled)`` in plan order; spooled is None for skipped items.

    With more than one worker, at most ``concurrency`` reads run ahead of the
    entry being written. The caller owns and closes every yielded spool file.
    """
    if concurrency <= 1:
        for item, name in planned:
            yield name, _spool_item(item, fetch, timeout)
        return

    entries = iter(planned)
    pending = deque()

    with ThreadPoolExecutor(max_workers=concurrency) as pool:

        def submit(count: int) -> None:
            for item, name in itertools.islice(entries, count):
                pending.append((name, pool.submit(_spool_item, item, fetch, timeout)))

        submit(concurrency)
        try:
            while pending:
                name, future = pending.popleft()
                spooled = future.result()
                submit(1)
                yield name, spooled
        finally:
            # generator closed early: drop queued reads and free finished ones
            for _, future in pending:
                if not future.cancel():
                    leftover = future.result()
                    if leftover is not None:
                        leftover.close()


def iter_event_archive(
    items: Sequence[ExportItem],
    fetch: Fetcher,
    timeout: int = 30,
    concurrency: int = 1,
) -> Iterator[bytes]:
    """Generate the bytes of a ZIP holding every readable item.

    An archive with no readable entries gets a short text entry so it is
    never empty.
    """
    sink = _ChunkSink()
    written = 0
    fetched = _fetched(plan_entries(items), fetch, timeout, concurrency)

    try:
        with zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
            for name, spooled in fetched:
                if spooled is None:
                    continue
                with spooled, zf.open(name, mode="w", force_zip64=True) as entry:
                    for chunk in iter(lambda: spooled.read(COPY_CHUNK_SIZE), b""):
                        entry.write(chunk)
                        yield from sink.drain()
                written += 1
                yield from sink.drain()

            if written == 0:
                zf.writestr(EMPTY_ARCHIVE_ENTRY, EMPTY_ARCHIVE_TEXT)
    finally:
        fetched.close()

    logger.info("ZIP finalized with %d of %d entries", written, len(items))
    yield from sink.drain()
