import io
import threading
import time
import zipfile

import pytest

from memory_wall.services.archive import (
    EMPTY_ARCHIVE_ENTRY,
    ExportItem,
    guess_extension,
    iter_event_archive,
    plan_entries,
    safe_file_name,
    unique_name,
)


def _item(media_id, file_name=None, content_type=None, blob_url="https://acct/media/x"):
    return ExportItem(media_id=media_id, blob_url=f"{blob_url}/{media_id}", file_name=file_name, content_type=content_type)


def _fetch_from(blobs, broken=()):
    def fetch(blob_url, timeout):
        key = blob_url.rsplit("/", 1)[-1]
        if key in broken:
            raise IOError("unreadable")
        return iter([blobs[key]])

    return fetch


def _open(data: bytes) -> zipfile.ZipFile:
    zf = zipfile.ZipFile(io.BytesIO(data))
    assert zf.testzip() is None
    return zf


# ──────────────────────────────────────────────
# Entry naming
# ──────────────────────────────────────────────


class TestEntryNames:
    def test_safe_file_name(self):
        assert safe_file_name('a/b\\c?d%e*f:g|h"i<j>k.jpg') == "a_b_c_d_e_f_g_h_i_j_k.jpg"
        assert safe_file_name("  many   spaces\there ") == "many spaces here"
        assert safe_file_name("") == "file"
        assert safe_file_name(None, fallback="event") == "event"

    @pytest.mark.parametrize(
        "content_type, ext",
        [
            ("image/jpeg", ".jpg"),
            ("IMAGE/PNG", ".png"),
            ("image/gif", ".gif"),
            ("image/webp", ".webp"),
            ("video/mp4", ".mp4"),
            ("video/quicktime", ".mov"),
            ("application/pdf", ""),
            (None, ""),
        ],
    )
    def test_guess_extension(self, content_type, ext):
        assert guess_extension(content_type) == ext

    def test_unique_name_suffixes_before_extension(self):
        used = set()
        assert unique_name(used, "photo.jpg") == "photo.jpg"
        assert unique_name(used, "photo.jpg") == "photo_2.jpg"
        assert unique_name(used, "photo.jpg") == "photo_3.jpg"
        assert unique_name(used, "README") == "README"
        assert unique_name(used, "README") == "README_2"

    def test_unique_name_skips_taken_suffix(self):
        used = {"photo.jpg", "photo_2.jpg"}
        assert unique_name(used, "photo.jpg") == "photo_3.jpg"

    def test_plan_adds_extension_and_falls_back_to_media_id(self):
        planned = plan_entries(
            [
                _item("m1", "IMG_0001", "image/jpeg"),
                _item("m2", None, "video/quicktime"),
                _item("m3", "notes.txt", "image/png"),
            ]
        )
        assert [name for _, name in planned] == ["IMG_0001.jpg", "m2.mov", "notes.txt"]

    def test_plan_skips_items_without_blob(self):
        planned = plan_entries([ExportItem("m1", None, "a.jpg", "image/jpeg")])
        assert planned == []


# ──────────────────────────────────────────────
# Archive stream
# ──────────────────────────────────────────────


class TestIterEventArchive:
    def test_collisions_get_numbered(self):
        items = [_item("m1", "photo.jpg"), _item("m2", "photo.jpg")]
        data = b"".join(iter_event_archive(items, _fetch_from({"m1": b"one", "m2": b"two"})))
        zf = _open(data)
        assert zf.namelist() == ["photo.jpg", "photo_2.jpg"]
        assert zf.read("photo.jpg") == b"one"
        assert zf.read("photo_2.jpg") == b"two"

    def test_unreadable_blob_is_skipped(self):
        items = [_item("m1", "a.jpg"), _item("m2", "b.jpg"), _item("m3", "c.jpg")]
        fetch = _fetch_from({"m1": b"a", "m3": b"c"}, broken={"m2"})
        zf = _open(b"".join(iter_event_archive(items, fetch)))
        assert zf.namelist() == ["a.jpg", "c.jpg"]

    def test_empty_event_still_yields_valid_archive(self):
        data = b"".join(iter_event_archive([], _fetch_from({})))
        assert data
        zf = _open(data)
        assert zf.namelist() == [EMPTY_ARCHIVE_ENTRY]

    def test_all_unreadable_falls_back_to_note(self):
        zf = _open(b"".join(iter_event_archive([_item("m1", "a.jpg")], _fetch_from({}, broken={"m1"}))))
        assert zf.namelist() == [EMPTY_ARCHIVE_ENTRY]

    def test_parallel_fetch_keeps_order(self):
        blobs = {f"m{i}": f"blob-{i}".encode() for i in range(6)}
        items = [_item(key, f"{key}.jpg") for key in blobs]
        zf = _open(b"".join(iter_event_archive(items, _fetch_from(blobs, broken={"m3"}), concurrency=3)))
        assert zf.namelist() == ["m0.jpg", "m1.jpg", "m2.jpg", "m4.jpg", "m5.jpg"]
        assert zf.read("m5.jpg") == b"blob-5"

    def test_timeout_is_passed_to_fetch(self):
        seen = []

        def fetch(blob_url, timeout):
            seen.append(timeout)
            return iter([b"x"])

        b"".join(iter_event_archive([_item("m1", "a.jpg")], fetch, timeout=30))
        assert seen == [30]

    @pytest.mark.parametrize("concurrency", [1, 3])
    def test_blob_failing_halfway_is_skipped(self, concurrency):
        def fetch(blob_url, timeout):
            key = blob_url.rsplit("/", 1)[-1]
            yield f"{key}-start".encode()
            if key == "m2":
                raise IOError("read timeout mid-body")
            yield b"-end"

        items = [_item("m1", "a.jpg"), _item("m2", "b.jpg"), _item("m3", "c.jpg")]
        zf = _open(b"".join(iter_event_archive(items, fetch, concurrency=concurrency)))
        assert zf.namelist() == ["a.jpg", "c.jpg"]
        assert zf.read("c.jpg") == b"m3-start-end"

    def test_entries_are_written_as_zip64(self):
        zf = _open(b"".join(iter_event_archive([_item("m1", "a.jpg")], _fetch_from({"m1": b"abc"}))))
        assert zf.read("a.jpg") == b"abc"
        assert zf.getinfo("a.jpg").extract_version >= zipfile.ZIP64_VERSION


# ──────────────────────────────────────────────
# Fetch window and stream cleanup
# ──────────────────────────────────────────────


class TestFetchResources:
    def test_parallel_reads_stay_within_window(self):
        fetched = []
        lock = threading.Lock()

        def fetch(blob_url, timeout):
            with lock:
                fetched.append(blob_url)
            return iter([b"x" * 10])

        items = [_item(f"m{i}", f"m{i}.jpg") for i in range(20)]
        archive = iter_event_archive(items, fetch, concurrency=2)
        next(archive)
        time.sleep(0.3)
        assert len(fetched) <= 3
        archive.close()

    def test_parallel_export_still_complete_with_window(self):
        blobs = {f"m{i}": f"blob-{i}".encode() for i in range(10)}
        items = [_item(key, f"{key}.jpg") for key in blobs]
        zf = _open(b"".join(iter_event_archive(items, _fetch_from(blobs), concurrency=2)))
        assert zf.namelist() == [f"m{i}.jpg" for i in range(10)]

    def test_streams_closed_after_read_and_after_failure(self):
        closed = []

        def fetch(blob_url, timeout):
            key = blob_url.rsplit("/", 1)[-1]
            try:
                yield b"data"
                if key == "m2":
                    raise IOError("reset")
            finally:
                closed.append(key)

        items = [_item("m1", "a.jpg"), _item("m2", "b.jpg")]
        b"".join(iter_event_archive(items, fetch))
        assert closed == ["m1", "m2"]

    def test_abandoned_archive_cancels_queued_reads(self):
        fetched = []

        def fetch(blob_url, timeout):
            fetched.append(blob_url)
            return iter([b"x"])

        items = [_item(f"m{i}", f"m{i}.jpg") for i in range(10)]
        archive = iter_event_archive(items, fetch, concurrency=2)
        next(archive)
        archive.close()
        count = len(fetched)
        time.sleep(0.1)
        assert len(fetched) == count <= 3
