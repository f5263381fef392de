import pytest

from config import TestConfig
from memory_wall import create_app
from memory_wall.extensions import db
from memory_wall.models import Media
from memory_wall.models.event import utcnow
from memory_wall.services.blob import BlobStore

ADMIN_PASSCODE = TestConfig.ADMIN_PASSCODE
HOST = TestConfig.DEFAULT_HOST_ID


class FakeBlobStore(BlobStore):
    """In-memory container. SAS signing and URL parsing are the real ones."""

    def __init__(self):
        super().__init__(
            account_name=TestConfig.STORAGE_ACCOUNT_NAME,
            account_key=TestConfig.STORAGE_ACCOUNT_KEY,
            container=TestConfig.MEDIA_CONTAINER_NAME,
        )
        self.blobs = {}
        self.unreadable = set()
        self.undeletable = set()
        self.deleted = []
        self.download_timeouts = []

    def put(self, blob_name: str, data: bytes) -> str:
        self.blobs[blob_name] = data
        return self.blob_url(blob_name)

    def open_download_stream(self, blob_url, timeout=30):
        self.download_timeouts.append(timeout)
        name = self.blob_name_from_url(blob_url)
        if name in self.unreadable or name not in self.blobs:
            raise IOError(f"cannot read {name}")
        data = self.blobs[name]
        return iter([data[i:i + 5] for i in range(0, len(data), 5)] or [b""])

    def delete_if_exists(self, blob_url):
        name = self.blob_name_from_url(blob_url)
        if name in self.undeletable:
            raise IOError(f"cannot delete {name}")
        self.deleted.append(name)
        return self.blobs.pop(name, None) is not None


# ──────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def app(blob_store):
    app = create_app(TestConfig)
    app.extensions["blob_store"] = blob_store
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def auth_headers(user=None, admin=False, host=None):
    headers = {}
    if user:
        headers["x-user-id"] = user
    if admin:
        headers["x-admin-passcode"] = ADMIN_PASSCODE
    if host:
        headers["x-host-id"] = host
    return headers


@pytest.fixture
def make_event(client):
    def _make(title="Party", user="alice", **extra):
        body = {"title": title, **extra}
        resp = client.post("/api/events", json=body, headers=auth_headers(user))
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()

    return _make


@pytest.fixture
def add_media(blob_store):
    """Registers a media row for an event, optionally with blob bytes."""

    def _add(event, file_name="photo.jpg", data=b"jpeg-bytes", content_type="image/jpeg", uploader="alice", media_id=None):
        blob_name = f"{event['hostId']}/{event['eventId']}/{len(blob_store.blobs) + len(blob_store.unreadable)}_{file_name}"
        if data is None:
            blob_store.unreadable.add(blob_name)
            blob_url = blob_store.blob_url(blob_name)
        else:
            blob_url = blob_store.put(blob_name, data)

        media = Media(
            media_id=media_id or f"media_{blob_name.rsplit('/', 1)[-1]}",
            host_id=event["hostId"],
            event_id=event["eventId"],
            uploader_id=uploader,
            blob_url=blob_url,
            file_name=file_name,
            content_type=content_type,
            size=len(data or b""),
            created_at=utcnow(),
        )
        db.session.add(media)
        db.session.commit()
        return media

    return _add
