# memory_wall/services/blob.py
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional
from urllib.parse import unquote, urlparse

import requests
from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobSasPermissions, BlobServiceClient, generate_blob_sas
from flask import current_app

logger = logging.getLogger(__name__)

_UNSAFE_BLOB_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_DOWNLOAD_CHUNK = 1024 * 1024


@dataclass(frozen=True)
class SignedUrl:
    url: str
    blob_url: str
    blob_name: str
    expires_on: datetime

    @property
    def expires_on_iso(self) -> str:
        return self.expires_on.isoformat().replace("+00:00", "Z")


def sanitize_blob_file_name(file_name: str) -> str:
    return _UNSAFE_BLOB_CHARS.sub("_", str(file_name))


def _iter_response(resp: requests.Response) -> Iterator[bytes]:
    """Body chunks of a streamed response; the connection is released on close."""
    try:
        yield from resp.iter_content(chunk_size=_DOWNLOAD_CHUNK)
    finally:
        resp.close()


def build_upload_blob_name(host_id: str, event_id: str, file_name: str) -> str:
    """``hostId/eventId/<unique>_<sanitized file name>``."""
    return f"{host_id}/{event_id}/{uuid.uuid4()}_{sanitize_blob_file_name(file_name)}"


class BlobStore:
    """Media container in an Azure Storage account.

    SAS tokens are signed locally with the account key. Downloads and deletes
    go through an account-key authenticated client, so the container can stay
    private. Credentials are only checked when an operation needs them.
    """

    def __init__(
        self,
        account_name: Optional[str],
        account_key: Optional[str],
        container: str,
        account_url: Optional[str] = None,
    ):
        self.account_name = account_name
        self.account_key = account_key
        self.container = container
        self._account_url = account_url

    @classmethod
    def from_config(cls, config) -> "BlobStore":
        return cls(
            account_name=config.get("STORAGE_ACCOUNT_NAME"),
            account_key=config.get("STORAGE_ACCOUNT_KEY"),
            container=config.get("MEDIA_CONTAINER_NAME") or "media",
            account_url=config.get("STORAGE_ACCOUNT_URL"),
        )

    # ---------------------- URLS ----------------------

    @property
    def account_url(self) -> str:
        if self._account_url:
            return self._account_url.rstrip("/")
        return f"https://{self._require('STORAGE_ACCOUNT_NAME', self.account_name)}.blob.core.windows.net"

    def blob_url(self, blob_name: str) -> str:
        return f"{self.account_url}/{self.container}/{blob_name}"

    def blob_name_from_url(self, blob_url: str) -> str:
        """Blob name of a plain (unsigned) blob URL in this container."""
        path = urlparse(str(blob_url or "")).path
        marker = f"/{self.container}/"
        idx = path.find(marker)
        if idx == -1:
            raise ValueError("blobUrl does not contain expected container path")
        blob_name = unquote(path[idx + len(marker):])
        if not blob_name:
            raise ValueError("blobUrl has no blob name")
        return blob_name

    # ---------------------- SAS ----------------------

    def make_upload_sas(self, blob_name: str, minutes: int = 10) -> SignedUrl:
        return self._sign(blob_name, BlobSasPermissions(create=True, write=True), minutes)

    def make_read_sas(self, blob_url: str, minutes: int = 10) -> SignedUrl:
        return self._sign(self.blob_name_from_url(blob_url), BlobSasPermissions(read=True), minutes)

    def _sign(self, blob_name: str, permission: BlobSasPermissions, minutes: int) -> SignedUrl:
        account_name = self._require("STORAGE_ACCOUNT_NAME", self.account_name)
        account_key = self._require("STORAGE_ACCOUNT_KEY", self.account_key)
        expiry = datetime.now(timezone.utc) + timedelta(minutes=minutes)
        sas = generate_blob_sas(
            account_name=account_name,
            container_name=self.container,
            blob_name=blob_name,
            account_key=account_key,
            permission=permission,
            expiry=expiry,
        )
        blob_url = self.blob_url(blob_name)
        return SignedUrl(url=f"{blob_url}?{sas}", blob_url=blob_url, blob_name=blob_name, expires_on=expiry)

    # ---------------------- DATA ----------------------

    def _service(self) -> BlobServiceClient:
        return BlobServiceClient(
            account_url=self.account_url,
            credential={
                "account_name": self._require("STORAGE_ACCOUNT_NAME", self.account_name),
                "account_key": self._require("STORAGE_ACCOUNT_KEY", self.account_key),
            },
        )

    def open_download_stream(self, blob_url: str, timeout: int = 30) -> Iterator[bytes]:
        """Start downloading a blob and return an iterator over its chunks.

        The request is issued before returning, so a missing blob or a bad
        credential fails here rather than halfway through the iteration. When
        the authenticated read fails, the blob is fetched through a short read
        SAS instead; if that fails too the error propagates.
        """
        blob_name = self.blob_name_from_url(blob_url)
        try:
            blob_client = self._service().get_blob_client(self.container, blob_name)
            downloader = blob_client.download_blob(timeout=timeout)
            return downloader.chunks()
        except AzureError as exc:
            logger.warning("Authenticated download of %s failed (%s), trying signed URL", blob_name, exc)

        signed = self.make_read_sas(blob_url, minutes=5)
        resp = requests.get(signed.url, stream=True, timeout=timeout)
        if resp.status_code != 200:
            resp.close()
            raise IOError(f"signed download of {blob_name} returned HTTP {resp.status_code}")
        return _iter_response(resp)

    def delete_if_exists(self, blob_url: str) -> bool:
        """Delete a blob; returns False when it was already gone."""
        blob_name = self.blob_name_from_url(blob_url)
        blob_client = self._service().get_blob_client(self.container, blob_name)
        try:
            blob_client.delete_blob()
        except ResourceNotFoundError:
            return False
        return True

    @staticmethod
    def _require(name: str, value: Optional[str]) -> str:
        if not value:
            raise RuntimeError(f"Missing env var: {name}")
        return value


def init_blob_store(app) -> None:
    app.extensions["blob_store"] = BlobStore.from_config(app.config)


def get_blob_store() -> BlobStore:
    return current_app.extensions["blob_store"]
