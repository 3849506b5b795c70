"""
Firebase adapters.

Realtime Database collection store and Cloud Storage blob store built on
the firebase-admin SDK.
"""

import logging
import re
import uuid
from typing import Any, Dict, Optional
from urllib.parse import quote, unquote, urlparse

import firebase_admin
from firebase_admin import credentials, db, storage
from firebase_admin.exceptions import FirebaseError
from google.api_core import exceptions as gcloud_exceptions

from herbful.errors import UpstreamReadFailed, UpstreamWriteFailed
from herbful.utils.storage import BlobStore, CollectionStore, prune_empty

logger = logging.getLogger(__name__)

DOWNLOAD_HOST = "firebasestorage.googleapis.com"
_OBJECT_PATH = re.compile(r"/o/(.+?)(?:\?|$)")


def init_app(
    credentials_path: str,
    database_url: str,
    storage_bucket: Optional[str] = None,
    name: str = "herbful-admin"
) -> "firebase_admin.App":
    """
    Initialize a named Firebase app from a service-account file.

    Args:
        credentials_path: Path to the service-account JSON
        database_url: Realtime Database URL
        storage_bucket: Default Cloud Storage bucket (optional)
        name: App name, so the back-office never touches the default app

    Returns:
        The initialized firebase_admin App
    """
    options = {"databaseURL": database_url}
    if storage_bucket:
        options["storageBucket"] = storage_bucket

    app = firebase_admin.initialize_app(
        credentials.Certificate(credentials_path),
        options,
        name=name
    )
    logger.info(f"Initialized Firebase app {name} for {database_url}")
    return app


class FirebaseCollectionStore(CollectionStore):
    """Collection store over Realtime Database references."""

    def __init__(self, app: Optional["firebase_admin.App"] = None):
        self.app = app

    def _ref(self, path: str):
        return db.reference(f"/{path.strip('/')}", app=self.app)

    def get(self, path: str) -> Optional[Any]:
        try:
            value = self._ref(path).get()
        except (FirebaseError, ValueError) as e:
            logger.error(f"Failed to read {path}: {e}")
            raise UpstreamReadFailed(f"Failed to read {path}", details={"path": path, "cause": str(e)})
        return prune_empty(value)

    def set(self, path: str, value: Any) -> None:
        value = prune_empty(value)
        if value is None:
            self.delete(path)
            return
        try:
            self._ref(path).set(value)
        except (FirebaseError, ValueError) as e:
            logger.error(f"Failed to write {path}: {e}")
            raise UpstreamWriteFailed(f"Failed to write {path}", details={"path": path, "cause": str(e)})

    def update(self, path: str, patch: Dict[str, Any]) -> None:
        if not patch:
            return
        try:
            self._ref(path).update(dict(patch))
        except (FirebaseError, ValueError) as e:
            logger.error(f"Failed to update {path}: {e}")
            raise UpstreamWriteFailed(f"Failed to update {path}", details={"path": path, "cause": str(e)})

    def delete(self, path: str) -> None:
        try:
            self._ref(path).delete()
        except (FirebaseError, ValueError) as e:
            logger.error(f"Failed to delete {path}: {e}")
            raise UpstreamWriteFailed(f"Failed to delete {path}", details={"path": path, "cause": str(e)})


class FirebaseBlobStore(BlobStore):
    """
    Cloud Storage blob store returning Firebase download URLs.

    Download URLs have the form
    ``https://firebasestorage.googleapis.com/v0/b/<bucket>/o/<encoded path>?alt=media&token=<token>``.
    """

    def __init__(self, app: Optional["firebase_admin.App"] = None, bucket_name: Optional[str] = None):
        self.bucket = storage.bucket(bucket_name, app=app)

    def put(self, data: bytes, path: str, content_type: str) -> str:
        token = str(uuid.uuid4())
        blob = self.bucket.blob(path)
        blob.metadata = {"firebaseStorageDownloadTokens": token}
        try:
            blob.upload_from_string(data, content_type=content_type)
        except gcloud_exceptions.GoogleAPIError as e:
            logger.error(f"Failed to upload {path}: {e}")
            raise UpstreamWriteFailed(f"Failed to upload {path}", details={"path": path, "cause": str(e)})

        logger.info(f"Uploaded {len(data)} bytes to gs://{self.bucket.name}/{path}")
        return (
            f"https://{DOWNLOAD_HOST}/v0/b/{self.bucket.name}/o/"
            f"{quote(path, safe='')}?alt=media&token={token}"
        )

    def delete(self, url: str) -> None:
        object_path = self.object_path(url)
        if object_path is None:
            logger.warning(f"URL is not a Firebase Storage URL: {url}")
            return
        try:
            self.bucket.blob(object_path).delete()
        except gcloud_exceptions.NotFound:
            logger.debug(f"Blob already gone: {object_path}")
        except gcloud_exceptions.GoogleAPIError as e:
            raise UpstreamWriteFailed(
                f"Failed to delete {object_path}",
                details={"url": url, "cause": str(e)}
            )

    @staticmethod
    def object_path(url: str) -> Optional[str]:
        """Extract the decoded object path from a download URL, or None."""
        if not url or not isinstance(url, str) or DOWNLOAD_HOST not in url:
            return None
        match = _OBJECT_PATH.search(urlparse(url).path)
        if not match:
            return None
        return unquote(match.group(1))
