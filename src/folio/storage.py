"""
Local object storage for Folio.

Objects live under ``<root>/<bucket>/<identity>/<random>.<ext>`` and are served
by the web app at ``<url_prefix>/<bucket>/<path>``. Only the object path is
stored in the database; public URLs are built at render time.
"""

import logging
import secrets
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Set, Tuple

from werkzeug.security import safe_join
from werkzeug.utils import secure_filename

from .errors import StorageError

logger = logging.getLogger(__name__)

AVATARS_BUCKET = "avatars"
PROJECT_IMAGES_BUCKET = "project-images"
BUCKETS = (AVATARS_BUCKET, PROJECT_IMAGES_BUCKET)

ALLOWED_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp"})


def file_extension(filename: str) -> str:
    """Lower-cased extension without the dot ("" when there is none)."""
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def object_path_for(identity: str, filename: str) -> str:
    """
    Build a fresh object key for an upload.

    Args:
        identity: Owner of the object; becomes the first path segment.
        filename: Client file name; only its extension is kept.

    Returns:
        A key like ``"<identity>/<random>.png"``.

    Raises:
        StorageError: Unsupported extension or unusable identity.
    """
    ext = file_extension(filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise StorageError(
            f"Unsupported file type '{ext or filename}'. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )
    if not identity or secure_filename(identity) != identity:
        raise StorageError("Invalid owner for upload")
    return f"{identity}/{secrets.token_hex(8)}.{ext}"


def timestamp_version(value: Optional[str]) -> Optional[int]:
    """
    Epoch milliseconds of an ISO timestamp, used as a cache-busting token.

    Naive timestamps are treated as UTC (that is how the backend stores them).
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


class BucketStorage:
    """Bucketed file storage on the local filesystem."""

    def __init__(self, root: Path, url_prefix: str = "/storage", max_upload_bytes: int = 1024 * 1024):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        self.max_upload_bytes = max_upload_bytes

    def _bucket_dir(self, bucket: str) -> Path:
        if bucket not in BUCKETS:
            raise StorageError(f"Bucket not found: {bucket}")
        return self.root / bucket

    def upload(self, bucket: str, identity: str, filename: str, data: bytes) -> str:
        """
        Store ``data`` in ``bucket`` under a new key owned by ``identity``.

        Returns:
            The object path (relative to the bucket).

        Raises:
            StorageError: Unknown bucket, bad file type, empty or oversized
                payload, or a filesystem failure.
        """
        bucket_dir = self._bucket_dir(bucket)
        if not data:
            raise StorageError("Uploaded file is empty")
        if len(data) > self.max_upload_bytes:
            raise StorageError(
                f"File is too large ({len(data)} bytes, limit {self.max_upload_bytes} bytes)"
            )

        path = object_path_for(identity, filename)
        target = bucket_dir / path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.warning(f"Upload to {bucket} failed: {e}")
            raise StorageError(f"Could not store file: {e}") from e

        logger.info(f"Stored {len(data)} bytes in {bucket}/{path}")
        return path

    def resolve(self, bucket: str, path: str) -> Optional[Path]:
        """Filesystem location of an object, or None when it is absent or unsafe."""
        if bucket not in BUCKETS:
            return None
        joined = safe_join(str(self.root / bucket), path)
        if joined is None:
            return None
        candidate = Path(joined)
        return candidate if candidate.is_file() else None

    def public_url(self, bucket: str, path: Optional[str], version: Optional[int] = None) -> Optional[str]:
        """
        Public URL for an object path.

        Absolute URLs pass through untouched. ``version`` is appended as a
        ``t`` query parameter to defeat browser caching.
        """
        if not path:
            return None
        if path.startswith(("http://", "https://")):
            url = path
        else:
            url = f"{self.url_prefix}/{bucket}/{path.lstrip('/')}"
        if version is not None:
            url += ("&" if "?" in url else "?") + f"t={version}"
        return url


class UploadGate:
    """Tracks uploads in flight so a control cannot start a second one."""

    def __init__(self):
        self._lock = threading.Lock()
        self._active: Set[Tuple[str, str]] = set()

    def is_busy(self, identity: str, control: str) -> bool:
        with self._lock:
            return (identity, control) in self._active

    @contextmanager
    def hold(self, identity: str, control: str) -> Iterator[None]:
        key = (identity, control)
        with self._lock:
            if key in self._active:
                raise StorageError("An upload is already in progress")
            self._active.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(key)
