from __future__ import annotations
import hmac
import io
import logging
import mimetypes
import os
import re

from PIL import Image, ImageOps, UnidentifiedImageError

from errors import NotAuthenticated, UpstreamFailure
from tools import Clock, system_clock

logger = logging.getLogger(__name__)

BUCKET_AVATARS = "avatars"
BUCKET_WORKOUT_IMAGES = "workout-images"
BUCKET_WORKOUT_VIDEOS = "workout-videos"

_YOUTUBE_PATTERNS = (
    re.compile(r"youtu\.be/([A-Za-z0-9_-]+)"),
    re.compile(r"v=([A-Za-z0-9_-]+)"),
    re.compile(r"embed/([A-Za-z0-9_-]+)"),
)


def youtube_embed_url(url: str | None) -> str | None:
    """Return an embeddable player URL for a YouTube link."""
    if not url:
        return None
    for pattern in _YOUTUBE_PATTERNS:
        match = pattern.search(url)
        if match:
            return (
                f"https://www.youtube.com/embed/{match.group(1)}"
                "?playsinline=1&autoplay=1&rel=0"
            )
    return None


def cache_bust(url: str | None, stamp: int) -> str | None:
    if not url:
        return None
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}t={stamp}"


class LocalBlobStore:
    """Store blobs under ``root/bucket/path`` and serve them from ``base_url``.

    When ``api_key`` is set every upload must present the same credential.
    """

    def __init__(
        self,
        root: str = "media",
        base_url: str = "http://localhost:8000/media",
        api_key: str | None = None,
    ) -> None:
        self.root = root
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    def _authorize(self, credential: str | None) -> None:
        if self.api_key is None:
            return
        if not hmac.compare_digest((credential or "").encode(), self.api_key.encode()):
            logger.warning("blob upload rejected: bad storage credential")
            raise NotAuthenticated("Storage credential missing or invalid.")

    def _target(self, bucket: str, path: str) -> str:
        parts = [p for p in path.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts) or "/" in bucket:
            raise ValueError(f"invalid blob path: {bucket}/{path}")
        return os.path.join(self.root, bucket, *parts)

    def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        credential: str | None = None,
    ) -> str:
        """Write ``data`` (replacing any existing blob) and return its public URL."""
        self._authorize(credential)
        target = self._target(bucket, path)
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "wb") as f:
                f.write(data)
        except OSError as exc:
            logger.error("upload to %s/%s failed: %s", bucket, path, exc)
            raise UpstreamFailure(str(exc)) from exc
        logger.debug("stored %d bytes (%s) at %s/%s", len(data), content_type, bucket, path)
        return self.public_url(bucket, path)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/{bucket}/{path.lstrip('/')}"

    def read(self, bucket: str, path: str) -> bytes:
        try:
            with open(self._target(bucket, path), "rb") as f:
                return f.read()
        except OSError as exc:
            raise UpstreamFailure(str(exc)) from exc


class MediaService:
    """Upload avatars, workout photos and workout videos for a user."""

    def __init__(
        self,
        blob_store: LocalBlobStore,
        clock: Clock = system_clock,
        image_size: int = 512,
        quality: int = 90,
    ) -> None:
        self.blobs = blob_store
        self.clock = clock
        self.image_size = image_size
        self.quality = quality

    def _square_jpeg(self, data: bytes) -> bytes:
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError("not a supported image") from exc
        img = ImageOps.exif_transpose(img).convert("RGB")
        img = ImageOps.fit(img, (self.image_size, self.image_size))
        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=self.quality)
        return buf.getvalue()

    def _millis(self) -> int:
        return int(self.clock().timestamp() * 1000)

    def upload_avatar(
        self, user_id: str | None, data: bytes, credential: str | None = None
    ) -> str:
        if not user_id:
            raise NotAuthenticated()
        return self.blobs.upload(
            BUCKET_AVATARS,
            f"{user_id}/avatar.jpg",
            self._square_jpeg(data),
            "image/jpeg",
            credential,
        )

    def upload_workout_photo(
        self, user_id: str | None, data: bytes, credential: str | None = None
    ) -> str:
        if not user_id:
            raise NotAuthenticated()
        return self.blobs.upload(
            BUCKET_WORKOUT_IMAGES,
            f"{user_id}/{self._millis()}.jpg",
            self._square_jpeg(data),
            "image/jpeg",
            credential,
        )

    def upload_workout_video(
        self,
        user_id: str | None,
        data: bytes,
        content_type: str = "video/mp4",
        credential: str | None = None,
    ) -> str:
        if not user_id:
            raise NotAuthenticated()
        if not data:
            raise ValueError("empty video")
        ext = (mimetypes.guess_extension(content_type) or ".mp4").lstrip(".")
        return self.blobs.upload(
            BUCKET_WORKOUT_VIDEOS, f"{user_id}/{self._millis()}.{ext}",
            data,
            content_type,
            credential,
        )
