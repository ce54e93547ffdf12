"""
Image ingestion and the R2 object store.

An upload goes through four stages, strictly in order and without retries:

    validate  →  read original metadata  →  resize/re-encode  →  store

Any stage may reject the upload with a ``FolioError``; nothing is written
to R2 unless every earlier stage succeeded.
"""

from __future__ import annotations

import logging
import re
import secrets
from datetime import datetime
from io import BytesIO

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image, UnidentifiedImageError

from folio.content import utc_now
from folio.errors import (
    InvalidFolder,
    InvalidImage,
    PayloadTooLarge,
    StorageError,
    StorageWriteFailed,
    UnsupportedFormat,
)

log = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MiB
MAX_WIDTH = 1200
WEBP_QUALITY = 85
TARGET_FORMAT = "webp"
TARGET_MIME = "image/webp"
ALLOWED_FORMATS = {"jpeg", "jpg", "png", "gif", "webp", "avif"}
FOLDERS = ("blog", "art")
CACHE_CONTROL = "public, max-age=31536000"  # 1 year
FILENAME_STEM_MAX = 50

# Pillow reports some camera JPEGs as MPO
_FORMAT_ALIASES = {"mpo": "jpeg"}


################################################################################
# Stage 1 + 2: validate, read metadata
################################################################################
def _open(data: bytes) -> Image.Image:
    try:
        return Image.open(BytesIO(data))
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise InvalidImage("Could not process image") from exc


def _format_of(img: Image.Image) -> str:
    fmt = (img.format or "").lower()
    return _FORMAT_ALIASES.get(fmt, fmt)


def image_metadata(data: bytes) -> dict:
    """Width, height, format and byte size of an encoded image."""
    img = _open(data)
    return {
        "width": img.width,
        "height": img.height,
        "format": _format_of(img),
        "size": len(data),
    }


def validate_image(data: bytes) -> tuple[Image.Image, dict]:
    """
    Return the opened image plus its original metadata.

    The size cap is checked before anything is decoded.
    """
    if len(data) > MAX_UPLOAD_BYTES:
        raise PayloadTooLarge(
            f"File size exceeds {MAX_UPLOAD_BYTES // (1024 * 1024)}MB limit",
            size=len(data),
        )
    img = _open(data)
    fmt = _format_of(img)
    if not fmt:
        raise InvalidImage("Invalid image format")
    if fmt not in ALLOWED_FORMATS:
        raise UnsupportedFormat(f"Unsupported format: {fmt}", format=fmt)
    meta = {"width": img.width, "height": img.height, "format": fmt, "size": len(data)}
    return img, meta


################################################################################
# Stage 3: resize + re-encode
################################################################################
def _target_mode(img: Image.Image) -> str:
    if img.mode in ("RGB", "RGBA"):
        return img.mode
    has_alpha = img.mode in ("LA", "PA") or (
        img.mode == "P" and "transparency" in img.info
    )
    return "RGBA" if has_alpha else "RGB"


def transform_image(
    img: Image.Image,
    *,
    max_width: int = MAX_WIDTH,
    quality: int = WEBP_QUALITY,
    fmt: str = TARGET_FORMAT,
) -> bytes:
    """
    Shrink to *max_width* keeping the aspect ratio (never upscale), then
    always re-encode, even when no resize happened.
    """
    try:
        img.load()
        mode = _target_mode(img)
        if img.mode != mode:
            img = img.convert(mode)
        if img.width > max_width:
            height = max(1, round(img.height * max_width / img.width))
            img = img.resize((max_width, height), Image.Resampling.LANCZOS)
        buf = BytesIO()
        img.save(buf, format=fmt.upper(), quality=quality)
    except (OSError, ValueError) as exc:
        raise InvalidImage("Could not process image") from exc
    return buf.getvalue()


################################################################################
# Stage 4: store
################################################################################
def generate_filename(
    original_name: str, extension: str = TARGET_FORMAT, *, now: datetime | None = None
) -> str:
    """
    ``My Photo (1).JPG`` → ``my-photo-1-1718000000000-3fa9c1.webp``
    """
    stem = re.sub(r"\.[^/.]+$", "", (original_name or "").lower())
    stem = re.sub(r"[^a-z0-9]", "-", stem)
    stem = re.sub(r"-+", "-", stem).strip("-")
    stem = stem[:FILENAME_STEM_MAX].strip("-") or "image"
    millis = int((now or utc_now()).timestamp() * 1000)
    return f"{stem}-{millis}-{secrets.token_hex(3)}.{extension}"


class MediaStore:
    """
    Thin wrapper around an S3-compatible client (Cloudflare R2).

    *client* is anything with boto3's ``put_object`` / ``delete_object`` /
    ``list_objects_v2`` / ``get_object`` methods.
    """

    def __init__(self, client, bucket: str, public_base: str):
        self.client = client
        self.bucket = bucket
        self.public_base = public_base.rstrip("/")

    @classmethod
    def from_config(cls, cfg: dict[str, str]) -> "MediaStore":
        endpoint = (
            cfg.get("R2_ENDPOINT")
            or f"https://{cfg['R2_ACCOUNT_ID']}.r2.cloudflarestorage.com"
        )
        client = boto3.client(
            "s3",
            endpoint_url=endpoint,
            region_name="auto",
            aws_access_key_id=cfg["R2_ACCESS_KEY_ID"],
            aws_secret_access_key=cfg["R2_SECRET_ACCESS_KEY"],
        )
        base = cfg.get("R2_PUBLIC_BASE") or f"{endpoint.rstrip('/')}/{cfg['R2_BUCKET']}"
        return cls(client, cfg["R2_BUCKET"], base)

    def public_url(self, key: str) -> str:
        return f"{self.public_base}/{key.lstrip('/')}"

    def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl=CACHE_CONTROL,
            )
        except (BotoCoreError, ClientError) as exc:
            log.exception("R2 upload failed for %s", key)
            raise StorageWriteFailed(f"Upload failed: {exc}") from exc
        return self.public_url(key)

    def delete(self, key: str) -> bool:
        """False (and a log line) on failure; the caller decides what next."""
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError):
            log.exception("R2 delete failed for %s", key)
            return False
        return True

    def list(self, prefix: str | None = None) -> list[dict]:
        """Every object under *prefix*, in whatever order R2 returns them."""
        params = {"Bucket": self.bucket}
        if prefix:
            params["Prefix"] = prefix
        out: list[dict] = []
        try:
            while True:
                resp = self.client.list_objects_v2(**params)
                for obj in resp.get("Contents", []):
                    out.append(
                        {
                            "key": obj["Key"],
                            "url": self.public_url(obj["Key"]),
                            "size": obj.get("Size", 0),
                            "lastModified": obj.get("LastModified"),
                        }
                    )
                if not resp.get("IsTruncated"):
                    break
                params["ContinuationToken"] = resp["NextContinuationToken"]
        except (BotoCoreError, ClientError) as exc:
            log.exception("R2 list failed for prefix %r", prefix)
            raise StorageError(f"Listing failed: {exc}") from exc
        return out

    def get(self, key: str) -> bytes | None:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            log.exception("R2 get failed for %s", key)
            raise StorageError(f"Download failed: {exc}") from exc
        except BotoCoreError as exc:
            log.exception("R2 get failed for %s", key)
            raise StorageError(f"Download failed: {exc}") from exc
        return resp["Body"].read()


################################################################################
# Pipeline
################################################################################
def ingest_image(
    data: bytes,
    filename: str,
    folder: str,
    store: MediaStore,
    *,
    now: datetime | None = None,
) -> dict:
    """
    Validate, shrink, re-encode to webp and upload under ``<folder>/``.

    Returns the public URL, the key and both metadata sets so callers can
    show the before/after size.
    """
    if folder not in FOLDERS:
        raise InvalidFolder(folder, FOLDERS)

    img, original = validate_image(data)
    encoded = transform_image(img)
    processed = image_metadata(encoded)
    processed["format"] = TARGET_FORMAT

    key = f"{folder}/{generate_filename(filename, TARGET_FORMAT, now=now)}"
    url = store.put(key, encoded, TARGET_MIME)
    log.info(
        "stored %s (%dx%d, %d → %d bytes)",
        key,
        processed["width"],
        processed["height"],
        original["size"],
        processed["size"],
    )
    return {"url": url, "key": key, "original": original, "processed": processed}
