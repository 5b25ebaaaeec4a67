"""Media hosting: the Cloudinary client, a local encrypted store, and URL templating.

Both backends share one contract::

    upload(file, folder=..., tags=..., category=..., description=...) -> dict
    delete(media_id) -> bool

and hand back URLs with an ``/upload/`` segment, which is where the
transformation helpers splice in their options.
"""
import hashlib
import logging
import os
import re
import time
from dataclasses import dataclass
from datetime import datetime

import httpx
from werkzeug.utils import secure_filename

from errors import NetworkError, NotFound
from utils import decrypt_bytes, encrypt_bytes
from validators import FOLDER_STRUCTURE

log = logging.getLogger(__name__)

TRANSFORMS = {
    "thumbnail": {"width": 200, "height": 200, "crop": "fill", "quality": "auto", "format": "auto"},
    "medium": {"width": 800, "height": 600, "crop": "limit", "quality": "auto:good", "format": "auto"},
    "large": {"width": 1200, "height": 800, "crop": "limit", "quality": "auto:good"},
    "full": {"quality": "auto:good", "format": "auto"},
}

PREFIXES = {
    "format": "f",
    "quality": "q",
    "width": "w",
    "height": "h",
    "crop": "c",
    "start_offset": "so",
}

DOCUMENT_ICON = "/assets/icons/document-icon.png"


@dataclass
class UploadFile:
    filename: str
    data: bytes
    mime_type: str

    @property
    def size(self):
        return len(self.data)

    @classmethod
    def from_storage(cls, storage):
        """Read a werkzeug ``FileStorage`` fully into memory."""
        return cls(secure_filename(storage.filename or ""), storage.read(), storage.mimetype or "application/octet-stream")


def folder_path(category):
    return FOLDER_STRUCTURE.get(category, FOLDER_STRUCTURE["others"])


def transformed_url(url, transformations):
    """Insert a transformation segment (``w_200,h_200,...``) after ``/upload/``."""
    if not url or not transformations:
        return url
    segment = ",".join(f"{PREFIXES.get(key, key)}_{value}" for key, value in transformations.items())
    if not segment:
        return url
    return url.replace("/upload/", f"/upload/{segment}/", 1)


def thumbnail_url(url, resource_type="image"):
    if not url:
        return None
    if resource_type == "image":
        return transformed_url(url, TRANSFORMS["thumbnail"])
    if resource_type == "raw":
        return DOCUMENT_ICON
    if resource_type == "video":
        return transformed_url(url, {**TRANSFORMS["thumbnail"], "format": "jpg", "start_offset": 1})
    return None


def optimize_for_web(url, **options):
    optimizations = {"quality": "auto:good", "format": "auto", "fetch_format": "auto"}
    optimizations.update(options)
    return transformed_url(url, optimizations)


def responsive_urls(url):
    return {
        "thumbnail": transformed_url(url, TRANSFORMS["thumbnail"]),
        "medium": transformed_url(url, TRANSFORMS["medium"]),
        "large": transformed_url(url, TRANSFORMS["large"]),
        "original": url,
    }


TRANSFORM_SEGMENT_RE = re.compile(r"^[a-z_]+_[^/,]+(?:,[a-z_]+_[^/,]+)*/")


def strip_transformations(path):
    """Drop a leading transformation segment from an ``/upload/`` path."""
    return TRANSFORM_SEGMENT_RE.sub("", path, count=1)


def resource_type_for(mime_type):
    if mime_type and mime_type.startswith("image/"):
        return "image"
    if mime_type and mime_type.startswith("video/"):
        return "video"
    return "raw"


def upload_tags(folder, category):
    return ["secure-docs", folder, str(datetime.now().year), category or "general"]


class CloudinaryClient:
    API_BASE = "https://api.cloudinary.com/v1_1"

    def __init__(self, cloud_name, upload_preset, base_folder="secure-documents",
                 api_key=None, api_secret=None, http=None, timeout=30.0):
        self.cloud_name = cloud_name
        self.upload_preset = upload_preset
        self.base_folder = base_folder
        self.api_key = api_key
        self.api_secret = api_secret
        self.http = http or httpx.Client(timeout=timeout)

    @classmethod
    def from_config(cls, config, http=None):
        return cls(
            config["CLOUDINARY_CLOUD_NAME"],
            config["CLOUDINARY_UPLOAD_PRESET"],
            base_folder=config.get("CLOUDINARY_BASE_FOLDER", "secure-documents"),
            api_key=config.get("CLOUDINARY_API_KEY"),
            api_secret=config.get("CLOUDINARY_API_SECRET"),
            http=http,
            timeout=config.get("MEDIA_TIMEOUT", 30.0),
        )

    def _endpoint(self, resource_type, action):
        return f"{self.API_BASE}/{self.cloud_name}/{resource_type}/{action}"

    def upload(self, file, folder="documents", tags=None, category=None, description=""):
        resource_type = "auto"
        form = {
            "upload_preset": self.upload_preset,
            "folder": f"{self.base_folder}/{folder}",
            "tags": ",".join(tags or upload_tags(folder, category)),
            "context": f"alt={file.filename}|caption={description or ''}",
        }
        try:
            response = self.http.post(
                self._endpoint(resource_type, "upload"),
                data=form,
                files={"file": (file.filename, file.data, file.mime_type)},
            )
        except httpx.HTTPError as exc:
            log.exception("Upload to Cloudinary failed")
            raise NetworkError(f"Upload failed: {exc}") from exc

        if response.is_error:
            try:
                message = response.json().get("error", {}).get("message")
            except ValueError:
                message = None
            log.warning("Cloudinary rejected upload (%s): %s", response.status_code, message)
            raise NetworkError(message or "Upload failed")

        result = response.json()
        url = result["secure_url"]
        return {
            "url": url,
            "media_id": result["public_id"],
            "bytes": result.get("bytes", file.size),
            "mime_type": file.mime_type,
            "format": result.get("format"),
            "resource_type": result.get("resource_type"),
            "thumbnail_url": thumbnail_url(url, result.get("resource_type")),
            "medium_url": transformed_url(url, TRANSFORMS["medium"]),
            "filename": result.get("original_filename", file.filename),
        }

    def _signature(self, params):
        payload = "&".join(f"{key}={params[key]}" for key in sorted(params))
        return hashlib.sha1((payload + self.api_secret).encode("utf-8")).hexdigest()

    def delete(self, media_id, resource_type="image"):
        if not (self.api_key and self.api_secret):
            log.warning("Cloudinary API credentials missing; %s left in place", media_id)
            return False
        params = {"public_id": media_id, "timestamp": int(time.time())}
        form = dict(params, api_key=self.api_key, signature=self._signature(params))
        try:
            response = self.http.post(self._endpoint(resource_type, "destroy"), data=form)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Delete failed: {exc}") from exc
        return not response.is_error and response.json().get("result") == "ok"


class LocalMediaStore:
    """Keeps uploads on local disk, AES-GCM encrypted at rest.

    Delivery URLs look like ``<base_url>/media/upload/<folder>/<name>`` and
    are served back through :meth:`read`.
    """

    def __init__(self, upload_dir, key, base_url=""):
        self.upload_dir = upload_dir
        self.key = key
        self.base_url = base_url.rstrip("/")
        os.makedirs(upload_dir, exist_ok=True)

    def _path(self, media_id):
        parts = media_id.split("/")
        if not all(parts) or ".." in parts or "\\" in media_id:
            raise NotFound("Unknown media id")
        return os.path.join(self.upload_dir, *parts) + ".bin"

    def upload(self, file, folder="documents", tags=None, category=None, description=""):
        media_id = f"{folder}/{os.urandom(10).hex()}"
        path = self._path(media_id)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(encrypt_bytes(self.key, file.data))
        log.info("Stored %s (%d bytes) as %s", file.filename, file.size, media_id)

        url = f"{self.base_url}/media/upload/{media_id}"
        resource_type = resource_type_for(file.mime_type)
        return {
            "url": url,
            "media_id": media_id,
            "bytes": file.size,
            "mime_type": file.mime_type,
            "format": os.path.splitext(file.filename)[1].lstrip(".") or None,
            "resource_type": resource_type,
            "thumbnail_url": thumbnail_url(url, resource_type),
            "medium_url": transformed_url(url, TRANSFORMS["medium"]),
            "filename": file.filename,
        }

    def read(self, media_id) -> bytes:
        path = self._path(media_id)
        if not os.path.exists(path):
            raise NotFound("Unknown media id")
        with open(path, "rb") as f:
            return decrypt_bytes(self.key, f.read())

    def delete(self, media_id, resource_type=None):
        path = self._path(media_id)
        if not os.path.exists(path):
            return False
        os.remove(path)
        return True
