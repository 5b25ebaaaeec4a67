"""Public share links for documents.

A document is Private, Shared, or Expired. Expired is never stored; it is
what a Shared document with ``share_expiry`` in the past looks like at read
time, and ``share_enabled`` stays True until the owner disables it.
"""
import enum
import io
import logging
from datetime import timedelta
from urllib.parse import quote, unquote, urlsplit

import qrcode

from errors import (
    LinkExpired, NotFound, NotShared, ServiceError, ShareUnavailable, StoreUnavailable,
    ValidationError, failure,
)
from utils import utcnow
from validators import validate_expiry_hours

log = logging.getLogger(__name__)

SHARE_PATH = "/shared/"


class ShareState(enum.Enum):
    PRIVATE = "private"
    SHARED = "shared"
    EXPIRED = "expired"


def generate_share_url(document_id, base_url):
    return f"{base_url.rstrip('/')}{SHARE_PATH}{quote(document_id, safe='')}"


def parse_document_id(url):
    """The document id a share URL points at, or ``None`` for other URLs."""
    path = urlsplit(url).path
    if not path.startswith(SHARE_PATH):
        return None
    remainder = path[len(SHARE_PATH):]
    if not remainder or "/" in remainder:
        return None
    return unquote(remainder)


def share_state(record, now):
    if not record.get("share_enabled"):
        return ShareState.PRIVATE
    expiry = record.get("share_expiry")
    # a view at the exact expiry instant still succeeds
    if expiry is not None and now > expiry:
        return ShareState.EXPIRED
    return ShareState.SHARED


def public_projection(record, owner_name):
    return {
        "id": record["id"],
        "title": record["title"],
        "description": record["description"],
        "category": record["category"],
        "document_type": record["document_type"],
        "media_url": record["media_url"],
        "mime_type": record["mime_type"],
        "file_size": record["file_size"],
        "created_at": record["created_at"],
        "view_count": record["view_count"],
        "shared_by": {"name": owner_name or "Anonymous"},
    }


def qr_png(data) -> bytes:
    image = qrcode.make(data)
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


class SharingService:
    def __init__(self, store, documents, base_url, clock=utcnow):
        self.store = store
        self.documents = documents
        self.base_url = base_url
        self.clock = clock

    def share_url(self, document_id):
        return generate_share_url(document_id, self.base_url)

    def log_access(self, document_id, actor_id, action, client_context=None):
        """Append an access-log entry; a failed write is logged, not raised."""
        try:
            self.store.create("access_logs", {
                "document_id": document_id,
                "actor_id": actor_id,
                "action": action,
                "client_context": (client_context or "")[:500] or None,
            })
        except StoreUnavailable:
            log.exception("Error logging %s for document %s", action, document_id)

    def enable_sharing(self, document_id, owner_id, expiry_hours=None, client_context=None):
        """Make the document publicly viewable; calling again refreshes expiry and URL."""
        try:
            try:
                hours = validate_expiry_hours(expiry_hours)
                expiry = self.clock() + timedelta(hours=hours) if hours else None
            except (TypeError, ValueError, OverflowError) as exc:
                raise ValidationError(str(exc)) from exc
            self.documents.fetch_owned(document_id, owner_id)

            url = self.share_url(document_id)
            self.store.update("documents", document_id, {
                "share_enabled": True,
                "share_expiry": expiry,
                "public_share_url": url,
                "qr_code_data": url,
            })
        except ServiceError as exc:
            log.error("Error enabling sharing for %s: %s", document_id, exc)
            return failure(exc)

        self.log_access(document_id, owner_id, "enabled", client_context)
        log.info("Sharing enabled for %s (expires %s)", document_id, expiry or "never")
        return {"success": True, "public_share_url": url, "qr_code_data": url, "share_expiry": expiry}

    def disable_sharing(self, document_id, owner_id):
        try:
            self.documents.fetch_owned(document_id, owner_id)
            self.store.update("documents", document_id, {
                "share_enabled": False,
                "share_expiry": None,
                "public_share_url": None,
                "qr_code_data": None,
            })
        except ServiceError as exc:
            log.error("Error disabling sharing for %s: %s", document_id, exc)
            return failure(exc)
        log.info("Sharing disabled for %s", document_id)
        return {"success": True, "message": "Sharing disabled"}

    def view_public(self, document_id, client_context=None):
        """Anonymous read through a share link.

        Missing, private and expired documents all fail the same way so the
        caller learns nothing about which one it hit.
        """
        try:
            record = self.store.get("documents", document_id)
            if record is None:
                raise NotFound()
            state = share_state(record, self.clock())
            if state is ShareState.PRIVATE:
                raise NotShared()
            if state is ShareState.EXPIRED:
                raise LinkExpired()

            self.store.increment("documents", document_id, "view_count", 1)
            record = self.store.get("documents", document_id)
            if record is None:
                raise NotFound()
        except (NotFound, ShareUnavailable) as exc:
            log.debug("Public view of %s denied: %s", document_id, exc)
            return failure(ShareUnavailable())
        except ServiceError as exc:
            log.error("Error getting public document %s: %s", document_id, exc)
            return failure(exc)

        self.log_access(document_id, None, "viewed", client_context)
        owner = self._owner_profile(record["owner_id"])
        return {"success": True, "document": public_projection(record, owner.get("display_name"))}

    def _owner_profile(self, owner_id):
        try:
            return self.store.get("users", owner_id) or {}
        except StoreUnavailable:
            return {}

    def qr_code(self, document_id, owner_id):
        """PNG of the share link QR code, for the owner of a shared document."""
        try:
            record = self.documents.fetch_owned(document_id, owner_id)
            if not record["share_enabled"]:
                raise NotShared()
        except ServiceError as exc:
            return failure(exc)
        return {"success": True, "png": qr_png(record["qr_code_data"])}
