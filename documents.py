"""Owner-scoped document records: CRUD, paging, search and stats."""
import logging

from errors import (
    AccessDenied, NetworkError, NotFound, ServiceError, StoreUnavailable, ValidationError, failure,
)
from media import resource_type_for
from validators import CATEGORIES, validate_document_fields

log = logging.getLogger(__name__)

SORT_FIELDS = {"created_at", "updated_at", "title", "category", "file_size", "view_count"}
EDITABLE_FIELDS = ("title", "description", "category", "document_type", "tags")


def empty_stats():
    return {
        "total_documents": 0,
        "shared_documents": 0,
        "total_views": 0,
        "total_storage_bytes": 0,
        "category_stats": {category: 0 for category in CATEGORIES},
    }


def matches_term(record, term):
    """Case-insensitive substring match over title, description and tags."""
    needle = term.lower()
    return (
        needle in (record.get("title") or "").lower()
        or needle in (record.get("description") or "").lower()
        or any(needle in tag.lower() for tag in record.get("tags") or [])
    )


class DocumentService:
    def __init__(self, store, media=None):
        self.store = store
        self.media = media

    # -- helpers that raise ------------------------------------------------

    def fetch_owned(self, document_id, owner_id):
        """The record for ``document_id`` if ``owner_id`` owns it."""
        record = self.store.get("documents", document_id)
        if record is None:
            raise NotFound()
        if record["owner_id"] != owner_id:
            raise AccessDenied()
        return record

    def _adjust_document_count(self, owner_id, delta):
        try:
            self.store.increment("users", owner_id, "document_count", delta)
        except NotFound:
            log.warning("No profile for %s; document count not adjusted", owner_id)

    @staticmethod
    def _check_order(sort_by, sort_order):
        if sort_by not in SORT_FIELDS:
            raise ValidationError(f"Cannot sort by {sort_by}")
        if sort_order not in ("asc", "desc"):
            raise ValidationError("Sort order must be 'asc' or 'desc'")

    # -- CRUD --------------------------------------------------------------

    def upload_document(self, owner_id, data):
        """Create the record for a file the media host already accepted."""
        try:
            document_id = self.store.create("documents", {
                "owner_id": owner_id,
                "title": data["title"],
                "description": data.get("description") or "",
                "category": data["category"],
                "document_type": data.get("document_type"),
                "media_url": data["media_url"],
                "media_id": data["media_id"],
                "file_size": data.get("file_size") or 0,
                "mime_type": data.get("mime_type"),
                "resource_type": data.get("resource_type"),
                "tags": list(data.get("tags") or []),
                "share_enabled": False,
                "public_share_url": None,
                "qr_code_data": None,
                "share_expiry": None,
                "view_count": 0,
            })
            self._adjust_document_count(owner_id, 1)
        except ServiceError as exc:
            log.error("Error uploading document for %s: %s", owner_id, exc)
            return failure(exc, message="Failed to upload document")
        log.info("Document %s created for %s", document_id, owner_id)
        return {"success": True, "document_id": document_id, "message": "Document uploaded successfully"}

    def get_document(self, document_id, owner_id=None):
        try:
            if owner_id is None:
                record = self.store.get("documents", document_id)
                if record is None:
                    raise NotFound()
            else:
                record = self.fetch_owned(document_id, owner_id)
        except ServiceError as exc:
            return failure(exc)
        return {"success": True, "document": record}

    def update_document(self, document_id, owner_id, changes):
        patch = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
        try:
            if not patch:
                raise ValidationError("Nothing to update")
            record = self.fetch_owned(document_id, owner_id)
            merged = dict(record, **patch)
            errors = validate_document_fields(merged)
            if errors:
                raise ValidationError(errors=errors)
            self.store.update("documents", document_id, patch)
        except ServiceError as exc:
            log.error("Error updating document %s: %s", document_id, exc)
            return failure(exc)
        return {"success": True, "message": "Document updated successfully"}

    def delete_document(self, document_id, owner_id):
        try:
            record = self.fetch_owned(document_id, owner_id)
            self.store.delete("documents", document_id)
            self._adjust_document_count(owner_id, -1)
        except ServiceError as exc:
            log.error("Error deleting document %s: %s", document_id, exc)
            return failure(exc)

        if self.media is not None:
            try:
                self.media.delete(
                    record["media_id"],
                    resource_type=record.get("resource_type") or resource_type_for(record["mime_type"]),
                )
            except (NetworkError, NotFound) as exc:
                log.warning("Media %s not removed: %s", record["media_id"], exc)
        return {"success": True, "message": "Document deleted successfully"}

    # -- queries -----------------------------------------------------------

    def list_documents(self, owner_id, category=None, sort_by="created_at", sort_order="desc",
                       page_size=10, cursor=None):
        """One page of the owner's documents.

        ``has_more`` only says the page came back full; the next page may
        still be empty. ``cursor`` may be the last record of the previous page
        or its id.
        """
        try:
            self._check_order(sort_by, sort_order)
            if not isinstance(page_size, int) or page_size < 1:
                raise ValidationError("Page size must be a positive integer")

            filters = {"owner_id": owner_id}
            if category and category != "all":
                filters["category"] = category

            if isinstance(cursor, str):
                cursor = self.fetch_owned(cursor, owner_id)

            documents = self.store.query(
                "documents", filters, order_by=sort_by, direction=sort_order,
                limit=page_size, cursor=cursor,
            )
        except ServiceError as exc:
            log.error("Error fetching documents for %s: %s", owner_id, exc)
            return failure(exc, documents=[], has_more=False, cursor=None)

        return {
            "success": True,
            "documents": documents,
            "has_more": len(documents) == page_size,
            "cursor": documents[-1] if documents else None,
        }

    def search_documents(self, owner_id, term, category="all", sort_by="created_at",
                         sort_order="desc", limit=20):
        """Filter the first ``limit`` documents by ``term``.

        Only records inside that first fetch are considered, so matches
        further down the owner's list are not found.
        """
        listing = self.list_documents(owner_id, category=category, sort_by=sort_by,
                                      sort_order=sort_order, page_size=limit)
        if not listing["success"]:
            del listing["has_more"], listing["cursor"]
            listing["count"] = 0
            return listing

        term = (term or "").strip()
        documents = [d for d in listing["documents"] if not term or matches_term(d, term)]
        return {"success": True, "documents": documents, "count": len(documents)}

    def compute_stats(self, owner_id):
        try:
            documents = self.store.query("documents", {"owner_id": owner_id})
        except StoreUnavailable as exc:
            log.error("Error getting document stats for %s: %s", owner_id, exc)
            return failure(exc, stats=empty_stats())

        stats = empty_stats()
        for document in documents:
            stats["total_documents"] += 1
            stats["shared_documents"] += 1 if document["share_enabled"] else 0
            stats["total_views"] += document["view_count"] or 0
            stats["total_storage_bytes"] += document["file_size"] or 0
            if document["category"] in stats["category_stats"]:
                stats["category_stats"][document["category"]] += 1
        return {"success": True, "stats": stats}
