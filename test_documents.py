from unittest import mock

import pytest

from conftest import make_document, make_profile
from errors import StoreUnavailable


@pytest.fixture
def owner(services):
    return make_profile(services.store, "owner1")


def ids(documents):
    return [d["id"] for d in documents]


# ----------------------------------------------------------
# create / delete
# ----------------------------------------------------------
def test_upload_increments_document_count(services, owner):
    make_document(services.documents, owner["id"])
    make_document(services.documents, owner["id"])
    assert services.store.get("users", owner["id"])["document_count"] == 2


def test_delete_own_document(services, owner):
    doc_id = make_document(services.documents, owner["id"])
    assert services.documents.delete_document(doc_id, owner["id"])["success"]
    assert services.store.get("documents", doc_id) is None
    assert services.store.get("users", owner["id"])["document_count"] == 0


def test_delete_foreign_document_is_denied(services, owner):
    make_profile(services.store, "other")
    doc_id = make_document(services.documents, owner["id"])

    result = services.documents.delete_document(doc_id, "other")

    assert result["success"] is False
    assert result["kind"] == "access_denied"
    assert services.store.get("documents", doc_id) is not None
    assert services.store.get("users", owner["id"])["document_count"] == 1


def test_delete_removes_media_with_its_resource_type(services, owner):
    stored = make_document(services.documents, owner["id"], mime_type="application/pdf", resource_type="image")
    derived = make_document(services.documents, owner["id"], media_id="government-ids/form",
                            mime_type="application/msword")

    with mock.patch.object(services.documents, "media") as media:
        services.documents.delete_document(stored, owner["id"])
        services.documents.delete_document(derived, owner["id"])

    assert media.delete.call_args_list == [
        mock.call("government-ids/passport", resource_type="image"),
        mock.call("government-ids/form", resource_type="raw"),
    ]


def test_get_document_checks_owner(services, owner):
    doc_id = make_document(services.documents, owner["id"])
    assert services.documents.get_document(doc_id, owner["id"])["document"]["id"] == doc_id
    assert services.documents.get_document(doc_id, "someone")["kind"] == "access_denied"
    assert services.documents.get_document("missing")["kind"] == "not_found"


def test_update_document_fields(services, owner, clock):
    doc_id = make_document(services.documents, owner["id"])
    clock.advance(minutes=1)
    result = services.documents.update_document(doc_id, owner["id"], {
        "title": "Renewed passport", "owner_id": "hijack", "view_count": 99,
    })
    assert result["success"]
    doc = services.store.get("documents", doc_id)
    assert doc["title"] == "Renewed passport"
    assert doc["owner_id"] == owner["id"]
    assert doc["view_count"] == 0
    assert doc["updated_at"] > doc["created_at"]


def test_update_document_validates_category(services, owner):
    doc_id = make_document(services.documents, owner["id"])
    result = services.documents.update_document(doc_id, owner["id"], {"category": "pets"})
    assert result["kind"] == "validation"
    assert services.store.get("documents", doc_id)["category"] == "government"


# ----------------------------------------------------------
# paging
# ----------------------------------------------------------
def test_paging_over_five_documents(services, owner, clock):
    created = []
    for n in range(5):
        created.append(make_document(services.documents, owner["id"], title=f"Doc {n}"))
        clock.advance(minutes=1)

    first = services.documents.list_documents(owner["id"], page_size=2)
    assert len(first["documents"]) == 2 and first["has_more"] is True

    second = services.documents.list_documents(owner["id"], page_size=2, cursor=first["cursor"])
    assert len(second["documents"]) == 2 and second["has_more"] is True

    third = services.documents.list_documents(owner["id"], page_size=2, cursor=second["cursor"])
    assert len(third["documents"]) == 1 and third["has_more"] is False

    pages = ids(first["documents"]) + ids(second["documents"]) + ids(third["documents"])
    # newest first by default
    assert pages == list(reversed(created))


def test_paging_with_identical_sort_values(services, owner):
    # the fake clock stands still, so every created_at ties
    created = {make_document(services.documents, owner["id"]) for _ in range(5)}
    seen, cursor = [], None
    while True:
        page = services.documents.list_documents(owner["id"], page_size=2, cursor=cursor)
        seen.extend(ids(page["documents"]))
        if not page["has_more"]:
            break
        cursor = page["cursor"]
    assert sorted(seen) == sorted(created)
    assert len(seen) == 5


def test_cursor_by_id(services, owner, clock):
    for n in range(3):
        make_document(services.documents, owner["id"], title=f"Doc {n}")
        clock.advance(minutes=1)
    first = services.documents.list_documents(owner["id"], sort_by="title", sort_order="asc", page_size=1)
    rest = services.documents.list_documents(owner["id"], sort_by="title", sort_order="asc",
                                             page_size=5, cursor=first["cursor"]["id"])
    assert [d["title"] for d in rest["documents"]] == ["Doc 1", "Doc 2"]


def test_empty_page_has_no_cursor(services, owner):
    page = services.documents.list_documents(owner["id"])
    assert page == {"success": True, "documents": [], "has_more": False, "cursor": None}


def test_listing_is_owner_scoped_and_filtered(services, owner):
    make_profile(services.store, "other")
    mine = make_document(services.documents, owner["id"], category="healthcare", document_type="prescription")
    make_document(services.documents, owner["id"])
    make_document(services.documents, "other", category="healthcare", document_type="prescription")

    page = services.documents.list_documents(owner["id"], category="healthcare")
    assert ids(page["documents"]) == [mine]
    assert len(services.documents.list_documents(owner["id"], category="all")["documents"]) == 2


def test_listing_rejects_unknown_sort_field(services, owner):
    result = services.documents.list_documents(owner["id"], sort_by="media_id")
    assert result["kind"] == "validation"
    assert result["documents"] == []


def test_store_failure_returns_empty_page(services, owner):
    make_document(services.documents, owner["id"])
    with mock.patch.object(services.store, "query", side_effect=StoreUnavailable()):
        result = services.documents.list_documents(owner["id"])
    assert result["success"] is False
    assert result["kind"] == "store_unavailable"
    assert result["documents"] == []


# ----------------------------------------------------------
# search
# ----------------------------------------------------------
def test_search_matches_title_description_and_tags(services, owner):
    by_title = make_document(services.documents, owner["id"], title="Vaccination card", tags=[])
    by_description = make_document(services.documents, owner["id"], title="Card",
                                   description="Issued at the VACCINATION centre", tags=[])
    by_tag = make_document(services.documents, owner["id"], title="Other", description="", tags=["Vaccination"])
    make_document(services.documents, owner["id"], title="Degree", description="", tags=["college"])

    result = services.documents.search_documents(owner["id"], "vaccination")
    assert sorted(ids(result["documents"])) == sorted([by_title, by_description, by_tag])
    assert result["count"] == 3


def test_search_only_sees_the_fetched_page(services, owner, clock):
    old_match = make_document(services.documents, owner["id"], title="Insurance policy")
    clock.advance(minutes=1)
    for n in range(3):
        make_document(services.documents, owner["id"], title=f"Receipt {n}")
        clock.advance(minutes=1)

    limited = services.documents.search_documents(owner["id"], "insurance", limit=3)
    assert limited["documents"] == []
    wide = services.documents.search_documents(owner["id"], "insurance", limit=10)
    assert ids(wide["documents"]) == [old_match]


def test_blank_search_returns_page(services, owner):
    make_document(services.documents, owner["id"])
    assert services.documents.search_documents(owner["id"], "  ")["count"] == 1


# ----------------------------------------------------------
# stats
# ----------------------------------------------------------
def test_stats_for_new_owner_are_zero(services, owner):
    assert services.documents.compute_stats(owner["id"]) == {
        "success": True,
        "stats": {
            "total_documents": 0,
            "shared_documents": 0,
            "total_views": 0,
            "total_storage_bytes": 0,
            "category_stats": {
                "education": 0, "healthcare": 0, "government": 0, "transportation": 0, "others": 0,
            },
        },
    }


def test_stats_aggregate(services, owner):
    shared = make_document(services.documents, owner["id"], file_size=100)
    make_document(services.documents, owner["id"], file_size=50, category="education", document_type="degree")
    services.sharing.enable_sharing(shared, owner["id"])
    services.sharing.view_public(shared)
    services.sharing.view_public(shared)

    stats = services.documents.compute_stats(owner["id"])["stats"]
    assert stats["total_documents"] == 2
    assert stats["shared_documents"] == 1
    assert stats["total_views"] == 2
    assert stats["total_storage_bytes"] == 150
    assert stats["category_stats"]["government"] == 1
    assert stats["category_stats"]["education"] == 1
    assert stats["category_stats"]["others"] == 0
