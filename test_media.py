import os

import httpx
import pytest

from errors import NetworkError, NotFound
from media import (
    CloudinaryClient, LocalMediaStore, UploadFile, folder_path, optimize_for_web,
    responsive_urls, strip_transformations, thumbnail_url, transformed_url,
)

URL = "https://res.cloudinary.com/demo/image/upload/v1712/secure-documents/government-ids/abc.png"


# ----------------------------------------------------------
# URL templating
# ----------------------------------------------------------
def test_transformed_url():
    assert transformed_url(URL, {"width": 800, "height": 600, "crop": "limit"}) == \
        "https://res.cloudinary.com/demo/image/upload/w_800,h_600,c_limit/v1712/secure-documents/government-ids/abc.png"


def test_transformed_url_without_options():
    assert transformed_url(URL, None) == URL
    assert transformed_url(URL, {}) == URL
    assert transformed_url(None, {"width": 1}) is None


def test_thumbnail_by_resource_type():
    assert "/upload/w_200,h_200,c_fill,q_auto,f_auto/" in thumbnail_url(URL, "image")
    assert thumbnail_url(URL, "raw") == "/assets/icons/document-icon.png"
    assert "f_jpg" in thumbnail_url(URL, "video") and "so_1" in thumbnail_url(URL, "video")
    assert thumbnail_url(None) is None


def test_responsive_and_optimized_urls():
    urls = responsive_urls(URL)
    assert urls["original"] == URL
    assert "/upload/w_1200,h_800,c_limit,q_auto:good/" in urls["large"]
    assert "/upload/q_auto:good,f_auto,fetch_format_auto/" in optimize_for_web(URL)
    assert "q_80" in optimize_for_web(URL, quality=80)


def test_strip_transformations():
    assert strip_transformations("w_200,h_200,c_fill/government-ids/abc") == "government-ids/abc"
    assert strip_transformations("government-ids/abc") == "government-ids/abc"


def test_folder_path():
    assert folder_path("healthcare") == "healthcare-records"
    assert folder_path("unknown") == "other-documents"


# ----------------------------------------------------------
# Cloudinary client
# ----------------------------------------------------------
def cloudinary(handler, **kwargs):
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return CloudinaryClient("demo", "document_share", http=http, **kwargs)


def test_cloudinary_upload():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return httpx.Response(200, json={
            "public_id": "secure-documents/government-ids/abc",
            "secure_url": URL,
            "bytes": 4,
            "format": "png",
            "resource_type": "image",
            "original_filename": "abc",
        })

    file = UploadFile("abc.png", b"\x89PNG", "image/png")
    result = cloudinary(handler).upload(file, folder="government-ids", category="government")

    assert seen["url"] == "https://api.cloudinary.com/v1_1/demo/auto/upload"
    assert b"document_share" in seen["body"]
    assert b"secure-documents/government-ids" in seen["body"]
    assert result["url"] == URL
    assert result["media_id"] == "secure-documents/government-ids/abc"
    assert result["bytes"] == 4
    assert result["mime_type"] == "image/png"
    assert "/upload/w_200,h_200" in result["thumbnail_url"]


def test_cloudinary_rejection_raises_network_error():
    def handler(request):
        return httpx.Response(400, json={"error": {"message": "Upload preset not found"}})

    with pytest.raises(NetworkError, match="Upload preset not found"):
        cloudinary(handler).upload(UploadFile("a.png", b"x", "image/png"))


def test_cloudinary_transport_failure():
    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    with pytest.raises(NetworkError):
        cloudinary(handler).upload(UploadFile("a.png", b"x", "image/png"))


def test_cloudinary_delete_needs_credentials():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"result": "ok"})

    assert cloudinary(handler).delete("abc") is False
    assert calls == []

    client = cloudinary(handler, api_key="key", api_secret="secret")
    assert client.delete("abc") is True
    assert str(calls[0].url) == "https://api.cloudinary.com/v1_1/demo/image/destroy"
    assert b"signature=" in calls[0].content

    assert client.delete("forms/abc", resource_type="raw") is True
    assert str(calls[1].url) == "https://api.cloudinary.com/v1_1/demo/raw/destroy"


# ----------------------------------------------------------
# local encrypted store
# ----------------------------------------------------------
def test_local_store_roundtrip(tmp_path):
    store = LocalMediaStore(str(tmp_path), os.urandom(32), "https://docs.example.com")
    result = store.upload(UploadFile("scan.pdf", b"%PDF-1.7 secret", "application/pdf"), folder="government-ids")

    assert result["url"] == f"https://docs.example.com/media/upload/{result['media_id']}"
    assert result["media_id"].startswith("government-ids/")
    assert result["resource_type"] == "raw"

    on_disk = (tmp_path / (result["media_id"] + ".bin")).read_bytes()
    assert b"secret" not in on_disk
    assert store.read(result["media_id"]) == b"%PDF-1.7 secret"

    assert store.delete(result["media_id"]) is True
    with pytest.raises(NotFound):
        store.read(result["media_id"])


def test_local_store_rejects_traversal(tmp_path):
    store = LocalMediaStore(str(tmp_path), os.urandom(32))
    with pytest.raises(NotFound):
        store.read("../secrets")
