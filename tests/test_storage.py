"""Tests for the bucket lister (mocked S3 client)."""
from unittest.mock import MagicMock, patch
import pytest
from botocore.exceptions import ClientError
from imagelinker.services import storage_service
from imagelinker.services.storage_service import StorageListingError, StorageObject


def _page(keys, token=None):
    page = {
        "Contents": [{"Key": k, "Size": 100} for k in keys],
        "IsTruncated": token is not None,
    }
    if token:
        page["NextContinuationToken"] = token
    return page


def test_lists_every_page_until_short_page(app):
    client = MagicMock()
    client.list_objects_v2.side_effect = [
        _page([f"p1/{i}.jpg" for i in range(500)], token="t1"),
        _page([f"p2/{i}.jpg" for i in range(500)], token="t2"),
        _page([f"p3/{i}.jpg" for i in range(200)]),
    ]
    with patch.object(storage_service, "_get_client", return_value=client):
        images = storage_service.list_images(page_size=500)

    assert len(images) == 1200
    assert client.list_objects_v2.call_count == 3
    tokens = [c.kwargs.get("ContinuationToken") for c in client.list_objects_v2.call_args_list]
    assert tokens == [None, "t1", "t2"]
    assert images[0] == StorageObject(name="p1/0.jpg", size=100)


def test_short_page_stops_even_if_provider_says_truncated(app):
    client = MagicMock()
    client.list_objects_v2.side_effect = [_page(["a/1.jpg"], token="more")]
    with patch.object(storage_service, "_get_client", return_value=client):
        images = storage_service.list_images(page_size=10)

    assert [i.name for i in images] == ["a/1.jpg"]
    assert client.list_objects_v2.call_count == 1


def test_filters_to_image_extensions(app):
    client = MagicMock()
    client.list_objects_v2.return_value = _page(
        ["12345.JPG", "a.jpeg", "b.png", "c.gif", "d.webp", "e.bmp", "f.svg",
         "notes.txt", "archive.zip", "folder/", "noext"]
    )
    with patch.object(storage_service, "_get_client", return_value=client):
        images = storage_service.list_images()

    assert [i.name for i in images] == [
        "12345.JPG", "a.jpeg", "b.png", "c.gif", "d.webp", "e.bmp", "f.svg",
    ]


def test_page_error_is_fatal(app):
    client = MagicMock()
    client.list_objects_v2.side_effect = [
        _page([f"{i}.jpg" for i in range(5)], token="t1"),
        ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "ListObjectsV2"),
    ]
    with patch.object(storage_service, "_get_client", return_value=client):
        with pytest.raises(StorageListingError, match="Storage scan error"):
            storage_service.list_images(page_size=5)


def test_on_page_reports_running_count(app):
    client = MagicMock()
    client.list_objects_v2.side_effect = [
        _page(["1.jpg", "2.jpg"], token="t1"),
        _page(["3.txt"]),
    ]
    seen = []
    with patch.object(storage_service, "_get_client", return_value=client):
        storage_service.list_images(page_size=2, on_page=seen.append)

    assert seen == [2, 3]


def test_storage_object_filename():
    assert StorageObject("catalog/sub/12345.jpg").filename == "12345.jpg"
    assert StorageObject("12345.jpg").filename == "12345.jpg"


def test_public_url(app):
    assert (
        storage_service.get_public_url("catalog/12345.jpg")
        == "https://cdn.example.test/product-images/catalog/12345.jpg"
    )


def test_upload(app):
    client = MagicMock()
    with patch.object(storage_service, "_get_client", return_value=client):
        storage_service.upload("catalog/1.svg", b"<svg/>", "image/svg+xml")

    client.put_object.assert_called_once_with(
        Bucket="product-images",
        Key="catalog/1.svg",
        Body=b"<svg/>",
        ContentType="image/svg+xml",
    )
