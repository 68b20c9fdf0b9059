# tests/unit/test_s3.py

"""
Unit tests for the S3 client in src/aws_wire/s3.py (single-shot calls,
addressing, listing and presigned URLs). Multipart uploads are covered in
test_multipart.py.
"""

import io
from datetime import datetime, timezone
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlsplit

import pytest

from aws_wire.exceptions import AccessDeniedError, NotFoundError, ValidationError
from aws_wire.s3 import (
    CONTENT_TYPES,
    MULTIPART_THRESHOLD,
    S3Client,
    content_type_for,
    parse_list_objects_v2,
)

LIST_PAGE = b"""<?xml version="1.0" encoding="UTF-8"?>
<ListBucketResult xmlns="http://s3.amazonaws.com/doc/2006-03-01/">
  <Name>photos</Name>
  <Prefix>2024/</Prefix>
  <KeyCount>3</KeyCount>
  <MaxKeys>2</MaxKeys>
  <IsTruncated>true</IsTruncated>
  <NextContinuationToken>next-token</NextContinuationToken>
  <Contents>
    <Key>2024/b.jpg</Key>
    <LastModified>2024-03-01T10:00:00.000Z</LastModified>
    <ETag>"bbb"</ETag>
    <Size>20</Size>
    <StorageClass>STANDARD</StorageClass>
  </Contents>
  <Contents>
    <Key>2024/a.jpg</Key>
    <LastModified>2024-02-01T10:00:00.000Z</LastModified>
    <ETag>"aaa"</ETag>
    <Size>10</Size>
    <StorageClass>STANDARD</StorageClass>
  </Contents>
  <CommonPrefixes><Prefix>2024/raw/</Prefix></CommonPrefixes>
</ListBucketResult>"""


@pytest.fixture
def s3(credentials, transport) -> S3Client:
    return S3Client(credentials, region="eu-west-1", transport=transport)


# -----------------------------------------------------------------------------
# Addressing and content types
# -----------------------------------------------------------------------------


def test_build_url_virtual_hosted_by_default(s3):
    assert s3.build_url("photos", "2024/my photo.jpg") == (
        "https://photos.s3.eu-west-1.amazonaws.com/2024/my%20photo.jpg"
    )
    assert s3.build_url("photos") == "https://photos.s3.eu-west-1.amazonaws.com/"


def test_build_url_path_style_when_forced(credentials, transport):
    s3 = S3Client(credentials, region="us-west-2", force_path_style=True, transport=transport)

    assert s3.build_url("photos", "a.txt") == "https://s3.us-west-2.amazonaws.com/photos/a.txt"


def test_build_url_path_style_for_custom_endpoint(credentials, transport):
    s3 = S3Client(credentials, endpoint="http://localhost:9000/", transport=transport)

    assert s3.build_url("photos", "a b+c.txt") == "http://localhost:9000/photos/a%20b%2Bc.txt"
    assert s3.build_url("photos") == "http://localhost:9000/photos"


@pytest.mark.parametrize(
    "endpoint, region, expected",
    [
        ("https://account.r2.cloudflarestorage.com", None, "auto"),
        ("https://s3.eu-central-003.backblazeb2.com", None, "eu-central-003"),
        ("http://localhost:9000", None, "us-east-1"),
        ("https://account.r2.cloudflarestorage.com", "eu-west-1", "eu-west-1"),
    ],
)
def test_custom_endpoint_region_is_inferred_unless_given(credentials, transport, endpoint, region, expected):
    s3 = S3Client(credentials, region=region, endpoint=endpoint, transport=transport)

    assert s3.context.region == expected


@pytest.mark.parametrize(
    "options",
    [{}, {"force_path_style": True}, {"endpoint": "http://localhost:9000"}],
    ids=["virtual-hosted", "path-style", "custom-endpoint"],
)
def test_build_url_is_stable_across_calls(credentials, transport, options):
    s3 = S3Client(credentials, region="eu-west-1", transport=transport, **options)

    first = s3.build_url("photos", "2024/a b+c.txt")

    assert s3.build_url("photos", "2024/a b+c.txt") == first
    assert "a%20b%2Bc.txt" in first
    assert "%25" not in first


@pytest.mark.parametrize("extension, expected", sorted(CONTENT_TYPES.items()))
def test_content_type_table(extension, expected):
    assert content_type_for(f"folder/file.{extension}") == expected
    assert content_type_for(f"FILE.{extension.upper()}") == expected


@pytest.mark.parametrize("filename", ["README", "archive.unknownext", "dir.d/noext", ""])
def test_content_type_defaults_to_octet_stream(filename):
    assert content_type_for(filename) == "application/octet-stream"


# -----------------------------------------------------------------------------
# Single-shot operations
# -----------------------------------------------------------------------------


def test_put_object_sends_signed_put(s3, http_session, make_response, sent_call):
    # Arrange
    http_session.request.return_value = make_response(
        200, headers={"ETag": '"abc"', "x-amz-version-id": "v1"}
    )

    # Act
    result = s3.put_object(
        "photos",
        "cat.png",
        b"png-bytes",
        metadata={"Owner": "me"},
        cache_control="max-age=60",
        acl="private",
    )

    # Assert
    assert result == {"etag": '"abc"', "version_id": "v1"}
    method, url, kwargs = sent_call()
    assert method == "PUT"
    assert url == "https://photos.s3.eu-west-1.amazonaws.com/cat.png"
    headers = kwargs["headers"]
    assert headers["content-type"] == "image/png"
    assert headers["cache-control"] == "max-age=60"
    assert headers["x-amz-acl"] == "private"
    assert headers["x-amz-meta-owner"] == "me"
    assert headers["host"] == "photos.s3.eu-west-1.amazonaws.com"
    assert "x-amz-content-sha256" in headers
    assert "/eu-west-1/s3/aws4_request" in headers["Authorization"]
    assert kwargs["data"] == b"png-bytes"


@pytest.mark.parametrize(
    "size, multipart",
    [(MULTIPART_THRESHOLD - 1, False), (MULTIPART_THRESHOLD, True), (MULTIPART_THRESHOLD + 1, True)],
)
def test_put_switches_to_multipart_at_threshold(s3, monkeypatch, size, multipart):
    single = MagicMock(return_value={"etag": "e"})
    chunked = MagicMock(return_value={"etag": "m"})
    monkeypatch.setattr(s3, "put_object", single)
    monkeypatch.setattr(s3, "upload_multipart", chunked)

    s3.put("bucket", "key.bin", b"x" * size, concurrency=2)

    assert chunked.called is multipart
    assert single.called is not multipart
    if not multipart:
        assert "concurrency" not in single.call_args.kwargs


def test_get_object_returns_body_and_metadata(s3, http_session, make_response, sent_call):
    http_session.request.return_value = make_response(
        206,
        b"0123456789",
        {
            "Content-Type": "text/plain",
            "Content-Length": "10",
            "ETag": '"e1"',
            "x-amz-meta-Color": "blue",
        },
    )

    obj = s3.get_object("bucket", "notes.txt", byte_range="bytes=0-9")

    assert obj.body == b"0123456789"
    assert obj.content_type == "text/plain"
    assert obj.content_length == 10
    assert obj.etag == '"e1"'
    assert obj.metadata == {"color": "blue"}
    _, _, kwargs = sent_call()
    assert kwargs["headers"]["range"] == "bytes=0-9"
    assert "range" in kwargs["headers"]["Authorization"]


def test_head_object_missing_key_raises_not_found(s3, http_session, make_response):
    http_session.request.return_value = make_response(404, b"", {"x-amz-request-id": "r-404"})

    with pytest.raises(NotFoundError) as exc_info:
        s3.head_object("bucket", "missing.txt")

    assert exc_info.value.http_status == 404
    assert exc_info.value.request_id == "r-404"
    assert http_session.request.call_count == 1


def test_get_object_access_denied(s3, http_session, make_response):
    http_session.request.return_value = make_response(
        403, b"<Error><Code>AccessDenied</Code><Message>Access Denied</Message></Error>"
    )

    with pytest.raises(AccessDeniedError) as exc_info:
        s3.get_object("bucket", "secret.txt")

    assert exc_info.value.code == "AccessDenied"


def test_delete_object(s3, http_session, make_response, sent_call):
    http_session.request.return_value = make_response(204)

    s3.delete_object("bucket", "old.txt")

    method, url, _ = sent_call()
    assert method == "DELETE"
    assert url == "https://bucket.s3.eu-west-1.amazonaws.com/old.txt"


# -----------------------------------------------------------------------------
# ListObjectsV2
# -----------------------------------------------------------------------------


def test_list_objects_v2_sends_query_and_parses_page(s3, http_session, make_response, sent_call):
    http_session.request.return_value = make_response(200, LIST_PAGE)

    page = s3.list_objects_v2("photos", prefix="2024/", max_keys=2, continuation_token="tok")

    _, url, _ = sent_call()
    query = parse_qs(urlsplit(url).query, keep_blank_values=True)
    assert query == {
        "list-type": ["2"],
        "prefix": ["2024/"],
        "max-keys": ["2"],
        "continuation-token": ["tok"],
    }
    assert [item.key for item in page.contents] == ["2024/b.jpg", "2024/a.jpg"]
    assert page.contents[1].size == 10
    assert page.contents[0].last_modified == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert page.common_prefixes == ["2024/raw/"]
    assert page.is_truncated is True
    assert page.next_continuation_token == "next-token"
    assert page.key_count == 3
    assert page.max_keys == 2


def test_parse_list_objects_v2_empty_bucket():
    page = parse_list_objects_v2(
        b"<ListBucketResult><Name>b</Name><IsTruncated>false</IsTruncated></ListBucketResult>"
    )

    assert page.contents == []
    assert page.key_count == 0
    assert page.is_truncated is False
    assert page.next_continuation_token is None


# -----------------------------------------------------------------------------
# Presigned URLs
# -----------------------------------------------------------------------------


def test_presigned_get_url(s3, http_session):
    url = s3.get_presigned_url("photos", "2024/cat.jpg", expires_in=900)

    parts = urlsplit(url)
    query = parse_qs(parts.query)
    assert parts.netloc == "photos.s3.eu-west-1.amazonaws.com"
    assert parts.path == "/2024/cat.jpg"
    assert query["X-Amz-Algorithm"] == ["AWS4-HMAC-SHA256"]
    assert query["X-Amz-Expires"] == ["900"]
    assert query["X-Amz-SignedHeaders"] == ["host"]
    assert query["X-Amz-Credential"][0].endswith("/eu-west-1/s3/aws4_request")
    assert len(query["X-Amz-Signature"][0]) == 64
    http_session.request.assert_not_called()


def test_presigned_put_url_accepts_lowercase_method(s3):
    url = s3.get_presigned_url("photos", "upload.bin", method="put")

    assert "X-Amz-Signature=" in url


def test_presigned_url_expiry_is_clamped_to_seven_days(s3):
    url = s3.get_presigned_url("photos", "a.txt", expires_in=10 * 24 * 3600)

    assert parse_qs(urlsplit(url).query)["X-Amz-Expires"] == ["604800"]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"bucket": "photos", "key": "a.txt", "expires_in": 0},
        {"bucket": "", "key": "a.txt"},
        {"bucket": "photos", "key": ""},
        {"bucket": "photos", "key": "a.txt", "method": "DELETE"},
    ],
)
def test_presigned_url_rejects_invalid_arguments(s3, kwargs):
    with pytest.raises(ValidationError) as exc_info:
        s3.get_presigned_url(**kwargs)

    assert exc_info.value.code == "InvalidArgument"
    assert exc_info.value.http_status is None


def test_from_config_applies_endpoint_and_multipart_settings(credentials, transport, make_config):
    config = make_config(
        region="ap-southeast-2",
        endpoint_url="http://minio:9000",
        multipart_concurrency=8,
        multipart_part_size_mb=16,
    )

    s3 = S3Client.from_config(config, credentials, transport=transport)

    assert s3.context.region == "ap-southeast-2"
    assert s3.build_url("b", "k") == "http://minio:9000/b/k"
    assert s3.multipart_concurrency == 8
    assert s3.part_size == 16 * 1024 * 1024


# -----------------------------------------------------------------------------
# Files and directory sync
# -----------------------------------------------------------------------------


def test_upload_file_small_path_is_a_single_put(s3, http_session, make_response, sent_call, tmp_path):
    path = tmp_path / "index.html"
    path.write_bytes(b"<html></html>")
    http_session.request.return_value = make_response(200, headers={"ETag": '"e"'})

    s3.upload_file("site", "index.html", str(path))

    method, url, kwargs = sent_call()
    assert method == "PUT"
    assert url == "https://site.s3.eu-west-1.amazonaws.com/index.html"
    assert kwargs["data"] == b"<html></html>"


def test_upload_file_switches_to_multipart_at_threshold(s3, monkeypatch, tmp_path):
    path = tmp_path / "big.bin"
    path.write_bytes(b"x" * MULTIPART_THRESHOLD)
    chunked = MagicMock(return_value={"parts": 1})
    monkeypatch.setattr(s3, "upload_multipart", chunked)

    s3.upload_file("bucket", "big.bin", path, concurrency=2)

    assert chunked.call_args.args == ("bucket", "big.bin", path)
    assert chunked.call_args.kwargs == {"concurrency": 2}


def test_upload_file_object_starts_at_current_position(s3, http_session, make_response, sent_call):
    source = io.BytesIO(b"skip:payload")
    source.seek(5)
    http_session.request.return_value = make_response(200)

    s3.upload_file("bucket", "data.txt", source)

    assert sent_call()[2]["data"] == b"payload"


def test_sync_directory_uploads_tree_under_prefix(s3, monkeypatch, tmp_path):
    # Arrange
    (tmp_path / "css").mkdir()
    (tmp_path / "css" / "site.css").write_text("body {}", encoding="utf-8")
    (tmp_path / "index.html").write_text("<html></html>", encoding="utf-8")
    (tmp_path / "empty").mkdir()
    uploaded = []
    monkeypatch.setattr(
        s3,
        "put_object",
        lambda bucket, key, body, **options: uploaded.append((bucket, key, body, options)) or {},
    )

    # Act
    keys = s3.sync_directory(tmp_path, "site", prefix="/v1/", cache_control="max-age=60")

    # Assert
    assert keys == ["v1/css/site.css", "v1/index.html"]
    assert uploaded == [
        ("site", "v1/css/site.css", b"body {}", {"content_type": "text/css", "cache_control": "max-age=60"}),
        ("site", "v1/index.html", b"<html></html>", {"content_type": "text/html", "cache_control": "max-age=60"}),
    ]


def test_sync_directory_without_prefix_uses_relative_paths(s3, monkeypatch, tmp_path):
    (tmp_path / "a.txt").write_bytes(b"a")
    monkeypatch.setattr(s3, "put_object", MagicMock(return_value={}))

    assert s3.sync_directory(tmp_path, "bucket") == ["a.txt"]


def test_sync_directory_rejects_missing_directory(s3, http_session, tmp_path):
    with pytest.raises(ValidationError) as exc_info:
        s3.sync_directory(tmp_path / "missing", "bucket")

    assert exc_info.value.code == "InvalidArgument"
    http_session.request.assert_not_called()
