# src/aws_wire/s3.py

"""
S3 object operations over REST-XML.

Covers URL building (virtual-hosted or path-style), content-type inference,
single-shot object calls, ListObjectsV2, presigned URLs, multipart uploads and
directory sync. Multipart parts are read and uploaded inside a bounded thread
pool, so at most one part per worker is held in memory; a failed upload is
aborted so orphaned parts are not billed.
"""

import enum
import logging
import os
import posixpath
import threading
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Mapping

from pydantic import ValidationError as PydanticValidationError

from .config import ClientConfig
from .credentials import Credentials, RequestContext
from .exceptions import (
    MultipartIncompleteError,
    MultipartStateError,
    ValidationError,
    get_error_context,
)
from .protocols import AwsClient, RestXmlProtocol
from .schemas import (
    CompletedPart,
    CompletedPartDict,
    ListObjectsV2Result,
    PresignedUrlRequest,
    S3ObjectSummary,
)
from .signing import HttpRequest, encode_path, endpoint_region
from .transport import HttpResponse, HttpTransport
from .xmlutil import child_text, children_named, extract_error, parse_xml

logger = logging.getLogger(__name__)

MULTIPART_THRESHOLD = 5 * 1024 * 1024
MIN_PART_SIZE = 5 * 1024 * 1024
MAX_PARTS = 10_000

DEFAULT_CONTENT_TYPE = "application/octet-stream"

UploadSource = bytes | bytearray | memoryview | os.PathLike | BinaryIO

CONTENT_TYPES = {
    "html": "text/html",
    "htm": "text/html",
    "css": "text/css",
    "js": "application/javascript",
    "mjs": "application/javascript",
    "json": "application/json",
    "xml": "application/xml",
    "txt": "text/plain",
    "csv": "text/csv",
    "md": "text/markdown",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "ico": "image/x-icon",
    "webp": "image/webp",
    "avif": "image/avif",
    "pdf": "application/pdf",
    "zip": "application/zip",
    "gz": "application/gzip",
    "tar": "application/x-tar",
    "wasm": "application/wasm",
    "woff": "font/woff",
    "woff2": "font/woff2",
    "ttf": "font/ttf",
    "otf": "font/otf",
    "eot": "application/vnd.ms-fontobject",
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
}


def content_type_for(filename: str) -> str:
    """Guesses the MIME type from the file extension, case-insensitively."""
    extension = posixpath.splitext(filename)[1].lstrip(".").lower()
    return CONTENT_TYPES.get(extension, DEFAULT_CONTENT_TYPE)


def complete_multipart_body(parts: list[CompletedPartDict]) -> bytes:
    """Renders the CompleteMultipartUpload request document."""
    root = ET.Element("CompleteMultipartUpload")
    for part in parts:
        node = ET.SubElement(root, "Part")
        for name, value in part.items():
            ET.SubElement(node, name).text = str(value)
    return ET.tostring(root, encoding="utf-8")


class _PartReader:
    """
    Reads numbered parts of an upload source on demand.

    Bytes are sliced through a memoryview, a path is reopened per part so
    workers never share a file position, and a caller's file object is
    read under a lock starting from its current position.
    """

    def __init__(self, source: "UploadSource", part_size: int):
        self.part_size = part_size
        self._view: memoryview | None = None
        self._path: Path | None = None
        self._file: BinaryIO | None = None
        self._lock = threading.Lock()

        if isinstance(source, (bytes, bytearray, memoryview)):
            self._view = memoryview(source)
            self.size = len(source)
        elif isinstance(source, os.PathLike):
            self._path = Path(source)
            self.size = self._path.stat().st_size
        elif hasattr(source, "read") and hasattr(source, "seek"):
            self._file = source
            self._start = source.tell()
            self.size = source.seek(0, os.SEEK_END) - self._start
            source.seek(self._start)
        else:
            raise ValidationError(
                f"Cannot upload a {type(source).__name__}; pass bytes, a path or a binary file",
                code="InvalidArgument",
            )

    @property
    def part_count(self) -> int:
        return max(1, -(-self.size // self.part_size))

    def read(self, part_number: int) -> bytes:
        offset = (part_number - 1) * self.part_size
        if self._view is not None:
            return self._view[offset : offset + self.part_size].tobytes()
        if self._path is not None:
            with self._path.open("rb") as f:
                f.seek(offset)
                return f.read(self.part_size)
        with self._lock:
            self._file.seek(self._start + offset)
            return self._file.read(self.part_size)


@dataclass(frozen=True)
class S3Object:
    """Body and selected headers of a GET or HEAD response."""

    body: bytes
    content_type: str | None = None
    content_length: int | None = None
    etag: str | None = None
    last_modified: str | None = None
    version_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_response(cls, response: HttpResponse) -> "S3Object":
        length = response.header("content-length")
        metadata = {
            name.lower()[len("x-amz-meta-"):]: value
            for name, value in response.headers.items()
            if name.lower().startswith("x-amz-meta-")
        }
        return cls(
            body=response.body,
            content_type=response.header("content-type"),
            content_length=int(length) if length is not None else None,
            etag=response.header("etag"),
            last_modified=response.header("last-modified"),
            version_id=response.header("x-amz-version-id"),
            metadata=metadata,
        )


class MultipartState(str, enum.Enum):
    INITIATED = "INITIATED"
    PARTS_UPLOADING = "PARTS_UPLOADING"
    COMPLETING = "COMPLETING"
    COMPLETED = "COMPLETED"
    ABORTING = "ABORTING"
    ABORTED = "ABORTED"


_UPLOADABLE = (MultipartState.INITIATED, MultipartState.PARTS_UPLOADING)
_TERMINAL = (MultipartState.COMPLETED, MultipartState.ABORTED)


class MultipartUpload:
    """
    One in-progress multipart upload, owned by the caller until it is
    completed or aborted.

    ``upload_part`` may be called from several threads at once; parts may
    finish in any order. ``complete`` always submits them in ascending
    part-number order.
    """

    def __init__(self, client: "S3Client", bucket: str, key: str, upload_id: str):
        self._client = client
        self.bucket = bucket
        self.key = key
        self.upload_id = upload_id
        self._state = MultipartState.INITIATED
        self._parts: dict[int, CompletedPart] = {}
        self._lock = threading.Lock()

    @property
    def state(self) -> MultipartState:
        return self._state

    @property
    def parts(self) -> list[CompletedPart]:
        with self._lock:
            return [self._parts[n] for n in sorted(self._parts)]

    def _require(self, allowed: tuple[MultipartState, ...], operation: str):
        if self._state not in allowed:
            raise MultipartStateError(self.upload_id, self._state.value, operation)

    def upload_part(
        self, part_number: int, data: bytes, deadline: float | None = None
    ) -> CompletedPart:
        if not 1 <= part_number <= MAX_PARTS:
            raise ValidationError(
                f"Part number must be between 1 and {MAX_PARTS}, got {part_number}",
                code="InvalidArgument",
                context={"upload_id": self.upload_id},
            )
        with self._lock:
            self._require(_UPLOADABLE, "upload part to")
            self._state = MultipartState.PARTS_UPLOADING

        response = self._client._send(
            "PUT",
            self.bucket,
            self.key,
            query=[("partNumber", str(part_number)), ("uploadId", self.upload_id)],
            body=data,
            deadline=deadline,
        )
        part = CompletedPart(
            part_number=part_number, etag=response.header("etag") or "", size=len(data)
        )

        with self._lock:
            self._require(_UPLOADABLE, "record part for")
            self._parts[part_number] = part
        logger.debug(
            "Uploaded part",
            extra={"upload_id": self.upload_id, "part_number": part_number, "size": len(data)},
        )
        return part

    def complete(self, deadline: float | None = None) -> dict[str, Any]:
        with self._lock:
            self._require(_UPLOADABLE, "complete")
            parts = [self._parts[n] for n in sorted(self._parts)]
            if not parts:
                raise ValidationError(
                    "A multipart upload needs at least one part to complete",
                    code="MalformedXML",
                    context={"upload_id": self.upload_id},
                )
            for part in parts[:-1]:
                if part.size < MIN_PART_SIZE:
                    raise ValidationError(
                        f"Part {part.part_number} is {part.size} bytes; every part but "
                        f"the last must be at least {MIN_PART_SIZE} bytes",
                        code="EntityTooSmall",
                        context={"upload_id": self.upload_id, "part_number": part.part_number},
                    )
            self._state = MultipartState.COMPLETING

        response = self._client._send(
            "POST",
            self.bucket,
            self.key,
            query=[("uploadId", self.upload_id)],
            headers={"content-type": "application/xml"},
            body=complete_multipart_body([part.to_wire() for part in parts]),
            deadline=deadline,
        )
        # CompleteMultipartUpload can fail with a 200 status and an <Error> body.
        if extract_error(response.body) is not None:
            raise self._client.protocol.parse_error(response)

        result_root = parse_xml(response.body)
        result = {
            "bucket": self.bucket,
            "key": self.key,
            "upload_id": self.upload_id,
            "location": None,
            "etag": None,
            "parts": len(parts),
        }
        if result_root is not None:
            result["location"] = child_text(result_root, "Location")
            result["etag"] = child_text(result_root, "ETag")

        with self._lock:
            self._state = MultipartState.COMPLETED
        logger.info(
            "Completed multipart upload",
            extra={"bucket": self.bucket, "key": self.key, "upload_id": self.upload_id, "parts": len(parts)},
        )
        return result

    def abort(self, deadline: float | None = None) -> None:
        with self._lock:
            if self._state in _TERMINAL:
                raise MultipartStateError(self.upload_id, self._state.value, "abort")
            self._state = MultipartState.ABORTING

        self._client._send(
            "DELETE",
            self.bucket,
            self.key,
            query=[("uploadId", self.upload_id)],
            deadline=deadline,
        )
        with self._lock:
            self._state = MultipartState.ABORTED
        logger.info(
            "Aborted multipart upload",
            extra={"bucket": self.bucket, "key": self.key, "upload_id": self.upload_id},
        )


class S3Client:
    """
    S3 client speaking REST-XML through a signed, retrying transport.

    Virtual-hosted addressing is used unless ``force_path_style`` is set or a
    custom endpoint is configured (MinIO, LocalStack and other S3-compatible
    services expect path-style).
    """

    def __init__(
        self,
        credentials: Credentials,
        region: str | None = None,
        endpoint: str | None = None,
        force_path_style: bool = False,
        transport: HttpTransport | None = None,
        multipart_concurrency: int = 4,
        part_size: int = MIN_PART_SIZE,
    ):
        context = RequestContext(
            service="s3",
            region=region or endpoint_region(endpoint),
            endpoint=endpoint.rstrip("/") if endpoint else None,
            force_path_style=force_path_style,
        )
        self._client = AwsClient(credentials, context, RestXmlProtocol(), transport)
        self.multipart_concurrency = multipart_concurrency
        self.part_size = part_size

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        credentials: Credentials,
        transport: HttpTransport | None = None,
        region: str | None = None,
    ) -> "S3Client":
        return cls(
            credentials,
            region=region or config.region,
            endpoint=config.endpoint_url,
            force_path_style=config.force_path_style,
            transport=transport or HttpTransport.from_config(config),
            multipart_concurrency=config.multipart_concurrency,
            part_size=config.multipart_part_size_bytes,
        )

    @property
    def context(self) -> RequestContext:
        return self._client.context

    @property
    def protocol(self) -> RestXmlProtocol:
        return self._client.protocol

    # --- Addressing ---

    def _address(self, bucket: str, key: str = "") -> tuple[str, str]:
        """Returns ``(endpoint, decoded path)`` for a bucket and optional key."""
        context = self.context
        if context.force_path_style or context.uses_custom_endpoint:
            endpoint = context.endpoint or f"https://s3.{context.region}.amazonaws.com"
            path = f"/{bucket}/{key}" if key else f"/{bucket}"
            return endpoint, path
        return f"https://{bucket}.s3.{context.region}.amazonaws.com", f"/{key}"

    def build_url(self, bucket: str, key: str = "") -> str:
        endpoint, path = self._address(bucket, key)
        return endpoint + encode_path(path)

    def _send(
        self,
        method: str,
        bucket: str,
        key: str = "",
        query: list[tuple[str, str]] | None = None,
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
        deadline: float | None = None,
    ) -> HttpResponse:
        endpoint, path = self._address(bucket, key)
        request = HttpRequest(
            method=method,
            endpoint=endpoint,
            path=path,
            query=list(query or []),
            headers=dict(headers or {}),
            body=body,
        )
        return self._client.send(request, deadline=deadline)

    # --- Single-shot operations ---

    def put(
        self, bucket: str, key: str, body: bytes | str, **options
    ) -> dict[str, Any]:
        """
        Uploads ``body``, switching to multipart at ``MULTIPART_THRESHOLD`` bytes
        (inclusive). ``options`` are passed through to the chosen path.
        """
        data = body.encode("utf-8") if isinstance(body, str) else body
        if len(data) >= MULTIPART_THRESHOLD:
            return self.upload_multipart(bucket, key, data, **options)
        options.pop("part_size", None)
        options.pop("concurrency", None)
        return self.put_object(bucket, key, data, **options)

    def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes | str,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        cache_control: str | None = None,
        acl: str | None = None,
        deadline: float | None = None,
    ) -> dict[str, Any]:
        data = body.encode("utf-8") if isinstance(body, str) else body
        headers = self._object_headers(key, content_type, metadata, cache_control, acl)
        response = self._send("PUT", bucket, key, headers=headers, body=data, deadline=deadline)
        logger.debug("Put object", extra={"bucket": bucket, "key": key, "size": len(data)})
        return {
            "etag": response.header("etag"),
            "version_id": response.header("x-amz-version-id"),
        }

    def get_object(
        self, bucket: str, key: str, byte_range: str | None = None, deadline: float | None = None
    ) -> S3Object:
        headers = {"range": byte_range} if byte_range else None
        response = self._send("GET", bucket, key, headers=headers, deadline=deadline)
        return S3Object.from_response(response)

    def head_object(self, bucket: str, key: str, deadline: float | None = None) -> S3Object:
        response = self._send("HEAD", bucket, key, deadline=deadline)
        return S3Object.from_response(response)

    def delete_object(self, bucket: str, key: str, deadline: float | None = None) -> None:
        self._send("DELETE", bucket, key, deadline=deadline)

    def list_objects_v2(
        self,
        bucket: str,
        prefix: str | None = None,
        delimiter: str | None = None,
        max_keys: int | None = None,
        continuation_token: str | None = None,
        start_after: str | None = None,
        deadline: float | None = None,
    ) -> ListObjectsV2Result:
        """Returns one page; pass ``next_continuation_token`` back to fetch the next."""
        query = [("list-type", "2")]
        for name, value in (
            ("prefix", prefix),
            ("delimiter", delimiter),
            ("max-keys", max_keys),
            ("continuation-token", continuation_token),
            ("start-after", start_after),
        ):
            if value is not None:
                query.append((name, str(value)))

        response = self._send("GET", bucket, query=query, deadline=deadline)
        return parse_list_objects_v2(response.body)

    @staticmethod
    def _object_headers(
        key: str,
        content_type: str | None,
        metadata: Mapping[str, str] | None,
        cache_control: str | None,
        acl: str | None,
    ) -> dict[str, str]:
        headers = {"content-type": content_type or content_type_for(key)}
        if cache_control:
            headers["cache-control"] = cache_control
        if acl:
            headers["x-amz-acl"] = acl
        for name, value in (metadata or {}).items():
            headers[f"x-amz-meta-{name.lower()}"] = value
        return headers

    # --- Multipart ---

    def create_multipart_upload(
        self,
        bucket: str,
        key: str,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        cache_control: str | None = None,
        acl: str | None = None,
        deadline: float | None = None,
    ) -> MultipartUpload:
        headers = self._object_headers(key, content_type, metadata, cache_control, acl)
        response = self._send(
            "POST", bucket, key, query=[("uploads", "")], headers=headers, deadline=deadline
        )
        root = parse_xml(response.body)
        upload_id = child_text(root, "UploadId") if root is not None else None
        if not upload_id:
            raise ValidationError(
                "CreateMultipartUpload response did not include an UploadId",
                code="MalformedResponse",
                http_status=response.status_code,
                context={"bucket": bucket, "key": key},
            )
        logger.info(
            "Created multipart upload",
            extra={"bucket": bucket, "key": key, "upload_id": upload_id},
        )
        return MultipartUpload(self, bucket, key, upload_id)

    def upload_multipart(
        self,
        bucket: str,
        key: str,
        body: UploadSource,
        part_size: int | None = None,
        concurrency: int | None = None,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        cache_control: str | None = None,
        acl: str | None = None,
        deadline: float | None = None,
    ) -> dict[str, Any]:
        """
        Uploads ``body`` in parts over a bounded worker pool.

        ``body`` may be bytes, a path (``os.PathLike``) or a seekable binary
        file object; each worker reads its own part just before sending it.

        If any part fails after transport retries, the upload is aborted on a
        best-effort basis and MultipartIncompleteError is raised, chained to
        the original error.
        """
        part_size = part_size or self.part_size
        if part_size < MIN_PART_SIZE:
            raise ValidationError(
                f"part_size must be at least {MIN_PART_SIZE} bytes",
                code="EntityTooSmall",
                context={"part_size": part_size},
            )
        reader = _PartReader(body, part_size)
        if reader.part_count > MAX_PARTS:
            raise ValidationError(
                f"Body needs {reader.part_count} parts; S3 allows at most {MAX_PARTS}",
                code="InvalidArgument",
                context={"size": reader.size, "part_size": part_size},
            )

        upload = self.create_multipart_upload(
            bucket,
            key,
            content_type=content_type,
            metadata=metadata,
            cache_control=cache_control,
            acl=acl,
            deadline=deadline,
        )
        try:
            self._upload_parts(upload, reader, concurrency, deadline)
            return upload.complete(deadline=deadline)
        except Exception as e:
            self._abort_after_failure(upload)
            raise MultipartIncompleteError(
                bucket, key, upload.upload_id, reason=str(e), context={"cause": get_error_context(e)}
            ) from e

    def _upload_parts(
        self,
        upload: MultipartUpload,
        reader: _PartReader,
        concurrency: int | None,
        deadline: float | None,
    ) -> None:
        def upload_one(part_number: int) -> CompletedPart:
            return upload.upload_part(part_number, reader.read(part_number), deadline)

        workers = min(concurrency or self.multipart_concurrency, reader.part_count)
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="s3-multipart")
        try:
            futures = [
                executor.submit(upload_one, number)
                for number in range(1, reader.part_count + 1)
            ]
            for future in as_completed(futures):
                future.result()
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    @staticmethod
    def _abort_after_failure(upload: MultipartUpload) -> None:
        try:
            upload.abort()
        except Exception as abort_error:
            logger.error(
                "Failed to abort multipart upload; parts may remain until a lifecycle rule removes them",
                extra={
                    "bucket": upload.bucket,
                    "key": upload.key,
                    "upload_id": upload.upload_id,
                    **get_error_context(abort_error),
                },
            )

    # --- Files ---

    def upload_file(
        self, bucket: str, key: str, source: str | os.PathLike | BinaryIO, **options
    ) -> dict[str, Any]:
        """
        Uploads a file given by path or as a seekable binary file object,
        switching to multipart at ``MULTIPART_THRESHOLD`` bytes (inclusive).
        """
        if isinstance(source, str):
            source = Path(source)
        reader = _PartReader(source, options.get("part_size") or self.part_size)
        if reader.size >= MULTIPART_THRESHOLD:
            return self.upload_multipart(bucket, key, source, **options)
        options.pop("part_size", None)
        options.pop("concurrency", None)
        return self.put_object(bucket, key, reader.read(1), **options)

    def sync_directory(
        self, local_dir: str | os.PathLike, bucket: str, prefix: str = "", **options
    ) -> list[str]:
        """
        Uploads every file under ``local_dir`` to ``prefix/<relative path>``.

        Keys always use ``/`` separators and each file's content type comes
        from its extension. Files are uploaded one at a time in path order;
        the first failure stops the sync. Returns the uploaded keys.
        """
        root = Path(local_dir)
        if not root.is_dir():
            raise ValidationError(
                f"Not a directory: {root}",
                code="InvalidArgument",
                context={"local_dir": str(root)},
            )
        prefix = prefix.strip("/")
        keys = []
        for path in sorted(p for p in root.rglob("*") if p.is_file()):
            relative = path.relative_to(root).as_posix()
            key = f"{prefix}/{relative}" if prefix else relative
            self.upload_file(
                bucket, key, path, content_type=content_type_for(path.name), **options
            )
            keys.append(key)
        logger.info(
            "Synced directory",
            extra={"local_dir": str(root), "bucket": bucket, "prefix": prefix, "files": len(keys)},
        )
        return keys

    # --- Presigning ---

    def get_presigned_url(
        self, bucket: str, key: str, method: str = "GET", expires_in: int = 3600
    ) -> str:
        try:
            params = PresignedUrlRequest(
                bucket=bucket, key=key, method=method, expires_in=expires_in
            )
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid presigned URL request: {e.errors()[0]['msg']}",
                code="InvalidArgument",
                context={"bucket": bucket, "key": key, "method": method, "expires_in": expires_in},
            ) from e

        endpoint, path = self._address(params.bucket, params.key)
        request = HttpRequest(method=params.method, endpoint=endpoint, path=path)
        return self._client.presign(request, params.expires_in).url


def parse_list_objects_v2(body: bytes) -> ListObjectsV2Result:
    root = parse_xml(body)
    if root is None:
        return ListObjectsV2Result()

    contents = [
        S3ObjectSummary(
            key=child_text(node, "Key") or "",
            size=int(child_text(node, "Size") or 0),
            etag=child_text(node, "ETag"),
            last_modified=child_text(node, "LastModified") or None,
            storage_class=child_text(node, "StorageClass"),
        )
        for node in children_named(root, "Contents")
    ]
    common_prefixes = [
        child_text(node, "Prefix") or "" for node in children_named(root, "CommonPrefixes")
    ]
    key_count = child_text(root, "KeyCount")
    max_keys = child_text(root, "MaxKeys")

    return ListObjectsV2Result(
        name=child_text(root, "Name"),
        prefix=child_text(root, "Prefix") or None,
        contents=contents,
        common_prefixes=common_prefixes,
        is_truncated=(child_text(root, "IsTruncated") or "").lower() == "true",
        key_count=int(key_count) if key_count else len(contents) + len(common_prefixes),
        max_keys=int(max_keys) if max_keys else 1000,
        continuation_token=child_text(root, "ContinuationToken"),
        next_continuation_token=child_text(root, "NextContinuationToken"),
    )
