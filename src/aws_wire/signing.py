# src/aws_wire/signing.py

"""
AWS Signature Version 4 request signing.

This module builds the canonical request for a logical HTTP request and signs
it, either with an ``Authorization`` header (normal API calls) or with query
string parameters (presigned URLs).

Reference: https://docs.aws.amazon.com/IAM/latest/UserGuide/reference_sigv-create-signed-request.html

Everything here is pure CPU work: no I/O, no shared mutable state apart from
the bounded signing-key cache, which ``functools.lru_cache`` guards with its
own lock.
"""

import hashlib
import hmac
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from functools import lru_cache
from typing import Mapping
from urllib.parse import quote, urlsplit

from .credentials import Credentials, RequestContext
from .exceptions import SigningError

ALGORITHM = "AWS4-HMAC-SHA256"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
EMPTY_SHA256 = hashlib.sha256(b"").hexdigest()
MAX_PRESIGN_EXPIRES = 604_800  # 7 days
SIGNING_KEY_CACHE_SIZE = 100

# Headers we own; stale copies are dropped before every signature.
_AUTH_HEADERS = frozenset({"authorization", "x-amz-date", "x-amz-security-token"})


@dataclass(frozen=True)
class HttpRequest:
    """
    A logical HTTP request.

    ``endpoint`` is ``scheme://host[:port]``. ``path`` is the decoded resource
    path; it is URI-encoded per segment when the URL is rendered.
    """

    method: str
    endpoint: str
    path: str = "/"
    query: list[tuple[str, str]] = field(default_factory=list)
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def url(self) -> str:
        url = self.endpoint + encode_path(self.path)
        if self.query:
            url += "?" + "&".join(
                f"{uri_encode(k)}={uri_encode(v)}" for k, v in self.query
            )
        return url

    @property
    def host(self) -> str:
        return urlsplit(self.endpoint).netloc


@dataclass(frozen=True)
class CanonicalRequest:
    method: str
    canonical_uri: str
    canonical_query_string: str
    canonical_headers: str
    signed_headers: str
    payload_hash: str

    def __str__(self) -> str:
        return "\n".join(
            [
                self.method,
                self.canonical_uri,
                self.canonical_query_string,
                self.canonical_headers,
                self.signed_headers,
                self.payload_hash,
            ]
        )

    def hexdigest(self) -> str:
        return hashlib.sha256(str(self).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SignedRequest:
    """A request carrying either an Authorization header or a signed query string."""

    request: HttpRequest
    canonical_request: CanonicalRequest
    amz_date: str
    signature: str

    @property
    def url(self) -> str:
        return self.request.url

    @property
    def headers(self) -> dict[str, str]:
        return self.request.headers


# --- Encoding helpers ---

def uri_encode(value: str) -> str:
    """RFC 3986 encoding as AWS expects it: unreserved characters only, space as %20."""
    return quote(value, safe="")


def encode_path(path: str) -> str:
    return quote(path or "/", safe="/")


def canonical_uri(path: str, service: str) -> str:
    # S3 paths are encoded once; every other service double-encodes.
    encoded = encode_path(path)
    if service == "s3":
        return encoded
    return quote(encoded, safe="/")


def canonical_query_string(query: list[tuple[str, str]]) -> str:
    pairs = sorted((uri_encode(k), uri_encode(v)) for k, v in query)
    return "&".join(f"{k}={v}" for k, v in pairs)


def canonical_headers(headers: Mapping[str, str]) -> tuple[str, str]:
    """Returns the canonical header block (with trailing newline) and the signed header list."""
    normalized: dict[str, str] = {}
    for name, value in headers.items():
        key = name.strip().lower()
        collapsed = " ".join(str(value).split())
        normalized[key] = f"{normalized[key]},{collapsed}" if key in normalized else collapsed

    names = sorted(normalized)
    block = "".join(f"{name}:{normalized[name]}\n" for name in names)
    return block, ";".join(names)


def get_header(headers: Mapping[str, str], name: str) -> str | None:
    name = name.lower()
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def format_amz_date(timestamp: datetime) -> str:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


# --- Signing primitives ---

def _hmac(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


@lru_cache(maxsize=SIGNING_KEY_CACHE_SIZE)
def derive_signing_key(secret_access_key: str, date_stamp: str, region: str, service: str) -> bytes:
    k_date = _hmac(("AWS4" + secret_access_key).encode("utf-8"), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, "aws4_request")


def clear_signing_key_cache() -> None:
    derive_signing_key.cache_clear()


def build_canonical_request(
    request: HttpRequest, service: str, payload_hash: str
) -> CanonicalRequest:
    header_block, signed_headers = canonical_headers(request.headers)
    return CanonicalRequest(
        method=request.method.upper(),
        canonical_uri=canonical_uri(request.path, service),
        canonical_query_string=canonical_query_string(request.query),
        canonical_headers=header_block,
        signed_headers=signed_headers,
        payload_hash=payload_hash,
    )


def string_to_sign(amz_date: str, credential_scope: str, canonical: CanonicalRequest) -> str:
    return "\n".join([ALGORITHM, amz_date, credential_scope, canonical.hexdigest()])


def _signature(
    credentials: Credentials, context: RequestContext, amz_date: str, canonical: CanonicalRequest
) -> str:
    date_stamp = amz_date[:8]
    key = derive_signing_key(
        credentials.secret_access_key, date_stamp, context.region, context.service
    )
    to_sign = string_to_sign(amz_date, context.credential_scope(date_stamp), canonical)
    return hmac.new(key, to_sign.encode("utf-8"), hashlib.sha256).hexdigest()


def _require_host(request: HttpRequest) -> str:
    host = get_header(request.headers, "host")
    if not host:
        raise SigningError(
            "Request has no host header; it cannot be signed.",
            context={"method": request.method, "path": request.path},
        )
    return host


def sign_request(
    credentials: Credentials,
    context: RequestContext,
    request: HttpRequest,
    timestamp: datetime | None = None,
) -> SignedRequest:
    """Signs ``request`` with an Authorization header."""
    _require_host(request)
    amz_date = format_amz_date(timestamp or datetime.now(timezone.utc))

    headers = {k: v for k, v in request.headers.items() if k.lower() not in _AUTH_HEADERS}
    headers["x-amz-date"] = amz_date
    if credentials.session_token:
        headers["x-amz-security-token"] = credentials.session_token

    payload_hash = get_header(headers, "x-amz-content-sha256")
    if payload_hash is None:
        payload_hash = sha256_hex(request.body)
        if context.service == "s3":
            headers["x-amz-content-sha256"] = payload_hash

    unsigned = replace(request, headers=headers)
    canonical = build_canonical_request(unsigned, context.service, payload_hash)
    signature = _signature(credentials, context, amz_date, canonical)

    scope = context.credential_scope(amz_date[:8])
    headers = dict(headers)
    headers["Authorization"] = (
        f"{ALGORITHM} Credential={credentials.access_key_id}/{scope}, "
        f"SignedHeaders={canonical.signed_headers}, Signature={signature}"
    )
    return SignedRequest(
        request=replace(request, headers=headers),
        canonical_request=canonical,
        amz_date=amz_date,
        signature=signature,
    )


def presign_request(
    credentials: Credentials,
    context: RequestContext,
    request: HttpRequest,
    expires_in: int = 3600,
    timestamp: datetime | None = None,
) -> SignedRequest:
    """
    Signs ``request`` through its query string.

    Only ``host`` is signed and the payload is ``UNSIGNED-PAYLOAD``, so the
    resulting URL works from any HTTP client without extra headers.
    """
    host = _require_host(request)
    if not 1 <= expires_in <= MAX_PRESIGN_EXPIRES:
        raise SigningError(
            f"expires_in must be between 1 and {MAX_PRESIGN_EXPIRES} seconds",
            context={"expires_in": expires_in},
        )

    amz_date = format_amz_date(timestamp or datetime.now(timezone.utc))
    scope = context.credential_scope(amz_date[:8])

    query = [(k, v) for k, v in request.query if not k.startswith("X-Amz-")]
    query += [
        ("X-Amz-Algorithm", ALGORITHM),
        ("X-Amz-Credential", f"{credentials.access_key_id}/{scope}"),
        ("X-Amz-Date", amz_date),
        ("X-Amz-Expires", str(expires_in)),
        ("X-Amz-SignedHeaders", "host"),
    ]
    if credentials.session_token:
        query.append(("X-Amz-Security-Token", credentials.session_token))

    unsigned = replace(request, query=query, headers={"host": host}, body=b"")
    canonical = build_canonical_request(unsigned, context.service, UNSIGNED_PAYLOAD)
    signature = _signature(credentials, context, amz_date, canonical)

    return SignedRequest(
        request=replace(unsigned, query=query + [("X-Amz-Signature", signature)]),
        canonical_request=canonical,
        amz_date=amz_date,
        signature=signature,
    )


# --- Service and region detection ---

# Hosts whose endpoint prefix differs from the signing name.
HOST_SERVICES = {
    "appstream2": "appstream",
    "cloudhsmv2": "cloudhsm",
    "email": "ses",
    "marketplace": "aws-marketplace",
    "mobile": "AWSMobileHubService",
    "pinpoint": "mobiletargeting",
    "queue": "sqs",
    "git-codecommit": "codecommit",
    "mturk-requester-sandbox": "mturk-requester",
    "personalize-runtime": "personalize",
}

_AWS_HOST = re.compile(r"([^.]+)\.(?:([^.]+)\.)?amazonaws\.com(?:\.cn)?$")
_LAMBDA_URL_HOST = re.compile(r"^[^.]+\.lambda-url\.([^.]+)\.on\.aws$")
_B2_HOST = re.compile(r"^(?:[^.]+\.)?s3\.([^.]+)\.backblazeb2\.com$")
_ENDS_WITH_DIGIT = re.compile(r"-\d$")


def detect_service_region(url: str) -> tuple[str, str] | None:
    """
    Infers ``(signing_name, region)`` from an endpoint URL.

    Returns None for hosts that do not follow a known naming scheme.
    """
    hostname = urlsplit(url).hostname or ""

    if hostname.endswith(".on.aws"):
        match = _LAMBDA_URL_HOST.match(hostname)
        return ("lambda", match.group(1)) if match else None

    if hostname.endswith(".r2.cloudflarestorage.com"):
        return "s3", "auto"

    if hostname.endswith(".backblazeb2.com"):
        match = _B2_HOST.match(hostname)
        return ("s3", match.group(1)) if match else None

    match = _AWS_HOST.search(hostname.replace("dualstack.", ""))
    if not match:
        return None

    service, region = match.group(1), match.group(2) or ""

    if region == "us-gov":
        region = "us-gov-west-1"
    elif region in ("s3", "s3-accelerate"):
        service, region = "s3", "us-east-1"
    elif not region and service.startswith("s3-"):
        region = re.sub(r"^fips-|^external-1", "", service[3:])
        service = "s3"
    elif service.endswith("-fips"):
        service = service[:-5]
    elif region and _ENDS_WITH_DIGIT.search(service) and not _ENDS_WITH_DIGIT.search(region):
        service, region = region, service

    return HOST_SERVICES.get(service, service), region or "us-east-1"


def endpoint_region(endpoint: str | None, default: str = "us-east-1") -> str:
    """Region inferred from a recognised endpoint host, else ``default``."""
    detected = detect_service_region(endpoint) if endpoint else None
    return detected[1] if detected else default
