# src/aws_wire/protocols.py

"""
Wire protocols and the per-client dispatcher.

AWS services speak one of three protocols here:

- REST-XML (S3): resources addressed by host and path, XML bodies.
- JSON-RPC (DynamoDB, EventBridge, CloudTrail, ACM): ``POST /`` with an
  ``X-Amz-Target`` header naming the action and a JSON body.
- Query (CloudFormation, ElastiCache, SES v1): ``POST /`` with a form-encoded
  body carrying ``Action`` and ``Version``, XML responses.

Every non-2xx response is classified into exactly one ServiceError subclass.
"""

import json
import logging
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from http import HTTPStatus
from typing import Any, Iterable, Mapping
from urllib.parse import quote, urlencode
from xml.parsers.expat import ExpatError

from .credentials import Credentials, RequestContext
from .exceptions import SERVICE_ERROR_TYPES, ErrorKind, ServiceError, ValidationError
from .signing import (
    HttpRequest,
    SignedRequest,
    get_header,
    presign_request,
    sign_request,
)
from .transport import HttpResponse, HttpTransport
from .xmlutil import extract_error, flatten_query_params, parse_query_result

logger = logging.getLogger(__name__)


class ProtocolKind(str, Enum):
    REST_XML = "rest-xml"
    JSON = "json"
    QUERY = "query"


# --- Error classification ---

THROTTLING_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "TooManyRequestsException",
        "RequestLimitExceeded",
        "RequestThrottled",
        "RequestThrottledException",
        "ProvisionedThroughputExceededException",
        "TransactionInProgressException",
        "LimitExceededException",
        "BandwidthLimitExceeded",
        "SlowDown",
        "PriorRequestNotComplete",
        "EC2ThrottledException",
    }
)

SERVER_ERROR_CODES = frozenset(
    {"InternalError", "InternalFailure", "InternalServerError", "ServiceUnavailable"}
)

AUTHENTICATION_CODES = frozenset(
    {
        "AuthFailure",
        "ExpiredToken",
        "ExpiredTokenException",
        "IncompleteSignature",
        "InvalidAccessKeyId",
        "InvalidClientTokenId",
        "InvalidSignatureException",
        "InvalidToken",
        "MissingAuthenticationToken",
        "RequestExpired",
        "RequestTimeTooSkewed",
        "SignatureDoesNotMatch",
        "UnrecognizedClientException",
    }
)

ACCESS_DENIED_CODES = frozenset(
    {
        "AccessDenied",
        "AccessDeniedException",
        "AllAccessDisabled",
        "Forbidden",
        "UnauthorizedOperation",
    }
)

NOT_FOUND_CODES = frozenset(
    {"NoSuchBucket", "NoSuchKey", "NoSuchUpload", "NoSuchEntity", "NotFound"}
)
NOT_FOUND_SUFFIXES = ("NotFound", "NotFoundException", "NotFoundFault")


def classify_error(status: int | None, code: str) -> ErrorKind:
    if code in THROTTLING_CODES or status == 429:
        return ErrorKind.THROTTLING
    if code in SERVER_ERROR_CODES or (status is not None and status >= 500):
        return ErrorKind.SERVICE_UNAVAILABLE
    if code in AUTHENTICATION_CODES or status == 401:
        return ErrorKind.AUTHENTICATION
    if code in ACCESS_DENIED_CODES or status == 403:
        return ErrorKind.ACCESS_DENIED
    if code in NOT_FOUND_CODES or code.endswith(NOT_FOUND_SUFFIXES) or status == 404:
        return ErrorKind.NOT_FOUND
    return ErrorKind.VALIDATION


def build_service_error(
    status: int | None,
    code: str,
    message: str,
    request_id: str | None = None,
    context: Mapping[str, Any] | None = None,
) -> ServiceError:
    kind = classify_error(status, code)
    error_type = SERVICE_ERROR_TYPES[kind]
    return error_type(
        message or code,
        code=code,
        http_status=status,
        request_id=request_id,
        context=context,
    )


def _status_code_name(status: int) -> str:
    try:
        return HTTPStatus(status).phrase.replace(" ", "")
    except ValueError:
        return f"Http{status}"


def _xml_error(response: HttpResponse, request_id_header: str) -> ServiceError:
    request_id = response.header(request_id_header)
    parsed = extract_error(response.body)
    if parsed is None:
        # HEAD responses and some proxies return no body.
        code, message = _status_code_name(response.status_code), ""
    else:
        code, message, body_request_id = parsed
        code = code or _status_code_name(response.status_code)
        request_id = request_id or body_request_id
    return build_service_error(response.status_code, code, message, request_id)


# --- Strategies ---

class RestXmlProtocol:
    """S3-style REST with XML bodies. Requests are built by the S3 client itself."""

    kind = ProtocolKind.REST_XML

    def parse_error(self, response: HttpResponse) -> ServiceError:
        return _xml_error(response, "x-amz-request-id")


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class JsonRpcProtocol:
    kind = ProtocolKind.JSON

    def __init__(self, target_prefix: str, json_version: str = "1.1"):
        if json_version not in ("1.0", "1.1"):
            raise ValueError(f"Unsupported AWS JSON version: {json_version}")
        self.target_prefix = target_prefix
        self.json_version = json_version

    @property
    def content_type(self) -> str:
        return f"application/x-amz-json-{self.json_version}"

    def build_request(self, endpoint: str, action: str, params: Mapping[str, Any]) -> HttpRequest:
        body = json.dumps(params, default=_json_default).encode("utf-8")
        return HttpRequest(
            method="POST",
            endpoint=endpoint,
            path="/",
            headers={
                "content-type": self.content_type,
                "x-amz-target": f"{self.target_prefix}.{action}",
            },
            body=body,
        )

    def parse_response(self, action: str, response: HttpResponse) -> dict:
        return response.json() or {}

    def parse_error(self, response: HttpResponse) -> ServiceError:
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        code = payload.get("__type") or payload.get("code") or ""
        code = code.rsplit("#", 1)[-1]
        if not code:
            header_type = response.header("x-amzn-ErrorType") or ""
            code = header_type.split(":", 1)[0]
        code = code or _status_code_name(response.status_code)

        message = payload.get("message") or payload.get("Message") or ""
        return build_service_error(
            response.status_code,
            code,
            message,
            request_id=response.header("x-amzn-RequestId"),
        )


class QueryProtocol:
    kind = ProtocolKind.QUERY

    def __init__(
        self,
        api_version: str,
        list_tags: Iterable[str] = (),
        member_names: Mapping[str, str] | None = None,
    ):
        """
        Args:
            api_version: Value of the ``Version`` form field, e.g. ``2010-05-15``.
            list_tags: Extra element names that always wrap list items, for
                services that do not use ``member`` (ElastiCache's ``CacheCluster``).
            member_names: Request list parameters serialized with a named
                member instead of ``member``.
        """
        self.api_version = api_version
        self.list_tags = frozenset(list_tags)
        self.member_names = dict(member_names or {})

    def build_request(self, endpoint: str, action: str, params: Mapping[str, Any]) -> HttpRequest:
        fields = [("Action", action), ("Version", self.api_version)]
        fields += flatten_query_params(params, member_names=self.member_names)
        return HttpRequest(
            method="POST",
            endpoint=endpoint,
            path="/",
            headers={"content-type": "application/x-www-form-urlencoded; charset=utf-8"},
            body=urlencode(fields, quote_via=quote).encode("utf-8"),
        )

    def parse_response(self, action: str, response: HttpResponse) -> dict:
        try:
            return parse_query_result(response.body, action, self.list_tags)
        except ExpatError as e:
            raise ValidationError(
                f"{action} response is not well-formed XML",
                code="MalformedResponse",
                http_status=response.status_code,
                context={"action": action, "parse_error": str(e)},
            ) from e

    def parse_error(self, response: HttpResponse) -> ServiceError:
        return _xml_error(response, "x-amzn-RequestId")


Protocol = RestXmlProtocol | JsonRpcProtocol | QueryProtocol

_PROTOCOLS = {
    ProtocolKind.REST_XML: RestXmlProtocol,
    ProtocolKind.JSON: JsonRpcProtocol,
    ProtocolKind.QUERY: QueryProtocol,
}


def protocol_for(kind: ProtocolKind | str, **options) -> Protocol:
    """Builds the strategy for ``kind``; an unknown kind raises ValueError."""
    return _PROTOCOLS[ProtocolKind(kind)](**options)


# --- Dispatcher ---

def default_endpoint(endpoint_prefix: str, region: str) -> str:
    suffix = "amazonaws.com.cn" if region.startswith("cn-") else "amazonaws.com"
    return f"https://{endpoint_prefix}.{region}.{suffix}"


class AwsClient:
    """
    One configured connection to one AWS service.

    Owns its credentials, request context, protocol strategy and transport.
    Instances share nothing mutable, so separate clients may use different
    credentials or regions side by side.
    """

    def __init__(
        self,
        credentials: Credentials,
        context: RequestContext,
        protocol: Protocol,
        transport: HttpTransport | None = None,
        endpoint_prefix: str | None = None,
    ):
        self.credentials = credentials
        self.context = context
        self.protocol = protocol
        self.transport = transport or HttpTransport()
        self.endpoint = context.endpoint or default_endpoint(
            endpoint_prefix or context.service, context.region
        )

    def sign(self, request: HttpRequest) -> SignedRequest:
        return sign_request(self.credentials, self.context, request)

    def presign(self, request: HttpRequest, expires_in: int) -> SignedRequest:
        return presign_request(
            self.credentials, self.context, _with_host(request), expires_in=expires_in
        )

    def send(self, request: HttpRequest, deadline: float | None = None) -> HttpResponse:
        """Signs and sends a fully built request, classifying any error response."""
        return self.transport.send(
            _with_host(request),
            sign=self.sign,
            parse_error=self.protocol.parse_error,
            deadline=deadline,
        )

    def call(
        self,
        action: str,
        params: Mapping[str, Any] | None = None,
        deadline: float | None = None,
    ) -> dict:
        """Invokes a JSON-RPC or Query action and returns the parsed result."""
        protocol = self.protocol
        if protocol.kind is ProtocolKind.REST_XML:
            raise TypeError("REST-XML clients address resources by path; build requests and use send().")
        if protocol.kind not in (ProtocolKind.JSON, ProtocolKind.QUERY):
            raise TypeError(f"Unsupported protocol: {protocol.kind!r}")

        request = protocol.build_request(self.endpoint, action, params or {})
        logger.debug(
            "Calling AWS action",
            extra={"service": self.context.service, "action": action, "protocol": protocol.kind.value},
        )
        response = self.send(request, deadline=deadline)
        return protocol.parse_response(action, response)


def _with_host(request: HttpRequest) -> HttpRequest:
    if get_header(request.headers, "host"):
        return request
    return replace(request, headers={"host": request.host, **request.headers})
