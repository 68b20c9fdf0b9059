# src/aws_wire/services/base.py

"""
Shared plumbing for the typed service clients.

Each client binds one protocol strategy and one signing name at construction
and maps every public method onto exactly one AWS action. Pagination tokens
are returned to the caller untouched; nothing here pages automatically.
"""

from typing import Any, Mapping

from ..config import ClientConfig
from ..credentials import Credentials, RequestContext
from ..protocols import AwsClient, Protocol
from ..signing import endpoint_region
from ..transport import HttpTransport


def compact(params: Mapping[str, Any]) -> dict[str, Any]:
    """Drops None values so optional arguments are simply left off the request."""
    return {key: value for key, value in params.items() if value is not None}


def tag_list(tags: Mapping[str, str] | None) -> list[dict[str, str]] | None:
    if not tags:
        return None
    return [{"Key": key, "Value": value} for key, value in tags.items()]


def as_list(value: Any) -> list:
    """XML lists with no members parse as None; callers always get a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class ServiceClient:
    signing_name: str
    endpoint_prefix: str | None = None

    def __init__(
        self,
        credentials: Credentials,
        region: str | None = None,
        endpoint: str | None = None,
        transport: HttpTransport | None = None,
    ):
        context = RequestContext(
            service=self.signing_name,
            region=region or endpoint_region(endpoint),
            endpoint=endpoint.rstrip("/") if endpoint else None,
        )
        self._client = AwsClient(
            credentials,
            context,
            self.build_protocol(),
            transport,
            endpoint_prefix=self.endpoint_prefix,
        )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        credentials: Credentials,
        transport: HttpTransport | None = None,
        region: str | None = None,
    ):
        return cls(
            credentials,
            region=region or config.region,
            endpoint=config.endpoint_url,
            transport=transport or HttpTransport.from_config(config),
        )

    @classmethod
    def build_protocol(cls) -> Protocol:
        raise NotImplementedError

    @property
    def endpoint(self) -> str:
        return self._client.endpoint

    def _call(
        self, action: str, params: Mapping[str, Any] | None = None, deadline: float | None = None
    ) -> dict[str, Any]:
        return self._client.call(action, compact(params or {}), deadline=deadline)
