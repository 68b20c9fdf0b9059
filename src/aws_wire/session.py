# src/aws_wire/session.py

"""
Factory for independently configured service clients.

An AwsSession holds one configuration, one set of credentials and one pooled
``requests.Session``. Every client it hands out gets its own transport and
request context; there is no process-wide client state, so two sessions with
different credentials or regions never interfere.
"""

import logging

import requests

from .config import ClientConfig, get_config
from .credentials import Credentials, resolve_credentials
from .s3 import S3Client
from .services.acm import ACMClient
from .services.cloudformation import CloudFormationClient
from .services.cloudtrail import CloudTrailClient
from .services.dynamodb import DynamoDBClient
from .services.elasticache import ElastiCacheClient
from .services.eventbridge import EventBridgeClient
from .services.ses import SESClient
from .transport import HttpTransport

logger = logging.getLogger(__name__)

SERVICE_CLIENTS = {
    "s3": S3Client,
    "dynamodb": DynamoDBClient,
    "events": EventBridgeClient,
    "cloudtrail": CloudTrailClient,
    "ses": SESClient,
    "elasticache": ElastiCacheClient,
    "acm": ACMClient,
    "cloudformation": CloudFormationClient,
}


class AwsSession:
    def __init__(
        self,
        config: ClientConfig | None = None,
        credentials: Credentials | None = None,
        http_session: requests.Session | None = None,
    ):
        self.config = config or get_config()
        self._http_session = http_session or requests.Session()
        self.credentials = credentials or resolve_credentials(session=self._http_session)

    def transport(self) -> HttpTransport:
        return HttpTransport.from_config(self.config, session=self._http_session)

    def client(self, service: str, region: str | None = None):
        """Builds a client for ``service`` (``s3``, ``dynamodb``, ``events``...)."""
        try:
            client_type = SERVICE_CLIENTS[service]
        except KeyError:
            raise ValueError(
                f"Unknown service '{service}'. Known services: {sorted(SERVICE_CLIENTS)}"
            ) from None

        logger.debug(
            "Creating service client",
            extra={"service": service, "region": region or self.config.region},
        )
        return client_type.from_config(
            self.config, self.credentials, transport=self.transport(), region=region
        )

    def s3(self, region: str | None = None) -> S3Client:
        return self.client("s3", region)

    def dynamodb(self, region: str | None = None) -> DynamoDBClient:
        return self.client("dynamodb", region)

    def eventbridge(self, region: str | None = None) -> EventBridgeClient:
        return self.client("events", region)

    def cloudtrail(self, region: str | None = None) -> CloudTrailClient:
        return self.client("cloudtrail", region)

    def ses(self, region: str | None = None) -> SESClient:
        return self.client("ses", region)

    def elasticache(self, region: str | None = None) -> ElastiCacheClient:
        return self.client("elasticache", region)

    def acm(self, region: str | None = None) -> ACMClient:
        return self.client("acm", region)

    def cloudformation(self, region: str | None = None) -> CloudFormationClient:
        return self.client("cloudformation", region)

    def close(self) -> None:
        self._http_session.close()

    def __enter__(self) -> "AwsSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
