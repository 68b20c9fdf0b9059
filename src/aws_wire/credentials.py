# src/aws_wire/credentials.py

"""
Credential and region context for a single client instance.

Both values are immutable. Rotating credentials means building a new client;
nothing here is mutated after construction, so any number of threads may read
them concurrently.
"""

import configparser
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping
from xml.parsers.expat import ExpatError

import requests

from .exceptions import ConfigurationError, CredentialsError
from .xmlutil import parse_query_result

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
DEFAULT_ROLE_SESSION_NAME = "aws-wire-session"
STS_API_VERSION = "2011-06-15"
STS_TIMEOUT_SECONDS = 5.0
METADATA_TIMEOUT_SECONDS = 1.0
ECS_METADATA_ENDPOINT = "http://169.254.170.2"
IMDS_ENDPOINT = "http://169.254.169.254"
IMDS_TOKEN_TTL_SECONDS = "21600"


@dataclass(frozen=True, slots=True)
class Credentials:
    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: str | None = field(default=None, repr=False)
    expiration: datetime | None = None

    def __post_init__(self):
        if not self.access_key_id or not self.secret_access_key:
            raise CredentialsError("Both an access key id and a secret access key are required.")


@dataclass(frozen=True, slots=True)
class RequestContext:
    """
    Signing scope and addressing for one client.

    ``service`` is the signing name (``s3``, ``dynamodb``, ``ses``), which is
    not always the endpoint prefix of the host.
    """

    service: str
    region: str
    endpoint: str | None = None
    force_path_style: bool = False

    @property
    def uses_custom_endpoint(self) -> bool:
        return self.endpoint is not None

    def credential_scope(self, date_stamp: str) -> str:
        return f"{date_stamp}/{self.region}/{self.service}/aws4_request"


def from_environment() -> Credentials | None:
    """Reads AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY and AWS_SESSION_TOKEN."""
    access_key_id = os.getenv("AWS_ACCESS_KEY_ID")
    secret_access_key = os.getenv("AWS_SECRET_ACCESS_KEY")
    if not access_key_id or not secret_access_key:
        return None
    return Credentials(
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        session_token=os.getenv("AWS_SESSION_TOKEN") or None,
    )


def from_shared_credentials_file(
    profile: str | None = None, credentials_file: str | os.PathLike | None = None
) -> Credentials | None:
    """
    Reads one profile from the INI-style shared credentials file.

    Returns None when the file or the profile is missing, or when the profile
    lacks either key.
    """
    profile = profile or os.getenv("AWS_PROFILE") or "default"
    path = Path(
        credentials_file
        or os.getenv("AWS_SHARED_CREDENTIALS_FILE")
        or Path.home() / ".aws" / "credentials"
    ).expanduser()

    if not path.is_file():
        return None

    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(path, encoding="utf-8")
    except configparser.Error as e:
        raise CredentialsError(
            f"Shared credentials file is malformed: {path}",
            context={"path": str(path), "parse_error": str(e)},
        ) from e

    if not parser.has_section(profile):
        return None

    section = parser[profile]
    access_key_id = section.get("aws_access_key_id", "").strip()
    secret_access_key = section.get("aws_secret_access_key", "").strip()
    if not access_key_id or not secret_access_key:
        return None

    return Credentials(
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        session_token=section.get("aws_session_token", "").strip() or None,
    )


def _http(session: requests.Session | None):
    return session if session is not None else requests


def _from_metadata_document(document: Mapping[str, Any]) -> Credentials | None:
    """Reads the JSON document served by the ECS and EC2 metadata endpoints."""
    access_key_id = document.get("AccessKeyId")
    secret_access_key = document.get("SecretAccessKey")
    if not access_key_id or not secret_access_key:
        return None
    expiration = document.get("Expiration")
    return Credentials(
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        session_token=document.get("Token") or None,
        expiration=datetime.fromisoformat(expiration) if expiration else None,
    )


def from_web_identity(
    session: requests.Session | None = None, timeout: float = STS_TIMEOUT_SECONDS
) -> Credentials | None:
    """
    Exchanges the token in AWS_WEB_IDENTITY_TOKEN_FILE for role credentials
    via STS AssumeRoleWithWebIdentity (EKS service accounts and the like).

    Returns None unless both AWS_WEB_IDENTITY_TOKEN_FILE and AWS_ROLE_ARN are
    set. Once they are, any failure raises CredentialsError.
    """
    token_file = os.getenv("AWS_WEB_IDENTITY_TOKEN_FILE")
    role_arn = os.getenv("AWS_ROLE_ARN")
    if not token_file or not role_arn:
        return None

    try:
        token = Path(token_file).read_text(encoding="utf-8").strip()
    except OSError as e:
        raise CredentialsError(
            f"Cannot read web identity token file: {token_file}",
            context={"path": token_file},
        ) from e

    region = os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or DEFAULT_REGION
    endpoint = _sts_endpoint(region)
    form = {
        "Action": "AssumeRoleWithWebIdentity",
        "Version": STS_API_VERSION,
        "RoleArn": role_arn,
        "RoleSessionName": os.getenv("AWS_ROLE_SESSION_NAME") or DEFAULT_ROLE_SESSION_NAME,
        "WebIdentityToken": token,
    }
    context = {"role_arn": role_arn, "endpoint": endpoint}
    try:
        response = _http(session).request("POST", endpoint + "/", data=form, timeout=timeout)
    except requests.RequestException as e:
        raise CredentialsError(
            "AssumeRoleWithWebIdentity request failed", context=context
        ) from e

    if not response.ok:
        raise CredentialsError(
            f"AssumeRoleWithWebIdentity returned HTTP {response.status_code}",
            context={**context, "http_status": response.status_code},
        )
    try:
        result = parse_query_result(response.content, "AssumeRoleWithWebIdentity")
    except ExpatError as e:
        raise CredentialsError(
            "AssumeRoleWithWebIdentity response is not well-formed XML", context=context
        ) from e

    issued = result.get("Credentials") or {}
    credentials = _from_metadata_document(
        {
            "AccessKeyId": issued.get("AccessKeyId"),
            "SecretAccessKey": issued.get("SecretAccessKey"),
            "Token": issued.get("SessionToken"),
            "Expiration": issued.get("Expiration"),
        }
    )
    if credentials is None:
        raise CredentialsError(
            "AssumeRoleWithWebIdentity response carried no credentials", context=context
        )
    return credentials


def _sts_endpoint(region: str) -> str:
    if region == "us-east-1":
        return "https://sts.amazonaws.com"
    suffix = "amazonaws.com.cn" if region.startswith("cn-") else "amazonaws.com"
    return f"https://sts.{region}.{suffix}"


def from_container_metadata(
    session: requests.Session | None = None, timeout: float = METADATA_TIMEOUT_SECONDS
) -> Credentials | None:
    """
    Reads task role credentials from the ECS/EKS Pod Identity container endpoint.

    Returns None unless AWS_CONTAINER_CREDENTIALS_RELATIVE_URI or
    AWS_CONTAINER_CREDENTIALS_FULL_URI is set. Once one is, any failure raises
    CredentialsError.
    """
    relative_uri = os.getenv("AWS_CONTAINER_CREDENTIALS_RELATIVE_URI")
    full_uri = os.getenv("AWS_CONTAINER_CREDENTIALS_FULL_URI")
    if relative_uri:
        url = ECS_METADATA_ENDPOINT + relative_uri
    elif full_uri:
        url = full_uri
    else:
        return None

    headers = {}
    token = os.getenv("AWS_CONTAINER_AUTHORIZATION_TOKEN")
    token_file = os.getenv("AWS_CONTAINER_AUTHORIZATION_TOKEN_FILE")
    if not token and token_file:
        try:
            token = Path(token_file).read_text(encoding="utf-8").strip()
        except OSError as e:
            raise CredentialsError(
                f"Cannot read container authorization token file: {token_file}",
                context={"path": token_file},
            ) from e
    if token:
        headers["Authorization"] = token

    try:
        response = _http(session).request("GET", url, headers=headers, timeout=timeout)
        response.raise_for_status()
        credentials = _from_metadata_document(response.json())
    except (requests.RequestException, ValueError) as e:
        raise CredentialsError(
            "Container credentials endpoint did not return credentials",
            context={"url": url, "error": str(e)},
        ) from e
    if credentials is None:
        raise CredentialsError(
            "Container credentials endpoint returned an incomplete document",
            context={"url": url},
        )
    return credentials


def from_instance_metadata(
    session: requests.Session | None = None, timeout: float = METADATA_TIMEOUT_SECONDS
) -> Credentials | None:
    """
    Reads instance profile credentials from EC2 IMDSv2.

    Returns None when the metadata service is disabled
    (AWS_EC2_METADATA_DISABLED=true), unreachable, or has no role attached.
    """
    if os.getenv("AWS_EC2_METADATA_DISABLED", "").lower() == "true":
        return None
    endpoint = (
        os.getenv("AWS_EC2_METADATA_SERVICE_ENDPOINT") or IMDS_ENDPOINT
    ).rstrip("/")
    http = _http(session)

    try:
        token_response = http.request(
            "PUT",
            f"{endpoint}/latest/api/token",
            headers={"x-aws-ec2-metadata-token-ttl-seconds": IMDS_TOKEN_TTL_SECONDS},
            timeout=timeout,
        )
        token_response.raise_for_status()
        headers = {"x-aws-ec2-metadata-token": token_response.text.strip()}

        roles_url = f"{endpoint}/latest/meta-data/iam/security-credentials/"
        role_response = http.request("GET", roles_url, headers=headers, timeout=timeout)
        role_response.raise_for_status()
        role_names = role_response.text.split()
        if not role_names:
            return None
        role_name = role_names[0]

        credentials_response = http.request(
            "GET", roles_url + role_name, headers=headers, timeout=timeout
        )
        credentials_response.raise_for_status()
        return _from_metadata_document(credentials_response.json())
    except (requests.RequestException, ValueError) as e:
        logger.debug(
            "Instance metadata credentials unavailable.",
            extra={"endpoint": endpoint, "error": str(e)},
        )
        return None


def profile_region(
    profile: str | None = None, config_file: str | os.PathLike | None = None
) -> str | None:
    """
    Reads ``region`` for a profile from the shared config file.

    The default profile lives under ``[default]`` and every other one under
    ``[profile <name>]``.
    """
    profile = profile or os.getenv("AWS_PROFILE") or "default"
    path = Path(
        config_file or os.getenv("AWS_CONFIG_FILE") or Path.home() / ".aws" / "config"
    ).expanduser()
    if not path.is_file():
        return None

    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(path, encoding="utf-8")
    except configparser.Error as e:
        raise ConfigurationError(
            f"Shared config file is malformed: {path}",
            context={"path": str(path), "parse_error": str(e)},
        ) from e

    section = "default" if profile == "default" else f"profile {profile}"
    if not parser.has_section(section):
        return None
    return parser[section].get("region", "").strip() or None


def resolve_region(profile: str | None = None, config_file: str | os.PathLike | None = None) -> str:
    """AWS_REGION, then AWS_DEFAULT_REGION, then the profile's region, then us-east-1."""
    return (
        os.getenv("AWS_REGION")
        or os.getenv("AWS_DEFAULT_REGION")
        or profile_region(profile, config_file)
        or DEFAULT_REGION
    )


def resolve_credentials(
    profile: str | None = None,
    credentials_file: str | os.PathLike | None = None,
    session: requests.Session | None = None,
) -> Credentials:
    """
    Resolves credentials from, in order: environment variables, the shared
    credentials file, a web identity token, the container credentials endpoint
    and EC2 instance metadata.

    An explicit profile reads only the shared credentials file.
    """
    if profile is None:
        credentials = from_environment()
        if credentials is not None:
            logger.debug("Resolved credentials from environment variables.")
            return credentials

    credentials = from_shared_credentials_file(profile, credentials_file)
    if credentials is not None:
        logger.debug(
            "Resolved credentials from shared credentials file.",
            extra={"profile": profile or os.getenv("AWS_PROFILE") or "default"},
        )
        return credentials

    if profile is None:
        providers = (
            ("web identity token", from_web_identity),
            ("container credentials endpoint", from_container_metadata),
            ("instance metadata", from_instance_metadata),
        )
        for source, provider in providers:
            credentials = provider(session)
            if credentials is not None:
                logger.debug("Resolved credentials.", extra={"source": source})
                return credentials

    raise CredentialsError(
        "AWS credentials not found. Set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY, "
        "configure a profile in the shared credentials file, or run with an IAM role.",
        context={"profile": profile},
    )
