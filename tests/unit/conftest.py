"""
Shared fixtures for unit tests.
"""

from __future__ import annotations

import os
from dataclasses import replace
from unittest.mock import MagicMock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from aws_wire.config import ClientConfig, get_config
from aws_wire.credentials import Credentials
from aws_wire.signing import clear_signing_key_cache
from aws_wire.transport import HttpTransport, RetryPolicy

# Published AWS SigV4 example credentials.
ACCESS_KEY = "AKIDEXAMPLE"
SECRET_KEY = "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY"


@pytest.fixture(scope="session", autouse=True)
def _env_vars():
    """
    Ensures a deterministic environment for every test run.
    Overwrite *only* the variables read by the library.
    """
    original = os.environ.copy()
    for name in (
        "AWS_ACCESS_KEY_ID",
        "AWS_SECRET_ACCESS_KEY",
        "AWS_SESSION_TOKEN",
        "AWS_PROFILE",
        "AWS_SHARED_CREDENTIALS_FILE",
        "AWS_CONFIG_FILE",
        "AWS_WEB_IDENTITY_TOKEN_FILE",
        "AWS_ROLE_ARN",
        "AWS_ROLE_SESSION_NAME",
        "AWS_CONTAINER_CREDENTIALS_RELATIVE_URI",
        "AWS_CONTAINER_CREDENTIALS_FULL_URI",
        "AWS_CONTAINER_AUTHORIZATION_TOKEN",
        "AWS_CONTAINER_AUTHORIZATION_TOKEN_FILE",
        "AWS_EC2_METADATA_SERVICE_ENDPOINT",
        "AWS_ENDPOINT_URL",
        "AWS_REGION",
        "AWS_DEFAULT_REGION",
        "AWS_S3_FORCE_PATH_STYLE",
        "AWS_WIRE_MAX_ATTEMPTS",
        "AWS_WIRE_BACKOFF_BASE_MS",
        "AWS_WIRE_MAX_BACKOFF_MS",
        "AWS_WIRE_TIMEOUT_SECONDS",
        "AWS_WIRE_MULTIPART_CONCURRENCY",
        "AWS_WIRE_MULTIPART_PART_SIZE_MB",
        "LOG_LEVEL",
        "SERVICE_NAME",
    ):
        os.environ.pop(name, None)
    # Keep the developer's ~/.aws files and the metadata service out of the run.
    missing = os.path.join(os.path.dirname(__file__), "no-such-aws-dir")
    os.environ["AWS_SHARED_CREDENTIALS_FILE"] = os.path.join(missing, "credentials")
    os.environ["AWS_CONFIG_FILE"] = os.path.join(missing, "config")
    os.environ["AWS_EC2_METADATA_DISABLED"] = "true"
    os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "aws-wire-test")
    os.environ.setdefault("POWERTOOLS_LOG_LEVEL", "INFO")
    yield
    os.environ.clear()
    os.environ.update(original)


@pytest.fixture(autouse=True)
def _fresh_signing_key_cache():
    clear_signing_key_cache()
    yield
    clear_signing_key_cache()


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def make_config():
    """Factory for a ClientConfig built from defaults with selected overrides."""

    def _make(**overrides) -> ClientConfig:
        return replace(ClientConfig.load_from_env(), **overrides)

    return _make


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(access_key_id=ACCESS_KEY, secret_access_key=SECRET_KEY)


@pytest.fixture
def make_response():
    """Factory for fake ``requests.Response`` objects."""

    def _make(status_code: int = 200, body: bytes | str = b"", headers: dict | None = None):
        response = MagicMock(spec=requests.Response)
        response.status_code = status_code
        response.content = body.encode("utf-8") if isinstance(body, str) else body
        response.headers = CaseInsensitiveDict(headers or {})
        return response

    return _make


@pytest.fixture
def http_session(make_response) -> MagicMock:
    """A ``requests.Session`` stand-in that answers 200 with an empty body by default."""
    session = MagicMock(spec=requests.Session)
    session.request.return_value = make_response()
    return session


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def transport(http_session, sleeps) -> HttpTransport:
    """A transport that records backoff sleeps and always picks the jitter ceiling."""
    return HttpTransport(
        session=http_session,
        retry_policy=RetryPolicy(max_attempts=3, base_delay=0.1, max_delay=5.0),
        sleep=sleeps.append,
        uniform=lambda low, high: high,
    )


@pytest.fixture
def sent_call(http_session):
    """Returns ``(method, url, kwargs)`` of one call made on the fake session."""

    def _sent(index: int = -1):
        call = http_session.request.call_args_list[index]
        method, url = call.args
        return method, url, call.kwargs

    return _sent
