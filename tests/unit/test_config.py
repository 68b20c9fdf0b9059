# tests/unit/test_config.py

import pytest

# Import the components to be tested
from aws_wire.config import ClientConfig, ConfigurationError, get_config


@pytest.fixture
def mock_valid_env(monkeypatch):
    """Sets a complete, valid environment for a single test."""
    monkeypatch.setenv("AWS_REGION", "eu-west-2")
    monkeypatch.setenv("AWS_ENDPOINT_URL", "http://localhost:4566/")
    monkeypatch.setenv("AWS_S3_FORCE_PATH_STYLE", "true")
    monkeypatch.setenv("AWS_WIRE_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("AWS_WIRE_BACKOFF_BASE_MS", "200")
    monkeypatch.setenv("AWS_WIRE_MAX_BACKOFF_MS", "8000")
    monkeypatch.setenv("AWS_WIRE_TIMEOUT_SECONDS", "12")
    monkeypatch.setenv("AWS_WIRE_MULTIPART_CONCURRENCY", "8")
    monkeypatch.setenv("AWS_WIRE_MULTIPART_PART_SIZE_MB", "16")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("SERVICE_NAME", "uploader")


def test_get_config_happy_path(mock_valid_env):
    """Tests that configuration loads correctly when all env vars are set."""
    # ACT: Call the factory function
    config = get_config()

    # ASSERT
    assert config.region == "eu-west-2"
    assert config.endpoint_url == "http://localhost:4566"
    assert config.force_path_style is True
    assert config.max_attempts == 5
    assert config.timeout_seconds == 12
    assert config.multipart_concurrency == 8
    assert config.log_level == "DEBUG"
    assert config.service_name == "uploader"
    # Derived properties
    assert config.backoff_base_seconds == 0.2
    assert config.max_backoff_seconds == 8.0
    assert config.multipart_part_size_bytes == 16 * 1024 * 1024


def test_get_config_uses_defaults():
    """Tests that every variable falls back to its default value."""
    # ACT
    config = get_config()

    # ASSERT
    assert config.region == "us-east-1"
    assert config.endpoint_url is None
    assert config.force_path_style is False
    assert config.max_attempts == 3
    assert config.backoff_base_ms == 100
    assert config.max_backoff_ms == 5000
    assert config.timeout_seconds == 30
    assert config.multipart_concurrency == 4
    assert config.multipart_part_size_mb == 5
    assert config.log_level == "INFO"
    assert config.service_name == "aws-wire"


def test_get_config_falls_back_to_default_region(monkeypatch):
    monkeypatch.setenv("AWS_DEFAULT_REGION", "ap-south-1")

    assert get_config().region == "ap-south-1"


def test_get_config_reads_region_from_profile_config(monkeypatch, tmp_path):
    config_file = tmp_path / "config"
    config_file.write_text("[profile ops]\nregion = ca-central-1\n", encoding="utf-8")
    monkeypatch.setenv("AWS_CONFIG_FILE", str(config_file))
    monkeypatch.setenv("AWS_PROFILE", "ops")

    assert get_config().region == "ca-central-1"


@pytest.mark.parametrize(
    "name, value",
    [
        ("AWS_WIRE_MAX_ATTEMPTS", "not-a-number"),
        ("AWS_WIRE_MAX_ATTEMPTS", "0"),
        ("AWS_WIRE_BACKOFF_BASE_MS", "-1"),
        ("AWS_WIRE_MAX_BACKOFF_MS", "50"),
        ("AWS_WIRE_TIMEOUT_SECONDS", "0"),
        ("AWS_WIRE_MULTIPART_CONCURRENCY", "0"),
        ("AWS_WIRE_MULTIPART_PART_SIZE_MB", "4"),
        ("AWS_ENDPOINT_URL", "localhost:4566"),
        ("AWS_REGION", "   "),
        ("LOG_LEVEL", "VERBOSE"),
    ],
)
def test_get_config_invalid_env_var(monkeypatch, name, value):
    """Tests that ConfigurationError is raised for invalid values."""
    # ARRANGE
    monkeypatch.setenv(name, value)

    # ACT & ASSERT
    with pytest.raises(ConfigurationError) as exc_info:
        get_config()

    assert isinstance(exc_info.value.__cause__, ValueError)


def test_get_config_caching():
    """Tests that get_config returns the same instance when called multiple times."""
    # ACT
    config1 = get_config()
    config2 = get_config()

    # ASSERT
    assert config1 is config2  # Same object instance due to lru_cache


def test_config_is_immutable():
    config = ClientConfig.load_from_env()

    with pytest.raises(AttributeError):
        config.region = "us-west-1"
