import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from .credentials import resolve_region
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

MIN_PART_SIZE_MB = 5

_TRUTHY = ("true", "1", "yes", "on")


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Client configuration loaded from environment variables."""

    # --- Addressing ---
    region: str
    endpoint_url: str | None
    force_path_style: bool

    # --- Retry & Transport ---
    max_attempts: int
    backoff_base_ms: int
    max_backoff_ms: int
    timeout_seconds: int

    # --- Multipart ---
    multipart_concurrency: int
    multipart_part_size_mb: int

    # --- Logging ---
    log_level: str
    service_name: str

    # --- Derived Properties ---
    @property
    def backoff_base_seconds(self) -> float:
        return self.backoff_base_ms / 1000

    @property
    def max_backoff_seconds(self) -> float:
        return self.max_backoff_ms / 1000

    @property
    def multipart_part_size_bytes(self) -> int:
        return self.multipart_part_size_mb * 1_048_576

    @classmethod
    def load_from_env(cls) -> "ClientConfig":
        """
        Loads configuration from environment variables, performing validation and type casting.
        Fails fast with a ConfigurationError if anything is invalid.
        """
        try:
            region = resolve_region().strip()
            if not region:
                raise ValueError("AWS_REGION must not be blank.")

            endpoint_url = os.getenv("AWS_ENDPOINT_URL") or None
            if endpoint_url is not None:
                endpoint_url = endpoint_url.rstrip("/")
                if not endpoint_url.startswith(("http://", "https://")):
                    raise ValueError(
                        "AWS_ENDPOINT_URL must start with http:// or https://."
                    )

            force_path_style = (
                os.getenv("AWS_S3_FORCE_PATH_STYLE", "false").lower() in _TRUTHY
            )

            # --- Handle retry and transport settings ---
            max_attempts = int(os.getenv("AWS_WIRE_MAX_ATTEMPTS", "3"))
            if max_attempts <= 0:
                raise ValueError("AWS_WIRE_MAX_ATTEMPTS must be a positive integer.")

            backoff_base_ms = int(os.getenv("AWS_WIRE_BACKOFF_BASE_MS", "100"))
            if backoff_base_ms < 0:
                raise ValueError(
                    "AWS_WIRE_BACKOFF_BASE_MS must be a non-negative integer."
                )

            max_backoff_ms = int(os.getenv("AWS_WIRE_MAX_BACKOFF_MS", "5000"))
            if max_backoff_ms < backoff_base_ms:
                raise ValueError(
                    "AWS_WIRE_MAX_BACKOFF_MS must not be smaller than AWS_WIRE_BACKOFF_BASE_MS."
                )

            timeout_seconds = int(os.getenv("AWS_WIRE_TIMEOUT_SECONDS", "30"))
            if timeout_seconds <= 0:
                raise ValueError("AWS_WIRE_TIMEOUT_SECONDS must be a positive integer.")

            # --- Handle multipart settings ---
            multipart_concurrency = int(
                os.getenv("AWS_WIRE_MULTIPART_CONCURRENCY", "4")
            )
            if multipart_concurrency <= 0:
                raise ValueError(
                    "AWS_WIRE_MULTIPART_CONCURRENCY must be a positive integer."
                )

            multipart_part_size_mb = int(
                os.getenv("AWS_WIRE_MULTIPART_PART_SIZE_MB", str(MIN_PART_SIZE_MB))
            )
            if multipart_part_size_mb < MIN_PART_SIZE_MB:
                raise ValueError(
                    f"AWS_WIRE_MULTIPART_PART_SIZE_MB must be at least {MIN_PART_SIZE_MB}."
                )

            # --- Handle special-case variables like log level ---
            log_level = os.getenv("LOG_LEVEL", "INFO").upper()
            allowed_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if log_level not in allowed_log_levels:
                raise ValueError(
                    f"LOG_LEVEL must be one of {allowed_log_levels}, not '{log_level}'"
                )

            service_name = os.getenv("SERVICE_NAME", "aws-wire")

        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid value for an environment variable: {e}"
            ) from e

        return cls(
            region=region,
            endpoint_url=endpoint_url,
            force_path_style=force_path_style,
            max_attempts=max_attempts,
            backoff_base_ms=backoff_base_ms,
            max_backoff_ms=max_backoff_ms,
            timeout_seconds=timeout_seconds,
            multipart_concurrency=multipart_concurrency,
            multipart_part_size_mb=multipart_part_size_mb,
            log_level=log_level,
            service_name=service_name,
        )


# --- Singleton Factory Function (Lazy-loaded and Cached) ---
@lru_cache(maxsize=1)
def get_config() -> ClientConfig:
    """
    Loads the client configuration from environment variables.
    The result is cached using lru_cache, so the environment is only read once
    on the first call. This avoids import-time side effects.
    """
    logger.info("Loading client configuration from environment...")
    return ClientConfig.load_from_env()
