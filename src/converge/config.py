"""Configuration management with validation.

Poll intervals and chunk sizes are explicit configuration passed into the
waiter and the batch applier at construction, never module-level mutable
state, so tests can inject short intervals and fake clocks.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

from .resource_kinds import TAG_CHUNK_SIZE


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_POLL_INTERVAL_SECONDS = 5
MIN_POLL_INTERVAL_SECONDS = 1
MAX_POLL_INTERVAL_SECONDS = 60

DEFAULT_TIMEOUT_SECONDS = 300
MIN_TIMEOUT_SECONDS = 1
MAX_TIMEOUT_SECONDS = 7200

# Provider limit: a chunk can never exceed what one call accepts
MAX_TAG_CHUNK_SIZE = 20

VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"


@dataclass(frozen=True)
class WaiterConfig:
    """Poll pacing for ReconciliationWaiter.

    Only positivity is checked here so tests can inject sub-second intervals;
    operator-facing bounds are enforced by Config.
    """

    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    default_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if self.poll_interval_seconds <= 0:
            raise ConfigurationError("poll_interval_seconds must be positive")
        if self.default_timeout_seconds <= 0:
            raise ConfigurationError("default_timeout_seconds must be positive")


@dataclass(frozen=True)
class BatchConfig:
    """Chunk sizes for the ARM tag writer."""

    tag_chunk_size: int = TAG_CHUNK_SIZE


@dataclass(frozen=True)
class Config:
    """Runtime configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-wait.
    """

    subscription_id: str | None = None
    managed_identity_client_id: str | None = None
    waiter: WaiterConfig = field(default_factory=WaiterConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if self.subscription_id and not re.match(
            VALID_SUBSCRIPTION_ID_PATTERN, self.subscription_id.lower()
        ):
            errors.append(f"AZURE_SUBSCRIPTION_ID must be a valid GUID: {self.subscription_id}")

        if not (
            MIN_POLL_INTERVAL_SECONDS
            <= self.waiter.poll_interval_seconds
            <= MAX_POLL_INTERVAL_SECONDS
        ):
            errors.append(
                f"CONVERGE_POLL_INTERVAL must be between {MIN_POLL_INTERVAL_SECONDS} "
                f"and {MAX_POLL_INTERVAL_SECONDS} seconds"
            )

        if not (MIN_TIMEOUT_SECONDS <= self.waiter.default_timeout_seconds <= MAX_TIMEOUT_SECONDS):
            errors.append(
                f"CONVERGE_DEFAULT_TIMEOUT must be between {MIN_TIMEOUT_SECONDS} "
                f"and {MAX_TIMEOUT_SECONDS} seconds"
            )

        if not 1 <= self.batch.tag_chunk_size <= MAX_TAG_CHUNK_SIZE:
            errors.append(f"CONVERGE_TAG_CHUNK_SIZE must be between 1 and {MAX_TAG_CHUNK_SIZE}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            CONVERGE_POLL_INTERVAL: Seconds between describe polls (default: 5)
            CONVERGE_DEFAULT_TIMEOUT: Wait timeout in seconds (default: 300)
            CONVERGE_TAG_CHUNK_SIZE: Tags per call (default: 5)
            AZURE_SUBSCRIPTION_ID: Target subscription for the ARM backend
            AZURE_MANAGED_IDENTITY_CLIENT_ID: User-assigned identity client id
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        return cls(
            subscription_id=os.environ.get("AZURE_SUBSCRIPTION_ID") or None,
            managed_identity_client_id=os.environ.get("AZURE_MANAGED_IDENTITY_CLIENT_ID") or None,
            waiter=WaiterConfig(
                poll_interval_seconds=get_int(
                    "CONVERGE_POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS
                ),
                default_timeout_seconds=get_int(
                    "CONVERGE_DEFAULT_TIMEOUT", DEFAULT_TIMEOUT_SECONDS
                ),
            ),
            batch=BatchConfig(
                tag_chunk_size=get_int("CONVERGE_TAG_CHUNK_SIZE", TAG_CHUNK_SIZE),
            ),
        )
