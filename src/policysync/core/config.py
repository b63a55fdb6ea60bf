"""Shared configuration classes for policysync.

This module defines configuration classes used by the API client and the
sync engine.
"""

from __future__ import annotations

from dataclasses import dataclass

# Retry defaults
DEFAULT_MUTATION_TIMEOUT = 15 * 60.0  # seconds
DEFAULT_CONSISTENCY_TIMEOUT = 4 * 60.0  # seconds
DEFAULT_INITIAL_BACKOFF = 0.5  # seconds
DEFAULT_MAX_BACKOFF = 30.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_JITTER = 0.5  # fraction of the backoff randomized


@dataclass
class ApiConfig:
    """Configuration for connecting to a management API endpoint.

    Attributes:
        endpoint_url: Base URL of the API (e.g., "https://waf.example.com").
        api_key: Optional bearer key sent with every request.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    endpoint_url: str
    api_key: str | None = None
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize endpoint URL."""
        self.endpoint_url = self.endpoint_url.rstrip("/")

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS.

        Returns:
            True if the endpoint uses HTTPS.
        """
        return self.endpoint_url.startswith("https://")


@dataclass
class RetryConfig:
    """Timing of the mutation retryer and the eventual consistency guard.

    Attributes:
        mutation_timeout: Deadline for one token-guarded mutation, retries included.
        consistency_timeout: Deadline for waiting out parent initialization.
        initial_backoff: First delay between attempts.
        max_backoff: Upper bound for a single delay.
        backoff_multiplier: Growth factor applied after each failed attempt.
        jitter: Fraction of each delay that is randomized (0 disables jitter).
    """

    mutation_timeout: float = DEFAULT_MUTATION_TIMEOUT
    consistency_timeout: float = DEFAULT_CONSISTENCY_TIMEOUT
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF
    max_backoff: float = DEFAULT_MAX_BACKOFF
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    jitter: float = DEFAULT_JITTER

    def __post_init__(self) -> None:
        """Validate timing values."""
        if self.mutation_timeout < 0 or self.consistency_timeout < 0:
            raise ValueError("Timeouts must not be negative")
        if self.initial_backoff <= 0 or self.max_backoff < self.initial_backoff:
            raise ValueError("Backoff must be positive and max_backoff >= initial_backoff")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError("jitter must be between 0 and 1")
