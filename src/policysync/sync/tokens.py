"""Change token acquisition.

Every mutating call needs the namespace's current change token. Any
successful write, from this process or anyone else, invalidates it, so a
token is fetched right before each attempt and never kept.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class ChangeTokenSource(Protocol):
    """Anything that can issue change tokens (ManagementClient does)."""

    def get_change_token(self) -> str:
        """Return the current change token."""
        ...


class ChangeTokenProvider:
    """Fetches a fresh change token for every mutation attempt."""

    def __init__(self, source: ChangeTokenSource) -> None:
        self._source = source
        self._acquired = 0

    @property
    def acquired(self) -> int:
        """Number of tokens handed out so far."""
        return self._acquired

    def acquire(self) -> str:
        """Get the current change token.

        Raises:
            RateLimitedError: If token issuance is throttled (retryable).
        """
        token = self._source.get_change_token()
        self._acquired += 1
        logger.debug("Acquired change token #%d", self._acquired)
        return token
