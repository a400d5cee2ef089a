"""
Holds the current token pair for one client instance.
"""
import logging
from typing import Optional

from ..console import mask_token
from ..types import TokenPair

logger = logging.getLogger("construction_client.auth.token_store")


class TokenStore:
    """In-memory token holder.

    Written only by the refresh coordinator (refresh, login, logout); read by
    the dispatcher when it attaches the Authorization header.
    """

    def __init__(self, tokens: Optional[TokenPair] = None) -> None:
        self._tokens = tokens
        self._generation = 0

    def get(self) -> Optional[TokenPair]:
        return self._tokens

    @property
    def access_token(self) -> Optional[str]:
        return self._tokens.access_token if self._tokens else None

    @property
    def refresh_token(self) -> Optional[str]:
        return self._tokens.refresh_token if self._tokens else None

    @property
    def generation(self) -> int:
        """Incremented on every set/clear, lets callers detect a swap."""
        return self._generation

    def set(self, tokens: TokenPair) -> None:
        self._tokens = tokens
        self._generation += 1
        logger.debug(
            f"TokenStore.set: generation={self._generation}, "
            f"access_token={mask_token(tokens.access_token)}"
        )

    def clear(self) -> None:
        self._tokens = None
        self._generation += 1
        logger.debug(f"TokenStore.clear: generation={self._generation}")
