"""Capability token issuing for post management links."""

import secrets
from collections.abc import Callable
from typing import Final, NamedTuple

from ..domain.constants import TOKEN_BYTES
from ..domain.exceptions import TokenGenerationError
from ..logging_config import get_logger

logger: Final = get_logger(__name__)


class TokenPair(NamedTuple):
    edit_token: str
    delete_token: str


class TokenIssuer:
    """Issues independent edit/delete tokens from a secure random source.

    Each token is ``TOKEN_BYTES`` random bytes, hex encoded. A failing random
    source is reported as :class:`TokenGenerationError`, never replaced with
    a weaker one.
    """

    def __init__(self, random_bytes: Callable[[int], bytes] = secrets.token_bytes):
        self._random_bytes = random_bytes

    def issue_token_pair(self) -> TokenPair:
        """Issue a fresh pair of capability tokens.

        Raises:
            TokenGenerationError: If the random source fails or misbehaves
        """
        try:
            pair = TokenPair(edit_token=self._token(), delete_token=self._token())
        except (OSError, NotImplementedError) as e:
            logger.error("Secure random source unavailable", error=str(e))
            raise TokenGenerationError(f"Token generation failed: {e}") from e

        if pair.edit_token == pair.delete_token:
            logger.error("Secure random source returned identical tokens")
            raise TokenGenerationError("Token generation returned identical tokens")

        return pair

    def _token(self) -> str:
        raw = self._random_bytes(TOKEN_BYTES)
        if len(raw) != TOKEN_BYTES:
            raise TokenGenerationError(
                f"Random source returned {len(raw)} bytes, expected {TOKEN_BYTES}"
            )
        return raw.hex()
