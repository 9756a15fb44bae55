"""Domain business rules and constants."""

from datetime import timedelta
from typing import Final

# Business Rules - Core domain constraints
RATE_LIMIT_WINDOW: Final = timedelta(seconds=180)
EDIT_WINDOW: Final = timedelta(hours=12)
DELETE_WINDOW: Final = timedelta(days=14)

# Capability tokens: 32 random bytes, hex encoded
TOKEN_BYTES: Final = 32
TOKEN_LENGTH: Final = TOKEN_BYTES * 2

DEFAULT_PAGE_SIZE: Final = 20
MAX_PAGE_SIZE: Final = 100
