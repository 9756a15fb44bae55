"""Infrastructure and technical constants."""

from typing import Final

# Technical configuration constants
DEFAULT_PORT: Final = 8000
DEFAULT_SMTP_PORT: Final = 587
SMTP_TIMEOUT_SECONDS: Final = 10
# Leading characters of a capability token that may appear in logs
LOGGED_TOKEN_PREFIX_LENGTH: Final = 8
