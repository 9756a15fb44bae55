"""Per-author posting rate limit.

Pure decisions over an author's last post time; mutual exclusion between
concurrent submissions is provided by ``AuthorRepository.update_last_post``.
"""

import math
from datetime import datetime, timedelta

from ..domain.constants import RATE_LIMIT_WINDOW
from ..domain.entities import Author


def can_post_now(
    author: Author, now: datetime, window: timedelta = RATE_LIMIT_WINDOW
) -> bool:
    """Check if the author is allowed to publish a post at ``now``."""
    if author.last_post_at is None:
        return True
    return now - author.last_post_at >= window


def next_post_time(
    author: Author, now: datetime, window: timedelta = RATE_LIMIT_WINDOW
) -> datetime:
    """Get the earliest moment the author may post again."""
    if author.last_post_at is None:
        return now
    return author.last_post_at + window


def remaining_seconds(
    author: Author, now: datetime, window: timedelta = RATE_LIMIT_WINDOW
) -> int:
    """Get whole seconds until the author may post again, never negative.

    Partial seconds round up, so a blocked author never sees 0.
    """
    remaining = (next_post_time(author, now, window) - now).total_seconds()
    return max(0, math.ceil(remaining))
