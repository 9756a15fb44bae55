"""Outcome values returned by the post lifecycle service.

Expected business outcomes (rate limiting, unavailable tokens, rolled back
creations) are values, not exceptions. Callers dispatch on the type.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Final

from ..domain.entities import Author, Post

CREATION_FAILED_MESSAGE: Final = (
    "Your message could not be published. Please try again."
)
EDIT_FAILED_MESSAGE: Final = "Your post could not be updated. Please try again."
DELETE_FAILED_MESSAGE: Final = "Your post could not be deleted. Please try again."
POST_UNAVAILABLE_MESSAGE: Final = (
    "This post is not available or can no longer be changed."
)


class FailureKind(StrEnum):
    AUTHOR_UNAVAILABLE = "author_unavailable"
    INVALID_SUBMISSION = "invalid_submission"
    TOKEN_GENERATION = "token_generation"
    STORAGE = "storage"


@dataclass(frozen=True)
class PostCreated:
    post: Post
    author: Author
    message: str = "Your message has been published. Check your email to manage it."


@dataclass(frozen=True)
class RateLimited:
    remaining_seconds: int
    next_post_time: datetime

    @property
    def message(self) -> str:
        return (
            f"You can send your next message in {self.remaining_seconds} seconds "
            f"(at {self.next_post_time:%H:%M:%S} UTC)"
        )


@dataclass(frozen=True)
class CreationFailed:
    kind: FailureKind
    message: str = CREATION_FAILED_MESSAGE


CreationResult = PostCreated | RateLimited | CreationFailed


@dataclass(frozen=True)
class PostUpdated:
    post: Post
    message: str = "Your post has been updated."


@dataclass(frozen=True)
class PostDeleted:
    post: Post
    message: str = "Your post has been deleted."


@dataclass(frozen=True)
class PostUnavailable:
    """Token unknown, post deleted, or window closed; deliberately not said which."""

    message: str = POST_UNAVAILABLE_MESSAGE


@dataclass(frozen=True)
class ActionFailed:
    message: str


UpdateResult = PostUpdated | PostUnavailable | ActionFailed
DeleteResult = PostDeleted | PostUnavailable | ActionFailed


@dataclass(frozen=True)
class PostPage:
    """One page of active posts, newest first."""

    posts: list[Post] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 20
    # Active post count per author ID for the authors on this page
    author_post_counts: dict[int, int] = field(default_factory=dict)
    # True when the store could not be read and this page is a stand-in
    degraded: bool = False

    @property
    def page_count(self) -> int:
        if self.total_count == 0:
            return 0
        return -(-self.total_count // self.page_size)
