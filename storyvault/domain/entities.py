"""Pure domain entities without infrastructure dependencies."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .constants import DELETE_WINDOW, EDIT_WINDOW
from .exceptions import ValidationError


def validate_not_blank(value: str | None, label: str) -> None:
    """Reject empty or whitespace-only values.

    Args:
        value: The value to check
        label: Human readable field label used in the error message

    Raises:
        ValidationError: If value is missing or blank
    """
    if not value or not value.strip():
        raise ValidationError(f"{label} cannot be empty")


@dataclass
class Author:
    """Identity record for everyone who has ever posted, keyed by email."""

    id: int | None
    email: str
    name: str
    ip_address: str
    created_at: datetime
    updated_at: datetime
    last_post_at: datetime | None = None

    def __post_init__(self):
        """Validate author data after initialization."""
        self.validate()

    def validate(self) -> None:
        """Validate author business rules."""
        validate_not_blank(self.email, "Author email")
        validate_not_blank(self.name, "Author name")

    def has_posted(self) -> bool:
        """Check if the author has ever published a post."""
        return self.last_post_at is not None

    def update_profile(self, name: str, ip_address: str, now: datetime) -> None:
        """Refresh the mutable profile fields on a repeated submission."""
        validate_not_blank(name, "Author name")
        self.name = name
        self.ip_address = ip_address
        self.updated_at = now

    def record_post(self, posted_at: datetime) -> None:
        """Remember when the author last posted; the timestamp never goes back."""
        if self.last_post_at is None or posted_at > self.last_post_at:
            self.last_post_at = posted_at


@dataclass
class Post:
    """A message owned by exactly one author, managed through two tokens."""

    id: int | None
    author_id: int
    message: str
    created_at: datetime
    updated_at: datetime
    edit_token: str
    delete_token: str
    deleted_at: datetime | None = None
    # Loaded for listings only
    author: Author | None = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        """Validate post data after initialization."""
        self.validate()

    def validate(self) -> None:
        """Validate post business rules."""
        validate_not_blank(self.message, "Post message")
        validate_not_blank(self.edit_token, "Edit token")
        validate_not_blank(self.delete_token, "Delete token")

        if self.edit_token == self.delete_token:
            raise ValidationError("Edit and delete tokens must differ")

    def is_deleted(self) -> bool:
        """Check if post is soft deleted."""
        return self.deleted_at is not None

    def age(self, now: datetime) -> timedelta:
        return now - self.created_at

    def can_edit(self, now: datetime, window: timedelta = EDIT_WINDOW) -> bool:
        """Check if the post is still active and inside its edit window."""
        return not self.is_deleted() and self.age(now) <= window

    def can_delete(self, now: datetime, window: timedelta = DELETE_WINDOW) -> bool:
        """Check if the post is still active and inside its delete window."""
        return not self.is_deleted() and self.age(now) <= window

    def edit(self, message: str, now: datetime) -> None:
        """Replace the message text and bump the update timestamp."""
        if self.is_deleted():
            raise ValidationError("Deleted posts cannot be edited")
        validate_not_blank(message, "Post message")
        self.message = message
        self.updated_at = now

    def soft_delete(self, now: datetime) -> None:
        """Mark post as deleted. Terminal: an existing deletion time is kept."""
        if self.deleted_at is None:
            self.deleted_at = now
