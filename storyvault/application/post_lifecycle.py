"""Post lifecycle orchestration: create, edit, delete and list posts.

Creation is one unit of work on the service's session: author upsert, rate
limit, slot claim, token issuing and post insert are committed together or
rolled back together. The author notification runs after the commit and can
never undo it.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Final

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from ..domain.clock import Clock, SystemClock
from ..domain.constants import (
    DEFAULT_PAGE_SIZE,
    DELETE_WINDOW,
    EDIT_WINDOW,
    MAX_PAGE_SIZE,
    RATE_LIMIT_WINDOW,
)
from ..domain.entities import Author, Post
from ..domain.exceptions import (
    NotificationError,
    TokenGenerationError,
    ValidationError,
)
from ..infrastructure.database.repositories import AuthorRepository, PostRepository
from ..logging_config import get_logger
from ..logging_utils import log_database_operation, log_post_action, mask_token
from ..metrics import (
    record_notification_failed,
    record_post_created,
    record_post_creation_failed,
    record_post_deleted,
    record_post_edited,
    record_rate_limited,
)
from . import rate_limiter
from .author_directory import AuthorDirectory
from .notifications import NotificationGateway
from .results import (
    DELETE_FAILED_MESSAGE,
    EDIT_FAILED_MESSAGE,
    ActionFailed,
    CreationFailed,
    CreationResult,
    DeleteResult,
    FailureKind,
    PostCreated,
    PostDeleted,
    PostPage,
    PostUnavailable,
    PostUpdated,
    RateLimited,
    UpdateResult,
)
from .tokens import TokenIssuer

logger: Final = get_logger(__name__)


@dataclass(frozen=True)
class PostSubmission:
    """An already validated post form."""

    author: str
    email: str
    message: str


class PostLifecycleService:
    """Application service for the post and author lifecycle."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notifier: NotificationGateway | None = None,
        token_issuer: TokenIssuer | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.notifier = notifier
        self.token_issuer = token_issuer or TokenIssuer()
        self.author_repo = AuthorRepository(session)
        self.post_repo = PostRepository(session)
        self.authors = AuthorDirectory(self.author_repo, self.clock)

    # Creation

    def create_post(self, submission: PostSubmission, ip: str) -> CreationResult:
        """Publish a post for the submitting author.

        Returns:
            PostCreated on success, RateLimited if the author posted too
            recently, CreationFailed if the unit of work was rolled back
        """
        now = self.clock.now()
        logger.debug("Creating post", ip_address=ip)

        try:
            outcome = self._create_in_unit(submission, ip, now)
            if isinstance(outcome, PostCreated):
                self.session.commit()
            else:
                self.session.rollback()
        except TokenGenerationError as e:
            return self._creation_failed(FailureKind.TOKEN_GENERATION, e)
        except ValidationError as e:
            return self._creation_failed(FailureKind.INVALID_SUBMISSION, e)
        except SQLAlchemyError as e:
            return self._creation_failed(FailureKind.STORAGE, e)

        if isinstance(outcome, RateLimited):
            return outcome
        if isinstance(outcome, CreationFailed):
            logger.error("Post creation aborted", kind=outcome.kind)
            record_post_creation_failed(outcome.kind)
            return outcome

        post, author = outcome.post, outcome.author
        log_database_operation(
            operation="create", table="posts", post_id=post.id, author_id=author.id
        )
        log_post_action("create_post", post.id, author.id)
        record_post_created()
        logger.info("Post created", post_id=post.id, author_id=author.id)

        self._notify_safely(post, author)
        return outcome

    def _create_in_unit(
        self, submission: PostSubmission, ip: str, now: datetime
    ) -> CreationResult:
        """Run the creation steps inside the open transaction.

        Never commits; the caller commits on PostCreated and rolls back
        otherwise.
        """
        author = self.authors.find_or_create(submission.email, submission.author, ip)
        if author is None:
            return CreationFailed(kind=FailureKind.AUTHOR_UNAVAILABLE)

        if not rate_limiter.can_post_now(author, now):
            return self._rate_limited(author, now, stage="check")

        author = self.author_repo.save(author)
        if author.id is None:
            return CreationFailed(kind=FailureKind.AUTHOR_UNAVAILABLE)

        # Conditional write closes the gap between the check above and here
        if not self.author_repo.update_last_post(author.id, now, RATE_LIMIT_WINDOW):
            current = self.author_repo.find_by_id(author.id) or author
            return self._rate_limited(current, now, stage="claim")
        author.record_post(now)

        tokens = self.token_issuer.issue_token_pair()
        post = self.post_repo.add(
            Post(
                id=None,
                author_id=author.id,
                message=submission.message,
                created_at=now,
                updated_at=now,
                edit_token=tokens.edit_token,
                delete_token=tokens.delete_token,
            )
        )
        return PostCreated(post=post, author=author)

    def _rate_limited(self, author: Author, now: datetime, stage: str) -> RateLimited:
        outcome = RateLimited(
            remaining_seconds=rate_limiter.remaining_seconds(author, now),
            next_post_time=rate_limiter.next_post_time(author, now),
        )
        logger.info(
            "Rate limit exceeded",
            author_id=author.id,
            remaining_seconds=outcome.remaining_seconds,
            stage=stage,
        )
        record_rate_limited(stage)
        return outcome

    def _creation_failed(self, kind: FailureKind, error: Exception) -> CreationFailed:
        self.session.rollback()
        log_database_operation(
            operation="create",
            table="posts",
            success=False,
            kind=kind.value,
            error_type=type(error).__name__,
        )
        logger.error(
            "Post creation failed, unit of work rolled back",
            kind=kind,
            error_type=type(error).__name__,
            error=str(error),
        )
        record_post_creation_failed(kind)
        return CreationFailed(kind=kind)

    def _notify_safely(self, post: Post, author: Author) -> None:
        """Send the management links; failures are logged, never raised."""
        if self.notifier is None:
            return

        try:
            self.notifier.notify(post, author)
        except NotificationError as e:
            logger.warning("Post notification failed", post_id=post.id, error=str(e))
            record_notification_failed(type(e).__name__)
        except Exception as e:
            # The post is already committed; nothing here may surface
            logger.warning(
                "Unexpected error sending post notification",
                post_id=post.id,
                error_type=type(e).__name__,
                error=str(e),
            )
            record_notification_failed(type(e).__name__)

    # Editing

    def get_post_for_edit(self, edit_token: str) -> Post | None:
        """Get the post behind an edit token if it can still be edited."""
        return self._editable_post(edit_token, self.clock.now())

    def update_post_by_token(self, edit_token: str, new_message: str) -> UpdateResult:
        """Replace the message of the post behind an edit token."""
        now = self.clock.now()
        post = self._editable_post(edit_token, now)
        if post is None or post.id is None:
            return PostUnavailable()

        try:
            post.edit(new_message, now)
        except ValidationError as e:
            logger.info("Post edit rejected", post_id=post.id, error=str(e))
            return ActionFailed(message=str(e))

        try:
            updated = self.post_repo.update_message(post.id, post.message, now)
            if not updated:
                # Deleted between lookup and update
                self.session.rollback()
                return PostUnavailable()
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Failed to update post", post_id=post.id, error=str(e))
            return ActionFailed(message=EDIT_FAILED_MESSAGE)

        log_post_action("edit_post", post.id, post.author_id)
        logger.info("Post updated", post_id=post.id)
        record_post_edited()
        return PostUpdated(post=post)

    def _editable_post(self, edit_token: str, now: datetime) -> Post | None:
        post = self._find_post(edit_token, self.post_repo.find_by_edit_token, "edit")
        if post is None:
            return None
        if not post.can_edit(now, EDIT_WINDOW):
            logger.info("Edit window closed", post_id=post.id)
            return None
        return post

    # Deletion

    def get_post_for_delete(self, delete_token: str) -> Post | None:
        """Get the post behind a delete token if it can still be deleted."""
        return self._deletable_post(delete_token, self.clock.now())

    def delete_post_by_token(self, delete_token: str) -> DeleteResult:
        """Soft delete the post behind a delete token. Irreversible."""
        now = self.clock.now()
        post = self._deletable_post(delete_token, now)
        if post is None or post.id is None:
            return PostUnavailable()

        try:
            deleted = self.post_repo.soft_delete(post.id, now)
            if not deleted:
                # Another request deleted it first
                self.session.rollback()
                return PostUnavailable()
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Failed to delete post", post_id=post.id, error=str(e))
            return ActionFailed(message=DELETE_FAILED_MESSAGE)

        post.soft_delete(now)
        log_post_action("delete_post", post.id, post.author_id)
        logger.info("Post soft deleted", post_id=post.id)
        record_post_deleted()
        return PostDeleted(post=post)

    def _deletable_post(self, delete_token: str, now: datetime) -> Post | None:
        post = self._find_post(
            delete_token, self.post_repo.find_by_delete_token, "delete"
        )
        if post is None:
            return None
        if not post.can_delete(now, DELETE_WINDOW):
            logger.info("Delete window closed", post_id=post.id)
            return None
        return post

    def _find_post(self, token: str, finder, purpose: str) -> Post | None:
        """Look up an active post by token; storage errors read as not found."""
        if not token:
            logger.warning("Empty token provided", purpose=purpose)
            return None

        try:
            post = finder(token)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Failed to find post by token", purpose=purpose, error=str(e))
            return None

        if post is None:
            logger.info(
                "Post not found for token",
                purpose=purpose,
                token_prefix=mask_token(token),
            )
        return post

    # Listing

    def get_posts_list(
        self, page_size: int = DEFAULT_PAGE_SIZE, page: int = 1
    ) -> PostPage:
        """Get a page of active posts, newest first.

        An unreachable store yields an empty page flagged ``degraded`` so a
        listing failure never breaks the page that shows it.
        """
        page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
        page = max(page, 1)

        try:
            posts, total_count = self.post_repo.find_active_page(page, page_size)
            author_ids = {post.author_id for post in posts}
            author_post_counts = self.post_repo.count_by_authors(author_ids)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(
                "Post listing unavailable, serving empty fallback page",
                degraded=True,
                error_type=type(e).__name__,
                error=str(e),
            )
            return PostPage(page=page, page_size=page_size, degraded=True)

        if total_count == 0:
            logger.debug("No active posts to list")

        return PostPage(
            posts=posts,
            total_count=total_count,
            page=page,
            page_size=page_size,
            author_post_counts=author_post_counts,
        )
