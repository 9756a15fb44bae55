"""Infrastructure layer - Repository implementations.

Repositories flush but never commit. The caller owns the transaction, so
several repository calls can form one unit of work.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Final

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from ...domain.entities import Author as DomainAuthor
from ...domain.entities import Post as DomainPost
from ...domain.exceptions import AuthorAlreadyExistsError
from .models import Author as AuthorModel
from .models import Post as PostModel

_EMAIL_CONSTRAINT_MARKERS: Final = ("uq_authors_email", "authors.email", "(email)")


def _is_email_conflict(error: IntegrityError) -> bool:
    """Check whether an integrity error comes from the author email constraint."""
    message = str(error.orig).lower()
    return any(marker in message for marker in _EMAIL_CONSTRAINT_MARKERS)


def active_posts_filter():
    """Predicate selecting posts that have not been soft deleted."""
    return PostModel.deleted_at.is_(None)  # type: ignore[union-attr]


class AuthorRepository:
    """Repository for Author persistence operations."""

    def __init__(self, session: Session):
        self.session = session

    def find_by_email(self, email: str) -> DomainAuthor | None:
        """Find author by exact (case-sensitive) email."""
        if not email:
            return None
        author_model = self.session.exec(
            select(AuthorModel).where(AuthorModel.email == email)
        ).first()
        return author_model.to_domain() if author_model else None

    def find_by_id(self, author_id: int) -> DomainAuthor | None:
        """Find author by ID, always reading the current row."""
        author_model = self.session.exec(
            select(AuthorModel)
            .where(AuthorModel.id == author_id)
            .execution_options(populate_existing=True)
        ).first()
        return author_model.to_domain() if author_model else None

    def insert(self, domain_author: DomainAuthor) -> DomainAuthor:
        """Insert a new author inside a savepoint.

        A failed insert only rolls back the savepoint, the surrounding
        transaction stays usable.

        Raises:
            AuthorAlreadyExistsError: If another row already holds the email
            IntegrityError: For any other constraint violation
        """
        author_model = AuthorModel.from_domain(domain_author)
        try:
            with self.session.begin_nested():
                self.session.add(author_model)
                self.session.flush()
        except IntegrityError as e:
            if _is_email_conflict(e):
                raise AuthorAlreadyExistsError(
                    f"Author with email '{domain_author.email}' already exists"
                ) from e
            raise

        return author_model.to_domain()

    def save(self, domain_author: DomainAuthor) -> DomainAuthor:
        """Insert a new author or update the profile fields of an existing one.

        ``last_post_at`` is deliberately not written here, it only changes
        through :meth:`update_last_post`.
        """
        if domain_author.id is None:
            return self.insert(domain_author)

        author_model = self.session.get(AuthorModel, domain_author.id)
        if author_model is None:
            raise ValueError(f"Author {domain_author.id} does not exist")

        author_model.name = domain_author.name
        author_model.ip_address = domain_author.ip_address
        author_model.updated_at = domain_author.updated_at
        self.session.add(author_model)
        self.session.flush()
        return author_model.to_domain()

    def update_last_post(
        self, author_id: int, posted_at: datetime, window: timedelta
    ) -> bool:
        """Set ``last_post_at`` only if the author is outside the rate window.

        Check and write happen in one statement, so two concurrent requests
        cannot both pass.

        Returns:
            True if the timestamp was written, False if the author posted
            within ``window`` before ``posted_at``
        """
        statement = (
            update(AuthorModel)
            .where(
                AuthorModel.id == author_id,  # type: ignore[arg-type]
                or_(
                    AuthorModel.last_post_at.is_(None),  # type: ignore[union-attr]
                    AuthorModel.last_post_at <= posted_at - window,  # type: ignore[operator]
                ),
            )
            .values(last_post_at=posted_at)
        )
        result = self.session.connection().execute(statement)
        return result.rowcount == 1


class PostRepository:
    """Repository for Post persistence operations."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, domain_post: DomainPost) -> DomainPost:
        """Insert a new post and return it with its assigned ID."""
        post_model = PostModel.from_domain(domain_post)
        self.session.add(post_model)
        self.session.flush()
        return post_model.to_domain()

    def find_by_id(self, post_id: int) -> DomainPost | None:
        """Find post by ID, including soft deleted ones."""
        post_model = self.session.exec(
            select(PostModel)
            .where(PostModel.id == post_id)
            .execution_options(populate_existing=True)
        ).first()
        return post_model.to_domain() if post_model else None

    def find_by_edit_token(self, token: str) -> DomainPost | None:
        """Find an active post by its edit token."""
        if not token:
            return None
        post_model = self.session.exec(
            select(PostModel).where(
                PostModel.edit_token == token, active_posts_filter()
            )
        ).first()
        return post_model.to_domain(with_author=True) if post_model else None

    def find_by_delete_token(self, token: str) -> DomainPost | None:
        """Find an active post by its delete token."""
        if not token:
            return None
        post_model = self.session.exec(
            select(PostModel).where(
                PostModel.delete_token == token, active_posts_filter()
            )
        ).first()
        return post_model.to_domain(with_author=True) if post_model else None

    def find_active_page(
        self, page: int, page_size: int
    ) -> tuple[list[DomainPost], int]:
        """Get one page of active posts, newest first, with the total count."""
        total_count = self.count_active()
        statement: Final = (
            select(PostModel)
            .where(active_posts_filter())
            .options(selectinload(PostModel.author))  # type: ignore[arg-type]
            .order_by(
                PostModel.created_at.desc(),  # type: ignore[attr-defined]
                PostModel.id.desc(),  # type: ignore[union-attr]
            )
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        posts = self.session.exec(statement).all()
        return [post.to_domain(with_author=True) for post in posts], total_count

    def update_message(self, post_id: int, message: str, updated_at: datetime) -> bool:
        """Replace the message of an active post.

        Returns:
            True if the row was updated, False if it is missing or deleted
        """
        statement = (
            update(PostModel)
            .where(PostModel.id == post_id, active_posts_filter())  # type: ignore[arg-type]
            .values(message=message, updated_at=updated_at)
        )
        result = self.session.connection().execute(statement)
        return result.rowcount == 1

    def soft_delete(self, post_id: int, deleted_at: datetime) -> bool:
        """Soft delete an active post. A deleted post is never touched again.

        Returns:
            True if the post was deleted now, False if missing or already deleted
        """
        statement = (
            update(PostModel)
            .where(PostModel.id == post_id, active_posts_filter())  # type: ignore[arg-type]
            .values(deleted_at=deleted_at)
        )
        result = self.session.connection().execute(statement)
        return result.rowcount == 1

    def count_active(self) -> int:
        """Count all active posts."""
        return self.session.exec(
            select(func.count()).select_from(PostModel).where(active_posts_filter())
        ).one()

    def count_by_authors(self, author_ids: Iterable[int]) -> dict[int, int]:
        """Count active posts for each of the given authors in one query."""
        ids = list(author_ids)
        if not ids:
            return {}
        rows = self.session.exec(
            select(PostModel.author_id, func.count())
            .where(
                PostModel.author_id.in_(ids),  # type: ignore[attr-defined]
                active_posts_filter(),
            )
            .group_by(PostModel.author_id)
        ).all()
        return {author_id: count for author_id, count in rows}
