"""Author lookup and find-or-create with duplicate email race handling."""

from typing import Final

from sqlalchemy.exc import SQLAlchemyError

from ..domain.clock import Clock
from ..domain.entities import Author
from ..domain.exceptions import AuthorAlreadyExistsError, ValidationError
from ..infrastructure.database.repositories import AuthorRepository
from ..logging_config import get_logger
from ..logging_utils import log_database_operation

logger: Final = get_logger(__name__)


class AuthorDirectory:
    """Resolves the author behind a submission.

    Email uniqueness is enforced by the database, not here. When two
    requests create the same new author concurrently, the loser's insert
    fails on the constraint and it adopts the winner's row.
    """

    def __init__(self, authors: AuthorRepository, clock: Clock):
        self.authors = authors
        self.clock = clock

    def find_by_email(self, email: str) -> Author | None:
        """Find the author registered under ``email``.

        Returns None for an empty email and when the store cannot be read.
        """
        if not email:
            logger.warning("Empty email provided to find_by_email")
            return None

        try:
            return self.authors.find_by_email(email)
        except SQLAlchemyError as e:
            logger.error("Failed to find author by email", error=str(e))
            return None

    def find_or_create(self, email: str, name: str, ip: str) -> Author | None:
        """Return the author for ``email`` with name and IP refreshed.

        Existing authors are updated in memory only; the caller persists them.
        New authors are inserted immediately (inside a savepoint) so the
        uniqueness constraint arbitrates concurrent creations.

        Returns:
            The resolved author, or None on empty email, invalid profile
            data, storage failure or an unresolved race
        """
        if not email:
            logger.error("Empty email provided to find_or_create")
            return None

        now = self.clock.now()
        try:
            author = self.authors.find_by_email(email)
            if author is not None:
                author.update_profile(name, ip, now)
                return author

            new_author = Author(
                id=None,
                email=email,
                name=name,
                ip_address=ip,
                created_at=now,
                updated_at=now,
            )
            try:
                created = self.authors.insert(new_author)
            except AuthorAlreadyExistsError:
                return self._adopt_concurrent_author(email, name, ip)

            log_database_operation(
                operation="create", table="authors", author_id=created.id
            )
            logger.info("Author created", author_id=created.id)
            return created

        except ValidationError as e:
            logger.warning("Author rejected by validation", error=str(e))
            return None
        except SQLAlchemyError as e:
            log_database_operation(
                operation="find_or_create",
                table="authors",
                success=False,
                error_type=type(e).__name__,
            )
            logger.error("Database error in find_or_create", error=str(e))
            return None

    def _adopt_concurrent_author(self, email: str, name: str, ip: str) -> Author | None:
        """Re-read the row a concurrent request inserted first."""
        logger.info("Concurrent author creation detected, retrying lookup")

        author = self.authors.find_by_email(email)
        if author is None:
            logger.error("Author missing after duplicate email conflict")
            return None

        author.update_profile(name, ip, self.clock.now())
        return author
