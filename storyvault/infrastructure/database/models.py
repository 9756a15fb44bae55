from datetime import datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from ...domain.constants import TOKEN_LENGTH
from ...domain.entities import Author as DomainAuthor
from ...domain.entities import Post as DomainPost


class Author(SQLModel, table=True):  # type: ignore[call-arg]
    """Everyone who has posted, one row per email."""

    __tablename__: str = "authors"  # type: ignore[assignment]
    # Named so the race handling can recognise this constraint in driver errors
    __table_args__ = (UniqueConstraint("email", name="uq_authors_email"),)

    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(max_length=255)
    name: str = Field(max_length=255)
    ip_address: str = Field(max_length=45)
    created_at: datetime = Field(sa_type=DateTime(timezone=False))
    updated_at: datetime = Field(sa_type=DateTime(timezone=False))
    last_post_at: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=False)
    )

    posts: list["Post"] = Relationship(back_populates="author")

    @classmethod
    def from_domain(cls, domain_author: DomainAuthor) -> "Author":
        """Convert domain entity to persistence model."""
        return cls(
            id=domain_author.id,
            email=domain_author.email,
            name=domain_author.name,
            ip_address=domain_author.ip_address,
            created_at=domain_author.created_at,
            updated_at=domain_author.updated_at,
            last_post_at=domain_author.last_post_at,
        )

    def to_domain(self) -> DomainAuthor:
        """Convert persistence model to domain entity."""
        return DomainAuthor(
            id=self.id,
            email=self.email,
            name=self.name,
            ip_address=self.ip_address,
            created_at=self.created_at,
            updated_at=self.updated_at,
            last_post_at=self.last_post_at,
        )


class Post(SQLModel, table=True):  # type: ignore[call-arg]
    """A published message. Soft deleted rows keep their data."""

    __tablename__: str = "posts"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    author_id: int = Field(foreign_key="authors.id", index=True)
    message: str
    created_at: datetime = Field(index=True, sa_type=DateTime(timezone=False))
    updated_at: datetime = Field(sa_type=DateTime(timezone=False))
    deleted_at: datetime | None = Field(
        default=None, index=True, sa_type=DateTime(timezone=False)
    )
    edit_token: str = Field(unique=True, max_length=TOKEN_LENGTH)
    delete_token: str = Field(unique=True, max_length=TOKEN_LENGTH)

    author: Author | None = Relationship(back_populates="posts")

    @classmethod
    def from_domain(cls, domain_post: DomainPost) -> "Post":
        """Convert domain entity to persistence model."""
        return cls(
            id=domain_post.id,
            author_id=domain_post.author_id,
            message=domain_post.message,
            created_at=domain_post.created_at,
            updated_at=domain_post.updated_at,
            deleted_at=domain_post.deleted_at,
            edit_token=domain_post.edit_token,
            delete_token=domain_post.delete_token,
        )

    def to_domain(self, with_author: bool = False) -> DomainPost:
        """Convert persistence model to domain entity."""
        return DomainPost(
            id=self.id,
            author_id=self.author_id,
            message=self.message,
            created_at=self.created_at,
            updated_at=self.updated_at,
            deleted_at=self.deleted_at,
            edit_token=self.edit_token,
            delete_token=self.delete_token,
            author=self.author.to_domain() if with_author and self.author else None,
        )
