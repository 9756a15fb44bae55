from datetime import datetime
from typing import Annotated, Final

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ..application.post_lifecycle import PostLifecycleService, PostSubmission
from ..application.results import (
    POST_UNAVAILABLE_MESSAGE,
    PostCreated,
    PostDeleted,
    PostUnavailable,
    PostUpdated,
    RateLimited,
)
from ..config import settings
from ..dependencies import get_post_lifecycle_service
from ..domain.constants import DELETE_WINDOW, EDIT_WINDOW, MAX_PAGE_SIZE
from ..domain.entities import Post
from ..request_utils import get_client_ip

api_router: Final = APIRouter(
    prefix="/api/v1",
    tags=["posts"],
    responses={
        404: {"description": "Not Found - Post unavailable for this token"},
        422: {"description": "Validation Error - Request body validation failed"},
    },
)

TokenPath = Annotated[
    str,
    Path(
        description="Capability token from the management link",
    ),
]


# Request Models
class PostCreate(BaseModel):
    """Request model for publishing a new post."""

    model_config = ConfigDict(str_strip_whitespace=True)

    author: str = Field(
        ...,
        min_length=2,
        max_length=15,
        description="Display name shown next to the post",
        examples=["Alice"],
    )
    email: EmailStr = Field(
        ...,
        description="Author email; management links are sent here",
        examples=["alice@example.com"],
    )
    message: str = Field(
        ...,
        min_length=5,
        max_length=1000,
        description="Post text",
        examples=["Hello from StoryVault!"],
    )


class PostEdit(BaseModel):
    """Request model for replacing a post message."""

    model_config = ConfigDict(str_strip_whitespace=True)

    message: str = Field(..., min_length=5, max_length=1000, description="New text")


# Response Models
class PostResponse(BaseModel):
    """Public post information. Never contains tokens or author contact data."""

    id: int = Field(description="Unique post identifier")
    message: str = Field(description="Post text as submitted, not HTML-escaped")
    author_name: str | None = Field(description="Display name of the author")
    created_at: datetime = Field(description="Publication time (UTC)")
    updated_at: datetime = Field(description="Last edit time (UTC)")
    edited: bool = Field(description="Whether the message changed after publishing")


class PostListItem(PostResponse):
    author_post_count: int = Field(description="Active posts of this author")


class PostListResponse(BaseModel):
    """Response model for the post listing."""

    posts: list[PostListItem] = Field(description="Active posts, newest first")
    total_count: int = Field(description="Number of active posts")
    page: int = Field(description="Current page, starting at 1")
    page_size: int = Field(description="Posts per page")
    page_count: int = Field(description="Number of pages")
    degraded: bool = Field(
        description="True if posts could not be loaded and the list is a fallback"
    )


class PostCreateResponse(BaseModel):
    """Response model for post creation."""

    created: PostResponse = Field(description="The newly published post")
    message: str = Field(description="Success message")


class ManagedPostResponse(BaseModel):
    """A post reached through a management link."""

    post: PostResponse
    available_until: datetime = Field(
        description="End of the edit or delete window (UTC)"
    )


class PostActionResponse(BaseModel):
    """Response model for edit/delete actions."""

    success: bool = Field(description="Whether the operation succeeded")
    message: str = Field(description="Result message")
    post: PostResponse | None = Field(None, description="Post after the action")


def _post_response(post: Post) -> PostResponse:
    """Public view of a post.

    The message is returned as stored, without HTML escaping. Clients that
    render it as HTML must escape it first.
    """
    if post.id is None:
        raise ValueError("Post has not been stored yet")
    return PostResponse(
        id=post.id,
        message=post.message,
        author_name=post.author.name if post.author else None,
        created_at=post.created_at,
        updated_at=post.updated_at,
        edited=post.updated_at > post.created_at,
    )


def _unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND, detail=POST_UNAVAILABLE_MESSAGE
    )


@api_router.get(
    "/posts",
    response_model=PostListResponse,
    summary="List active posts",
    description="""
    List published posts that have not been deleted, newest first.

    If the database is unreachable the endpoint still answers with an empty
    list and `degraded: true` instead of failing.
    """,
)
def api_list_posts(
    *,
    service: PostLifecycleService = Depends(get_post_lifecycle_service),
    page: int = Query(1, ge=1, description="Page number, starting at 1"),
    page_size: int = Query(
        settings.posts_page_size, ge=1, le=MAX_PAGE_SIZE, description="Posts per page"
    ),
) -> PostListResponse:
    """List active posts."""
    result = service.get_posts_list(page_size=page_size, page=page)
    return PostListResponse(
        posts=[
            PostListItem(
                **_post_response(post).model_dump(),
                author_post_count=result.author_post_counts.get(post.author_id, 0),
            )
            for post in result.posts
        ],
        total_count=result.total_count,
        page=result.page,
        page_size=result.page_size,
        page_count=result.page_count,
        degraded=result.degraded,
    )


@api_router.post(
    "/posts",
    response_model=PostCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Publish a post",
    description="""
    Publish a post under a display name and email. No account is needed.

    Links to edit (12 hours) and delete (14 days) the post are sent to the
    email address. Each author may post once every 3 minutes.
    """,
    responses={
        429: {"description": "Author posted less than 3 minutes ago"},
        500: {"description": "Post could not be published, nothing was saved"},
    },
)
def api_create_post(
    *,
    request: Request,
    service: PostLifecycleService = Depends(get_post_lifecycle_service),
    post_create: PostCreate,
) -> PostCreateResponse:
    """Publish a new post."""
    result = service.create_post(
        PostSubmission(
            author=post_create.author,
            email=str(post_create.email),
            message=post_create.message,
        ),
        ip=get_client_ip(request),
    )

    if isinstance(result, RateLimited):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": result.message,
                "remaining_seconds": result.remaining_seconds,
                "next_post_time": result.next_post_time.isoformat(),
            },
            headers={"Retry-After": str(result.remaining_seconds)},
        )
    if not isinstance(result, PostCreated):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.message
        )

    result.post.author = result.author
    return PostCreateResponse(
        created=_post_response(result.post), message=result.message
    )


@api_router.get(
    "/posts/edit/{token}",
    response_model=ManagedPostResponse,
    summary="Open a post for editing",
)
def api_get_post_for_edit(
    *,
    service: PostLifecycleService = Depends(get_post_lifecycle_service),
    token: TokenPath,
) -> ManagedPostResponse:
    """Get the post behind an edit link while it can still be edited."""
    post = service.get_post_for_edit(token)
    if post is None:
        raise _unavailable()
    return ManagedPostResponse(
        post=_post_response(post), available_until=post.created_at + EDIT_WINDOW
    )


@api_router.put(
    "/posts/edit/{token}",
    response_model=PostActionResponse,
    summary="Edit a post",
)
def api_update_post(
    *,
    service: PostLifecycleService = Depends(get_post_lifecycle_service),
    token: TokenPath,
    post_edit: PostEdit,
) -> PostActionResponse:
    """Replace the message of the post behind an edit link."""
    result = service.update_post_by_token(token, post_edit.message)
    if isinstance(result, PostUnavailable):
        raise _unavailable()
    if not isinstance(result, PostUpdated):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.message
        )

    return PostActionResponse(
        success=True, message=result.message, post=_post_response(result.post)
    )


@api_router.get(
    "/posts/delete/{token}",
    response_model=ManagedPostResponse,
    summary="Open a post for deletion",
)
def api_get_post_for_delete(
    *,
    service: PostLifecycleService = Depends(get_post_lifecycle_service),
    token: TokenPath,
) -> ManagedPostResponse:
    """Get the post behind a delete link while it can still be deleted."""
    post = service.get_post_for_delete(token)
    if post is None:
        raise _unavailable()
    return ManagedPostResponse(
        post=_post_response(post), available_until=post.created_at + DELETE_WINDOW
    )


@api_router.delete(
    "/posts/delete/{token}",
    response_model=PostActionResponse,
    summary="Delete a post",
    description="""
    Delete the post behind a delete link. Deletion is permanent and makes
    both management links of the post stop working.
    """,
)
def api_delete_post(
    *,
    service: PostLifecycleService = Depends(get_post_lifecycle_service),
    token: TokenPath,
) -> PostActionResponse:
    """Delete the post behind a delete link."""
    result = service.delete_post_by_token(token)
    if isinstance(result, PostUnavailable):
        raise _unavailable()
    if not isinstance(result, PostDeleted):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.message
        )

    return PostActionResponse(success=True, message=result.message)
