"""Business metrics for StoryVault."""

from opentelemetry import metrics

from .logging_config import get_logger

logger = get_logger(__name__)

# Get meter for creating instruments
meter = metrics.get_meter(__name__)

# HTTP Request Metrics
http_request_duration = meter.create_histogram(
    name="http_request_duration_seconds",
    description="Duration of HTTP requests in seconds",
    unit="s",
)

http_requests_total = meter.create_counter(
    name="http_requests_total",
    description="Total number of HTTP requests",
)

http_request_errors = meter.create_counter(
    name="http_request_errors_total",
    description="Total number of HTTP request errors",
)

# Business Metrics
posts_created_total = meter.create_counter(
    name="posts_created_total",
    description="Total number of posts created",
)

post_creation_failures_total = meter.create_counter(
    name="post_creation_failures_total",
    description="Total number of post creations rolled back",
)

rate_limited_total = meter.create_counter(
    name="rate_limited_submissions_total",
    description="Total number of submissions rejected by the author rate limit",
)

posts_edited_total = meter.create_counter(
    name="posts_edited_total",
    description="Total number of post edits",
)

posts_deleted_total = meter.create_counter(
    name="posts_deleted_total",
    description="Total number of posts soft deleted",
)

notification_failures_total = meter.create_counter(
    name="notification_failures_total",
    description="Total number of post notifications that could not be sent",
)

# Current state metrics
posts_active = meter.create_up_down_counter(
    name="posts_active",
    description="Number of currently active posts",
)


def record_http_request(method: str, endpoint: str, status_code: int, duration: float):
    """Record HTTP request metrics."""
    labels = {"method": method, "endpoint": endpoint, "status_code": str(status_code)}

    http_request_duration.record(duration, labels)
    http_requests_total.add(1, labels)

    if status_code >= 400:
        http_request_errors.add(1, labels)


def record_post_created():
    """Record when a post is created."""
    posts_created_total.add(1)
    posts_active.add(1)


def record_post_creation_failed(kind: str):
    """Record when a post creation unit is rolled back."""
    post_creation_failures_total.add(1, {"kind": kind})


def record_rate_limited(stage: str):
    """Record a rate limited submission (stage: 'check' or 'claim')."""
    rate_limited_total.add(1, {"stage": stage})


def record_post_edited():
    """Record when a post message is replaced."""
    posts_edited_total.add(1)


def record_post_deleted():
    """Record when a post is soft deleted."""
    posts_deleted_total.add(1)
    posts_active.add(-1)


def record_notification_failed(reason: str):
    """Record when the post notification could not be delivered."""
    notification_failures_total.add(1, {"reason": reason})


logger.info("Business metrics instruments created")
