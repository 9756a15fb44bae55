import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import Request

from .constants import LOGGED_TOKEN_PREFIX_LENGTH


def mask_token(token: str | None) -> str:
    """Shorten a capability token to a prefix that is safe to log."""
    if not token:
        return "<empty>"
    return f"{token[:LOGGED_TOKEN_PREFIX_LENGTH]}…"


def log_post_action(
    action: str,
    post_id: int | None,
    author_id: int | None = None,
    logger_name: str = "post_actions",
    **kwargs: Any,
) -> None:
    """Log post lifecycle actions with consistent structure.

    Args:
        action: The action performed (e.g., 'create_post', 'delete_post')
        post_id: ID of the affected post
        author_id: ID of the owning author, when known
        logger_name: Name of the logger to use
        **kwargs: Additional context data
    """
    logger = logging.getLogger(logger_name)

    log_data = {
        "action": action,
        "post_id": post_id,
        "author_id": author_id,
        "timestamp": datetime.now(UTC).isoformat(),
        **kwargs,
    }

    logger.info(f"Post action: {action} on post {post_id}", extra=log_data)


def log_api_request(
    request: Request,
    response_status: int,
    process_time_ms: float | None = None,
    logger_name: str = "api",
) -> None:
    """Log API requests with consistent format.

    Token-bearing paths are logged with the token shortened.

    Args:
        request: FastAPI request object
        response_status: HTTP response status code
        process_time_ms: Request processing time in milliseconds
        logger_name: Name of the logger to use
    """
    logger = logging.getLogger(logger_name)
    path = _mask_token_path(request.url.path)

    log_data = {
        "method": request.method,
        "path": path,
        "status_code": response_status,
        "client_ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent", "Unknown")[:100],
    }

    if process_time_ms is not None:
        log_data["process_time_ms"] = str(round(process_time_ms, 2))

    # Different log levels based on status code
    if response_status >= 500:
        log_level = logging.ERROR
    elif response_status >= 400:
        log_level = logging.WARNING
    else:
        log_level = logging.INFO

    message = f"{request.method} {path} - {response_status}"
    if process_time_ms is not None:
        message += f" ({process_time_ms:.1f}ms)"

    logger.log(log_level, message, extra=log_data)


def _mask_token_path(path: str) -> str:
    """Mask the token segment of /posts/edit/{token} style paths."""
    segments = path.split("/")
    for index, segment in enumerate(segments[:-1]):
        if segment in ("edit", "delete") and segments[index + 1]:
            segments[index + 1] = mask_token(segments[index + 1])
    return "/".join(segments)


def log_database_operation(
    operation: str,
    table: str,
    success: bool = True,
    logger_name: str = "database",
    **kwargs: Any,
) -> None:
    """Log database operations.

    Args:
        operation: Database operation (create, update, soft_delete, select)
        table: Table name being operated on
        success: Whether the operation was successful
        logger_name: Name of the logger to use
        **kwargs: Additional context data
    """
    logger = logging.getLogger(logger_name)

    log_data = {"operation": operation, "table": table, "success": success, **kwargs}

    level = logging.INFO if success else logging.ERROR
    status = "succeeded" if success else "failed"

    logger.log(level, f"Database {operation} on {table} {status}", extra=log_data)


def log_system_info(hostname: str, ip_address: str, debug_mode: bool) -> None:
    """Log system startup information.

    Args:
        hostname: Server hostname
        ip_address: Server IP address
        debug_mode: Whether debug mode is enabled
    """
    logger = logging.getLogger("system")

    logger.info(
        "Application startup",
        extra={
            "hostname": hostname,
            "ip_address": ip_address,
            "debug_mode": debug_mode,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )
