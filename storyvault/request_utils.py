"""Utilities for handling FastAPI requests."""

from typing import Final

from fastapi import Request

# Stored for authors whose address cannot be determined; the column is NOT NULL
UNKNOWN_CLIENT_IP: Final = "0.0.0.0"


def get_client_ip(request: Request) -> str:
    """Extract client IP address with proxy support.

    Args:
        request: FastAPI request object

    Returns:
        Client IP address as string. Returns UNKNOWN_CLIENT_IP if unable to
        determine, so post creation is never blocked by IP detection.

    Notes:
        - Checks X-Forwarded-For header first (for load balancers/proxies)
        - Falls back to X-Real-IP header (for nginx proxy)
        - Finally uses request.client.host (direct connection)
    """
    # Check X-Forwarded-For header (comma-separated list, first is original client)
    forwarded_for: str | None = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        client_ip = forwarded_for.split(",")[0].strip()
        if client_ip:
            return client_ip

    # Check X-Real-IP header (single IP, set by nginx and similar proxies)
    real_ip: str | None = request.headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    if request.client and request.client.host:
        return str(request.client.host)

    return UNKNOWN_CLIENT_IP
