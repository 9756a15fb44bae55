"""Composition root: wires services for request handlers via FastAPI Depends."""

from functools import lru_cache

from fastapi import Depends
from sqlmodel import Session

from .application.notifications import (
    LoggingNotificationGateway,
    ManagementLinkBuilder,
    NotificationGateway,
    SmtpNotificationGateway,
)
from .application.post_lifecycle import PostLifecycleService
from .application.tokens import TokenIssuer
from .config import Settings, settings
from .domain.clock import Clock, SystemClock
from .infrastructure.database.database import get_session


def build_notification_gateway(app_settings: Settings) -> NotificationGateway:
    """Create the notification gateway selected by ``notification_backend``."""
    links = ManagementLinkBuilder(app_settings.public_base_url)
    if app_settings.notification_backend == "smtp":
        return SmtpNotificationGateway(
            links,
            host=app_settings.smtp_host,
            port=app_settings.smtp_port,
            sender_email=app_settings.sender_email,
            sender_name=app_settings.sender_name,
            username=app_settings.smtp_username,
            password=app_settings.smtp_password,
            use_tls=app_settings.smtp_use_tls,
        )
    return LoggingNotificationGateway(links, reveal_links=app_settings.debug)


@lru_cache
def get_notification_gateway() -> NotificationGateway:
    return build_notification_gateway(settings)


def get_clock() -> Clock:
    return SystemClock()


def get_post_lifecycle_service(
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
    notifier: NotificationGateway = Depends(get_notification_gateway),
) -> PostLifecycleService:
    return PostLifecycleService(
        session, clock=clock, notifier=notifier, token_issuer=TokenIssuer()
    )
