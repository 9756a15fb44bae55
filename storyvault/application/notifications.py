"""Best-effort delivery of post management links to authors."""

import smtplib
from collections.abc import Callable
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Final, Protocol

from email_validator import EmailNotValidError, validate_email

from ..constants import SMTP_TIMEOUT_SECONDS
from ..domain.constants import DELETE_WINDOW, EDIT_WINDOW
from ..domain.entities import Author, Post
from ..domain.exceptions import NotificationError
from ..logging_config import get_logger
from ..logging_utils import mask_token

logger: Final = get_logger(__name__)

EMAIL_SUBJECT: Final = "Your message has been published on StoryVault"


class NotificationGateway(Protocol):
    def notify(self, post: Post, author: Author) -> None:
        """Tell the author how to manage their new post.

        Raises:
            NotificationError: If the notification could not be delivered
        """
        ...


@dataclass(frozen=True)
class ManagementLinks:
    edit_url: str
    delete_url: str


class ManagementLinkBuilder:
    """Builds the absolute edit and delete URLs embedded in notifications."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    def for_post(self, post: Post) -> ManagementLinks:
        return ManagementLinks(
            edit_url=f"{self.base_url}/posts/edit/{post.edit_token}",
            delete_url=f"{self.base_url}/posts/delete/{post.delete_token}",
        )


class LoggingNotificationGateway:
    """Writes the management links to the log instead of sending them.

    Full links are only logged when ``reveal_links`` is set (development);
    otherwise the tokens are shortened.
    """

    def __init__(self, links: ManagementLinkBuilder, reveal_links: bool = False):
        self.links = links
        self.reveal_links = reveal_links

    def notify(self, post: Post, author: Author) -> None:
        if self.reveal_links:
            management = self.links.for_post(post)
            logger.info(
                "Post management links",
                post_id=post.id,
                author_id=author.id,
                edit_url=management.edit_url,
                delete_url=management.delete_url,
            )
        else:
            logger.info(
                "Post management links issued",
                post_id=post.id,
                author_id=author.id,
                edit_token_prefix=mask_token(post.edit_token),
                delete_token_prefix=mask_token(post.delete_token),
            )


class SmtpNotificationGateway:
    """Emails the management links to the author over SMTP."""

    def __init__(
        self,
        links: ManagementLinkBuilder,
        host: str,
        port: int,
        sender_email: str | None,
        sender_name: str | None,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = SMTP_TIMEOUT_SECONDS,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        self.links = links
        self.host = host
        self.port = port
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self._smtp_factory = smtp_factory

    def notify(self, post: Post, author: Author) -> None:
        recipient = self._validated_recipient(author.email)

        if not self.sender_email or not self.sender_name:
            raise NotificationError(
                "Email configuration missing: sender_email or sender_name"
            )

        message = self.build_message(post, author, recipient)
        try:
            with self._smtp_factory(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Email sending failed: {e}") from e

        logger.info("Notification email sent", post_id=post.id, author_id=author.id)

    def build_message(self, post: Post, author: Author, recipient: str) -> EmailMessage:
        """Compose the plain text notification email."""
        management = self.links.for_post(post)
        edit_hours = int(EDIT_WINDOW.total_seconds() // 3600)

        message = EmailMessage()
        message["Subject"] = EMAIL_SUBJECT
        message["From"] = formataddr((self.sender_name or "", self.sender_email or ""))
        message["To"] = formataddr((author.name, recipient))
        message.set_content(
            f"Hello {author.name},\n\n"
            "your message has been published:\n\n"
            f"{post.message}\n\n"
            f"Edit it within {edit_hours} hours:\n{management.edit_url}\n\n"
            f"Delete it within {DELETE_WINDOW.days} days:\n{management.delete_url}\n\n"
            "Keep these links private. Anyone who has them can change your post.\n"
        )
        return message

    @staticmethod
    def _validated_recipient(email: str) -> str:
        try:
            return validate_email(email, check_deliverability=False).normalized
        except EmailNotValidError as e:
            raise NotificationError(f"Invalid email address: {e}") from e
