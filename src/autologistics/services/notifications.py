"""Email notifications for delivery request changes.

Templates live in ``autologistics/templates/email`` and are rendered with
Jinja2; messages go out over SMTP (Mailpit in development). Sending is driven
by the worker from ``notification_send`` jobs, never inline with a transition.
"""

from __future__ import annotations

import logging
import secrets
import smtplib
import ssl
from email.mime.text import MIMEText
from typing import TYPE_CHECKING, Any

from jinja2 import Environment, PackageLoader, TemplateNotFound, select_autoescape

if TYPE_CHECKING:
    from autologistics.core.config import NotificationSettings, SMTPSettings

logger = logging.getLogger(__name__)

SUBJECTS: dict[str, str] = {
    "proposal": "New {kind} date proposed",
    "approved": "{kind_title} date approved",
    "rejected": "{kind_title} date rejected",
    "scheduled": "{kind_title} scheduled",
    "in_transit": "{kind_title} in progress",
    "delivered": "{kind_title} completed",
    "canceled": "{kind_title} canceled",
}


class NotificationError(Exception):
    """Base exception for notification failures."""


class NotificationTemplateError(NotificationError):
    """Raised when a template is unknown or fails to render."""


class NotificationDeliveryError(NotificationError):
    """Raised when the SMTP server cannot take the message."""


class NotificationService:
    """Renders and sends notification emails.

    Attributes:
        smtp_settings: SMTP connection settings.
        notification_settings: Enablement and the operations mailbox.
    """

    def __init__(
        self,
        smtp_settings: SMTPSettings,
        notification_settings: NotificationSettings,
        app_name: str = "Auto Logistics",
    ) -> None:
        self.smtp_settings = smtp_settings
        self.notification_settings = notification_settings
        self.app_name = app_name
        self._env = Environment(
            loader=PackageLoader("autologistics", "templates/email"),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
        )

    @property
    def operations_email(self) -> str:
        return self.notification_settings.operations_email

    def render(self, template: str, context: dict[str, Any]) -> tuple[str, str]:
        """Render a notification.

        Returns:
            Tuple of (subject, text_body).

        Raises:
            NotificationTemplateError: Unknown template name.
        """
        if template not in SUBJECTS:
            raise NotificationTemplateError(f"Unknown notification template: {template}")

        kind = context.get("kind", "pickup")
        values = {"app_name": self.app_name, **context}
        try:
            body = self._env.get_template(f"{template}.txt").render(**values)
        except TemplateNotFound as e:
            raise NotificationTemplateError(f"Template file missing: {template}.txt") from e

        subject = SUBJECTS[template].format(kind=kind, kind_title=kind.capitalize())
        return subject, body

    def send(self, to_email: str, template: str, context: dict[str, Any]) -> str | None:
        """Render and send one notification.

        Returns:
            The SMTP message id, or None when notifications are disabled.

        Raises:
            NotificationTemplateError: Unknown template name.
            NotificationDeliveryError: The message could not be sent.
        """
        subject, body = self.render(template, context)

        if not self.notification_settings.enabled:
            logger.info(
                "Notifications disabled, not sending: template=%s, to=%s",
                template,
                to_email,
            )
            return None

        message_id = self._send_email(to_email, subject, body)
        logger.info(
            "Notification sent: template=%s, message_id=%s, reference=%s",
            template,
            message_id,
            context.get("reference"),
        )
        return message_id

    def _send_email(self, to_email: str, subject: str, text_body: str) -> str:
        settings = self.smtp_settings

        msg = MIMEText(text_body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = f"{settings.from_name} <{settings.from_address}>"
        msg["To"] = to_email
        domain = settings.from_address.rsplit("@", 1)[-1]
        message_id = f"<{secrets.token_hex(16)}@{domain}>"
        msg["Message-ID"] = message_id

        try:
            if settings.use_ssl:
                server = smtplib.SMTP_SSL(
                    settings.host,
                    settings.port,
                    timeout=settings.timeout,
                    context=ssl.create_default_context(),
                )
            else:
                server = smtplib.SMTP(settings.host, settings.port, timeout=settings.timeout)
                if settings.use_tls:
                    server.starttls(context=ssl.create_default_context())

            with server:
                if settings.username and settings.password:
                    server.login(settings.username, settings.password.get_secret_value())
                server.sendmail(settings.from_address, [to_email], msg.as_string())

        except smtplib.SMTPException as e:
            raise NotificationDeliveryError(f"SMTP error: {e}") from e
        except OSError as e:
            raise NotificationDeliveryError(f"Connection error: {e}") from e

        return message_id
