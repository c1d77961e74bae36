"""
Email Service for CDC Admin
===========================
Outbound notifier used by the notification fanout. Sends one message per
recipient over SMTP and reports success as a bool; it never raises, so a
bad address or a down mail server only marks that recipient as failed.
"""

import aiosmtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape
from typing import Optional

from cdc_admin.core.config import settings
from cdc_admin.core.logging_config import logger

PRIORITY_COLORS = {
    "urgent": "#dc2626",
    "high": "#ea580c",
    "medium": "#2563eb",
    "low": "#16a34a",
}


class EmailService:
    """Async email service over SMTP"""

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.EMAIL_FROM
        self.from_name = settings.EMAIL_FROM_NAME
        self.frontend_url = settings.FRONTEND_URL

    @property
    def is_configured(self) -> bool:
        """Check if email service is properly configured"""
        return bool(self.smtp_user and self.smtp_password)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send an email asynchronously.

        Returns True if successful, False otherwise.
        """
        if not self.is_configured:
            logger.warning("[Email] Email service not configured, skipping email send")
            return False
        return await self._send_via_smtp(to_email, subject, html_content, text_content)

    async def _send_via_smtp(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """Send email via SMTP"""
        try:
            message = MIMEMultipart("alternative")
            message["From"] = f"{self.from_name} <{self.from_email}>"
            message["To"] = to_email
            message["Subject"] = subject

            # Plain text first so clients prefer the HTML part
            if text_content:
                message.attach(MIMEText(text_content, "plain"))
            message.attach(MIMEText(html_content, "html"))

            await aiosmtplib.send(
                message,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.smtp_user,
                password=self.smtp_password,
                start_tls=True
            )

            logger.info(f"[Email/SMTP] Successfully sent email to {to_email}: {subject}")
            return True

        except Exception as e:
            logger.error(f"[Email/SMTP] Failed to send email to {to_email}: {e}")
            return False

    async def send_notification_email(
        self,
        to_email: str,
        teacher_name: str,
        title: str,
        message: str,
        notification_type: str,
        priority: str,
        sender_name: str = "Administration",
    ) -> bool:
        """Send one admin notification to one teacher"""
        color = PRIORITY_COLORS.get(priority, PRIORITY_COLORS["medium"])
        subject = f"[{priority.upper()}] {title}"

        html_content = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <div style="border-left: 4px solid {color}; padding: 16px;">
                <p>Dear {escape(teacher_name)},</p>
                <h2 style="margin: 0 0 8px;">{escape(title)}</h2>
                <p style="color: {color}; font-weight: bold;">
                    {escape(notification_type.title())} &middot; {escape(priority.title())} priority
                </p>
                <p style="white-space: pre-line;">{escape(message)}</p>
                <p>Regards,<br>{escape(sender_name)}</p>
            </div>
            <p style="font-size: 12px; color: #6b7280;">
                View all notifications at <a href="{self.frontend_url}">{self.frontend_url}</a>
            </p>
        </div>
        """
        text_content = (
            f"Dear {teacher_name},\n\n{title}\n"
            f"{notification_type.title()} - {priority.title()} priority\n\n"
            f"{message}\n\nRegards,\n{sender_name}\n"
        )
        return await self.send_email(to_email, subject, html_content, text_content)


email_service = EmailService()


def get_email_service() -> EmailService:
    """FastAPI dependency returning the process notifier"""
    return email_service
