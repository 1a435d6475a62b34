# emails.py
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Optional

from config import Settings, get_settings

logger = logging.getLogger("budget-api.email")


class SMTPTransport:
    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, from_addr: str, to: str, subject: str, html: str) -> Optional[str]:
        """Deliver one HTML message and return its Message-ID.

        Returns None without sending when no mail host is configured.
        """
        if not self.settings.mail_host:
            logger.info("Email not sent (MAIL_HOST not configured): to=%s subject=%s", to, subject)
            return None

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = from_addr
        msg["To"] = to
        msg["Message-ID"] = make_msgid()
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")

        with smtplib.SMTP(
            self.settings.mail_host,
            self.settings.mail_port,
            timeout=self.settings.mail_timeout_seconds,
        ) as smtp:
            smtp.ehlo()
            if self.settings.mail_use_tls:
                smtp.starttls(context=ssl.create_default_context())
                smtp.ehlo()
            if self.settings.mail_username:
                smtp.login(self.settings.mail_username, self.settings.mail_password or "")
            smtp.send_message(msg)
        return msg["Message-ID"]


class AuthEmail:
    def __init__(self, transport, settings: Settings):
        self.transport = transport
        self.settings = settings

    def send_confirmation_email(self, name: str, email: str, token: str) -> Optional[str]:
        html = f"""
        <p>Hi {name}, your BudgetSaver account is almost ready.</p>
        <p>To confirm your account, follow this link:</p>
        <a href="{self.settings.frontend_url}/auth/confirm-account">Confirm account</a>
        <p>and enter the code: <b>{token}</b></p>
        """
        return self._deliver(email, "Confirm your BudgetSaver account", html)

    def send_password_reset_token(self, name: str, email: str, token: str) -> Optional[str]:
        html = f"""
        <p>Hi {name}, you asked to reset your password.</p>
        <p>To choose a new password, follow this link:</p>
        <a href="{self.settings.frontend_url}/auth/new-password">Reset password</a>
        <p>and enter the code: <b>{token}</b></p>
        """
        return self._deliver(email, "Reset your BudgetSaver password", html)

    def _deliver(self, to: str, subject: str, html: str) -> Optional[str]:
        # Runs after the response; a failed send must not touch the account
        try:
            message_id = self.transport.send(self.settings.mail_from, to, subject, html)
        except Exception:
            logger.exception("Email send failed: to=%s subject=%s", to, subject)
            return None
        if message_id:
            logger.info("Email sent: to=%s message_id=%s", to, message_id)
        return message_id


def get_mailer() -> AuthEmail:
    settings = get_settings()
    return AuthEmail(SMTPTransport(settings), settings)
