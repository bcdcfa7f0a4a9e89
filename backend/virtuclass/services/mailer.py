"""
Mailer - transactional email over SMTP.

Delivery is best effort: a failure is logged and reported as False, never
raised, because no caller may fail a request over an email. Routes send
through FastAPI BackgroundTasks so the response does not wait for SMTP.
"""

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from urllib.parse import quote

from virtuclass import config
from virtuclass.logging_config import get_logger, log_with_context

logger = get_logger("integrations")


class Mailer:
    def __init__(self, host: str = None, port: int = None, user: str = None,
                 password: str = None, sender: str = None, app_url: str = None):
        self.host = host if host is not None else config.SMTP_HOST
        self.port = port or config.SMTP_PORT
        self.user = user if user is not None else config.SMTP_USER
        self.password = password if password is not None else config.SMTP_PASS
        self.sender = sender or config.EMAIL_FROM
        self.app_url = app_url or config.APP_URL

    def send(self, to: str, subject: str, html: str) -> bool:
        if not self.host:
            log_with_context(logger, "INFO", "SMTP not configured, skipping email: {}".format(subject),
                             context={"to": to})
            return False

        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(html, "html"))

        try:
            if self.port == 465:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=config.HTTP_TIMEOUT_SECONDS)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=config.HTTP_TIMEOUT_SECONDS)
                server.starttls()
            with server:
                if self.user:
                    server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            log_with_context(logger, "ERROR", "Failed to send email: {}".format(e),
                             context={"to": to}, extra_data={"subject": subject})
            return False

        log_with_context(logger, "INFO", "Email sent: {}".format(subject), context={"to": to})
        return True

    def send_verification_email(self, email: str, token: str) -> bool:
        url = "{}/verify?email={}&token={}".format(self.app_url, quote(email), token)
        return self.send(email, "Verify your email",
                         '<p>Click to verify: <a href="{0}">{0}</a></p>'.format(url))

    def send_reset_email(self, email: str, token: str) -> bool:
        url = "{}/reset-password?email={}&token={}".format(self.app_url, quote(email), token)
        return self.send(email, "Reset your password",
                         '<p>Click to reset password: <a href="{0}">{0}</a></p>'.format(url))


_default_mailer = Mailer()


def get_mailer() -> Mailer:
    """FastAPI dependency; tests override it with an in-memory fake."""
    return _default_mailer
