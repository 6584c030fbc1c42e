import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from .domain import MailError

logger = logging.getLogger(__name__)

RESET_EMAIL_HTML = """\
<p>You requested a password reset.</p>
<p>Please click on the following link to reset your password:</p>
<a href="{url}" target="_blank">Reset Password</a>
<p>This link is valid for {minutes} minutes.</p>
<p>If you didn't request this, please ignore this email.</p>
"""


class Mailer:
    """Sends account e-mails through an SMTP relay.

    Without an ``smtp_host`` the message is only logged, which keeps local
    development usable without credentials.
    """

    def __init__(self, smtp_host: Optional[str] = None, smtp_port: int = 587,
                 username: Optional[str] = None, password: Optional[str] = None,
                 use_tls: bool = True, sender: str = "Support Team <no-reply@localhost>"):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender

    def send_password_reset(self, to: str, reset_url: str, valid_minutes: int) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = "Password Reset Request"
        message.set_content(f"Reset your password: {reset_url}\nThis link is valid for {valid_minutes} minutes.")
        message.add_alternative(RESET_EMAIL_HTML.format(url=reset_url, minutes=valid_minutes), subtype="html")
        self.send(message)

    def send(self, message: EmailMessage) -> None:
        if not self.smtp_host:
            logger.info("SMTP not configured; e-mail to %s not sent: %s", message["To"], message["Subject"])
            logger.debug("Undelivered message body:\n%s", message.get_body(("plain",)).get_content())
            return
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send e-mail to %s: %s", message["To"], e)
            raise MailError(f"Failed to send e-mail: {e}") from e
        logger.info("E-mail sent to %s: %s", message["To"], message["Subject"])
