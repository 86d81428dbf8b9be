"""SMTP delivery of notification emails over STARTTLS."""

import logging
import smtplib
import ssl
from email.message import EmailMessage

from errors import DeliveryError

log = logging.getLogger(__name__)


def build_message(sender, recipient, subject, body):
    message = EmailMessage()
    if sender:
        message["From"] = sender
    message["To"] = recipient
    message["Subject"] = subject
    message.set_content(body)
    return message


class Mailer:
    """Send batches of messages through one SMTP session."""

    def __init__(self, host, port=587, username="", password="", sender="", timeout=10):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.timeout = timeout

    @classmethod
    def from_settings(cls, smtp):
        return cls(
            smtp.host,
            smtp.port,
            username=smtp.username,
            password=smtp.password,
            sender=smtp.sender,
        )

    def compose(self, recipient, subject, body):
        return build_message(self.sender, recipient, subject, body)

    def send(self, messages):
        """Deliver *messages*; any SMTP or socket failure raises DeliveryError."""
        if not messages:
            return
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.ehlo()
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
                if self.username and self.password:
                    server.login(self.username, self.password)
                for message in messages:
                    server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"SMTP delivery via {self.host}:{self.port} failed: {exc}") from exc
        log.info("Delivered %d message(s) via %s:%d", len(messages), self.host, self.port)
