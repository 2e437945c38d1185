"""Sends the mail that carries verification links."""

from typing import Optional
from email.message import EmailMessage
import logging
import smtplib

from retry import retry

logger = logging.getLogger(__name__)


class Mailer(object):
    """Delivers plain-text messages over SMTP."""

    def __init__(self, host: str = 'localhost', port: int = 25,
                 sender: str = 'no-reply@localhost', username: str = '',
                 password: str = '', use_ssl: bool = False) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._username = username
        self._password = password
        self._use_ssl = use_ssl

    def _new_connection(self) -> smtplib.SMTP:
        if self._use_ssl:
            return smtplib.SMTP_SSL(host=self._host, port=self._port)
        return smtplib.SMTP(host=self._host, port=self._port)

    @retry(smtplib.SMTPServerDisconnected, tries=3, delay=0.5, backoff=2)
    def send(self, to: str, subject: str, text: str,
             reply_to: Optional[str] = None) -> None:
        """Send one message."""
        message = EmailMessage()
        message['From'] = self._sender
        message['To'] = to
        message['Subject'] = subject
        if reply_to:
            message['Reply-To'] = reply_to
        message.set_content(text)
        with self._new_connection() as conn:
            if self._username:
                conn.login(self._username, self._password)
            conn.send_message(message)
        logger.info('Sent "%s" to %s', subject, to)
