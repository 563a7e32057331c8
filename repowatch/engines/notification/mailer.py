"""Mailer — async SMTP email sending via asyncio.to_thread."""

from __future__ import annotations

import asyncio
import os
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid


class Mailer:
    """Thin async wrapper around smtplib SMTP + STARTTLS."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        user: str | None = None,
        password: str | None = None,
        from_addr: str | None = None,
    ) -> None:
        self.host = host or os.getenv("REPOWATCH_SMTP_HOST", "smtp.gmail.com")
        self.port = port or int(os.getenv("REPOWATCH_SMTP_PORT", "587"))
        self.user = user or os.getenv("REPOWATCH_SMTP_USER", "")
        self.password = password or os.getenv("REPOWATCH_SMTP_PASSWORD", "")
        self.from_addr = from_addr or os.getenv("REPOWATCH_SMTP_FROM", "") or self.user

    async def send(
        self, to: str, subject: str, html_body: str, text_body: str | None = None
    ) -> str:
        """Send a multipart email in a background thread; returns its Message-ID."""
        return await asyncio.to_thread(self._send_sync, to, subject, html_body, text_body)

    def _send_sync(self, to: str, subject: str, html_body: str, text_body: str | None) -> str:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        msg["To"] = to
        msg["Message-ID"] = message_id = make_msgid(domain="repowatch")
        # the last part is the preferred rendering
        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(self.host, self.port) as server:
            server.starttls()
            if self.user:
                server.login(self.user, self.password)
            server.sendmail(self.from_addr, [to], msg.as_string())
        return message_id
