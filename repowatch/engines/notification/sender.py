"""EmailNotificationSender — render a job and hand it to the mailer."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from repowatch.engines.notification.mailer import Mailer
from repowatch.engines.notification.template import render_notification
from repowatch.stores.notification_queue import NotificationJob

log = structlog.get_logger("repowatch.engine.notification")


@dataclass
class DeliveryResult:
    success: bool
    error: str | None = None
    message_id: str | None = None


class EmailNotificationSender:
    """Delivery collaborator: never raises, every failure is a result."""

    def __init__(self, mailer: Mailer) -> None:
        self._mailer = mailer

    async def send(self, job: NotificationJob) -> DeliveryResult:
        try:
            subject, html_body, text_body = render_notification(job)
            message_id = await self._mailer.send(job.user_email, subject, html_body, text_body)
        except Exception as exc:
            log.warning(
                "notification.delivery_error",
                tracker_id=str(job.tracker_id),
                to=job.user_email,
                error=str(exc),
            )
            return DeliveryResult(success=False, error=str(exc) or type(exc).__name__)
        return DeliveryResult(success=True, message_id=message_id)
