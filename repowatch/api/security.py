"""Cron endpoint authentication — shared bearer secret."""

from __future__ import annotations

import hmac

import structlog
from fastapi import Depends, Header

from repowatch.api.deps import get_settings
from repowatch.core.config import Settings

log = structlog.get_logger("repowatch.api")


class CronUnauthorizedError(Exception):
    """Missing, invalid, or unconfigured cron secret (-> HTTP 401)."""


def is_valid_cron_request(authorization: str | None, secret: str | None) -> bool:
    """True iff *authorization* is ``Bearer <secret>`` and a secret is configured."""
    if not secret or not authorization:
        return False
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    return hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8"))


async def verify_cron_secret(
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.cron_secret:
        log.error("cron.secret_not_configured")
    if not is_valid_cron_request(authorization, settings.cron_secret):
        raise CronUnauthorizedError()
