"""Stable per-event signatures used to deduplicate the event log."""

from __future__ import annotations

import hashlib

from repowatch.engines.activity_tracker.models import DetectedEvent


def event_signature(event: DetectedEvent) -> str:
    """Hash (type, timestamp, url) so re-detecting the same change maps to one row.

    Title, author and metadata are excluded: they can differ between two
    fetches of the same underlying change.
    """
    unique = f"{event.type}-{event.timestamp}-{event.url}"
    return hashlib.sha256(unique.encode("utf-8")).hexdigest()
