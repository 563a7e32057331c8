"""Email template rendering for repository activity notifications."""

from __future__ import annotations

from repowatch.engines.activity_tracker.models import (
    NEW_ISSUE_WITH_CUSTOM_TAG,
    NEW_ISSUE_WITH_TAG,
    PR_MERGED_TO_BRANCH,
    parse_subscription,
)
from repowatch.stores.notification_queue import JobEvent, NotificationJob

_PREFIX = "[repowatch]"

_SUBJECTS: dict[str, str] = {
    "new_pr": "New PR in {repo}",
    "new_issue": "New issue in {repo}",
    "pr_merged": "PR merged in {repo}",
    "pr_merged_to_default": "PR merged in {repo}",
    "new_release": "New release in {repo}",
    "new_pre_release": "New pre-release in {repo}",
    "new_fork": "New fork of {repo}",
    "new_branch": "New branch in {repo}",
    "new_contributor": "New contributor in {repo}",
    "stars_milestone": "{repo} reached a stars milestone!",
}

_EVENT_LABELS: dict[str, str] = {
    "new_pr": "New pull request",
    "new_issue": "New issue",
    "pr_merged": "PR merged",
    "pr_merged_to_default": "PR merged",
    "new_release": "New release",
    "new_pre_release": "New pre-release",
    "new_fork": "New fork",
    "new_branch": "New branch",
    "new_contributor": "New contributor",
    "stars_milestone": "Stars milestone",
}


def render_subject(job: NotificationJob) -> str:
    """One event gets a kind-specific subject, several get a count."""
    repo = job.repo_full_name
    if len(job.events) != 1:
        return f"{_PREFIX} {len(job.events)} new events in {repo}"

    kind, param = parse_subscription(job.events[0].type)
    if param and kind in (NEW_ISSUE_WITH_TAG, NEW_ISSUE_WITH_CUSTOM_TAG):
        return f'{_PREFIX} New issue with "{param}" label in {repo}'
    if param and kind == PR_MERGED_TO_BRANCH:
        return f"{_PREFIX} PR merged to {param} in {repo}"
    template = _SUBJECTS.get(kind, "New event in {repo}")
    return f"{_PREFIX} {template.format(repo=repo)}"


def render_notification(job: NotificationJob) -> tuple[str, str, str]:
    """Return (subject, html_body, text_body) for a notification job."""
    subject = render_subject(job)
    greeting = f"Hi {job.user_name}," if job.user_name else "Hi,"
    count = len(job.events)
    noun = "event" if count == 1 else "events"

    body_style = (
        "font-family: -apple-system, BlinkMacSystemFont,"
        " 'Segoe UI', Roboto, sans-serif;"
        " color: #212121; max-width: 640px; margin: 0 auto;"
    )
    items = "\n".join(_format_event_html(e) for e in job.events)

    html_body = f"""\
<html>
<body style="{body_style}">
<p>{_esc(greeting)}</p>
<p>{count} new {noun} in
<a href="https://github.com/{_esc(job.repo_full_name)}">{_esc(job.repo_full_name)}</a>:</p>
<ul style="padding-left: 16px;">
{items}
</ul>
<hr style="border: none; border-top: 1px solid #e0e0e0; margin: 24px 0;">
<p style="color: #757575; font-size: 12px;">You are receiving this because you track
{_esc(job.repo_full_name)} with repowatch.</p>
</body>
</html>"""

    lines = [greeting, "", f"{count} new {noun} in {job.repo_full_name}:", ""]
    for e in job.events:
        lines.append(f"- [{event_label(e.type)}] {e.title}")
        lines.append(f"  by {e.author} at {e.timestamp}")
        lines.append(f"  {e.url}")
    text_body = "\n".join(lines) + "\n"

    return subject, html_body, text_body


def event_label(event_type: str) -> str:
    kind, param = parse_subscription(event_type)
    if param and kind in (NEW_ISSUE_WITH_TAG, NEW_ISSUE_WITH_CUSTOM_TAG):
        return f"New issue labelled {param}"
    if param and kind == PR_MERGED_TO_BRANCH:
        return f"PR merged to {param}"
    return _EVENT_LABELS.get(kind, kind)


def _format_event_html(event: JobEvent) -> str:
    meta = 'style="color: #757575; font-size: 12px;"'
    return (
        f"<li style=\"margin-bottom: 12px;\"><strong>{_esc(event_label(event.type))}</strong>: "
        f'<a href="{_esc(event.url)}">{_esc(event.title)}</a>'
        f"<br><span {meta}>by {_esc(event.author)} at {_esc(event.timestamp)}</span></li>"
    )


def _esc(text: str) -> str:
    """Minimal HTML escaping."""
    return (
        text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")
    )
