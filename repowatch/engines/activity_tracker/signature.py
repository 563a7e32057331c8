"""Activity signatures — a content hash over the detection-relevant snapshot fields."""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any

from repowatch.engines.activity_tracker.models import Snapshot

_SIGNATURE_RE = re.compile(r"^[a-f0-9]{64}$", re.IGNORECASE)


def canonicalize(value: Any) -> Any:
    """Return *value* in canonical form.

    Mappings are rebuilt with their keys (coerced to ``str``) in sorted
    order, recursively. Lists and tuples keep their order: any ordering that
    matters is decided by the caller before canonicalisation.
    """
    if isinstance(value, dict):
        return {str(k): canonicalize(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    return value


def signature_fields(snapshot: Snapshot) -> dict[str, Any]:
    """Collect every snapshot field a detection rule inspects.

    A field missing here silently disables detection of changes to it,
    because equal signatures short-circuit the detector.
    """
    default_branch = snapshot.default_branch
    return {
        "defaultBranch": {
            "name": default_branch.name if default_branch else None,
            "oid": default_branch.oid if default_branch else None,
            "committedDate": default_branch.committed_date if default_branch else None,
        },
        "issueNumbers": sorted(i.number for i in snapshot.issues),
        "issues": {
            i.number: {
                "state": i.state,
                "createdAt": i.created_at,
                "closedAt": i.closed_at,
                "labels": sorted(i.labels),
            }
            for i in snapshot.issues
        },
        "prNumbers": sorted(pr.number for pr in snapshot.pull_requests),
        "prs": {
            pr.number: {
                "state": pr.state,
                "createdAt": pr.created_at,
                "merged": pr.merged,
                "mergedAt": pr.merged_at,
                "mergedBy": pr.merged_by,
                "baseRef": pr.base_ref_name,
            }
            for pr in snapshot.pull_requests
        },
        "releaseTags": sorted(r.tag_name for r in snapshot.releases),
        "releases": {
            r.tag_name: {"publishedAt": r.published_at, "isPrerelease": r.is_prerelease}
            for r in snapshot.releases
        },
        "branches": sorted(b.name for b in snapshot.branches),
        "branchHeads": {
            b.name: {"oid": b.oid, "committedDate": b.committed_date} for b in snapshot.branches
        },
        "starCount": snapshot.stargazer_count,
        "forkCount": snapshot.fork_count,
        "description": snapshot.description or "",
        "topics": sorted(snapshot.topics),
        "contributors": sorted(snapshot.contributors),
        "recentForks": [
            {"name": f.name_with_owner, "createdAt": f.created_at, "owner": f.owner}
            for f in sorted(
                snapshot.forks, key=lambda f: (f.created_at or "", f.name_with_owner)
            )
        ],
    }


def activity_signature(snapshot: Snapshot) -> str:
    """Return the SHA-256 hex signature of *snapshot*."""
    canonical = canonicalize(signature_fields(snapshot))
    encoded = json.dumps(canonical, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def signatures_match(sig1: str | None, sig2: str | None) -> bool:
    return sig1 is not None and sig1 == sig2


def is_valid_signature(signature: str) -> bool:
    return bool(_SIGNATURE_RE.match(signature))
