"""GitHub URL utilities."""

from __future__ import annotations


def parse_repo_url(repo_url: str) -> tuple[str, str]:
    """Extract (owner, repo) from a GitHub URL or ``owner/repo`` shorthand.

    Raises ValueError if the URL cannot be parsed.
    """
    result = _extract_owner_repo(repo_url)
    if result is None:
        raise ValueError(f"cannot parse GitHub repo URL: {repo_url!r}")
    owner, repo = result.split("/", 1)
    return owner, repo


def _extract_owner_repo(repo_url: str) -> str | None:
    """Extract 'owner/repo' from a GitHub URL.

    Handles:
      - https://github.com/owner/repo
      - https://github.com/owner/repo.git
      - https://github.com/owner/repo/tree/main/src
      - git@github.com:owner/repo.git
      - owner/repo
    """
    repo_url = repo_url.strip().rstrip("/")
    if repo_url.endswith(".git"):
        repo_url = repo_url[:-4]

    # SSH format: git@github.com:owner/repo
    if repo_url.startswith("git@"):
        colon_idx = repo_url.find(":")
        if colon_idx == -1:
            return None
        return _owner_repo(repo_url[colon_idx + 1 :].split("/"))

    for prefix in ("https://", "http://"):
        if repo_url.startswith(prefix):
            repo_url = repo_url[len(prefix) :]
            break
    if repo_url.startswith("www."):
        repo_url = repo_url[4:]

    parts = repo_url.split("/")
    if parts[0] == "github.com":
        return _owner_repo(parts[1:3])
    if "." in parts[0]:
        # some other host
        return None
    if len(parts) == 2:
        return _owner_repo(parts)
    return None


def _owner_repo(parts: list[str]) -> str | None:
    if len(parts) == 2 and all(parts):
        return f"{parts[0]}/{parts[1]}"
    return None
