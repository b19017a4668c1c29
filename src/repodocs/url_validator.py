from __future__ import annotations

import re
from urllib.parse import urlsplit

from repodocs.exceptions import InvalidRepositoryUrlError
from repodocs.models import RepositorySource

ALLOWED_SCHEMES = ("https", "ssh", "git")
DEFAULT_ALLOWED_HOSTS = frozenset({"github.com"})

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_BRANCH_RE = re.compile(r"^[A-Za-z0-9._/-]+$")
_WHITESPACE_OR_CONTROL_RE = re.compile(r"[\s\x00-\x1f\x7f]")


def _check_segment(raw: str, label: str, value: str) -> None:
    if not value:
        raise InvalidRepositoryUrlError(url=raw, reason=f"missing {label}")
    if not _SEGMENT_RE.match(value):
        raise InvalidRepositoryUrlError(url=raw, reason=f"{label} {value!r} contains forbidden characters")
    if ".." in value or value == ".":
        raise InvalidRepositoryUrlError(url=raw, reason=f"{label} {value!r} contains a path traversal sequence")


def _check_branch(raw: str, branch: str) -> None:
    if not _BRANCH_RE.match(branch) or ".." in branch or branch.startswith(("/", "-")) or branch.endswith("/"):
        raise InvalidRepositoryUrlError(url=raw, reason=f"invalid branch name {branch!r}")


def validate_repository_url(
    raw: str,
    *,
    allowed_hosts: frozenset[str] = DEFAULT_ALLOWED_HOSTS,
) -> RepositorySource:
    """Validate a repository URL without any network access.

    Rules are applied in order: scheme, host, owner/repo segments, then
    embedded credentials. Credentials are never stripped; their presence
    rejects the URL.

    Args:
        raw (str): the untrusted URL, e.g. `https://github.com/owner/repo`
        allowed_hosts (frozenset[str]): accepted hosts, compared case-insensitively

    Raises:
        InvalidRepositoryUrlError: with the first rule the URL breaks

    Returns:
        RepositorySource: the validated identifier
    """
    if not raw:
        raise InvalidRepositoryUrlError(url=raw, reason="empty URL")
    if _WHITESPACE_OR_CONTROL_RE.search(raw):
        raise InvalidRepositoryUrlError(url=raw, reason="whitespace or control characters in URL")
    try:
        parts = urlsplit(raw)
        host = (parts.hostname or "").lower()
        port = parts.port
    except ValueError as exc:
        raise InvalidRepositoryUrlError(url=raw, reason=f"malformed URL: {exc}") from exc

    if parts.scheme not in ALLOWED_SCHEMES:
        shown = parts.scheme or "(none)"
        raise InvalidRepositoryUrlError(
            url=raw,
            reason=f"scheme {shown!r} is not one of {', '.join(ALLOWED_SCHEMES)}",
        )

    allowed = {h.lower() for h in allowed_hosts}
    if not host or host not in allowed:
        raise InvalidRepositoryUrlError(
            url=raw,
            reason=f"host {host or '(none)'!r} is not allowed (expected {', '.join(sorted(allowed))})",
        )
    if port is not None:
        raise InvalidRepositoryUrlError(url=raw, reason="explicit ports are not allowed")

    segments = parts.path.split("/")[1:]
    if segments and segments[-1] == "":
        segments = segments[:-1]
    if len(segments) < 2:  # noqa: PLR2004
        raise InvalidRepositoryUrlError(url=raw, reason="expected /<owner>/<repo> in the URL path")
    owner, name, *rest = segments
    name = name.removesuffix(".git")
    _check_segment(raw, "owner", owner)
    _check_segment(raw, "repository name", name)

    branch: str | None = None
    if rest:
        if rest[0] != "tree" or len(rest) < 2:  # noqa: PLR2004
            raise InvalidRepositoryUrlError(url=raw, reason="unexpected path after /<owner>/<repo>")
        branch = "/".join(rest[1:])
        _check_branch(raw, branch)
    if parts.query or parts.fragment:
        raise InvalidRepositoryUrlError(url=raw, reason="query strings and fragments are not allowed")

    ssh_user = "git"
    if parts.scheme == "ssh":
        if parts.password is not None:
            raise InvalidRepositoryUrlError(url=raw, reason="URL contains embedded credentials")
        if parts.username is not None:
            _check_segment(raw, "ssh user", parts.username)
            ssh_user = parts.username
    elif "@" in parts.netloc:
        raise InvalidRepositoryUrlError(url=raw, reason="URL contains embedded credentials")

    return RepositorySource(
        scheme=parts.scheme,
        host=host,
        owner=owner,
        name=name,
        branch=branch,
        ssh_user=ssh_user,
    )
