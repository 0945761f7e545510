"""
Repository Info Module

Maps GitHub remote URLs (https, ssh, git or scp-like form) to a
normalized (server, owner, name) triple, and the triple to the string
key hook records are stored under.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urlsplit

from github_hook_listener import config

_HOST_PATTERN = re.compile(
    r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)*$"
)
# user@host:owner/name.git
_SCP_LIKE_PATTERN = re.compile(r"^(?:[^@/\s]+@)?(?P<host>[^:/@\s]+):(?P<path>[^/].*)$")


@dataclass(frozen=True)
class RepositoryInfo:
    """GitHub repository, independent of protocol and URL decorations."""

    server: str
    owner: str
    name: str

    @property
    def key(self) -> str:
        return to_key(self.server, self.owner, self.name)

    @property
    def id(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def from_key(cls, key: str) -> Optional["RepositoryInfo"]:
        triple = from_key(key)
        if triple is None:
            return None
        return cls(*triple)

    def __str__(self):
        return self.key


def to_key(server: str, owner: str, name: str) -> str:
    """
    Encode a repository as a storage key.

    Only trailing slashes are trimmed from the server; its case is kept
    as given.
    """
    return f"{server.rstrip('/')}/{owner}/{name}"


def from_key(key: str) -> Optional[Tuple[str, str, str]]:
    parts = key.rsplit("/", 2)
    if len(parts) != 3 or not all(parts):
        return None
    return parts[0], parts[1], parts[2]


def get_github_info(url: Optional[str]) -> Optional[RepositoryInfo]:
    """
    Extract repository info from a Git remote URL.

    Args:
        url: remote URL, e.g. https://github.com/JetBrains/kotlin.git
            or git@github.com:JetBrains/kotlin.git

    Returns:
        RepositoryInfo, or None if the URL does not point to an
        owner/name repository on a valid host
    """
    if not url:
        return None
    url = url.strip()

    if "://" in url:
        try:
            parts = urlsplit(url)
            host = parts.hostname
        except ValueError:
            return None
        path = parts.path
    else:
        match = _SCP_LIKE_PATTERN.match(url)
        if not match:
            return None
        host = match.group("host").lower()
        path = match.group("path")

    if not host or not _HOST_PATTERN.match(host):
        return None

    path = path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    segments = path.split("/")
    if len(segments) != 2 or not all(segments):
        return None
    return RepositoryInfo(host, segments[0], segments[1])


def get_vcs_root_github_info(root) -> Optional[RepositoryInfo]:
    """Repository info of a Git VCS root or root instance, if it has a URL."""
    if root.vcs_name != config.GIT_VCS_NAME:
        return None
    return get_github_info(root.properties.get("url"))
