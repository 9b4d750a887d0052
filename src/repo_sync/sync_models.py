"""Data models shared by the repository sync system.

This module contains the provider enum, the connection configuration, the
remote file record, the envelope written for every data module, and the
status/result structures reported back to callers.
"""

import json
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional

from .utils.datetime import envelope_timestamp


class GitProvider(Enum):
    """Supported repository hosting providers."""
    GITHUB = "github"
    GITEE = "gitee"

    @property
    def default_branch(self) -> str:
        """Branch used when the configuration does not name one."""
        return "master" if self is GitProvider.GITEE else "main"

    @property
    def display_name(self) -> str:
        return "GitHub" if self is GitProvider.GITHUB else "Gitee"

    @property
    def api_base(self) -> str:
        if self is GitProvider.GITHUB:
            return "https://api.github.com"
        return "https://gitee.com/api/v5"


@dataclass
class GitConfig:
    """Credentials and location of the remote sync repository."""

    provider: GitProvider
    token: str
    owner: str
    repo: str
    branch: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.provider, str):
            self.provider = GitProvider(self.provider)

    def with_default_branch(self) -> "GitConfig":
        """Fill an empty branch from the provider default, in place."""
        if not self.branch:
            self.branch = self.provider.default_branch
        return self

    @property
    def repo_path(self) -> str:
        return f"repos/{self.owner}/{self.repo}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data = asdict(self)
        data['provider'] = self.provider.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GitConfig':
        """Create from dictionary representation."""
        return cls(
            provider=GitProvider(data['provider']),
            token=data.get('token', ''),
            owner=data.get('owner', ''),
            repo=data.get('repo', ''),
            branch=data.get('branch') or None,
        )

    def redacted(self) -> Dict[str, Any]:
        """Dictionary safe for logging."""
        data = self.to_dict()
        data['token'] = '***' if self.token else ''
        return data


@dataclass
class RemoteFile:
    """A file in the remote repository.

    ``sha`` is the provider-assigned revision token used to guard writes.
    ``content`` is only populated by single-file reads, not by listings.
    """

    path: str
    sha: str
    name: str = ""
    size: int = 0
    content: Optional[str] = None
    download_url: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            self.name = self.path.rsplit("/", 1)[-1]

    @classmethod
    def from_api(cls, item: Dict[str, Any], content: Optional[str] = None) -> 'RemoteFile':
        """Build from a contents-API item (same shape on both providers)."""
        return cls(
            path=item.get('path', ''),
            sha=item.get('sha', ''),
            name=item.get('name', ''),
            size=item.get('size') or 0,
            content=content,
            download_url=item.get('download_url'),
        )


@dataclass
class SyncEnvelope:
    """JSON document stored remotely for one data module."""

    data: Any
    hash: str
    last_sync_time: str = field(default_factory=envelope_timestamp)

    def to_json(self) -> str:
        """Serialize with the remote field names."""
        return json.dumps(
            {'data': self.data, 'lastSyncTime': self.last_sync_time, 'hash': self.hash},
            indent=2,
            ensure_ascii=False,
        )

    @classmethod
    def from_json(cls, text: str) -> 'SyncEnvelope':
        """Parse a remote envelope.

        Raises:
            ValueError: If the text is not a JSON object
        """
        payload = json.loads(text)
        if not isinstance(payload, dict):
            raise ValueError("Sync envelope must be a JSON object")
        return cls(
            data=payload.get('data'),
            hash=payload.get('hash') or '',
            last_sync_time=payload.get('lastSyncTime') or '',
        )


@dataclass
class SyncStatus:
    """Comparison of local and remote state for one module."""

    filename: str
    local_hash: str
    cloud_hash: str
    needs_sync: bool
    last_sync_time: Optional[str] = None

    @classmethod
    def compare(cls, filename: str, local_hash: str, cloud_hash: str,
                last_sync_time: Optional[str] = None) -> 'SyncStatus':
        """Build a status; an empty cloud hash never matches."""
        return cls(
            filename=filename,
            local_hash=local_hash,
            cloud_hash=cloud_hash,
            needs_sync=local_hash != cloud_hash,
            last_sync_time=last_sync_time,
        )

    @classmethod
    def unavailable(cls, filename: str) -> 'SyncStatus':
        """Status reported when a module's check failed."""
        return cls(filename=filename, local_hash='', cloud_hash='', needs_sync=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SyncResult:
    """Outcome of a bulk operation, per module name."""

    success: bool = True
    results: Dict[str, bool] = field(default_factory=dict)

    def record(self, module_name: str, ok: bool):
        """Record one module's outcome."""
        self.results[module_name] = ok
        if not ok:
            self.success = False

    @property
    def failed(self) -> list:
        return [name for name, ok in self.results.items() if not ok]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ConnectionResult:
    """Result of probing the configured repository."""

    success: bool
    message: str
