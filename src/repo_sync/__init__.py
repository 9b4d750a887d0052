"""repo_sync - keep local productivity data in sync with a GitHub or Gitee repository."""

__version__ = "0.1.0"

from .credential_store import CredentialStore
from .data_modules import DataModule, DataModuleRegistry, default_modules
from .hash_tracker import HashTracker, content_hash
from .request_cache import RequestCache
from .sync_engine import SyncEngine
from .sync_models import GitConfig, GitProvider, RemoteFile, SyncEnvelope, SyncResult, SyncStatus

__all__ = [
    "CredentialStore",
    "DataModule",
    "DataModuleRegistry",
    "default_modules",
    "GitConfig",
    "GitProvider",
    "HashTracker",
    "content_hash",
    "RemoteFile",
    "RequestCache",
    "SyncEngine",
    "SyncEnvelope",
    "SyncResult",
    "SyncStatus",
    "__version__",
]
