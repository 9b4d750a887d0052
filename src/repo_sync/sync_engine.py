"""Orchestration of module synchronization with the remote repository.

Each data module is stored remotely as one envelope file,
``<prefix><filename>``, holding the module data, the time of the push and the
content hash of the data. The engine compares local and remote hashes to
decide what needs syncing and in which direction.

Conflict policy is last-writer-wins: when both sides differ, a module whose
local data changed since its baseline is pushed, otherwise the remote copy is
pulled. There is no three-way merge, so two replicas edited independently
while offline cannot be detected; whichever syncs last overwrites the other.
"""

import asyncio
import logging
from typing import List, Optional

from .adapters.git_adapter import GitProviderAdapter
from .credential_store import CredentialStore
from .data_modules import DataModule, DataModuleRegistry
from .hash_tracker import HashTracker, content_hash
from .sync_errors import IntegrityMismatchError
from .sync_models import ConnectionResult, RemoteFile, SyncEnvelope, SyncResult, SyncStatus
from .utils.datetime import commit_timestamp


logger = logging.getLogger(__name__)


class SyncEngine:
    """Push, pull and status reporting for a registry of data modules.

    The engine owns its hash baselines and (through the adapter) its request
    cache, so several engines can coexist in one process. It does not guard
    against concurrent calls on the same instance.
    """

    def __init__(self, credentials: CredentialStore, modules: DataModuleRegistry,
                 adapter: Optional[GitProviderAdapter] = None,
                 hash_tracker: Optional[HashTracker] = None,
                 sync_prefix: str = "sync-"):
        """Initialize the sync engine.

        Args:
            credentials: Credential store holding the repository configuration
            modules: Data modules to synchronize
            adapter: Provider adapter (created from ``credentials`` if omitted)
            hash_tracker: Baseline tracker (a fresh one if omitted)
            sync_prefix: Prefix of the remote envelope file names
        """
        self.credentials = credentials
        self.modules = modules
        self.adapter = adapter or GitProviderAdapter(credentials)
        self.hash_tracker = hash_tracker or HashTracker()
        self.sync_prefix = sync_prefix
        self.logger = logging.getLogger(__name__)

    async def aclose(self):
        await self.adapter.aclose()

    @property
    def provider_name(self) -> str:
        return self.adapter.provider_name

    def remote_path(self, module: DataModule) -> str:
        return f"{self.sync_prefix}{module.filename}"

    def get_module(self, name: str) -> Optional[DataModule]:
        return self.modules.get(name)

    def module_names(self) -> List[str]:
        return self.modules.names()

    def _has_config(self) -> bool:
        return self.credentials.config is not None or self.credentials.load() is not None

    def initialize(self) -> bool:
        """Load the configuration and seed hash baselines for every module."""
        if not self._has_config():
            self.logger.error("No config available for sync initialization")
            return False

        try:
            self.hash_tracker.initialize(self.modules)
        except Exception as e:
            self.logger.error(f"Initialize sync failed: {e}")
            return False

        self.logger.info("Sync system initialized successfully")
        return True

    async def test_connection(self) -> ConnectionResult:
        return await self.adapter.test_connection()

    # Single module operations

    async def push_module(self, module: DataModule) -> bool:
        """Upload a module's current data as a new envelope."""
        try:
            data = module.read()
            envelope = SyncEnvelope(data=data, hash=content_hash(data))

            self.logger.info(f"Syncing {module.name} to cloud...")
            success = await self.adapter.put_file(
                self.remote_path(module),
                envelope.to_json(),
                f"Update {module.name} data - {commit_timestamp()}",
            )

            if success:
                self.hash_tracker.set_baseline(module.name, envelope.hash)
            else:
                self.logger.error(f"Sync {module.name} to cloud failed")
            return success
        except Exception as e:
            self.logger.error(f"Sync {module.name} to cloud failed: {e}")
            return False

    async def pull_module(self, module: DataModule) -> bool:
        """Apply the remote envelope's data to a module.

        A hash mismatch inside the envelope is logged but the data is still
        applied.
        """
        try:
            remote = await self.adapter.get_file(self.remote_path(module))
            if not remote:
                self.logger.info(f"No cloud data found for {module.name}")
                return False

            envelope = SyncEnvelope.from_json(remote.content or "")

            expected = content_hash(envelope.data)
            if envelope.hash != expected:
                self.logger.warning(str(IntegrityMismatchError(module.name, envelope.hash, expected)))

            module.write(envelope.data)
            self.hash_tracker.set_baseline(module.name, envelope.hash)

            self.logger.info(f"Successfully synced {module.name} from cloud")
            return True
        except Exception as e:
            self.logger.error(f"Sync {module.name} from cloud failed: {e}")
            return False

    # Status

    async def _check_module(self, module: DataModule) -> SyncStatus:
        local_hash = content_hash(module.read())

        remote = await self.adapter.fetch_file(self.remote_path(module))
        cloud_hash = ''
        last_sync_time = None
        if remote:
            try:
                envelope = SyncEnvelope.from_json(remote.content or "")
            except ValueError as e:
                # an empty placeholder or a corrupt envelope is overwritten by the next push
                self.logger.warning(f"Unreadable cloud data for {module.name}, treating as missing: {e}")
            else:
                cloud_hash = envelope.hash
                last_sync_time = envelope.last_sync_time or None

        return SyncStatus.compare(module.filename, local_hash, cloud_hash, last_sync_time)

    async def status(self) -> List[SyncStatus]:
        """Compare every module with its remote envelope.

        Modules are checked concurrently and independently; a module whose
        check fails is reported with empty hashes and ``needs_sync=False``.
        """
        modules = list(self.modules)
        results = await asyncio.gather(
            *(self._check_module(module) for module in modules),
            return_exceptions=True,
        )

        statuses = []
        for module, result in zip(modules, results):
            if isinstance(result, BaseException):
                self.logger.error(f"Check sync status failed for {module.name}: {result}")
                statuses.append(SyncStatus.unavailable(module.filename))
            else:
                statuses.append(result)
        return statuses

    # Bulk operations

    async def auto_sync(self) -> SyncResult:
        """Sync every module whose local and remote hashes differ.

        Pushes when local data changed since the last baseline or nothing has
        been pushed yet; otherwise pulls, treating the remote as authoritative.
        """
        if not self._has_config():
            return SyncResult(success=False)

        if not self.hash_tracker.is_initialized:
            self.hash_tracker.initialize(self.modules)

        result = SyncResult()
        for status in await self.status():
            module = self.modules.get_by_filename(status.filename)
            if not module or not status.needs_sync:
                continue

            try:
                local_changed = self.hash_tracker.has_changed(module.name, module.read())
            except Exception as e:
                self.logger.error(f"Error checking data changes for {module.name}: {e}")
                result.record(module.name, False)
                continue

            if local_changed or not status.cloud_hash:
                result.record(module.name, await self.push_module(module))
            else:
                result.record(module.name, await self.pull_module(module))

        return result

    async def push_all(self) -> SyncResult:
        """Push every module regardless of status."""
        result = SyncResult()
        for module in self.modules:
            result.record(module.name, await self.push_module(module))
        return result

    async def pull_all(self) -> SyncResult:
        """Pull every module regardless of status."""
        result = SyncResult()
        for module in self.modules:
            result.record(module.name, await self.pull_module(module))
        return result

    async def cleanup(self) -> SyncResult:
        """Delete the remote envelope of every module."""
        result = SyncResult()
        for module in self.modules:
            ok = await self.adapter.delete_file(
                self.remote_path(module), f"Clean up {module.name} sync file")
            result.record(module.name, ok)
        return result

    async def list_sync_files(self) -> List[RemoteFile]:
        """List envelope files present at the repository root."""
        files = await self.adapter.list_files()
        return [f for f in files if f.name.startswith(self.sync_prefix)]

    def clear_cache(self):
        """Drop cached requests and every hash baseline."""
        self.adapter.api.cache.clear()
        self.hash_tracker.clear()
