"""GitHub / Gitee repository contents adapter.

This module normalizes the two providers' "contents" REST APIs behind one
file-level contract: read, write, delete and list. Both APIs share a URL
layout and token authentication, but differ in how a file is created: GitHub
creates and updates with a single PUT, while Gitee rejects a PUT without a
revision token (sha) for a new file. Creation on Gitee therefore walks an
ordered chain of strategies until one succeeds.
"""

import base64
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote, urlencode

import httpx

from ..credential_store import CredentialStore
from ..request_cache import RequestCache
from ..sync_errors import (
    AuthenticationError,
    NetworkError,
    NotFoundError,
    RevisionConflictError,
    SyncError,
)
from ..sync_models import ConnectionResult, GitConfig, GitProvider, RemoteFile


logger = logging.getLogger(__name__)

CreationStrategy = Callable[[str, str, str], Awaitable[bool]]


def encode_content(text: str) -> str:
    """Base64-encode text as UTF-8."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_content(encoded: str) -> str:
    """Decode base64 content as returned by the API (may contain newlines).

    Raises:
        ValueError: If the content is not valid base64 or not UTF-8
    """
    return base64.b64decode(re.sub(r"\s", "", encoded), validate=True).decode("utf-8")


def classify_response(response: httpx.Response) -> Optional[SyncError]:
    """Map an unsuccessful response onto the sync error taxonomy.

    Returns:
        None for successful responses, otherwise an (unraised) error instance
    """
    if response.is_success:
        return None

    status = response.status_code
    text = response.text[:500]
    if status in (401, 403):
        return AuthenticationError(f"Authentication failed ({status}): {text}", status)
    if status == 404:
        return NotFoundError(f"Not found: {response.request.url}", status)
    if status in (409, 422) or "sha" in text:
        return RevisionConflictError(f"Revision conflict ({status}): {text}", status)
    return SyncError(f"API error {status}: {text}", status)


class GitProviderAPI:
    """Low-level client for the repository contents API."""

    def __init__(self, credentials: CredentialStore, cache: Optional[RequestCache] = None,
                 client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        """Initialize the API client.

        Args:
            credentials: Source of the active repository configuration
            cache: Request cache shared by GET requests
            client: Optional preconfigured httpx client (tests pass one with a mock transport)
            timeout: Request timeout in seconds for the client created here
        """
        self.credentials = credentials
        self.cache = cache if cache is not None else RequestCache()
        self.timeout = timeout
        self._client = client
        self.logger = logging.getLogger(__name__)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self):
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    @property
    def config(self) -> GitConfig:
        return self.credentials.require()

    def contents_endpoint(self, path: str = "") -> str:
        endpoint = f"{self.config.repo_path}/contents"
        path = path.strip("/")
        return f"{endpoint}/{quote(path)}" if path else endpoint

    def build_url(self, endpoint: str, params: Optional[Dict[str, str]] = None) -> str:
        url = f"{self.config.provider.api_base}/{endpoint}"
        if params:
            url += "?" + urlencode(params)
        return url

    def invalidate(self, endpoint: str):
        """Forget cached reads of ``endpoint`` so the next read hits the network."""
        self.cache.invalidate(f"GET-{self.build_url(endpoint)}")

    async def request(self, method: str, endpoint: str, params: Optional[Dict[str, str]] = None,
                      json_data: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """Make an authenticated request.

        GET requests are coalesced through the request cache.

        Raises:
            ConfigMissingError: If no repository is configured
            NetworkError: If the request fails at the transport level
        """
        config = self.config
        method = method.upper()
        url = self.build_url(endpoint, params)
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"token {config.token}",
        }
        self.logger.debug(f"API Request: {method} {url} (Authorization: token ***)")

        client = self._get_client()

        async def send() -> httpx.Response:
            try:
                return await client.request(method, url, headers=headers, json=json_data)
            except httpx.TimeoutException as e:
                raise NetworkError(f"{config.provider.display_name} request timed out: {url}") from e
            except httpx.RequestError as e:
                raise NetworkError(f"{config.provider.display_name} request failed: {e}") from e

        return await self.cache.fetch(method, url, send)


class GitProviderAdapter:
    """File-level operations over either provider.

    Every public operation reports failure through its return value; transport
    and API errors are logged, never raised.
    """

    def __init__(self, credentials: CredentialStore, api: Optional[GitProviderAPI] = None,
                 cache: Optional[RequestCache] = None, client: Optional[httpx.AsyncClient] = None,
                 timeout: float = 30.0):
        self.credentials = credentials
        self.api = api or GitProviderAPI(credentials, cache=cache, client=client, timeout=timeout)
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

        # Tried in order when Gitee has no existing file to update
        self.creation_strategies: List[CreationStrategy] = [
            self._try_post_create,
            self._try_create_then_update,
            self._try_put_with_empty_sha,
        ]

    @property
    def provider(self) -> Optional[GitProvider]:
        config = self.credentials.config
        return config.provider if config else None

    @property
    def provider_name(self) -> str:
        return self.provider.display_name if self.provider else GitProvider.GITEE.display_name

    @property
    def branch(self) -> str:
        return self.api.config.with_default_branch().branch

    async def aclose(self):
        await self.api.aclose()

    # Reads

    async def fetch_file(self, path: str) -> Optional[RemoteFile]:
        """Read a file, distinguishing "not found" from failure.

        Returns:
            The file, or None if it does not exist

        Raises:
            SyncError: On transport, authentication or other API failures
            ValueError: If the response body or content cannot be decoded
        """
        endpoint = self.api.contents_endpoint(path)
        response = await self.api.request("GET", endpoint, params={"ref": self.branch})
        if response.status_code == 404:
            self.logger.debug(f"File not found: {path}")
            return None

        error = classify_response(response)
        if error:
            raise error

        data = response.json()
        if not isinstance(data, dict) or not data.get("sha") or "content" not in data:
            # a directory listing or an empty-repository marker
            return None

        return RemoteFile.from_api(data, content=decode_content(data.get("content") or ""))

    async def get_file(self, path: str) -> Optional[RemoteFile]:
        """Read a file with its revision token.

        Returns:
            The file, or None if it does not exist or could not be read
        """
        try:
            return await self.fetch_file(path)
        except (SyncError, ValueError) as e:
            self.logger.info(f"File not readable: {path}: {e}")
            return None

    async def list_files(self, path: str = "") -> List[RemoteFile]:
        """List the files (not subdirectories) directly under ``path``."""
        try:
            endpoint = self.api.contents_endpoint(path)
            response = await self.api.request("GET", endpoint, params={"ref": self.branch})
            if not response.is_success:
                return []

            data = response.json()
            if not isinstance(data, list):
                return []

            return [RemoteFile.from_api(item) for item in data
                    if isinstance(item, dict) and item.get("type") == "file"]
        except (SyncError, ValueError) as e:
            self.logger.error(f"List files failed: {e}")
            return []

    # Writes

    def _write_body(self, message: str, encoded: str, sha: Optional[str] = None) -> Dict[str, Any]:
        body = {"message": message, "content": encoded, "branch": self.branch}
        if sha is not None:
            body["sha"] = sha
        return body

    async def put_file(self, path: str, content: str, message: str, sha: Optional[str] = None) -> bool:
        """Create or update a file.

        Args:
            path: Repository path of the file
            content: Text content, written as UTF-8
            message: Commit message
            sha: Known revision token; discovered from the remote if omitted

        Returns:
            True if the remote now holds ``content``
        """
        try:
            encoded = encode_content(content)

            if not sha:
                existing = await self.get_file(path)
                sha = existing.sha if existing else None
                self.logger.debug(f"Existing file found for {path}: {'yes' if existing else 'no'}")

            if not sha and self.provider is GitProvider.GITEE:
                self.logger.info("Using Gitee-specific file creation method")
                ok = await self._create_with_fallbacks(path, message, encoded)
            else:
                ok = await self._put_with_conflict_retry(path, message, encoded, sha)

            if ok:
                self._forget(path)
            return ok
        except (SyncError, ValueError) as e:
            self.logger.error(f"Create/update file failed for {path}: {e}")
            return False

    async def _put_with_conflict_retry(self, path: str, message: str, encoded: str,
                                       sha: Optional[str]) -> bool:
        endpoint = self.api.contents_endpoint(path)
        body = self._write_body(message, encoded, sha or None)
        if sha:
            self.logger.debug(f"Updating existing file {path} with sha {sha}")
        else:
            self.logger.debug(f"Creating new file {path} without sha")

        response = await self.api.request("PUT", endpoint, json_data=body)
        if self._write_succeeded(response):
            return True

        error = classify_response(response)
        self.logger.error(f"Write to {path} rejected: {error}")

        # Gitee reports stale or missing tokens in the error text
        if self.provider is GitProvider.GITEE and "sha" in response.text:
            self.logger.info(f"Retrying {path} with fresh sha for Gitee")
            self.api.invalidate(endpoint)
            fresh = await self.get_file(path)
            if fresh:
                body["sha"] = fresh.sha
                retry = await self.api.request("PUT", endpoint, json_data=body)
                if self._write_succeeded(retry):
                    return True
                self.logger.error(f"Retry for {path} failed: {classify_response(retry)}")

        return False

    def _forget(self, path: str):
        """Drop cached reads of ``path`` and of the listing of its directory."""
        parent = path.strip("/").rpartition("/")[0]
        self.api.invalidate(self.api.contents_endpoint(path))
        self.api.invalidate(self.api.contents_endpoint(parent))

    @staticmethod
    def _write_succeeded(response: httpx.Response) -> bool:
        if not response.is_success:
            return False
        try:
            body = response.json()
        except ValueError:
            return False
        return isinstance(body, dict) and "content" in body

    async def _create_with_fallbacks(self, path: str, message: str, encoded: str) -> bool:
        for strategy in self.creation_strategies:
            try:
                if await strategy(path, message, encoded):
                    self.logger.info(f"Created {path} via {strategy.__name__}")
                    return True
            except (SyncError, ValueError) as e:
                self.logger.info(f"{strategy.__name__} error for {path}: {e}")
        self.logger.error(f"All Gitee file creation methods failed for {path}")
        return False

    async def _try_post_create(self, path: str, message: str, encoded: str) -> bool:
        response = await self.api.request(
            "POST", self.api.contents_endpoint(path), json_data=self._write_body(message, encoded))
        if response.is_success:
            return True
        self.logger.info(f"POST create failed: {response.status_code}")
        return False

    async def _try_create_then_update(self, path: str, message: str, encoded: str) -> bool:
        endpoint = self.api.contents_endpoint(path)
        created = await self.api.request(
            "PUT", endpoint, json_data=self._write_body(f"Initialize file: {path}", encode_content("")))
        if not created.is_success:
            self.logger.info(f"Placeholder create failed: {created.status_code}")
            return False

        placeholder = created.json()
        sha = (placeholder.get("content") or {}).get("sha") if isinstance(placeholder, dict) else None
        if not sha:
            self.logger.info("Placeholder create returned no sha")
            return False

        updated = await self.api.request("PUT", endpoint, json_data=self._write_body(message, encoded, sha))
        if updated.is_success:
            return True
        self.logger.info(f"Placeholder update failed: {updated.status_code}")
        await self._remove_placeholder(path, sha)
        return False

    async def _remove_placeholder(self, path: str, sha: str):
        """Best-effort delete of an empty file left by a failed create."""
        endpoint = self.api.contents_endpoint(path)
        try:
            response = await self.api.request(
                "DELETE", endpoint,
                json_data={"message": f"Remove placeholder: {path}", "sha": sha, "branch": self.branch})
        except SyncError as e:
            self.logger.warning(f"Could not remove placeholder {path}: {e}")
            return
        self._forget(path)
        if not response.is_success:
            self.logger.warning(f"Placeholder {path} left behind: {response.status_code}")

    async def _try_put_with_empty_sha(self, path: str, message: str, encoded: str) -> bool:
        response = await self.api.request(
            "PUT", self.api.contents_endpoint(path), json_data=self._write_body(message, encoded, ""))
        if response.is_success:
            return True
        self.logger.info(f"PUT with empty sha failed: {response.status_code}")
        return False

    async def delete_file(self, path: str, message: str = "Delete file") -> bool:
        """Delete a file; a file that does not exist counts as deleted.

        Returns:
            False if the file could not be read or the delete was rejected
        """
        try:
            existing = await self.fetch_file(path)
            if not existing:
                return True

            response = await self.api.request(
                "DELETE", self.api.contents_endpoint(path),
                json_data={"message": message, "sha": existing.sha, "branch": self.branch})
            self._forget(path)
            if not response.is_success:
                self.logger.error(f"Delete of {path} rejected: {classify_response(response)}")
            return response.is_success
        except (SyncError, ValueError) as e:
            self.logger.error(f"Delete file failed for {path}: {e}")
            return False

    # Repository probing

    async def test_connection(self) -> ConnectionResult:
        """Check that the repository is reachable and writable with the token."""
        config = self.credentials.config or self.credentials.load()
        if not config:
            return ConnectionResult(False, "Git sync is not configured")

        self.logger.debug(f"Testing connection with config {config.redacted()}")
        try:
            response = await self.api.request("GET", config.repo_path)
        except SyncError as e:
            self.logger.error(f"Connection error: {e}")
            return ConnectionResult(False, f"Connection error: {e}")

        if response.is_success:
            try:
                repo_data = response.json()
            except ValueError:
                return ConnectionResult(False, "Unexpected repository response")

            if self._has_write_access(repo_data):
                name = repo_data.get("full_name") or repo_data.get("path") or config.repo
                return ConnectionResult(True, f"Connected to repository {name}")
            return ConnectionResult(
                False, "Repository is accessible but the token has no write permission")

        if response.status_code == 401:
            return ConnectionResult(False, "Token authentication failed, check the token")
        if response.status_code == 404:
            return ConnectionResult(False, "Repository does not exist or is not accessible")

        self.logger.error(f"API error: {response.status_code} {response.text[:500]}")
        return ConnectionResult(False, f"Connection failed: {response.status_code} {response.reason_phrase}")

    @staticmethod
    def _has_write_access(repo_data: Any) -> bool:
        if not isinstance(repo_data, dict):
            return False
        # GitHub reports "permissions", Gitee "permission"
        github = repo_data.get("permissions") or {}
        gitee = repo_data.get("permission") or {}
        return bool(
            github.get("push") or github.get("admin") or github.get("maintain")
            or gitee.get("push") or gitee.get("admin") or gitee.get("master")
        )

    async def get_repo_info(self) -> Optional[Dict[str, Any]]:
        try:
            response = await self.api.request("GET", self.api.config.repo_path)
            if response.is_success:
                return response.json()
            return None
        except (SyncError, ValueError) as e:
            self.logger.error(f"Get repo info failed: {e}")
            return None

    async def repository_exists(self) -> bool:
        if not self.credentials.config:
            return False
        try:
            response = await self.api.request("GET", self.api.config.repo_path)
            return response.is_success
        except SyncError as e:
            self.logger.error(f"Repository check failed: {e}")
            return False
