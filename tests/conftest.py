"""Pytest configuration and shared fixtures."""

import sys
import asyncio
import base64
import hashlib
import inspect
import json
from pathlib import Path

import httpx
import pytest

# Ensure src directory is in Python path for all tests
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from repo_sync.adapters.git_adapter import GitProviderAdapter
from repo_sync.credential_store import CredentialStore
from repo_sync.data_modules import default_modules
from repo_sync.request_cache import RequestCache
from repo_sync.storage import MemoryStore
from repo_sync.sync_engine import SyncEngine
from repo_sync.sync_models import GitConfig, GitProvider


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Execute async tests without external plugins."""
    testfunction = pyfuncitem.obj
    if inspect.iscoroutinefunction(testfunction):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            sig = inspect.signature(testfunction)
            call_kwargs = {name: pyfuncitem.funcargs[name] for name in sig.parameters}
            loop.run_until_complete(testfunction(**call_kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


class FakeRepoServer:
    """In-memory emulation of the GitHub / Gitee repository contents API.

    With ``provider=GITEE`` a PUT without a sha for a new file is rejected,
    which forces the adapter onto its creation fallbacks. The ``*_create``
    flags choose which of those fallbacks the fake Gitee accepts.
    """

    def __init__(self, provider: GitProvider = GitProvider.GITHUB, post_create: bool = True,
                 placeholder_create: bool = False, empty_sha_create: bool = True):
        self.provider = provider
        self.post_create = post_create
        self.placeholder_create = placeholder_create
        self.empty_sha_create = empty_sha_create
        self.files = {}  # path -> (text, sha)
        self.calls = []  # (method, path, body)
        self.fail_paths = set()  # paths whose requests raise a transport error
        self.error_status = {}  # path -> status code returned for GETs
        self.conflicts = {}  # path -> number of upcoming PUTs rejected with a sha error
        self.rejected_contents = set()  # PUT payloads refused with a validation error
        self.repo_status = 200
        self.permissions = {"push": True, "admin": False}
        self._counter = 0

    def _sha(self, text: str) -> str:
        self._counter += 1
        return hashlib.sha1(f"{self._counter}:{text}".encode("utf-8")).hexdigest()

    def store(self, path: str, text: str) -> str:
        sha = self._sha(text)
        self.files[path] = (text, sha)
        return sha

    def text(self, path: str) -> str:
        return self.files[path][0]

    def envelope(self, path: str) -> dict:
        return json.loads(self.text(path))

    def count(self, method: str, path: str = None) -> int:
        return len([c for c in self.calls if c[0] == method and (path is None or c[1] == path)])

    def _file_json(self, path: str) -> dict:
        text, sha = self.files[path]
        encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
        # GitHub wraps base64 content at 60 characters
        wrapped = "\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60))
        return {
            "type": "file",
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "sha": sha,
            "size": len(text.encode("utf-8")),
            "content": wrapped,
            "encoding": "base64",
            "download_url": f"https://raw.example/{path}",
        }

    def _written(self, path: str, status: int = 200) -> httpx.Response:
        text, sha = self.files[path]
        return httpx.Response(status, json={
            "content": {"name": path.rsplit("/", 1)[-1], "path": path, "sha": sha},
            "commit": {"sha": self._sha("commit")},
        })

    def handler(self, request: httpx.Request) -> httpx.Response:
        url_path = request.url.path
        marker = "/repos/me/data"
        assert marker in url_path, f"Unexpected path {request.url}"
        assert request.headers["Authorization"] == "token tok"

        rest = url_path.split(marker, 1)[1]
        body = json.loads(request.content) if request.content else None

        if not rest.startswith("/contents"):
            self.calls.append((request.method, "<repo>", body))
            if self.repo_status != 200:
                return httpx.Response(self.repo_status, json={"message": "error"})
            key = "permissions" if self.provider is GitProvider.GITHUB else "permission"
            return httpx.Response(200, json={"full_name": "me/data", key: self.permissions})

        path = rest[len("/contents"):].lstrip("/")
        self.calls.append((request.method, path, body))

        if path in self.fail_paths:
            raise httpx.ConnectError("connection refused", request=request)

        if request.method == "GET":
            return self._get(path)
        if request.method == "PUT":
            return self._put(path, body)
        if request.method == "POST":
            return self._post(path, body)
        if request.method == "DELETE":
            return self._delete(path, body)
        return httpx.Response(405)

    def _get(self, path: str) -> httpx.Response:
        if path in self.error_status:
            return httpx.Response(self.error_status[path], json={"message": "boom"})
        if path == "":
            items = [dict(self._file_json(p), content=None) for p in sorted(self.files)]
            items.append({"type": "dir", "name": "archive", "path": "archive", "sha": "d1", "size": 0})
            return httpx.Response(200, json=items)
        if path not in self.files:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, json=self._file_json(path))

    def _put(self, path: str, body: dict) -> httpx.Response:
        content = base64.b64decode(body["content"]).decode("utf-8")
        sha = body.get("sha")

        if self.conflicts.get(path):
            self.conflicts[path] -= 1
            return httpx.Response(400, json={"message": "sha is not the latest"})

        if content in self.rejected_contents:
            return httpx.Response(400, json={"message": "content rejected"})

        if path in self.files:
            if sha != self.files[path][1]:
                status = 409 if self.provider is GitProvider.GITHUB else 400
                return httpx.Response(status, json={"message": "sha does not match"})
            self.store(path, content)
            return self._written(path)

        if self.provider is GitProvider.GITEE:
            allowed = ((sha is None and content == "" and self.placeholder_create)
                       or (sha == "" and self.empty_sha_create))
            if not allowed:
                return httpx.Response(400, json={"message": "sha is missing"})
        self.store(path, content)
        return self._written(path, 201)

    def _post(self, path: str, body: dict) -> httpx.Response:
        if self.provider is not GitProvider.GITEE or not self.post_create:
            return httpx.Response(405, json={"message": "Method Not Allowed"})
        if path in self.files:
            return httpx.Response(400, json={"message": "file already exists"})
        self.store(path, base64.b64decode(body["content"]).decode("utf-8"))
        return self._written(path, 201)

    def _delete(self, path: str, body: dict) -> httpx.Response:
        if path not in self.files:
            return httpx.Response(404, json={"message": "Not Found"})
        if body.get("sha") != self.files[path][1]:
            return httpx.Response(409, json={"message": "sha does not match"})
        del self.files[path]
        return httpx.Response(200, json={"commit": {"sha": self._sha("delete")}})


@pytest.fixture
def github_server():
    return FakeRepoServer(GitProvider.GITHUB)


@pytest.fixture
def gitee_server():
    return FakeRepoServer(GitProvider.GITEE)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_credentials():
    """Factory for a credential store already holding a test config."""
    def _make(provider=GitProvider.GITHUB, store=None, branch=None):
        credentials = CredentialStore(store if store is not None else MemoryStore())
        credentials.save(GitConfig(provider=provider, token="tok", owner="me", repo="data",
                                   branch=branch))
        return credentials
    return _make


@pytest.fixture
def make_adapter(make_credentials):
    """Factory for an adapter wired to a fake server."""
    def _make(server, store=None, cache=None):
        credentials = make_credentials(server.provider, store)
        client = httpx.AsyncClient(transport=httpx.MockTransport(server.handler))
        return GitProviderAdapter(credentials, cache=cache or RequestCache(), client=client)
    return _make


@pytest.fixture
def make_engine(make_adapter):
    """Factory for a sync engine over the default modules and a fake server."""
    def _make(server, store=None):
        store = store if store is not None else MemoryStore()
        adapter = make_adapter(server, store)
        return SyncEngine(adapter.credentials, default_modules(store), adapter=adapter)
    return _make
