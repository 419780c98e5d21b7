"""Shared pytest fixtures for git-publisher tests.

Provides:
- ``config``: a configured ``Config`` with auto-publish on.
- ``FakeClock``: manual clock for the scheduler.
- ``FakeGitHubClient``: in-memory repository speaking the ``GitHubClient``
  interface, with programmable failures.
- ``MemoryDocuments``: in-memory content and metadata source.
- ``RecordingNotifier``: notification sink that remembers every notice.
"""

from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field

import pytest

from git_publisher.config import Config
from git_publisher.core.client import (
    ApiResult,
    BranchHead,
    RemoteContent,
    RemoteStatus,
    encode_content,
    git_blob_sha,
)
from git_publisher.publish.models import PublishFlag, Severity
from git_publisher.publish.state import PendingStateStore


@pytest.fixture
def config():
    """A configured Config with small, valid windows."""
    return Config(
        repo_url="https://github.com/owner/notes",
        token="test-token",
        auto_publish=True,
        inactivity_seconds=30,
        session_minutes=5,
        debounce_ms=1500,
        commit_message="Publish",
        branch="main",
        max_file_size_kb=64,
    )


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Manual clock: callbacks fire only inside ``advance()``, in time order."""

    def __init__(self, start: float = 0.0) -> None:
        self.time = start
        self._queue: list[tuple[float, int, FakeHandle, Callable[[], None]]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self.time

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle()
        heapq.heappush(
            self._queue, (self.time + delay, next(self._seq), handle, callback)
        )
        return handle

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, handle, callback = heapq.heappop(self._queue)
            self.time = when
            if not handle.cancelled:
                callback()
        self.time = target

    def pending(self) -> int:
        return sum(1 for _, _, h, _ in self._queue if not h.cancelled)


@pytest.fixture
def clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# Remote repository
# ---------------------------------------------------------------------------


@dataclass
class _Commit:
    tree: dict[str, str]
    parents: list[str]
    message: str


@dataclass
class FakeGitHubClient:
    """In-memory stand-in for ``GitHubClient``.

    ``fail`` maps a method name to the ``ApiResult`` it should return
    instead of doing its work; ``fail_blob_for`` fails blob uploads whose
    content contains the given bytes.
    """

    branches: dict[str, str] = field(default_factory=dict)
    blobs: dict[str, bytes] = field(default_factory=dict)
    trees: dict[str, dict[str, str]] = field(default_factory=dict)
    commits: dict[str, _Commit] = field(default_factory=dict)
    fail: dict[str, ApiResult] = field(default_factory=dict)
    fail_blob_for: list[bytes] = field(default_factory=list)
    calls: list[str] = field(default_factory=list)
    _ids: itertools.count = field(default_factory=itertools.count)

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids):038d}"

    def _failure(self, name: str) -> ApiResult | None:
        self.calls.append(name)
        return self.fail.get(name)

    # -- helpers for tests -------------------------------------------------

    def seed_branch(self, branch: str = "main", files: dict[str, bytes] | None = None) -> str:
        tree: dict[str, str] = {}
        for path, content in (files or {}).items():
            sha = git_blob_sha(content)
            self.blobs[sha] = content
            tree[path] = sha
        tree_sha = self._new_id("t")
        self.trees[tree_sha] = tree
        commit_sha = self._new_id("c")
        self.commits[commit_sha] = _Commit(tree, [], "seed")
        self.branches[branch] = commit_sha
        return commit_sha

    def files(self, branch: str = "main") -> dict[str, bytes]:
        commit = self.commits[self.branches[branch]]
        return {p: self.blobs[s] for p, s in commit.tree.items()}

    def move_branch(self, branch: str = "main") -> None:
        """Simulate an external writer advancing the branch."""
        head = self.branches[branch]
        tree = dict(self.commits[head].tree)
        commit_sha = self._new_id("c")
        self.commits[commit_sha] = _Commit(tree, [head], "external")
        self.branches[branch] = commit_sha

    def network_calls(self) -> list[str]:
        return list(self.calls)

    # -- GitHubClient interface --------------------------------------------

    def get_repository(self) -> ApiResult:
        if failure := self._failure("get_repository"):
            return failure
        return ApiResult(RemoteStatus.OK, data={"full_name": "owner/notes"}, http_status=200)

    def get_branch_head(self, branch: str) -> ApiResult:
        if failure := self._failure("get_branch_head"):
            return failure
        commit_sha = self.branches.get(branch)
        if commit_sha is None:
            return ApiResult(RemoteStatus.NOT_FOUND, http_status=404, error="Not Found")
        tree_sha = self._tree_sha_for(commit_sha)
        return ApiResult(
            RemoteStatus.OK,
            data=BranchHead(commit_sha=commit_sha, tree_sha=tree_sha),
            http_status=200,
        )

    def _tree_sha_for(self, commit_sha: str) -> str:
        tree = self.commits[commit_sha].tree
        for sha, candidate in self.trees.items():
            if candidate == tree:
                return sha
        sha = self._new_id("t")
        self.trees[sha] = dict(tree)
        return sha

    def update_ref(self, branch: str, commit_sha: str, force: bool = False) -> ApiResult:
        if failure := self._failure("update_ref"):
            return failure
        current = self.branches.get(branch)
        if not force and current not in self.commits[commit_sha].parents:
            return ApiResult(
                RemoteStatus.CONFLICT,
                http_status=422,
                error="Update is not a fast forward",
            )
        self.branches[branch] = commit_sha
        return ApiResult(RemoteStatus.OK, data={"object": {"sha": commit_sha}}, http_status=200)

    def create_blob(self, content: bytes) -> ApiResult:
        if failure := self._failure("create_blob"):
            return failure
        if any(marker in content for marker in self.fail_blob_for):
            return ApiResult(RemoteStatus.TRANSIENT, http_status=502, error="Bad Gateway")
        sha = git_blob_sha(content)
        self.blobs[sha] = content
        return ApiResult(RemoteStatus.OK, data={"sha": sha}, http_status=201)

    def create_tree(self, base_tree: str, entries: list[dict[str, str]]) -> ApiResult:
        if failure := self._failure("create_tree"):
            return failure
        tree = dict(self.trees[base_tree])
        for entry in entries:
            tree[entry["path"]] = entry["sha"]
        sha = self._new_id("t")
        self.trees[sha] = tree
        return ApiResult(RemoteStatus.OK, data={"sha": sha}, http_status=201)

    def create_commit(self, message: str, tree_sha: str, parents: list[str]) -> ApiResult:
        if failure := self._failure("create_commit"):
            return failure
        sha = self._new_id("c")
        self.commits[sha] = _Commit(dict(self.trees[tree_sha]), list(parents), message)
        return ApiResult(RemoteStatus.OK, data={"sha": sha}, http_status=201)

    def get_content_at(self, path: str, branch: str) -> ApiResult:
        if failure := self._failure("get_content_at"):
            return failure
        head = self.branches.get(branch)
        sha = self.commits[head].tree.get(path) if head else None
        if sha is None:
            return ApiResult(RemoteStatus.NOT_FOUND, http_status=404, error="Not Found")
        return ApiResult(
            RemoteStatus.OK,
            data=RemoteContent(sha=sha, encoded=encode_content(self.blobs[sha])),
            http_status=200,
        )

    def put_content(self, path: str, content: bytes, message: str, branch: str) -> ApiResult:
        if failure := self._failure("put_content"):
            return failure
        sha = git_blob_sha(content)
        self.blobs[sha] = content
        head = self.branches.get(branch)
        tree = dict(self.commits[head].tree) if head else {}
        tree[path] = sha
        commit_sha = self._new_id("c")
        self.commits[commit_sha] = _Commit(tree, [head] if head else [], message)
        self.branches[branch] = commit_sha
        return ApiResult(RemoteStatus.OK, data={"content": {"sha": sha}}, http_status=201)

    def delete_content_at(self, path: str, branch: str, expected_sha: str, message: str) -> ApiResult:
        if failure := self._failure("delete_content_at"):
            return failure
        head = self.branches[branch]
        tree = dict(self.commits[head].tree)
        if tree.get(path) != expected_sha:
            return ApiResult(RemoteStatus.CONFLICT, http_status=409, error="sha mismatch")
        del tree[path]
        commit_sha = self._new_id("c")
        self.commits[commit_sha] = _Commit(tree, [head], message)
        self.branches[branch] = commit_sha
        return ApiResult(RemoteStatus.OK, data={"commit": {"sha": commit_sha}}, http_status=200)


@pytest.fixture
def remote():
    client = FakeGitHubClient()
    client.seed_branch("main")
    return client


# ---------------------------------------------------------------------------
# Documents and notices
# ---------------------------------------------------------------------------


class MemoryDocuments:
    """Content and metadata source backed by dicts."""

    def __init__(self) -> None:
        self.contents: dict[str, bytes] = {}
        self.flags: dict[str, PublishFlag] = {}
        self.unreadable: set[str] = set()

    def add(self, path: str, content: bytes | str, published: bool | None = True) -> None:
        self.contents[path] = content.encode() if isinstance(content, str) else content
        self.flags[path] = PublishFlag.from_value(published)

    def read_content(self, path: str) -> bytes:
        if path in self.unreadable or path not in self.contents:
            raise FileNotFoundError(path)
        return self.contents[path]

    def get_size(self, path: str) -> int:
        if path not in self.contents:
            raise FileNotFoundError(path)
        return len(self.contents[path])

    def exists(self, path: str) -> bool:
        return path in self.contents

    def list_documents(self) -> list[str]:
        return sorted(self.contents)

    def get_publish_flag(self, path: str) -> PublishFlag:
        return self.flags.get(path, PublishFlag.ABSENT)

    def set_publish_flag(self, path: str, value: bool) -> None:
        if path not in self.contents:
            raise FileNotFoundError(path)
        self.flags[path] = PublishFlag.from_value(value)


class RecordingNotifier:
    def __init__(self) -> None:
        self.notices: list[tuple[str, Severity]] = []

    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        self.notices.append((message, severity))

    def messages(self, severity: Severity | None = None) -> list[str]:
        return [m for m, s in self.notices if severity is None or s is severity]


@pytest.fixture
def docs():
    return MemoryDocuments()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def state():
    return PendingStateStore()
