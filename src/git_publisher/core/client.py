"""GitHub REST client for the git database and contents APIs.

Every call returns an ``ApiResult`` instead of raising on HTTP failure;
callers branch on ``RemoteStatus``.  Network errors are folded into
``TRANSIENT``.  The client is synchronous (``requests``); async callers
wrap it with ``run_sync``.
"""

import base64
import hashlib
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import quote

import requests

from ..config import Config
from ..logger import log_event

logger = logging.getLogger(__name__)

GITHUB_ACCEPT = "application/vnd.github+json"
REQUEST_TIMEOUT = (10, 60)


class RemoteStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    TRANSIENT = "transient"
    INVALID = "invalid"


@dataclass(frozen=True, slots=True)
class ApiResult:
    """Structured outcome of one remote call.

    Attributes:
        status: Classified status.
        data: Decoded JSON body on success (or a domain object for
            helpers such as ``get_branch_head``).
        http_status: Raw HTTP status, ``None`` for connection errors.
        error: Short error description for logs and notices.
        rate_limited: True when GitHub reported an exhausted rate limit.
    """

    status: RemoteStatus
    data: Any = None
    http_status: int | None = None
    error: str | None = None
    rate_limited: bool = False

    @property
    def ok(self) -> bool:
        return self.status is RemoteStatus.OK


@dataclass(frozen=True, slots=True)
class BranchHead:
    commit_sha: str
    tree_sha: str


@dataclass(frozen=True, slots=True)
class RemoteContent:
    """A file as stored on the branch.

    ``encoded`` is GitHub's base64 with line breaks removed; it is empty
    for files the contents API does not inline (over 1 MB).  ``sha`` is
    always the git blob sha.
    """

    sha: str
    encoded: str

    @property
    def content(self) -> bytes:
        return base64.b64decode(self.encoded)


def classify_status(http_status: int, conflict_on_422: bool = False) -> RemoteStatus:
    """Map an HTTP status code to a ``RemoteStatus``.

    GitHub answers a non-fast-forward ref update with 422, so callers that
    perform guarded writes pass ``conflict_on_422=True``.
    """
    if 200 <= http_status < 300:
        return RemoteStatus.OK
    match http_status:
        case 404:
            return RemoteStatus.NOT_FOUND
        case 409:
            return RemoteStatus.CONFLICT
        case 422 if conflict_on_422:
            return RemoteStatus.CONFLICT
        case 401 | 403:
            return RemoteStatus.UNAUTHORIZED
        case 429:
            return RemoteStatus.TRANSIENT
        case code if code >= 500:
            return RemoteStatus.TRANSIENT
        case _:
            return RemoteStatus.INVALID


def encode_content(content: bytes) -> str:
    """Base64-encode *content* the way the contents API stores it."""
    return base64.b64encode(content).decode("ascii")


def git_blob_sha(content: bytes) -> str:
    """Compute the git object id GitHub will assign to a blob of *content*."""
    header = f"blob {len(content)}\0".encode("ascii")
    return hashlib.sha1(header + content).hexdigest()


class GitHubClient:
    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        parsed = config.parse_repo()
        if parsed is None:
            raise ValueError(
                f"Invalid repository URL '{config.repo_url}': "
                "expected https://github.com/OWNER/REPO"
            )
        self.owner, self.repo = parsed
        self.repo_api = f"{config.api_url.rstrip('/')}/repos/{self.owner}/{self.repo}"

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.config.token}",
                "Accept": GITHUB_ACCEPT,
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )
        return session

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict | None = None,
        params: dict | None = None,
        conflict_on_422: bool = False,
    ) -> ApiResult:
        """Issue one request against the repository API and classify it."""
        url = f"{self.repo_api}{path}"
        try:
            response = self._get_session().request(
                method.upper(),
                url,
                json=json_body,
                params=params,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            log_event(
                logger,
                logging.ERROR,
                "github_err",
                "%s %s failed: %s",
                method.upper(),
                path,
                exc,
                method=method,
                url=url,
                status=None,
            )
            return ApiResult(RemoteStatus.TRANSIENT, error=str(exc))

        status = classify_status(response.status_code, conflict_on_422)
        if status is RemoteStatus.OK:
            log_event(
                logger,
                logging.DEBUG,
                "github_ok",
                "%s %s -> %d",
                method.upper(),
                path,
                response.status_code,
                method=method,
                url=url,
                status=response.status_code,
            )
            data = response.json() if response.content else None
            return ApiResult(status, data=data, http_status=response.status_code)

        rate_limited = response.status_code == 429 or (
            response.status_code == 403
            and response.headers.get("X-RateLimit-Remaining") == "0"
        )
        if rate_limited:
            status = RemoteStatus.TRANSIENT
        error = _error_message(response)
        log_event(
            logger,
            logging.WARNING if status is RemoteStatus.CONFLICT else logging.ERROR,
            "github_err",
            "%s %s -> %d: %s",
            method.upper(),
            path,
            response.status_code,
            error,
            method=method,
            url=url,
            status=response.status_code,
            body=error,
        )
        return ApiResult(
            status,
            http_status=response.status_code,
            error=error,
            rate_limited=rate_limited,
        )

    # ------------------------------------------------------------------
    # Repository and refs
    # ------------------------------------------------------------------

    def get_repository(self) -> ApiResult:
        """Fetch repository metadata (used as a reachability check)."""
        return self._request("get", "")

    def get_ref(self, branch: str) -> ApiResult:
        """Fetch ``refs/heads/<branch>``; ``data`` is the raw ref object."""
        return self._request("get", f"/git/ref/heads/{branch}")

    def get_commit(self, sha: str) -> ApiResult:
        return self._request("get", f"/git/commits/{sha}")

    def get_branch_head(self, branch: str) -> ApiResult:
        """Resolve the branch head commit and its tree.

        Returns:
            ``ApiResult`` whose ``data`` is a ``BranchHead`` on success.
            A missing branch yields ``NOT_FOUND``.
        """
        ref = self.get_ref(branch)
        if not ref.ok:
            return ref
        commit_sha = (ref.data or {}).get("object", {}).get("sha")
        if not commit_sha:
            return ApiResult(
                RemoteStatus.INVALID,
                http_status=ref.http_status,
                error="ref response has no object sha",
            )
        commit = self.get_commit(commit_sha)
        if not commit.ok:
            return commit
        tree_sha = (commit.data or {}).get("tree", {}).get("sha")
        if not tree_sha:
            return ApiResult(
                RemoteStatus.INVALID,
                http_status=commit.http_status,
                error="commit response has no tree sha",
            )
        return ApiResult(
            RemoteStatus.OK,
            data=BranchHead(commit_sha=commit_sha, tree_sha=tree_sha),
            http_status=commit.http_status,
        )

    def update_ref(self, branch: str, commit_sha: str, force: bool = False) -> ApiResult:
        """Move ``refs/heads/<branch>`` to *commit_sha*.

        A non-forced update that is not a fast-forward comes back as
        ``CONFLICT``.
        """
        return self._request(
            "patch",
            f"/git/refs/heads/{branch}",
            json_body={"sha": commit_sha, "force": force},
            conflict_on_422=True,
        )

    # ------------------------------------------------------------------
    # Git database objects
    # ------------------------------------------------------------------

    def create_blob(self, content: bytes) -> ApiResult:
        """Upload *content* as a blob; ``data["sha"]`` is the blob id."""
        return self._request(
            "post",
            "/git/blobs",
            json_body={"content": encode_content(content), "encoding": "base64"},
        )

    def create_tree(self, base_tree: str, entries: list[dict[str, str]]) -> ApiResult:
        """Create a tree layered over *base_tree*.

        Args:
            base_tree: Tree sha the new entries are overlaid on.
            entries: ``{"path", "mode", "type", "sha"}`` dicts.
        """
        return self._request(
            "post",
            "/git/trees",
            json_body={"base_tree": base_tree, "tree": entries},
        )

    def create_commit(self, message: str, tree_sha: str, parents: list[str]) -> ApiResult:
        return self._request(
            "post",
            "/git/commits",
            json_body={"message": message, "tree": tree_sha, "parents": parents},
        )

    # ------------------------------------------------------------------
    # Contents API
    # ------------------------------------------------------------------

    def get_content_at(self, path: str, branch: str) -> ApiResult:
        """Fetch a file on *branch*.

        Returns:
            ``ApiResult`` whose ``data`` is a ``RemoteContent`` on success,
            ``NOT_FOUND`` when the file is absent.
        """
        result = self._request(
            "get", f"/contents/{quote(path, safe='/')}", params={"ref": branch}
        )
        if not result.ok:
            return result
        data = result.data
        if not isinstance(data, dict) or "sha" not in data:
            # A directory listing, not a file
            return ApiResult(
                RemoteStatus.NOT_FOUND,
                http_status=result.http_status,
                error=f"'{path}' is not a file",
            )
        encoded = (data.get("content") or "").replace("\n", "")
        return ApiResult(
            RemoteStatus.OK,
            data=RemoteContent(sha=data["sha"], encoded=encoded),
            http_status=result.http_status,
        )

    def put_content(self, path: str, content: bytes, message: str, branch: str) -> ApiResult:
        """Create a file on *branch* through the contents API."""
        return self._request(
            "put",
            f"/contents/{quote(path, safe='/')}",
            json_body={
                "message": message,
                "content": encode_content(content),
                "branch": branch,
            },
        )

    def delete_content_at(self, path: str, branch: str, expected_sha: str, message: str) -> ApiResult:
        """Delete a file, guarded by its current blob sha.

        GitHub refuses the delete with 409 when *expected_sha* is stale.
        """
        return self._request(
            "delete",
            f"/contents/{quote(path, safe='/')}",
            json_body={"message": message, "branch": branch, "sha": expected_sha},
            conflict_on_422=True,
        )


def _error_message(response: requests.Response) -> str:
    """Extract GitHub's ``message`` field, falling back to the reason phrase."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason or f"HTTP {response.status_code}"
