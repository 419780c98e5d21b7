"""Tests for git_publisher.core.client -- GitHub REST client.

The HTTP session is patched at ``requests.Session.request``; each test
checks the request that went out and how the response was classified.
"""

import base64
import hashlib
from unittest.mock import Mock, patch

import pytest
import requests

from git_publisher.config import Config
from git_publisher.core.client import (
    ApiResult,
    BranchHead,
    GitHubClient,
    RemoteContent,
    RemoteStatus,
    classify_status,
    encode_content,
    git_blob_sha,
)

REQUEST = "git_publisher.core.client.requests.Session.request"
API = "https://api.github.com/repos/owner/notes"


def _response(status=200, body=None, headers=None, reason="OK"):
    response = Mock()
    response.status_code = status
    response.reason = reason
    response.headers = headers or {}
    if body is None:
        response.content = b""
        response.json.side_effect = ValueError("no body")
    else:
        response.content = b"{...}"
        response.json.return_value = body
    return response


@pytest.fixture
def client(config):
    return GitHubClient(config)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestClassifyStatus:
    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            (200, RemoteStatus.OK),
            (201, RemoteStatus.OK),
            (404, RemoteStatus.NOT_FOUND),
            (409, RemoteStatus.CONFLICT),
            (401, RemoteStatus.UNAUTHORIZED),
            (403, RemoteStatus.UNAUTHORIZED),
            (429, RemoteStatus.TRANSIENT),
            (500, RemoteStatus.TRANSIENT),
            (503, RemoteStatus.TRANSIENT),
            (400, RemoteStatus.INVALID),
            (422, RemoteStatus.INVALID),
        ],
    )
    def test_mapping(self, code, expected):
        assert classify_status(code) is expected

    def test_422_is_conflict_for_guarded_writes(self):
        assert classify_status(422, conflict_on_422=True) is RemoteStatus.CONFLICT


def test_git_blob_sha_matches_git():
    # `printf 'hello\n' | git hash-object --stdin`
    assert git_blob_sha(b"hello\n") == "ce013625030ba8dba906f756967f9e9ca394464a"


def test_git_blob_sha_empty():
    assert git_blob_sha(b"") == hashlib.sha1(b"blob 0\0").hexdigest()


def test_encode_content_round_trips():
    assert base64.b64decode(encode_content(b"# Title\n")) == b"# Title\n"


def test_api_result_ok_property():
    assert ApiResult(RemoteStatus.OK).ok
    assert not ApiResult(RemoteStatus.CONFLICT).ok


# ---------------------------------------------------------------------------
# Construction and session
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_repo_api_from_url(self, client):
        assert client.owner == "owner"
        assert client.repo == "notes"
        assert client.repo_api == API

    def test_git_suffix_stripped(self, config):
        config.repo_url = "https://github.com/owner/notes.git"
        assert GitHubClient(config).repo_api == API

    def test_invalid_url_raises(self):
        with pytest.raises(ValueError, match="Invalid repository URL"):
            GitHubClient(Config(repo_url="https://example.com/x", token="t"))

    def test_custom_api_url(self, config):
        config.api_url = "https://ghe.example.com/api/v3/"
        client = GitHubClient(config)
        assert client.repo_api == "https://ghe.example.com/api/v3/repos/owner/notes"

    def test_session_headers(self, client):
        headers = client.session.headers
        assert headers["Authorization"] == "Bearer test-token"
        assert headers["Accept"] == "application/vnd.github+json"

    def test_session_reused_within_thread(self, client):
        assert client.session is client.session


# ---------------------------------------------------------------------------
# Request classification
# ---------------------------------------------------------------------------


class TestRequest:
    @patch(REQUEST)
    def test_success_returns_json(self, mock_request, client):
        mock_request.return_value = _response(200, {"full_name": "owner/notes"})

        result = client.get_repository()

        assert result.ok
        assert result.data == {"full_name": "owner/notes"}
        assert result.http_status == 200
        method, url = mock_request.call_args[0]
        assert method == "GET"
        assert url == API

    @patch(REQUEST)
    def test_connection_error_is_transient(self, mock_request, client):
        mock_request.side_effect = requests.ConnectionError("refused")

        result = client.get_repository()

        assert result.status is RemoteStatus.TRANSIENT
        assert result.http_status is None
        assert "refused" in result.error

    @patch(REQUEST)
    def test_timeout_is_transient(self, mock_request, client):
        mock_request.side_effect = requests.Timeout("slow")
        assert client.get_repository().status is RemoteStatus.TRANSIENT

    @patch(REQUEST)
    def test_error_message_from_body(self, mock_request, client):
        mock_request.return_value = _response(
            401, {"message": "Bad credentials"}, reason="Unauthorized"
        )

        result = client.get_repository()

        assert result.status is RemoteStatus.UNAUTHORIZED
        assert result.error == "Bad credentials"
        assert not result.rate_limited

    @patch(REQUEST)
    def test_error_message_falls_back_to_reason(self, mock_request, client):
        mock_request.return_value = _response(502, reason="Bad Gateway")
        result = client.get_repository()
        assert result.status is RemoteStatus.TRANSIENT
        assert result.error == "Bad Gateway"

    @patch(REQUEST)
    def test_exhausted_rate_limit_is_transient(self, mock_request, client):
        mock_request.return_value = _response(
            403,
            {"message": "API rate limit exceeded"},
            headers={"X-RateLimit-Remaining": "0"},
        )

        result = client.get_repository()

        assert result.status is RemoteStatus.TRANSIENT
        assert result.rate_limited

    @patch(REQUEST)
    def test_429_is_rate_limited(self, mock_request, client):
        mock_request.return_value = _response(429, {"message": "slow down"})
        assert client.get_repository().rate_limited

    @patch(REQUEST)
    def test_token_never_in_error(self, mock_request, client):
        mock_request.return_value = _response(500, {"message": "boom"})
        result = client.get_repository()
        assert "test-token" not in (result.error or "")


# ---------------------------------------------------------------------------
# Git data API
# ---------------------------------------------------------------------------


class TestGitDataApi:
    @patch(REQUEST)
    def test_get_branch_head(self, mock_request, client):
        mock_request.side_effect = [
            _response(200, {"object": {"sha": "c1"}}),
            _response(200, {"sha": "c1", "tree": {"sha": "t1"}}),
        ]

        result = client.get_branch_head("main")

        assert result.ok
        assert result.data == BranchHead(commit_sha="c1", tree_sha="t1")
        urls = [c[0][1] for c in mock_request.call_args_list]
        assert urls == [f"{API}/git/ref/heads/main", f"{API}/git/commits/c1"]

    @patch(REQUEST)
    def test_get_branch_head_missing_branch(self, mock_request, client):
        mock_request.return_value = _response(404, {"message": "Not Found"})

        result = client.get_branch_head("pages")

        assert result.status is RemoteStatus.NOT_FOUND
        assert mock_request.call_count == 1

    @patch(REQUEST)
    def test_get_branch_head_malformed_ref(self, mock_request, client):
        mock_request.return_value = _response(200, {"object": {}})
        assert client.get_branch_head("main").status is RemoteStatus.INVALID

    @patch(REQUEST)
    def test_update_ref_never_forced(self, mock_request, client):
        mock_request.return_value = _response(200, {"object": {"sha": "c2"}})

        assert client.update_ref("main", "c2").ok

        method, url = mock_request.call_args[0]
        assert method == "PATCH"
        assert url == f"{API}/git/refs/heads/main"
        assert mock_request.call_args[1]["json"] == {"sha": "c2", "force": False}

    @patch(REQUEST)
    def test_update_ref_non_fast_forward_is_conflict(self, mock_request, client):
        mock_request.return_value = _response(
            422, {"message": "Update is not a fast forward"}
        )
        result = client.update_ref("main", "c2")
        assert result.status is RemoteStatus.CONFLICT

    @patch(REQUEST)
    def test_create_blob_sends_base64(self, mock_request, client):
        mock_request.return_value = _response(201, {"sha": "b1"})

        result = client.create_blob(b"# Hi\n")

        assert result.data["sha"] == "b1"
        body = mock_request.call_args[1]["json"]
        assert body == {"content": encode_content(b"# Hi\n"), "encoding": "base64"}

    @patch(REQUEST)
    def test_create_blob_422_is_invalid_not_conflict(self, mock_request, client):
        mock_request.return_value = _response(422, {"message": "bad"})
        assert client.create_blob(b"x").status is RemoteStatus.INVALID

    @patch(REQUEST)
    def test_create_tree_uses_base_tree(self, mock_request, client):
        mock_request.return_value = _response(201, {"sha": "t2"})
        entries = [{"path": "a.md", "mode": "100644", "type": "blob", "sha": "b1"}]

        client.create_tree("t1", entries)

        assert mock_request.call_args[1]["json"] == {"base_tree": "t1", "tree": entries}

    @patch(REQUEST)
    def test_create_commit(self, mock_request, client):
        mock_request.return_value = _response(201, {"sha": "c2"})

        client.create_commit("Publish (now)", "t2", ["c1"])

        assert mock_request.call_args[1]["json"] == {
            "message": "Publish (now)",
            "tree": "t2",
            "parents": ["c1"],
        }


# ---------------------------------------------------------------------------
# Contents API
# ---------------------------------------------------------------------------


class TestContentsApi:
    @patch(REQUEST)
    def test_get_content_at(self, mock_request, client):
        encoded = encode_content(b"hello world, this is long enough to wrap")
        wrapped = encoded[:20] + "\n" + encoded[20:] + "\n"
        mock_request.return_value = _response(200, {"sha": "b1", "content": wrapped})

        result = client.get_content_at("notes/a b.md", "main")

        assert result.ok
        assert result.data == RemoteContent(sha="b1", encoded=encoded)
        assert result.data.content == b"hello world, this is long enough to wrap"
        assert mock_request.call_args[0][1] == f"{API}/contents/notes/a%20b.md"
        assert mock_request.call_args[1]["params"] == {"ref": "main"}

    @patch(REQUEST)
    def test_get_content_at_missing(self, mock_request, client):
        mock_request.return_value = _response(404, {"message": "Not Found"})
        assert client.get_content_at("a.md", "main").status is RemoteStatus.NOT_FOUND

    @patch(REQUEST)
    def test_get_content_at_directory_is_not_found(self, mock_request, client):
        mock_request.return_value = _response(200, [{"name": "a.md"}])
        assert client.get_content_at("notes", "main").status is RemoteStatus.NOT_FOUND

    @patch(REQUEST)
    def test_put_content(self, mock_request, client):
        mock_request.return_value = _response(201, {"content": {"sha": "b1"}})

        assert client.put_content(".gitkeep", b"init", "Initialize branch", "pages").ok

        assert mock_request.call_args[0][0] == "PUT"
        assert mock_request.call_args[1]["json"] == {
            "message": "Initialize branch",
            "content": encode_content(b"init"),
            "branch": "pages",
        }

    @patch(REQUEST)
    def test_delete_is_guarded_by_sha(self, mock_request, client):
        mock_request.return_value = _response(200, {"commit": {"sha": "c3"}})

        assert client.delete_content_at("a.md", "main", "b1", "Unpublish a.md").ok

        assert mock_request.call_args[0][0] == "DELETE"
        assert mock_request.call_args[1]["json"] == {
            "message": "Unpublish a.md",
            "branch": "main",
            "sha": "b1",
        }

    @patch(REQUEST)
    def test_delete_stale_sha_is_conflict(self, mock_request, client):
        mock_request.return_value = _response(409, {"message": "does not match"})
        result = client.delete_content_at("a.md", "main", "old", "Unpublish a.md")
        assert result.status is RemoteStatus.CONFLICT
