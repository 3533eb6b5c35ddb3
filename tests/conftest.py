import datetime as dt
from typing import Dict, List, Optional
from urllib.parse import urlparse

import pytest
import requests

from configs.config import Config
from utils.release_errors import DuplicateVersionError, GitCommandError


@pytest.fixture(autouse=True)
def isolated_observability(tmp_path, monkeypatch):
    """Keep metrics and audit files inside the test's temporary directory."""
    monkeypatch.setattr(Config, "METRICS_ROOT", str(tmp_path / "metrics"))
    monkeypatch.setattr(Config, "AUDIT_ROOT", str(tmp_path / "audit"))
    return tmp_path


class FakeGit:
    """In-memory stand-in for GitClient over a linear history.

    ``commits`` is ordered oldest first; each entry has sha, author, subject
    and an ISO commit timestamp.
    """

    def __init__(self, commits: List[Dict[str, str]], tags: Optional[Dict[str, str]] = None):
        self.commits = list(commits)
        self.tags: Dict[str, str] = dict(tags or {})
        self.branch = "main"
        self.foreign: set = set()
        self.pushed: List[str] = []
        self.deleted: List[tuple] = []
        self.fail_push = False
        self.fetched: List[str] = []

    def _index(self, ref: str) -> int:
        sha = self.tags.get(ref, ref)
        for i, c in enumerate(self.commits):
            if c["sha"] == sha:
                return i
        raise GitCommandError(f"unknown revision {ref}")

    def list_tags(self) -> List[str]:
        return sorted(self.tags)

    def fetch_tags(self, remote: str = "origin") -> None:
        self.fetched.append(remote)

    def current_head_commit(self) -> str:
        return self.commits[-1]["sha"]

    def current_branch(self) -> str:
        return self.branch

    def head_commit_subject(self) -> str:
        return self.commits[-1]["subject"]

    def initial_commit(self) -> str:
        return self.commits[0]["sha"]

    def commit_timestamp(self, ref: str) -> dt.datetime:
        return dt.datetime.fromisoformat(self.commits[self._index(ref)]["ts"])

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        if ancestor in self.foreign or descendant in self.foreign:
            return False
        return self._index(ancestor) <= self._index(descendant)

    def commits_in_range(self, since: str, until: str) -> List[Dict[str, str]]:
        lo, hi = self._index(since), self._index(until)
        picked = self.commits[lo + 1:hi + 1]
        return [{"sha": c["sha"], "author": c["author"], "subject": c["subject"]} for c in reversed(picked)]

    def create_tag(self, name: str, commit: str, message: Optional[str] = None) -> None:
        if name in self.tags:
            raise DuplicateVersionError(f"Tag {name} already exists")
        self.tags[name] = commit

    def push_tag(self, name: str, remote: str = "origin") -> None:
        if self.fail_push:
            raise GitCommandError(f"git push {remote} {name} failed: remote hung up")
        self.pushed.append(name)

    def delete_tag(self, name: str, remote: Optional[str] = None) -> None:
        self.deleted.append((name, remote))
        self.tags.pop(name, None)


def make_commits(*subjects: str, start: str = "2026-10-01T09:00:00+00:00") -> List[Dict[str, str]]:
    base = dt.datetime.fromisoformat(start)
    out = []
    for i, subject in enumerate(subjects):
        out.append({
            "sha": f"{i + 1:02d}" + "ab" * 19,
            "author": "dev",
            "subject": subject,
            "ts": (base + dt.timedelta(hours=i)).isoformat(),
        })
    return out


class FakeResponse:
    def __init__(self, status_code: int = 200, data=None, headers: Optional[Dict[str, str]] = None, reason: str = ""):
        self.status_code = status_code
        self._data = data
        self.headers = headers or {}
        self.reason = reason

    @property
    def content(self) -> bytes:
        return b"" if self._data is None else b"{}"

    def json(self):
        if self._data is None:
            raise ValueError("no JSON body")
        return self._data


class FakeSession:
    """Records requests and answers them through ``handler(method, path, params, payload)``."""

    def __init__(self, handler):
        self.handler = handler
        self.headers: Dict[str, str] = {}
        self.calls: List[tuple] = []
        self.closed = False

    def request(self, method, url, params=None, json=None, timeout=None):
        path = urlparse(url).path
        self.calls.append((method, path, params, json))
        result = self.handler(method, path, params, json)
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        self.closed = True


class FakeGithubApi:
    """Minimal stateful model of the releases endpoints."""

    def __init__(self, owner: str = "acme", repo: str = "api"):
        self.prefix = f"/repos/{owner}/{repo}/releases"
        self.releases: Dict[str, dict] = {}
        # POSTs that store the release and then lose the response
        self.lost_responses = 0
        self.session = FakeSession(self._handle)

    def _handle(self, method, path, params, payload):
        if method == "GET" and path.startswith(self.prefix + "/tags/"):
            tag = path.rsplit("/", 1)[-1]
            if tag in self.releases:
                return FakeResponse(200, self.releases[tag])
            return FakeResponse(404, {"message": "Not Found"})
        if method == "POST" and path == self.prefix:
            tag = payload["tag_name"]
            if tag in self.releases:
                return FakeResponse(422, {
                    "message": "Validation Failed",
                    "errors": [{"resource": "Release", "code": "already_exists", "field": "tag_name"}],
                })
            release = dict(payload, id=len(self.releases) + 1, html_url=f"https://github.com/acme/api/releases/tag/{tag}")
            self.releases[tag] = release
            if self.lost_responses:
                self.lost_responses -= 1
                return requests.Timeout("read timed out")
            return FakeResponse(201, release)
        return FakeResponse(404, {"message": "Not Found"})

    def count(self, method: str) -> int:
        return sum(1 for call in self.session.calls if call[0] == method)


@pytest.fixture
def github_api():
    return FakeGithubApi()


@pytest.fixture
def fake_git_factory():
    return FakeGit


@pytest.fixture
def commits_factory():
    return make_commits


@pytest.fixture
def response_factory():
    return FakeResponse


@pytest.fixture
def session_factory():
    return FakeSession
