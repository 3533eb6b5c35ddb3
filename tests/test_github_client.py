import datetime as dt

import pytest
import requests

from clients.github_client import GithubClient, parse_timestamp
from utils.release_errors import (
    AuthenticationError,
    ConflictError,
    FatalAPIError,
    TransientNetworkError,
)

SINCE = dt.datetime(2026, 10, 1, 12, 0, tzinfo=dt.timezone.utc)


def pr(number, merged_at, updated_at):
    return {
        "number": number,
        "title": f"feat: pr {number}",
        "merged_at": merged_at,
        "updated_at": updated_at,
        "merge_commit_sha": f"{number:040x}",
    }


def client_for(session_factory, handler):
    session = session_factory(handler)
    return GithubClient("t0k3n", 5, api_url="https://api.example.test", session=session), session


def test_requires_token(monkeypatch, session_factory):
    from configs.config import Config
    monkeypatch.setattr(Config, "GITHUB_TOKEN", None)
    with pytest.raises(AuthenticationError):
        GithubClient(None, session=session_factory(lambda *a: None))


def test_bearer_header(session_factory, response_factory):
    client, session = client_for(session_factory, lambda *a: response_factory(200, []))
    assert session.headers["Authorization"] == "Bearer t0k3n"
    assert client.base_url == "https://api.example.test"


def test_list_merged_pull_requests_filters_and_stops_paging(session_factory, response_factory):
    page1 = [pr(5, "2026-10-02T09:00:00Z", "2026-10-02T09:00:00Z"),
             pr(4, None, "2026-10-02T08:00:00Z")]
    page1 += [pr(100 + i, None, "2026-10-02T07:00:00Z") for i in range(98)]
    page2 = [pr(3, "2026-10-01T13:00:00Z", "2026-10-01T13:00:00Z"),
             pr(2, "2026-10-01T12:00:00Z", "2026-10-01T12:00:00Z"),
             pr(1, "2026-09-30T10:00:00Z", "2026-09-30T10:00:00Z")]
    pages = {1: page1, 2: page2, 3: [pr(0, "2026-09-01T00:00:00Z", "2026-09-01T00:00:00Z")]}

    def handler(method, path, params, payload):
        assert (method, path) == ("GET", "/repos/acme/api/pulls")
        assert params["state"] == "closed" and params["sort"] == "updated"
        return response_factory(200, pages[params["page"]])

    client, session = client_for(session_factory, handler)
    merged = client.list_merged_pull_requests("acme", "api", SINCE, base="main")

    assert [p["number"] for p in merged] == [5, 3]
    assert [c[2]["page"] for c in session.calls] == [1, 2]
    assert session.calls[0][2]["base"] == "main"


def test_list_without_since_reads_until_short_page(session_factory, response_factory):
    def handler(method, path, params, payload):
        return response_factory(200, [pr(1, "2020-01-01T00:00:00Z", "2020-01-01T00:00:00Z")])

    client, session = client_for(session_factory, handler)
    assert [p["number"] for p in client.list_merged_pull_requests("acme", "api")] == [1]
    assert len(session.calls) == 1


@pytest.mark.parametrize(
    "status,data,headers,error",
    [
        (401, {"message": "Bad credentials"}, {}, AuthenticationError),
        (403, {"message": "Forbidden"}, {}, AuthenticationError),
        (403, {"message": "rate limited"}, {"X-RateLimit-Remaining": "0"}, TransientNetworkError),
        (409, {"message": "conflict"}, {}, ConflictError),
        (422, {"message": "Validation Failed", "errors": [{"code": "already_exists"}]}, {}, ConflictError),
        (422, {"message": "Validation Failed", "errors": [{"code": "invalid"}]}, {}, FatalAPIError),
        (429, {}, {}, TransientNetworkError),
        (503, None, {}, TransientNetworkError),
        (500, {"message": "boom"}, {}, FatalAPIError),
        (404, {"message": "Not Found"}, {}, FatalAPIError),
    ],
)
def test_create_release_error_mapping(session_factory, response_factory, status, data, headers, error):
    client, _ = client_for(session_factory, lambda *a: response_factory(status, data, headers))
    with pytest.raises(error):
        client.create_release("acme", "api", "v26.10.17.1", "body")


@pytest.mark.parametrize(
    "exc,code",
    [(requests.Timeout("slow"), "TIMEOUT"), (requests.ConnectionError("reset"), "NETWORK")],
)
def test_network_failures_are_transient(session_factory, exc, code):
    client, _ = client_for(session_factory, lambda *a: exc)
    with pytest.raises(TransientNetworkError) as info:
        client.create_release("acme", "api", "v26.10.17.1", "body")
    assert info.value.code == code


def test_get_release_by_tag_returns_none_on_404(session_factory, response_factory):
    client, _ = client_for(session_factory, lambda *a: response_factory(404, {"message": "Not Found"}))
    assert client.get_release_by_tag("acme", "api", "v26.10.17.1") is None


def test_create_release_payload(session_factory, response_factory):
    client, session = client_for(session_factory, lambda *a: response_factory(201, {"id": 7}))
    data = client.create_release("acme", "api", "v26.10.17.1", "notes", commitish="abc", prerelease=True)
    assert data == {"id": 7}
    method, path, _, payload = session.calls[0]
    assert (method, path) == ("POST", "/repos/acme/api/releases")
    assert payload == {
        "tag_name": "v26.10.17.1",
        "name": "v26.10.17.1",
        "body": "notes",
        "draft": False,
        "prerelease": True,
        "target_commitish": "abc",
    }


def test_parse_timestamp():
    assert parse_timestamp("2026-10-01T12:00:00Z") == SINCE
    assert parse_timestamp(None) is None
