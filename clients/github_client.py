#!/usr/bin/env python3
"""GitHub REST API client for pull request listing and release creation.

Maps HTTP failures onto the release error taxonomy so callers never have to
inspect status codes.
"""

import datetime as _dt
import logging
from typing import Dict, List, Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from configs.config import Config
from utils.metrics import Timer
from utils.release_errors import (
    AuthenticationError,
    ConflictError,
    FatalAPIError,
    TransientNetworkError,
)

# Set up logging
logger = logging.getLogger(__name__)

_TRANSIENT_STATUSES = {429, 502, 503, 504}


def parse_timestamp(value: Optional[str]) -> Optional[_dt.datetime]:
    """Parse GitHub's ISO-8601 timestamps (``2024-01-02T03:04:05Z``)."""
    if not value:
        return None
    return _dt.datetime.fromisoformat(value.replace("Z", "+00:00"))


class GithubClient:
    """Client for the GitHub REST API authenticated with a bearer token."""

    def __init__(
        self,
        token: Optional[str] = None,
        timeout_s: Optional[int] = None,
        *,
        api_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: Bearer credential (defaults to Config.GITHUB_TOKEN)
            timeout_s: Per-request timeout in seconds (defaults to Config.HTTP_TIMEOUT_S)
            api_url: API base URL, for GitHub Enterprise
            session: Pre-built session; used as-is (tests inject fakes here)

        Raises:
            AuthenticationError: If no token is available
        """
        github_config = Config.get_github_config()
        self.token = token or github_config["token"]
        self.timeout_s = timeout_s or github_config["timeout_s"]
        self.base_url = (api_url or github_config["api_url"]).rstrip("/")

        if not self.token:
            raise AuthenticationError("GitHub token is required (GITHUB_TOKEN or GITHUB_PAT env var)")

        if session is None:
            session = requests.Session()
            retries = github_config["get_retries"]
            if retries > 0:
                # Only idempotent reads are ever retried at the transport level
                retry_strategy = Retry(
                    total=retries,
                    status_forcelist=[429, 500, 502, 503, 504],
                    backoff_factor=1,
                    allowed_methods=["HEAD", "GET", "OPTIONS"],
                )
                session.mount("https://", HTTPAdapter(max_retries=retry_strategy))
        self.session = session
        self.session.headers.update({
            'Authorization': f'Bearer {self.token}',
            'Accept': 'application/vnd.github+json',
            'X-GitHub-Api-Version': '2022-11-28',
            'User-Agent': 'calver-release/1.0',
        })

        logger.debug("GitHub client initialized")

    # -------- HTTP helpers --------
    def _request(self, method: str, url: str, *, params: Optional[Dict[str, Any]] = None, payload: Optional[Dict[str, Any]] = None, allow_404: bool = False):
        try:
            response = self.session.request(method, url, params=params, json=payload, timeout=self.timeout_s)
        except requests.Timeout as e:
            raise TransientNetworkError(f"{method} {url} timed out after {self.timeout_s}s", code="TIMEOUT") from e
        except requests.ConnectionError as e:
            raise TransientNetworkError(f"{method} {url} failed: {e}") from e
        except requests.RequestException as e:
            raise FatalAPIError(f"{method} {url} failed: {e}") from e

        sc = response.status_code
        if sc == 404 and allow_404:
            return None
        if sc < 400:
            return response.json() if response.content else {}
        self._raise_for_status(method, url, response)

    @staticmethod
    def _error_details(response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def _raise_for_status(self, method: str, url: str, response) -> None:
        sc = response.status_code
        details = self._error_details(response)
        message = details.get("message") or response.reason or ""
        where = f"{method} {url}"
        if sc == 403 and response.headers.get("X-RateLimit-Remaining") == "0":
            raise TransientNetworkError(f"{where}: rate limit exhausted", code="RATE_LIMIT")
        if sc in (401, 403):
            raise AuthenticationError(f"{where}: credential rejected (HTTP {sc}: {message})")
        if sc == 409:
            raise ConflictError(f"{where}: conflict (HTTP 409: {message})")
        if sc == 422:
            codes = {err.get("code") for err in details.get("errors", []) if isinstance(err, dict)}
            if "already_exists" in codes:
                raise ConflictError(f"{where}: release or tag already exists")
            raise FatalAPIError(f"{where}: validation failed (HTTP 422: {message})", code="VALIDATION")
        if sc in _TRANSIENT_STATUSES:
            code = "RATE_LIMIT" if sc == 429 else "NETWORK"
            raise TransientNetworkError(f"{where}: HTTP {sc}", code=code)
        raise FatalAPIError(f"{where}: HTTP {sc}: {message}")

    # -------- Pull requests --------
    def list_merged_pull_requests(
        self,
        owner: str,
        repo: str,
        since: Optional[_dt.datetime] = None,
        base: Optional[str] = None,
        page_limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """List pull requests merged after ``since``, newest merge first.

        Walks ``GET /repos/{owner}/{repo}/pulls?state=closed`` sorted by update
        time; paging stops once a page ends with a PR last updated before
        ``since``, since anything merged later was also updated later.
        """
        url = f"{self.base_url}/repos/{owner}/{repo}/pulls"
        page_limit = page_limit or Config.PR_PAGE_LIMIT
        merged: List[Dict[str, Any]] = []
        page = 1
        per_page = 100

        logger.info(f"Listing merged pull requests for {owner}/{repo} since {since.isoformat() if since else 'the beginning'}")
        while True:
            params = {
                'state': 'closed',
                'sort': 'updated',
                'direction': 'desc',
                'per_page': per_page,
                'page': page,
            }
            if base:
                params['base'] = base
            with Timer("github.pulls.list", repo=f"{owner}/{repo}", page=page):
                page_prs = self._request("GET", url, params=params)
            if not page_prs:
                break

            for pr in page_prs:
                merged_at = parse_timestamp(pr.get("merged_at"))
                if merged_at is None:
                    continue
                if since is not None and merged_at <= since:
                    continue
                merged.append(pr)

            last_updated = parse_timestamp(page_prs[-1].get("updated_at"))
            if since is not None and last_updated is not None and last_updated < since:
                break
            if len(page_prs) < per_page:
                break
            page += 1
            if page > page_limit:
                logger.warning(f"Stopped listing pull requests after {page_limit} pages")
                break

        merged.sort(key=lambda pr: pr.get("merged_at") or "", reverse=True)
        logger.debug(f"✓ Found {len(merged)} merged pull requests")
        return merged

    # -------- Releases --------
    def get_release_by_tag(self, owner: str, repo: str, tag: str) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url}/repos/{owner}/{repo}/releases/tags/{tag}"
        return self._request("GET", url, allow_404=True)

    def create_release(
        self,
        owner: str,
        repo: str,
        tag: str,
        body: str,
        *,
        name: Optional[str] = None,
        commitish: Optional[str] = None,
        draft: bool = False,
        prerelease: bool = False,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/repos/{owner}/{repo}/releases"
        payload = {
            "tag_name": tag,
            "name": name or tag,
            "body": body,
            "draft": draft,
            "prerelease": prerelease,
        }
        if commitish:
            payload["target_commitish"] = commitish
        logger.info(f"Creating release {tag} in {owner}/{repo}")
        return self._request("POST", url, payload=payload)

    def close(self) -> None:
        """Close the GitHub client session."""
        if self.session:
            self.session.close()
            logger.debug("GitHub client session closed")
