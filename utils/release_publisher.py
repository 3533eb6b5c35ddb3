#!/usr/bin/env python3
"""Publish rendered release notes as a GitHub Release.

One create-release call per publish, after a lookup of the tag: a release that
already carries the same notes (or points at the same commit) is returned as
it is, any other existing release is a conflict. There is no retry here;
callers that want one wrap ``publish`` with ``utils.wrap.with_retries``.
"""

from __future__ import annotations

import logging
from typing import Optional, Dict, Any

from clients.github_client import GithubClient
from configs.config import Config
from utils.metrics import Timer, incr
from utils.release_errors import ConflictError, FatalAPIError
from utils.release_models import PublishResult, VersionTag

logger = logging.getLogger(__name__)


class ReleasePublisher:
    def __init__(
        self,
        owner: str,
        repo: str,
        *,
        draft: bool = False,
        prerelease: bool = False,
        body_max_chars: Optional[int] = None,
        timeout_s: Optional[int] = None,
        api_url: Optional[str] = None,
        session=None,
    ):
        self.owner = owner
        self.repo = repo
        self.draft = draft
        self.prerelease = prerelease
        self.body_max_chars = body_max_chars or Config.RELEASE_BODY_MAX_CHARS
        self.timeout_s = timeout_s or Config.HTTP_TIMEOUT_S
        self.api_url = api_url
        self.session = session

    # -------- Public API --------
    def publish(self, version: VersionTag, body: str, credential: str, *, commitish: Optional[str] = None) -> PublishResult:
        """Create the release for ``version``.

        Raises:
            AuthenticationError: the credential was rejected
            ConflictError: a different release (or the tag) already exists
            TransientNetworkError: timeout, connection failure, rate limit
            FatalAPIError: anything else, including an invalid body
        """
        tag = str(version)
        self._validate_body(body)
        repo_name = f"{self.owner}/{self.repo}"
        client = self._client(credential)
        try:
            # A create that timed out may still have gone through; reuse it
            existing = self._existing_release(client, tag, body, commitish)
            if existing is not None:
                logger.info(f"Release {tag} is already published with these notes: {existing.html_url}")
                return existing

            with Timer("github.release.create", repo=repo_name, tag=tag):
                data = client.create_release(
                    self.owner,
                    self.repo,
                    tag,
                    body,
                    name=tag,
                    commitish=commitish,
                    draft=self.draft,
                    prerelease=self.prerelease,
                )
        finally:
            self._release_client(client)
        info = self._to_result(data, tag)
        incr("release.published", repo=repo_name, tag=tag)
        logger.info(f"✓ Published release {tag}: {info.html_url}")
        return info

    def find_published(self, version: VersionTag, body: str, credential: str, *, commitish: Optional[str] = None) -> Optional[PublishResult]:
        """Return the release for ``version`` if it carries these notes, None if there is none.

        Raises:
            ConflictError: a different release already uses the tag
        """
        client = self._client(credential)
        try:
            return self._existing_release(client, str(version), body, commitish)
        finally:
            self._release_client(client)

    def _existing_release(self, client: GithubClient, tag: str, body: str, commitish: Optional[str]) -> Optional[PublishResult]:
        with Timer("github.release.get", repo=f"{self.owner}/{self.repo}", tag=tag):
            data = client.get_release_by_tag(self.owner, self.repo, tag)
        if not data:
            return None
        same_target = bool(commitish) and data.get("target_commitish") == commitish
        if same_target or data.get("body") == body:
            return self._to_result(data, tag)
        raise ConflictError(f"Release {tag} already exists: {data.get('html_url', '')}")

    def _client(self, credential: str) -> GithubClient:
        return GithubClient(credential, self.timeout_s, api_url=self.api_url, session=self.session)

    def _release_client(self, client: GithubClient) -> None:
        # injected sessions belong to the caller
        if self.session is None:
            client.close()

    def _validate_body(self, body: str) -> None:
        if not body:
            raise FatalAPIError("Empty release body", code="VALIDATION")
        if len(body) > self.body_max_chars:
            raise FatalAPIError(
                f"Release body exceeds limit: len={len(body)} max={self.body_max_chars}",
                code="VALIDATION",
            )

    @staticmethod
    def _to_result(data: Dict[str, Any], tag: str) -> PublishResult:
        return PublishResult(
            id=int(data.get("id") or 0),
            tag_name=data.get("tag_name", tag),
            html_url=data.get("html_url", ""),
            draft=bool(data.get("draft", False)),
            prerelease=bool(data.get("prerelease", False)),
            target_commitish=data.get("target_commitish"),
        )
