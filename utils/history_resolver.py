#!/usr/bin/env python3
"""Resolve the previous release point and collect the changes made since then.

Two sources are supported and a run uses exactly one of them:

- ``prs``: pull requests merged after the previous release, one entry per
  (squash) merge, fetched with a single paginated list call.
- ``commits``: every commit in ``(since, until]``.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from clients.git_client import GitClient
from clients.github_client import GithubClient, parse_timestamp
from utils.release_errors import ConfigurationError, GitCommandError, NoMatchingHistoryError
from utils.release_models import ChangeRecord, Reference, SourceMode, VersionTag

logger = logging.getLogger(__name__)


class HistoryResolver:
    """Finds the prior reference and the change records up to ``until``."""

    def __init__(
        self,
        git: GitClient,
        owner: str,
        repo: str,
        *,
        source_mode: SourceMode = "prs",
        github: Optional[GithubClient] = None,
        web_url: str = "https://github.com",
        base_branch: Optional[str] = None,
    ):
        if source_mode not in ("prs", "commits"):
            raise ConfigurationError(f"Unknown source mode: {source_mode!r} (expected 'prs' or 'commits')")
        if source_mode == "prs" and github is None:
            raise ConfigurationError("Pull request mode needs a GitHub client")
        self.git = git
        self.github = github
        self.owner = owner
        self.repo = repo
        self.source_mode = source_mode
        self.repo_url = f"{web_url.rstrip('/')}/{owner}/{repo}"
        self.base_branch = base_branch

    def resolve_prior_reference(self, all_tags: Iterable[VersionTag], current: VersionTag) -> Reference:
        """Most recent tag strictly older than ``current``, else the initial commit."""
        older = [t for t in all_tags if t < current]
        if older:
            prior = max(older)
            logger.info(f"Previous release: {prior}")
            return Reference(name=str(prior), kind="tag")
        root = self.git.initial_commit()
        logger.info(f"No previous release tag; using initial commit {root[:7]}")
        return Reference(name=root, kind="commit")

    def collect_changes(self, since: Reference, until: Reference) -> List[ChangeRecord]:
        """Change records in ``(since, until]`` from the configured source.

        Raises:
            NoMatchingHistoryError: ``until`` is not reachable from ``since``
        """
        self._check_ancestry(since, until)
        commits = self.git.commits_in_range(since.name, until.name)
        if self.source_mode == "commits":
            records = [self._commit_record(c) for c in commits]
        else:
            records = self._pull_request_records(since, {c["sha"] for c in commits})
        logger.info(f"Collected {len(records)} change(s) from {self.source_mode} between {since.name} and {until.name[:12]}")
        return records

    def _check_ancestry(self, since: Reference, until: Reference) -> None:
        try:
            reachable = self.git.is_ancestor(since.name, until.name)
        except GitCommandError as e:
            raise NoMatchingHistoryError(f"Cannot relate {since.name} to {until.name}: {e}") from e
        if not reachable:
            raise NoMatchingHistoryError(
                f"{until.name} is not reachable from {since.name}; check that the release branch contains the previous tag"
            )

    def _commit_record(self, commit: Dict[str, str]) -> ChangeRecord:
        sha = commit["sha"]
        return ChangeRecord(
            identifier=sha,
            title=commit.get("subject", ""),
            author=commit.get("author") or None,
            url=f"{self.repo_url}/commit/{sha}",
            kind="commit",
        )

    def _pull_request_records(self, since: Reference, range_shas: set) -> List[ChangeRecord]:
        since_ts = self.git.commit_timestamp(since.name)
        prs = self.github.list_merged_pull_requests(self.owner, self.repo, since_ts, base=self.base_branch)
        records = []
        for pr in prs:
            merge_sha = pr.get("merge_commit_sha")
            if merge_sha not in range_shas:
                logger.debug(f"Skipping PR #{pr.get('number')}: merge commit {merge_sha} not in release range")
                continue
            records.append(self._pr_record(pr))
        return records

    def _pr_record(self, pr: Dict[str, Any]) -> ChangeRecord:
        number = pr["number"]
        return ChangeRecord(
            identifier=number,
            title=pr.get("title") or "",
            author=(pr.get("user") or {}).get("login"),
            url=pr.get("html_url") or f"{self.repo_url}/pull/{number}",
            kind="pr",
            merged_at=parse_timestamp(pr.get("merged_at")),
            merge_commit_sha=pr.get("merge_commit_sha"),
        )
