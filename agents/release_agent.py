#!/usr/bin/env python3
"""Release agent: computes the next date-coded version and publishes its notes.

Pipeline (strictly sequential):
tag scan -> prior reference + change collection -> classification ->
rendering -> publishing.
"""

import datetime as _dt
import json
import logging
import sys
from dataclasses import dataclass
from typing import List, Optional

from pydantic import ValidationError

from clients.git_client import GitClient
from clients.github_client import GithubClient
from configs.config import Config
from utils.audit_log import audit_release_attempt
from utils.classifier import group_by_category, is_typed
from utils.history_resolver import HistoryResolver
from utils.metrics import Timer, incr
from utils.notes_renderer import count_entries, render
from utils.release_errors import ConfigurationError, ConflictError, ReleaseError, TransientNetworkError
from utils.release_models import PublishResult, Reference, ReleaseNotes, RunConfig, VersionTag
from utils.release_publisher import ReleasePublisher
from utils.tag_scanner import compute_next_version, ensure_unpublished, scan_tags
from utils.wrap import with_retries

# Set up logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReleaseOutcome:
	status: str  # published | dry_run | skipped
	notes: Optional[ReleaseNotes] = None
	result: Optional[PublishResult] = None
	reason: str = ""

	def to_dict(self) -> dict:
		out = {"status": self.status}
		if self.reason:
			out["reason"] = self.reason
		if self.notes:
			out["version"] = str(self.notes.version)
			out["previous"] = self.notes.prior.name if self.notes.prior else None
			out["compare_url"] = self.notes.compare_link
			out["entries"] = count_entries(self.notes.entries)
		if self.result:
			out["release"] = {"id": self.result.id, "url": self.result.html_url, "tag": self.result.tag_name}
		return out


class ReleaseAgent:
	"""Runs one release for one repository."""

	def __init__(
		self,
		config: RunConfig,
		git: Optional[GitClient] = None,
		github: Optional[GithubClient] = None,
		publisher: Optional[ReleasePublisher] = None,
	):
		"""Initialize the release agent.

		Args:
			config: Immutable options for this run
			git: Git client for the working copy (defaults to one at config.repo_path)
			github: GitHub client, required in pull request mode
			publisher: Release publisher (defaults to a REST publisher for the repo)
		"""
		self.config = config
		self.git = git or GitClient(config.repo_path, timeout_s=config.timeout_s)
		if github is None and config.source_mode == "prs":
			github = GithubClient(config.token, config.timeout_s, api_url=config.api_url)
		self.github = github
		self.publisher = publisher or ReleasePublisher(
			config.owner,
			config.repo,
			draft=config.draft,
			prerelease=config.prerelease,
			body_max_chars=config.max_body_chars,
			timeout_s=config.timeout_s,
			api_url=config.api_url,
		)
		self.resolver = HistoryResolver(
			self.git,
			config.owner,
			config.repo,
			source_mode=config.source_mode,
			github=self.github,
			web_url=config.web_url,
			base_branch=config.pr_base,
		)

	def check_guards(self) -> Optional[str]:
		"""Return a skip reason when this commit should not be released."""
		cfg = self.config
		if cfg.release_branch:
			branch = self.git.current_branch()
			if branch != cfg.release_branch:
				return f"current branch {branch or '(detached)'!r} is not the release branch {cfg.release_branch!r}"
		if cfg.require_typed_head:
			subject = self.git.head_commit_subject()
			if not is_typed(subject):
				return f"head commit title {subject!r} has no recognized type prefix"
		return None

	def compare_link(self, prior: Reference, version: VersionTag) -> Optional[str]:
		# a root commit is not a release; there is nothing meaningful to compare against
		if not prior.is_tag:
			return None
		return f"{self.config.repo_web_url}/compare/{prior.name}...{version}"

	def plan(self, today: Optional[_dt.date] = None) -> ReleaseNotes:
		"""Compute the version and render its notes without side effects."""
		today = today or _dt.date.today()
		cfg = self.config
		if cfg.fetch_tags:
			self.git.fetch_tags(cfg.remote)

		raw_tags = self.git.list_tags()
		tags = scan_tags(raw_tags)
		version = compute_next_version(tags, today)
		ensure_unpublished(version, raw_tags)

		prior = self.resolver.resolve_prior_reference(tags, version)
		until = Reference(name=self.git.current_head_commit(), kind="commit")
		with Timer("history.collect", repo=cfg.full_name, mode=cfg.source_mode):
			records = self.resolver.collect_changes(prior, until)

		entries = group_by_category(records)
		link = self.compare_link(prior, version)
		body = render(version, entries, link, style=cfg.style, max_chars=cfg.max_body_chars)
		return ReleaseNotes(version=version, entries=entries, compare_link=link, body=body, prior=prior)

	def publish(self, notes: ReleaseNotes) -> PublishResult:
		cfg = self.config
		tag = str(notes.version)
		head = self.git.current_head_commit()
		tag_created = tag_pushed = False
		try:
			if cfg.create_tag:
				self.git.create_tag(tag, head, message=f"Release {tag}")
				tag_created = True
				self.git.push_tag(tag, cfg.remote)
				tag_pushed = True

			def _do_publish() -> PublishResult:
				return self.publisher.publish(notes.version, notes.body, cfg.token, commitish=head)

			if cfg.retries > 0:
				return with_retries(_do_publish, max_attempts=1 + cfg.retries, backoff_s=cfg.retry_base_sleep_s)
			return _do_publish()
		except Exception as exc:
			if not tag_created:
				raise
			if not tag_pushed:
				self._rollback_tag(tag, pushed=False)
				raise
			existing = self._settle_pushed_tag(notes, head, exc)
			if existing is None:
				raise
			logger.warning(f"Publish reported {type(exc).__name__} but release {tag} exists with these notes; keeping it")
			return existing

	def _settle_pushed_tag(self, notes: ReleaseNotes, head: str, exc: Exception) -> Optional[PublishResult]:
		"""Decide what happens to a pushed tag after a failed publish.

		Returns the release when the failed call created it anyway. The tag is
		kept when another release uses it, or when a timed-out create may have
		gone through and the lookup cannot confirm either way.
		"""
		tag = str(notes.version)
		try:
			existing = self.publisher.find_published(notes.version, notes.body, self.config.token, commitish=head)
		except ConflictError:
			logger.error(f"Another release already uses {tag}; keeping tag {tag}")
			return None
		except ReleaseError as e:
			if isinstance(exc, TransientNetworkError):
				logger.error(f"Could not tell whether release {tag} was created ({e}); keeping tag {tag}. Check it manually.")
				return None
			existing = None
		if existing is None:
			self._rollback_tag(tag, pushed=True)
		return existing

	def _rollback_tag(self, tag: str, *, pushed: bool) -> None:
		remote = self.config.remote if pushed else None
		try:
			self.git.delete_tag(tag, remote=remote)
			logger.warning(f"Release failed; removed tag {tag}")
		except ReleaseError as e:
			where = f"on {remote}" if remote else "locally"
			logger.error(f"Release failed and tag {tag} could not be removed {where}: {e}. Delete it manually.")

	def run(self, today: Optional[_dt.date] = None) -> ReleaseOutcome:
		cfg = self.config
		reason = self.check_guards()
		if reason:
			logger.info(f"Skipping release: {reason}")
			audit_release_attempt(cfg.full_name, "", "SKIPPED", {"reason": reason})
			return ReleaseOutcome(status="skipped", reason=reason)

		notes = self.plan(today)
		tag = str(notes.version)
		if cfg.dry_run:
			audit_release_attempt(cfg.full_name, tag, "DRY_RUN", {"len": len(notes.body)})
			return ReleaseOutcome(status="dry_run", notes=notes)

		try:
			result = self.publish(notes)
		except ReleaseError as e:
			incr("release.failure", code=e.code, repo=cfg.full_name)
			audit_release_attempt(cfg.full_name, tag, "FAILED", {"kind": e.kind, "code": e.code})
			raise
		audit_release_attempt(cfg.full_name, tag, "PUBLISHED", {"id": result.id, "url": result.html_url})
		return ReleaseOutcome(status="published", notes=notes, result=result)

	def close(self) -> None:
		if self.github:
			self.github.close()


def build_run_config(args) -> RunConfig:
	"""Merge CLI arguments over environment configuration."""
	repo_cfg = Config.get_repository()
	owner = args.owner or repo_cfg["owner"]
	repo = args.repo or repo_cfg["repo"]
	if not owner or not repo:
		raise ConfigurationError("Repository owner and name are required (--owner/--repo or REPO_OWNER/REPO_NAME)")
	token = args.token or Config.GITHUB_TOKEN
	if not token and (args.source == "prs" or not args.dry_run):
		raise ConfigurationError("Missing credential: set GITHUB_TOKEN (or GITHUB_PAT) or pass --token")
	try:
		return RunConfig(
			owner=owner,
			repo=repo,
			token=token,
			source_mode=args.source,
			style=args.style,
			dry_run=args.dry_run,
			draft=args.draft,
			prerelease=args.prerelease,
			create_tag=args.create_tag,
			remote=args.remote,
			release_branch=args.release_branch or None,
			pr_base=args.pr_base or None,
			require_typed_head=args.require_typed_head,
			fetch_tags=args.fetch_tags,
			retries=args.retries,
			retry_base_sleep_s=Config.PUBLISH_RETRY_BASE_SLEEP,
			timeout_s=args.timeout,
			repo_path=args.repo_path,
			max_body_chars=Config.RELEASE_BODY_MAX_CHARS,
			api_url=Config.GITHUB_API_URL,
			web_url=Config.GITHUB_WEB_URL,
		)
	except ValidationError as e:
		raise ConfigurationError(f"Invalid options: {e}") from e


def build_parser():
	import argparse

	parser = argparse.ArgumentParser(
		prog="calver-release",
		description="Compute the next vYY.M.D.N tag, render release notes and publish a GitHub release",
		formatter_class=argparse.RawDescriptionHelpFormatter,
		epilog="""
Examples:
  calver-release --owner acme --repo api --dry-run
  calver-release --owner acme --repo api --source commits --create-tag
  GITHUB_REPOSITORY=acme/api calver-release --release-branch production --require-typed-head
		""",
	)
	parser.add_argument("--owner", help="Repository owner (user or organization)")
	parser.add_argument("--repo", help="Repository name")
	parser.add_argument("--token", help="GitHub token (defaults to GITHUB_TOKEN/GITHUB_PAT)")
	parser.add_argument("--source", choices=["prs", "commits"], default=Config.SOURCE_MODE, help="Collect merged pull requests or raw commits")
	parser.add_argument("--style", choices=["markdown", "slack"], default=Config.NOTES_STYLE)
	parser.add_argument("--dry-run", action="store_true", help="Render the notes but do not publish")
	parser.add_argument("--draft", action="store_true", default=Config.RELEASE_DRAFT)
	parser.add_argument("--prerelease", action="store_true", default=Config.RELEASE_PRERELEASE)
	parser.add_argument("--create-tag", action="store_true", default=Config.CREATE_TAG, help="Create and push the tag before creating the release")
	parser.add_argument("--remote", default=Config.GIT_REMOTE)
	parser.add_argument("--release-branch", default=Config.RELEASE_BRANCH, help="Only release from this branch")
	parser.add_argument("--pr-base", default=Config.PR_BASE_BRANCH, help="Only list pull requests merged into this base branch (default: any base)")
	parser.add_argument("--require-typed-head", action="store_true", default=Config.REQUIRE_TYPED_HEAD, help="Skip unless the head commit title has a type prefix")
	parser.add_argument("--fetch-tags", action=argparse.BooleanOptionalAction, default=Config.FETCH_TAGS, help="Fetch tags from the remote before scanning (default: on)")
	parser.add_argument("--retries", type=int, default=Config.PUBLISH_RETRIES, help="Extra publish attempts on transient network errors")
	parser.add_argument("--timeout", type=int, default=Config.HTTP_TIMEOUT_S, help="Timeout in seconds for each API request and git command")
	parser.add_argument("--repo-path", default=".", help="Path to the git working copy")
	parser.add_argument("--output", help="Also write the rendered notes to this file")
	parser.add_argument("--json", action="store_true", help="Print a JSON summary instead of the notes")
	parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
	return parser


def main(argv: Optional[List[str]] = None):
	"""CLI entry point for the release agent."""
	parser = build_parser()
	args = parser.parse_args(argv)

	# Set up logging
	log_level = logging.DEBUG if args.verbose else logging.INFO
	logging.basicConfig(
		level=log_level,
		format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
	)

	# Suppress verbose logs from clients unless in debug mode
	if not args.verbose:
		logging.getLogger("clients.git_client").setLevel(logging.WARNING)
		logging.getLogger("clients.github_client").setLevel(logging.WARNING)
		logging.getLogger("urllib3").setLevel(logging.WARNING)

	agent = None
	try:
		config = build_run_config(args)
		agent = ReleaseAgent(config)
		outcome = agent.run()
		if outcome.notes and args.output:
			with open(args.output, "w", encoding="utf-8") as f:
				f.write(outcome.notes.body)
		if args.json:
			print(json.dumps(outcome.to_dict(), ensure_ascii=False))
		elif outcome.status == "skipped":
			print(f"Skipping release: {outcome.reason}")
		else:
			print(outcome.notes.body)
			if outcome.result:
				print(f"✅ Release {outcome.result.tag_name} created: {outcome.result.html_url}")
		sys.exit(0)

	except ReleaseError as e:
		print(f"Error: {e.kind}: {e}", file=sys.stderr)
		if args.verbose:
			logger.exception("Detailed error information:")
		sys.exit(1)

	except KeyboardInterrupt:
		print("\nOperation cancelled by user", file=sys.stderr)
		sys.exit(1)

	except Exception as e:
		# Unexpected error
		print(f"Unexpected error: {type(e).__name__}: {e}", file=sys.stderr)
		if args.verbose:
			logger.exception("Detailed error information:")
		else:
			print("Use --verbose for more details", file=sys.stderr)
		sys.exit(1)

	finally:
		if agent:
			agent.close()


if __name__ == "__main__":
	main()
