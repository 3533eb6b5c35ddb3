import os
from typing import Dict, Any

from dotenv import load_dotenv

load_dotenv()


class Config:
	"""Configuration for the release tool."""

	# GitHub configuration
	GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip('/')
	GITHUB_WEB_URL = os.getenv("GITHUB_WEB_URL", "https://github.com").rstrip('/')
	GITHUB_TOKEN = os.getenv("GITHUB_TOKEN") or os.getenv("GITHUB_PAT")
	HTTP_TIMEOUT_S = int(os.getenv("HTTP_TIMEOUT_S", "30"))
	HTTP_GET_RETRIES = int(os.getenv("HTTP_GET_RETRIES", "0"))
	PR_PAGE_LIMIT = int(os.getenv("PR_PAGE_LIMIT", "50"))

	# Repository identity
	REPO_OWNER = os.getenv("REPO_OWNER", "")
	REPO_NAME = os.getenv("REPO_NAME", "")
	GITHUB_REPOSITORY = os.getenv("GITHUB_REPOSITORY", "")

	# Git
	GIT_BINARY = os.getenv("GIT_BINARY", "git")
	GIT_TIMEOUT_S = int(os.getenv("GIT_TIMEOUT_S", "60"))
	GIT_REMOTE = os.getenv("GIT_REMOTE", "origin")
	FETCH_TAGS = bool(int(os.getenv("FETCH_TAGS", "1")))

	# Run options
	SOURCE_MODE = os.getenv("SOURCE_MODE", "prs")
	NOTES_STYLE = os.getenv("NOTES_STYLE", "markdown")
	RELEASE_DRAFT = bool(int(os.getenv("RELEASE_DRAFT", "0")))
	RELEASE_PRERELEASE = bool(int(os.getenv("RELEASE_PRERELEASE", "0")))
	CREATE_TAG = bool(int(os.getenv("CREATE_TAG", "0")))
	RELEASE_BRANCH = os.getenv("RELEASE_BRANCH", "")
	# Restrict pull requests to this base branch; empty lists every base
	PR_BASE_BRANCH = os.getenv("PR_BASE_BRANCH", "")
	REQUIRE_TYPED_HEAD = bool(int(os.getenv("REQUIRE_TYPED_HEAD", "0")))
	PUBLISH_RETRIES = int(os.getenv("PUBLISH_RETRIES", "0"))
	PUBLISH_RETRY_BASE_SLEEP = float(os.getenv("PUBLISH_RETRY_BASE_SLEEP", "0.5"))

	# GitHub rejects release bodies above 125000 characters
	RELEASE_BODY_MAX_CHARS = int(os.getenv("RELEASE_BODY_MAX_CHARS", "125000"))

	# Observability
	METRICS_ROOT = os.getenv("METRICS_ROOT", ".cache/calver_release/metrics")
	METRICS_ENABLED = bool(int(os.getenv("METRICS_ENABLED", "1")))
	AUDIT_ROOT = os.getenv("AUDIT_ROOT", ".cache/calver_release/audit")

	@classmethod
	def get_github_config(cls) -> Dict[str, Any]:
		"""Get GitHub configuration for the REST client."""
		return {
			"api_url": cls.GITHUB_API_URL,
			"web_url": cls.GITHUB_WEB_URL,
			"token": cls.GITHUB_TOKEN,
			"timeout_s": cls.HTTP_TIMEOUT_S,
			"get_retries": cls.HTTP_GET_RETRIES,
		}

	@classmethod
	def get_git_config(cls) -> Dict[str, Any]:
		return {
			"binary": cls.GIT_BINARY,
			"timeout_s": cls.GIT_TIMEOUT_S,
			"remote": cls.GIT_REMOTE,
		}

	@classmethod
	def get_repository(cls) -> Dict[str, str]:
		"""Resolve the repository owner and name.

		REPO_OWNER/REPO_NAME win; GITHUB_REPOSITORY ("owner/name", as set by
		GitHub Actions) fills whatever is missing.
		"""
		owner, name = cls.REPO_OWNER, cls.REPO_NAME
		if (not owner or not name) and "/" in cls.GITHUB_REPOSITORY:
			gh_owner, gh_name = cls.GITHUB_REPOSITORY.split("/", 1)
			owner = owner or gh_owner
			name = name or gh_name
		return {"owner": owner, "repo": name}

	@classmethod
	def observability(cls) -> Dict[str, Any]:
		return {
			"metrics_root": cls.METRICS_ROOT,
			"metrics_enabled": cls.METRICS_ENABLED,
			"audit_root": cls.AUDIT_ROOT,
		}
