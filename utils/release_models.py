#!/usr/bin/env python3
"""Release models: version tags, change records, categories and run options.

Value types that never leave the process are plain frozen dataclasses; records
built from API payloads and the run configuration are pydantic models.
"""
from __future__ import annotations

import datetime as _dt
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.release_errors import MalformedTagError

SourceMode = Literal["prs", "commits"]
NotesStyle = Literal["markdown", "slack"]
ChangeKind = Literal["pr", "commit"]
ReferenceKind = Literal["tag", "commit"]

_TAG_RE = re.compile(r"^v(\d{2})\.([1-9]\d*)\.([1-9]\d*)(?:\.(\S*))?$")


class Category(str, Enum):
	FEAT = "feat"
	FIX = "fix"
	DOCS = "docs"
	TEST = "test"
	CI = "ci"
	CD = "cd"
	TASK = "task"
	CHORE = "chore"
	OTHER = "other"


CATEGORY_LABELS: Dict[Category, Tuple[str, str]] = {
	Category.FEAT: ("Features", "✨"),
	Category.FIX: ("Bug Fixes", "🐛"),
	Category.DOCS: ("Documentation", "📝"),
	Category.TEST: ("Tests", "🧪"),
	Category.CI: ("CI/CD", "🔧"),
	Category.CD: ("CI/CD", "🔧"),
	Category.TASK: ("Tasks", "📌"),
	Category.CHORE: ("Chores", "🧹"),
	Category.OTHER: ("Other", "📂"),
}


@dataclass(frozen=True)
class Section:
	"""One rendered block of release notes; ci and cd share a section."""

	label: str
	emoji: str
	categories: Tuple[Category, ...]

	@property
	def title(self) -> str:
		return f"{self.label} {self.emoji}"


def _section(*categories: Category) -> Section:
	label, emoji = CATEGORY_LABELS[categories[0]]
	return Section(label=label, emoji=emoji, categories=tuple(categories))


# Display order is fixed so output stays diff-stable across runs
SECTION_ORDER: Tuple[Section, ...] = (
	_section(Category.FEAT),
	_section(Category.FIX),
	_section(Category.DOCS),
	_section(Category.TEST),
	_section(Category.CI, Category.CD),
	_section(Category.TASK),
	_section(Category.CHORE),
	_section(Category.OTHER),
)


@dataclass(frozen=True, order=True)
class VersionTag:
	"""Date-coded release identifier ``vYY.M.D.N``.

	Field order drives the dataclass ordering, so comparisons are numeric on
	(year, month, day, sequence); ``v26.1.2.10`` sorts after ``v26.1.2.9``.
	"""

	year: int
	month: int
	day: int
	sequence: int

	def __post_init__(self) -> None:
		if not 0 <= self.year <= 99:
			raise ValueError(f"year must have two digits, got {self.year}")
		if not 1 <= self.month <= 12:
			raise ValueError(f"month out of range: {self.month}")
		if not 1 <= self.day <= 31:
			raise ValueError(f"day out of range: {self.day}")
		if self.sequence < 1:
			raise ValueError(f"sequence must be positive, got {self.sequence}")

	def __str__(self) -> str:
		return f"v{self.year:02d}.{self.month}.{self.day}.{self.sequence}"

	@property
	def name(self) -> str:
		return str(self)

	@property
	def date_key(self) -> Tuple[int, int, int]:
		return (self.year, self.month, self.day)

	@classmethod
	def date_key_for(cls, day: _dt.date) -> Tuple[int, int, int]:
		return (day.year % 100, day.month, day.day)

	@classmethod
	def for_date(cls, day: _dt.date, sequence: int) -> "VersionTag":
		year, month, dom = cls.date_key_for(day)
		return cls(year=year, month=month, day=dom, sequence=sequence)

	@classmethod
	def parse(cls, text: str) -> "VersionTag":
		"""Parse a canonical ``vYY.M.D.N`` tag name.

		Raises:
			MalformedTagError: for anything else, including a missing or
				non-numeric sequence suffix.
		"""
		raw = (text or "").strip()
		m = _TAG_RE.match(raw)
		if not m:
			raise MalformedTagError(raw)
		seq = m.group(4)
		if not seq:
			raise MalformedTagError(raw, "missing sequence suffix")
		if not seq.isdigit() or seq.startswith("0"):
			raise MalformedTagError(raw, f"invalid sequence {seq!r}")
		try:
			return cls(
				year=int(m.group(1)),
				month=int(m.group(2)),
				day=int(m.group(3)),
				sequence=int(seq),
			)
		except ValueError as e:
			raise MalformedTagError(raw, str(e)) from e


@dataclass(frozen=True)
class Reference:
	"""A point in version-control history used as a range boundary."""

	name: str
	kind: ReferenceKind = "commit"

	@property
	def is_tag(self) -> bool:
		return self.kind == "tag"


class ChangeRecord(BaseModel):
	"""A pull request or commit considered for the release notes."""

	identifier: str = Field(..., description="Commit SHA or pull request number")
	title: str = Field(..., description="Commit subject or pull request title")
	author: Optional[str] = Field(None, description="Author login or name")
	url: Optional[str] = Field(None, description="Link to the change")
	kind: ChangeKind = Field("commit", description="Source of the record")
	merged_at: Optional[_dt.datetime] = Field(None, description="Merge timestamp (pull requests)")
	merge_commit_sha: Optional[str] = Field(None, description="Merge commit SHA (pull requests)")

	model_config = ConfigDict(frozen=True, extra="ignore")

	@field_validator("identifier", mode="before")
	@classmethod
	def _identifier_as_str(cls, v):
		return str(v) if isinstance(v, int) else v

	@property
	def declared_type(self) -> Optional[str]:
		"""Text before the first ':' of the title, lowercased; None without a colon."""
		if ":" not in self.title:
			return None
		return self.title.split(":", 1)[0].strip().lower()

	@property
	def short_id(self) -> str:
		if self.kind == "pr":
			return f"#{self.identifier}"
		return self.identifier[:7]


@dataclass(frozen=True)
class ReleaseNotes:
	"""Rendered notes for one version; built once and consumed by the publisher."""

	version: VersionTag
	entries: Dict[Category, List[ChangeRecord]]
	compare_link: Optional[str]
	body: str
	prior: Optional[Reference] = None


@dataclass(frozen=True)
class PublishResult:
	id: int
	tag_name: str
	html_url: str
	draft: bool
	prerelease: bool
	target_commitish: Optional[str] = None


class RunConfig(BaseModel):
	"""Immutable configuration for a single release run."""

	owner: str = Field(..., min_length=1)
	repo: str = Field(..., min_length=1)
	token: Optional[str] = Field(None, repr=False)
	source_mode: SourceMode = "prs"
	style: NotesStyle = "markdown"
	dry_run: bool = False
	draft: bool = False
	prerelease: bool = False
	create_tag: bool = False
	remote: str = "origin"
	release_branch: Optional[str] = None
	pr_base: Optional[str] = None
	require_typed_head: bool = False
	fetch_tags: bool = True
	retries: int = Field(0, ge=0, le=5)
	retry_base_sleep_s: float = 0.5
	timeout_s: int = Field(30, gt=0)
	repo_path: str = "."
	max_body_chars: int = Field(125000, gt=0)
	api_url: str = "https://api.github.com"
	web_url: str = "https://github.com"

	model_config = ConfigDict(frozen=True, extra="forbid")

	@property
	def full_name(self) -> str:
		return f"{self.owner}/{self.repo}"

	@property
	def repo_web_url(self) -> str:
		return f"{self.web_url.rstrip('/')}/{self.owner}/{self.repo}"


__all__ = [
	"Category",
	"CATEGORY_LABELS",
	"ChangeRecord",
	"PublishResult",
	"Reference",
	"ReleaseNotes",
	"RunConfig",
	"Section",
	"SECTION_ORDER",
	"VersionTag",
]
