#!/usr/bin/env python3
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from utils.classifier import clean_title
from utils.release_models import ChangeRecord, Category, Section, SECTION_ORDER, VersionTag

logger = logging.getLogger(__name__)

NO_COMPARISON_NOTICE = "No previous version found for diff comparison."
NO_CHANGES_NOTICE = "No changes found since the previous release."


def escape_slack(s: str) -> str:
	if not s:
		return s
	return s.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _header(version: VersionTag, style: str) -> str:
	if style == "slack":
		return f"🔄 *New Release:* {version}"
	return f"## What's Changed in {version} 🚀"


def _section_title(section: Section, style: str) -> str:
	if style == "slack":
		return f"*{section.title}*"
	return f"### {section.title}"


def entry_line(record: ChangeRecord, style: str = "markdown") -> str:
	title = clean_title(record)
	short = record.short_id
	if style == "slack":
		ref = f"*<{record.url}|{short}>*" if record.url else f"*{short}*"
		return f"- {ref}: {escape_slack(title)}"
	ref = f"[{short}]({record.url})" if record.url else short
	return f"- {ref}: {title}"


def _trailer(compare_link: Optional[str], style: str) -> str:
	label = "*Full Changelog:*" if style == "slack" else "**Full Changelog:**"
	return f"{label} {compare_link or NO_COMPARISON_NOTICE}"


def _truncation_notice(omitted: int) -> str:
	noun = "change" if omitted == 1 else "changes"
	return f"_{omitted} {noun} omitted to fit the release body size limit._"


def _sections(entries: Mapping[Category, Sequence[ChangeRecord]], style: str) -> List[Tuple[str, List[str]]]:
	out: List[Tuple[str, List[str]]] = []
	for section in SECTION_ORDER:
		lines: List[str] = []
		for cat in section.categories:
			lines.extend(entry_line(rec, style) for rec in entries.get(cat) or [])
		if lines:
			out.append((_section_title(section, style), lines))
	return out


def _compose(header: str, sections: List[Tuple[str, List[str]]], notice: Optional[str], trailer: str) -> str:
	blocks = [header]
	for title, lines in sections:
		blocks.append("\n".join([title] + lines))
	if not sections and not notice:
		blocks.append(f"_{NO_CHANGES_NOTICE}_")
	if notice:
		blocks.append(notice)
	blocks.append(trailer)
	return "\n\n".join(blocks) + "\n"


def _shrink(sections: List[Tuple[str, List[str]]], excess: int) -> int:
	"""Drop entries until ``excess`` characters are gone; returns how many were dropped.

	Lowest-priority sections go first and, within a section, the oldest
	(last discovered) entries go first. ``sections`` is modified in place.
	"""
	dropped = 0
	while excess > 0 and sections:
		title, lines = sections[-1]
		line = lines.pop()
		excess -= len(line) + 1
		dropped += 1
		if not lines:
			sections.pop()
			excess -= len(title) + 2
	return dropped


def render(
	version: VersionTag,
	entries: Mapping[Category, Sequence[ChangeRecord]],
	compare_link: Optional[str] = None,
	*,
	style: str = "markdown",
	max_chars: Optional[int] = None,
) -> str:
	"""Render release notes for ``version``.

	Sections follow the fixed display order regardless of how ``entries`` was
	built, so identical input always yields byte-identical output. When
	``max_chars`` is given the body is shrunk to fit and a truncation notice
	is added before the trailer.
	"""
	header = _header(version, style)
	trailer = _trailer(compare_link, style)
	sections = _sections(entries, style)
	body = _compose(header, sections, None, trailer)
	if not max_chars or len(body) <= max_chars:
		return body

	omitted = 0
	while len(body) > max_chars and sections:
		# the notice grows with the omitted count, so re-check after each pass
		omitted += _shrink(sections, len(body) - max_chars)
		body = _compose(header, sections, _truncation_notice(omitted), trailer)
	if len(body) > max_chars:
		body = body[:max_chars]
	logger.warning(f"Release notes for {version} truncated: {omitted} entries omitted (limit {max_chars} chars)")
	return body


def count_entries(entries: Mapping[Category, Sequence[ChangeRecord]]) -> Dict[str, int]:
	return {cat.value: len(recs) for cat, recs in entries.items() if recs}
