#!/usr/bin/env python3
"""Typed errors raised across the release pipeline.

Every error carries a short ``code`` so the CLI and the retry wrapper can act
on the kind of failure without string matching.
"""

from __future__ import annotations


class ReleaseError(Exception):
    """Base class for release pipeline failures."""

    default_code = "UNKNOWN"

    def __init__(self, message: str, code: str = None) -> None:
        super().__init__(message)
        self.code = code or self.default_code

    @property
    def kind(self) -> str:
        return type(self).__name__


class MalformedTagError(ReleaseError):
    """A tag name does not follow the vYY.M.D.N scheme."""

    default_code = "MALFORMED_TAG"

    def __init__(self, tag: str, reason: str = "does not match vYY.M.D.N") -> None:
        super().__init__(f"Malformed version tag {tag!r}: {reason}")
        self.tag = tag


class DuplicateVersionError(ReleaseError):
    default_code = "DUPLICATE"


class NoMatchingHistoryError(ReleaseError):
    default_code = "NO_HISTORY"


class AuthenticationError(ReleaseError):
    default_code = "UNAUTHORIZED"


class ConflictError(ReleaseError):
    default_code = "CONFLICT"


class TransientNetworkError(ReleaseError):
    default_code = "NETWORK"


class FatalAPIError(ReleaseError):
    default_code = "API"


class ConfigurationError(ReleaseError):
    default_code = "CONFIG"


class GitCommandError(ReleaseError):
    default_code = "GIT"


RETRYABLE_CODES = {"NETWORK", "TIMEOUT", "RATE_LIMIT"}
