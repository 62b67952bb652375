"""Exception hierarchy for the patch pipeline."""

from __future__ import annotations

import re

# Patterns for secrets that must never reach logs or the notification channel
SENSITIVE_PATTERNS = [
    (re.compile(r'(Bearer\s+)[A-Za-z0-9_.-]+', re.IGNORECASE), r'\1[REDACTED]'),
    (re.compile(r'(Bot\s+)[A-Za-z0-9_.-]{20,}'), r'\1[REDACTED]'),
    (re.compile(r'(api[_-]?key["\s:=]+)[A-Za-z0-9_-]+', re.IGNORECASE), r'\1[REDACTED]'),
    (re.compile(r'(sk-)[A-Za-z0-9_-]+'), r'\1[REDACTED]'),  # OpenAI key format
]


def sanitize_error(message: str) -> str:
    """Mask API keys and bot tokens in an error message.

    Args:
        message: Error message that may contain sensitive data.

    Returns:
        Sanitized message with sensitive data masked.
    """
    result = message
    for pattern, replacement in SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


class SelfPatchError(Exception):
    """Base class for all pipeline errors."""

    pass


class WorkspaceLoadError(SelfPatchError, OSError):
    """Raised when the workspace, task pool or template cannot be read."""

    pass


class ConfigError(SelfPatchError, ValueError):
    """Raised for a malformed template or invalid configuration."""

    pass


class ProposalError(SelfPatchError):
    """Raised when the reasoning service fails or returns an invalid proposal."""

    pass


class PatchError(SelfPatchError, ValueError):
    """Raised when a single modify-job has malformed inputs."""

    pass
