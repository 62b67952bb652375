"""Critical-pattern guards checked before patched files are written."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from .config import GuardSpec
from .errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class Guard:
    """A compiled guard bound to one workspace file."""

    name: str
    file: str
    regex: re.Pattern

    def matches(self, content: str) -> bool:
        return self.regex.search(content) is not None


def compile_guards(specs: Iterable[GuardSpec]) -> list[Guard]:
    """Compile configured guard patterns.

    Raises:
        ConfigError: If a pattern is not a valid regex.
    """
    guards = []
    for spec in specs:
        try:
            regex = re.compile(spec.pattern, re.MULTILINE)
        except re.error as exc:
            raise ConfigError(f"Guard {spec.name!r} has an invalid pattern: {exc}") from exc
        guards.append(Guard(name=spec.name, file=spec.file, regex=regex))
    return guards


def check_guards(
    guards: Iterable[Guard],
    original: dict[str, str],
    patched: dict[str, str],
) -> dict[str, str]:
    """Find files whose patch removed a guarded pattern.

    A guard only counts when it matched the original content; a pattern
    that was never there cannot be broken.

    Args:
        guards: Compiled guards.
        original: File name to content as loaded.
        patched: File name to content after patching, for touched files only.

    Returns:
        Mapping of blocked file name to a reason listing the broken guards.
    """
    broken: dict[str, list[str]] = {}
    for guard in guards:
        if guard.file not in patched or guard.file not in original:
            continue
        if guard.matches(original[guard.file]) and not guard.matches(patched[guard.file]):
            broken.setdefault(guard.file, []).append(guard.name)

    blocked = {}
    for file_name, names in broken.items():
        reason = f"missing critical pattern(s): {', '.join(names)}"
        logger.warning(f"Not writing {file_name}: {reason}")
        blocked[file_name] = reason
    return blocked
