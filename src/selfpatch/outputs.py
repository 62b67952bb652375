"""CI side-channel for the commit message and changelog."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


def format_output(name: str, value: str, delimiter: Optional[str] = None) -> str:
    """Format one named value in the multiline ``name<<DELIM`` form."""
    delimiter = delimiter or f"ghadelimiter_{uuid.uuid4().hex}"
    # The delimiter must not occur as a line in the value
    while delimiter in value.split("\n"):
        delimiter = f"ghadelimiter_{uuid.uuid4().hex}"
    return f"{name}<<{delimiter}\n{value}\n{delimiter}\n"


def write_outputs(path: Optional[Path], values: Mapping[str, str]) -> bool:
    """Append named outputs to the CI output file.

    Args:
        path: Output file (typically $GITHUB_OUTPUT), or None to skip.
        values: Output names and their string values.

    Returns:
        True if the outputs were written.
    """
    if path is None:
        logger.debug("No CI output file configured, skipping outputs")
        return False

    with open(path, "a", encoding="utf-8") as f:
        for name, value in values.items():
            f.write(format_output(name, value))
    logger.info(f"Wrote {', '.join(values)} to {path}")
    return True
