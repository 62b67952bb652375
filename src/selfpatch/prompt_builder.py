"""Directive assembly from the template, the workspace and one task."""

from __future__ import annotations

import json
import logging
import random
from typing import Optional, Sequence

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError, meta

from .errors import ConfigError
from .patches import SourceFile

logger = logging.getLogger(__name__)

FILES_PLACEHOLDER = "files"
TASK_PLACEHOLDER = "task"
REQUIRED_PLACEHOLDERS = (FILES_PLACEHOLDER, TASK_PLACEHOLDER)

# Framing used for the task slot when user error reports are pending
ERROR_FIX_HEADER = (
    "Users reported the following errors in the bot. Fix every one of them "
    "with the smallest set of modify jobs that resolves it, and focus the "
    "changelog on these fixes.\n\n"
)


def serialize_files(files: Sequence[SourceFile]) -> str:
    """Serialize source files as a JSON array of fileName/data pairs."""
    return json.dumps(
        [{"fileName": f.file_name, "data": f.data} for f in files],
        indent=2,
        ensure_ascii=False,
    )


def choose_task(tasks: Sequence[str], rng: Optional[random.Random] = None) -> str:
    """Pick one task prompt uniformly at random.

    Args:
        tasks: Non-empty pool of task prompts.
        rng: Random source; pass a seeded ``random.Random`` for determinism.

    Raises:
        ValueError: If the pool is empty.
    """
    if not tasks:
        raise ValueError("Task pool is empty")
    rng = rng or random.Random()
    return tasks[rng.randrange(len(tasks))]


class PromptBuilder:
    """Renders the directive template.

    The template is Jinja2 and must reference both ``{{ files }}`` and
    ``{{ task }}``; anything else it references is an error at render time.
    """

    def __init__(self, template: str):
        """Parse and check the template.

        Args:
            template: Template source text.

        Raises:
            ConfigError: On a syntax error or a missing placeholder.
        """
        self.env = Environment(undefined=StrictUndefined, keep_trailing_newline=True)
        try:
            parsed = self.env.parse(template)
        except TemplateSyntaxError as exc:
            raise ConfigError(f"Template syntax error on line {exc.lineno}: {exc.message}") from exc

        found = meta.find_undeclared_variables(parsed)
        missing = [name for name in REQUIRED_PLACEHOLDERS if name not in found]
        if missing:
            placeholders = ", ".join("{{ %s }}" % name for name in missing)
            raise ConfigError(f"Template is missing required placeholder(s): {placeholders}")

        self.template = self.env.from_string(template)

    def build(self, files: Sequence[SourceFile], task: str) -> str:
        """Render the directive for the given files and task.

        Raises:
            ConfigError: If the template references an unknown variable.
        """
        try:
            directive = self.template.render(files=serialize_files(files), task=task)
        except UndefinedError as exc:
            raise ConfigError(f"Template references an unknown placeholder: {exc}") from exc
        logger.debug(f"Assembled directive: {len(directive)} characters, {len(files)} file(s)")
        return directive
