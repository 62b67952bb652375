"""Change proposer backed by the OpenAI Responses API.

The proposer sends one directive and receives a structured proposal:
an ordered list of modify-jobs, a commit message and a changelog. The
response is requested with a strict JSON schema and is deserialized
strictly again on our side.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from .config import DEFAULT_MAX_OUTPUT_TOKENS, DEFAULT_MODEL, DEFAULT_TIMEOUT
from .errors import ProposalError, sanitize_error
from .patches import JobType, ModifyJob

logger = logging.getLogger(__name__)

RESPONSES_URL = "https://api.openai.com/v1/responses"

JOB_FIELDS = ("file", "type", "source", "destination")
PROPOSAL_FIELDS = ("modifyJobs", "commitMessage", "changelog")

PROPOSAL_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": list(PROPOSAL_FIELDS),
    "properties": {
        "modifyJobs": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": list(JOB_FIELDS),
                "properties": {
                    "file": {"type": "string"},
                    "type": {"type": "string", "enum": [t.value for t in JobType]},
                    "source": {"type": "string"},
                    "destination": {"type": "string"},
                },
            },
        },
        "commitMessage": {"type": "string"},
        "changelog": {"type": "string"},
    },
}


@dataclass
class ProposalResult:
    """Validated output of the change proposer."""

    modify_jobs: list[ModifyJob] = field(default_factory=list)
    commit_message: str = ""
    changelog: str = ""
    raw_response: str = ""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.modify_jobs


def _parse_job(index: int, item: Any) -> ModifyJob:
    if not isinstance(item, dict):
        raise ProposalError(f"modifyJobs[{index}] must be an object")

    keys = set(item)
    if keys != set(JOB_FIELDS):
        missing = sorted(set(JOB_FIELDS) - keys)
        extra = sorted(keys - set(JOB_FIELDS))
        raise ProposalError(
            f"modifyJobs[{index}] has wrong fields (missing: {missing}, unexpected: {extra})"
        )

    for name in JOB_FIELDS:
        if not isinstance(item[name], str):
            raise ProposalError(f"modifyJobs[{index}].{name} must be a string")

    try:
        job_type = JobType(item["type"])
    except ValueError:
        raise ProposalError(
            f"modifyJobs[{index}].type must be one of "
            f"{', '.join(t.value for t in JobType)}, got {item['type']!r}"
        ) from None

    return ModifyJob(
        file=item["file"],
        type=job_type,
        source=item["source"],
        destination=item["destination"],
    )


def parse_proposal(content: str) -> ProposalResult:
    """Strictly deserialize a proposal from the service's output text.

    Args:
        content: Output text expected to be exactly one JSON object.

    Returns:
        ProposalResult with the raw text attached.

    Raises:
        ProposalError: If the text is not JSON or does not match the schema.
    """
    if not content or not content.strip():
        raise ProposalError("Empty response content")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ProposalError(f"Response is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ProposalError("Response is not a JSON object")

    keys = set(data)
    if keys != set(PROPOSAL_FIELDS):
        missing = sorted(set(PROPOSAL_FIELDS) - keys)
        extra = sorted(keys - set(PROPOSAL_FIELDS))
        raise ProposalError(
            f"Response has wrong fields (missing: {missing}, unexpected: {extra})"
        )

    if not isinstance(data["modifyJobs"], list):
        raise ProposalError("Field 'modifyJobs' must be a list")
    for name in ("commitMessage", "changelog"):
        if not isinstance(data[name], str):
            raise ProposalError(f"Field '{name}' must be a string")

    return ProposalResult(
        modify_jobs=[_parse_job(i, item) for i, item in enumerate(data["modifyJobs"])],
        commit_message=data["commitMessage"],
        changelog=data["changelog"],
        raw_response=content,
    )


def _mapping(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _token_count(usage: dict, key: str) -> int:
    """Read a usage counter; anything that is not a count reads as 0."""
    value = usage.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(int(value), 0)


def extract_output_text(data: dict) -> str:
    """Collect the assistant's output text from a Responses API body.

    Raises:
        ProposalError: On a refusal, an incomplete response or no text.
    """
    status = data.get("status")
    if status == "incomplete":
        reason = _mapping(data.get("incomplete_details")).get("reason", "unknown")
        raise ProposalError(f"Response incomplete: {reason}")
    if status == "failed":
        message = _mapping(data.get("error")).get("message", "unknown error")
        raise ProposalError(f"Response failed: {message}")

    output = data.get("output") or []
    if not isinstance(output, list):
        raise ProposalError("Response field 'output' is not a list")

    texts = []
    for item in output:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        content = item.get("content") or []
        if not isinstance(content, list):
            raise ProposalError("Message content is not a list")
        for part in content:
            if not isinstance(part, dict):
                raise ProposalError(f"Message content part is not an object: {part!r:.80}")
            if part.get("type") == "refusal":
                raise ProposalError(f"Model refused the request: {part.get('refusal', '')}")
            if part.get("type") == "output_text":
                text_part = part.get("text", "")
                if not isinstance(text_part, str):
                    raise ProposalError("Output text part is not a string")
                texts.append(text_part)

    text = "".join(texts)
    if not text.strip():
        raise ProposalError("Response contained no output text")
    return text


class ChangeProposer(ABC):
    """Abstract base class for change proposers."""

    @abstractmethod
    def propose(self, directive: str) -> ProposalResult:
        """Send the directive and return a validated proposal.

        Raises:
            ProposalError: If the service fails or the response is invalid.
        """
        pass


class MockChangeProposer(ChangeProposer):
    """Mock proposer for testing without API calls."""

    def __init__(
        self,
        result: Optional[ProposalResult] = None,
        error: Optional[str] = None,
    ):
        """Initialize mock proposer.

        Args:
            result: Proposal to return. Defaults to an empty proposal.
            error: If set, ``propose`` raises ProposalError with this message.
        """
        self.result = result or ProposalResult(
            commit_message="chore: mock run",
            changelog="Mock run, no changes proposed.",
            raw_response="{}",
        )
        self.error = error
        self.call_count = 0
        self.last_directive: Optional[str] = None

    def propose(self, directive: str) -> ProposalResult:
        self.call_count += 1
        self.last_directive = directive
        if self.error:
            raise ProposalError(self.error)
        return self.result


class OpenAIChangeProposer(ChangeProposer):
    """Change proposer using the OpenAI Responses API with structured output."""

    SYSTEM_PROMPT = (
        "You maintain the source code of a Discord bot. Respond only with "
        "modify jobs that follow the provided JSON schema. Line numbers are "
        "1-based and refer to the file as modified by earlier jobs."
    )

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        reasoning_effort: Optional[str] = "high",
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        timeout: int = DEFAULT_TIMEOUT,
        client: Optional[httpx.Client] = None,
    ):
        """Initialize the proposer.

        Args:
            api_key: OpenAI API key.
            model: Model to use.
            reasoning_effort: Reasoning effort, or None to omit.
            max_output_tokens: Output token cap for the response.
            timeout: Request timeout in seconds. The call is not retried.
            client: Optional preconfigured httpx client.
        """
        self.api_key = api_key
        self.model = model
        self.reasoning_effort = reasoning_effort
        self.max_output_tokens = max_output_tokens
        self.timeout = timeout
        self.client = client or httpx.Client(timeout=timeout)

    def build_payload(self, directive: str) -> dict[str, Any]:
        """Build the request body for one directive."""
        payload: dict[str, Any] = {
            "model": self.model,
            "instructions": self.SYSTEM_PROMPT,
            "input": [{"role": "user", "content": directive}],
            "max_output_tokens": self.max_output_tokens,
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": "modify_proposal",
                    "strict": True,
                    "schema": PROPOSAL_SCHEMA,
                }
            },
        }
        if self.reasoning_effort:
            payload["reasoning"] = {"effort": self.reasoning_effort}
        return payload

    def propose(self, directive: str) -> ProposalResult:
        """Run one proposal request.

        Args:
            directive: The assembled directive.

        Returns:
            Validated ProposalResult.

        Raises:
            ProposalError: On transport errors, HTTP errors or invalid output.
        """
        logger.info(f"Requesting proposal from {self.model} ({len(directive)} characters)")
        started = time.monotonic()

        try:
            response = self.client.post(
                RESPONSES_URL,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=self.build_payload(directive),
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ProposalError(
                f"Request to OpenAI timed out after {self.timeout} seconds"
            ) from exc
        except httpx.HTTPStatusError as exc:
            body = ""
            try:
                body = exc.response.text[:500]
            except Exception:
                pass
            raise ProposalError(
                sanitize_error(f"HTTP error from OpenAI: {exc.response.status_code} - {body}")
            ) from exc
        except httpx.HTTPError as exc:
            raise ProposalError(sanitize_error(f"Error calling OpenAI: {exc}")) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise ProposalError(f"OpenAI returned a non-JSON body: {exc}") from exc
        if not isinstance(data, dict):
            raise ProposalError("OpenAI returned an unexpected body")

        result = parse_proposal(extract_output_text(data))

        usage = _mapping(data.get("usage"))
        result.input_tokens = _token_count(usage, "input_tokens")
        result.output_tokens = _token_count(usage, "output_tokens")

        elapsed = time.monotonic() - started
        logger.info(
            f"Proposal received in {elapsed:.1f}s: {len(result.modify_jobs)} job(s), "
            f"{result.input_tokens} input / {result.output_tokens} output tokens"
        )
        return result


def create_proposer(
    api_key: Optional[str] = None,
    mock_mode: bool = False,
    model: str = DEFAULT_MODEL,
    reasoning_effort: Optional[str] = "high",
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
    timeout: int = DEFAULT_TIMEOUT,
) -> ChangeProposer:
    """Factory function to create the appropriate proposer.

    Raises:
        ValueError: If api_key is missing and not in mock mode.
    """
    if mock_mode:
        return MockChangeProposer()

    if not api_key:
        raise ValueError("API key is required when not in mock mode")

    return OpenAIChangeProposer(
        api_key=api_key,
        model=model,
        reasoning_effort=reasoning_effort,
        max_output_tokens=max_output_tokens,
        timeout=timeout,
    )
