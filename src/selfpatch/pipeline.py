"""Pipeline that drives one self-modification run.

States run strictly in order::

    IDLE -> LOADING -> ASSEMBLING -> PROPOSING -> APPLYING -> NOTIFYING -> DONE

FAILED is reachable from LOADING, ASSEMBLING and PROPOSING only. Nothing
is written to the workspace before APPLYING, so a failed run leaves it
untouched. Job failures inside APPLYING are recorded and skipped.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from .committer import CommitResult, CommitterError, GitCommitter
from .config import Config
from .errors import SelfPatchError
from .guards import Guard, check_guards, compile_guards
from .notifier import LogNotifier, Notifier, create_notifier, timestamp
from .outputs import write_outputs
from .patches import ApplyReport, SourceFile, apply_jobs
from .prompt_builder import ERROR_FIX_HEADER, PromptBuilder, choose_task
from .proposer import ChangeProposer, ProposalResult, create_proposer
from .reports import ErrorReport, ReportQueue, format_reports
from .run_log import RunLogger
from .tokens import estimate_tokens
from .workspace import load_task_prompts, load_template, load_workspace, write_source_files

logger = logging.getLogger(__name__)

EMPTY_PROPOSAL_NOTE = "No modify jobs were proposed in this run; the workspace is unchanged."


class PipelineState(str, Enum):
    """States of a pipeline run."""

    IDLE = "idle"
    LOADING = "loading"
    ASSEMBLING = "assembling"
    PROPOSING = "proposing"
    APPLYING = "applying"
    NOTIFYING = "notifying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunResult:
    """Outcome of a pipeline run."""

    state: PipelineState = PipelineState.IDLE
    failed_phase: Optional[PipelineState] = None
    error: Optional[str] = None
    directive: str = ""
    directive_tokens: int = 0
    task_from_reports: bool = False
    proposal: Optional[ProposalResult] = None
    apply_report: Optional[ApplyReport] = None
    files_written: list[str] = field(default_factory=list)
    reports_processed: int = 0
    commit: Optional[CommitResult] = None

    @property
    def success(self) -> bool:
        return self.state is PipelineState.DONE

    @property
    def changelog(self) -> str:
        """Changelog as posted, including the note for an empty proposal."""
        if self.proposal is None:
            return ""
        if self.proposal.is_empty:
            text = self.proposal.changelog.strip()
            return f"{text}\n\n{EMPTY_PROPOSAL_NOTE}" if text else EMPTY_PROPOSAL_NOTE
        return self.proposal.changelog


class Pipeline:
    """Loads the workspace, asks for modify-jobs, applies and reports them."""

    def __init__(
        self,
        workspace_dir: Path,
        tasks_dir: Path,
        template_path: Path,
        proposer: ChangeProposer,
        notifier: Optional[Notifier] = None,
        rng: Optional[random.Random] = None,
        report_queue: Optional[ReportQueue] = None,
        guards: Optional[Iterable[Guard]] = None,
        exclude: Optional[Iterable[str]] = None,
        run_logger: Optional[RunLogger] = None,
        committer: Optional[GitCommitter] = None,
        github_output: Optional[Path] = None,
        dry_run: bool = False,
    ):
        """Initialize the pipeline.

        Args:
            workspace_dir: Root of the files the run may rewrite.
            tasks_dir: Directory of task prompts.
            template_path: Directive template with files/task placeholders.
            proposer: Change proposer to call.
            notifier: Lifecycle notifier. Defaults to logging only.
            rng: Random source for task selection. Seed it for reproducible runs.
            report_queue: Error-report queue; pending reports replace the random task.
            guards: Critical-pattern guards checked before write-back.
            exclude: Path components to skip while loading the workspace.
            run_logger: Run record collector.
            committer: If given, rewritten files are committed after the run.
            github_output: CI output file for the commit message and changelog.
            dry_run: Stop after assembling the directive.
        """
        self.workspace_dir = Path(workspace_dir)
        self.tasks_dir = Path(tasks_dir)
        self.template_path = Path(template_path)
        self.proposer = proposer
        self.notifier = notifier or LogNotifier()
        self.rng = rng or random.Random()
        self.report_queue = report_queue
        self.guards = list(guards or [])
        self.exclude = list(exclude) if exclude is not None else [".git"]
        self.run_logger = run_logger
        self.committer = committer
        self.github_output = github_output
        self.dry_run = dry_run
        self.state = PipelineState.IDLE

    @classmethod
    def from_config(
        cls,
        config: Config,
        proposer: Optional[ChangeProposer] = None,
        notifier: Optional[Notifier] = None,
        rng: Optional[random.Random] = None,
    ) -> Pipeline:
        """Build a pipeline from configuration.

        Raises:
            ConfigError: If a guard pattern is invalid.
            ValueError: If no API key is set outside mock/dry-run mode.
        """
        settings = config.pipeline
        if proposer is None:
            proposer = create_proposer(
                api_key=config.openai_api_key,
                mock_mode=config.mock_mode or config.dry_run,
                model=settings.proposer.model,
                reasoning_effort=settings.proposer.reasoning_effort,
                max_output_tokens=settings.proposer.max_output_tokens,
                timeout=settings.proposer.timeout,
            )
        if notifier is None:
            notifier = create_notifier(
                config.discord_token,
                config.discord_channel_id,
                max_length=settings.max_message_length,
            )

        committer = None
        if config.auto_commit and not config.dry_run:
            try:
                committer = GitCommitter(config.workspace_dir)
            except CommitterError as exc:
                logger.warning(f"Auto-commit disabled: {exc}")

        return cls(
            workspace_dir=config.workspace_dir,
            tasks_dir=config.tasks_dir,
            template_path=config.template_path,
            proposer=proposer,
            notifier=notifier,
            rng=rng,
            report_queue=ReportQueue(config.reports_path),
            guards=compile_guards(settings.guards),
            exclude=settings.exclude,
            run_logger=RunLogger(config.log_dir),
            committer=committer,
            github_output=config.github_output,
            dry_run=config.dry_run,
        )

    def _enter(self, state: PipelineState) -> None:
        self.state = state
        if self.run_logger:
            self.run_logger.log_phase(state.value)
        logger.info(f"Pipeline: {state.value}")

    def _notify(self, text: str, suppress_mentions: bool = False) -> None:
        try:
            self.notifier.notify(text, suppress_mentions=suppress_mentions)
        except Exception as exc:
            # Notification is best-effort and must not change the run's outcome
            logger.error(f"Notifier failed: {exc}")

    def _fail(self, result: RunResult, exc: SelfPatchError) -> RunResult:
        phase = self.state
        result.failed_phase = phase
        result.error = f"{phase.value} failed: {exc}"
        self._enter(PipelineState.FAILED)
        result.state = PipelineState.FAILED
        if self.run_logger:
            self.run_logger.log_error(str(exc), {"phase": phase.value})
        logger.error(f"Run failed during {phase.value}: {exc}")
        self._notify(f"{timestamp()} run failed during {phase.value}: {exc}")
        return result

    def _pending_reports(self) -> list[ErrorReport]:
        if self.report_queue is None:
            return []
        return self.report_queue.pending()

    def run(self) -> RunResult:
        """Execute one run.

        Returns:
            RunResult; ``state`` is DONE or FAILED.
        """
        result = RunResult()
        try:
            return self._run(result)
        finally:
            if self.run_logger:
                commit_message = result.proposal.commit_message if result.proposal else ""
                self.run_logger.finalize(result.state.value, commit_message)

    def _run(self, result: RunResult) -> RunResult:
        stats = self.run_logger.stats if self.run_logger else None
        self._notify(f"{timestamp()} start creating new version")

        try:
            self._enter(PipelineState.LOADING)
            files = load_workspace(self.workspace_dir, self.exclude)
            tasks = load_task_prompts(self.tasks_dir)
            template = load_template(self.template_path)
            if stats:
                stats.files_loaded = len(files)
                stats.tasks_loaded = len(tasks)

            self._enter(PipelineState.ASSEMBLING)
            builder = PromptBuilder(template)
            pending = self._pending_reports()
            if pending:
                result.task_from_reports = True
                self._notify(f"{timestamp()} found {len(pending)} user-reported errors to fix")
                task = ERROR_FIX_HEADER + format_reports(pending)
            else:
                task = choose_task(tasks, self.rng)
            result.directive = builder.build(files, task)
            result.directive_tokens = estimate_tokens(result.directive)
            if stats:
                stats.directive_chars = len(result.directive)

            if self.dry_run:
                logger.info(f"Dry run: directive is ~{result.directive_tokens} tokens, stopping")
                self._enter(PipelineState.DONE)
                result.state = PipelineState.DONE
                return result

            self._enter(PipelineState.PROPOSING)
            proposal = self.proposer.propose(result.directive)
            result.proposal = proposal
            if stats:
                stats.response_chars = len(proposal.raw_response)
                stats.input_tokens = proposal.input_tokens
                stats.output_tokens = proposal.output_tokens
                stats.jobs_proposed = len(proposal.modify_jobs)
        except SelfPatchError as exc:
            return self._fail(result, exc)

        self._enter(PipelineState.APPLYING)
        result.apply_report, result.files_written = self._apply(files, proposal)
        if stats:
            stats.jobs_applied = result.apply_report.applied_count
            stats.jobs_skipped = result.apply_report.skipped_count
            stats.files_written = len(result.files_written)

        self._enter(PipelineState.NOTIFYING)
        self._notify(f"{timestamp()} finished: {len(proposal.raw_response)} characters")
        self._notify(result.changelog, suppress_mentions=True)

        if pending and self.report_queue is not None:
            self._process_reports(result, pending)
            if stats:
                stats.reports_processed = result.reports_processed

        try:
            write_outputs(
                self.github_output,
                {"COMMIT_MESSAGE": proposal.commit_message, "CHANGELOG": result.changelog},
            )
        except OSError as exc:
            logger.error(f"Failed to write CI outputs: {exc}")

        if self.committer and result.files_written:
            result.commit = self.committer.commit(result.files_written, proposal.commit_message)

        self._enter(PipelineState.DONE)
        result.state = PipelineState.DONE
        return result

    def _process_reports(self, result: RunResult, pending: list[ErrorReport]) -> None:
        """Mark the reports a run worked on as processed.

        Reports stay pending unless the run actually rewrote a file.
        """
        if not result.files_written:
            logger.info(f"No files were written; {len(pending)} error report(s) stay pending")
            return
        try:
            result.reports_processed = self.report_queue.mark_processed(r.id for r in pending)
        except OSError as exc:
            logger.error(f"Failed to update error reports: {exc}")
            return
        self._notify(f"{timestamp()} marked {result.reports_processed} error reports as processed")

    def _apply(self, files: list[SourceFile], proposal: ProposalResult) -> tuple[ApplyReport, list[str]]:
        """Apply all jobs in memory, then write back the touched files."""
        if proposal.is_empty:
            logger.info("Proposal holds no modify jobs")

        original = {f.file_name: f.data for f in files}
        buffers = {f.file_name: SourceFile(f.file_name, f.data) for f in files}
        report = apply_jobs(buffers, proposal.modify_jobs)

        if self.run_logger:
            failures = {f.index: f for f in report.failed + report.unknown_files}
            for index, job in enumerate(proposal.modify_jobs):
                failure = failures.get(index)
                if failure:
                    self.run_logger.log_job(index, job.describe(), "skipped", failure.reason)
                else:
                    self.run_logger.log_job(index, job.describe(), "applied")

        patched = {name: buffers[name].data for name in report.touched}
        report.blocked.update(check_guards(self.guards, original, patched))

        written = []
        for name in report.writable:
            if buffers[name].data == original[name]:
                logger.debug(f"{name} unchanged after patching, not rewriting")
                continue
            try:
                written.extend(write_source_files(self.workspace_dir, [buffers[name]]))
            except OSError as exc:
                logger.error(f"Failed to write {name}: {exc}")
                report.blocked[name] = f"write failed: {exc}"
        return report, written
