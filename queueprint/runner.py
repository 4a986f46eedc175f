"""Job runner - claims jobs from the shared queue and prints them.

A runner is the only place where printing is started. It owns:

* the execution guard, a single-permit semaphore held from the moment a
  trigger starts looking for work until the job is reconciled, so at most
  one print is in flight per process;
* the retry timer, which re-executes the job this agent already claimed
  after a fixed delay, up to a fixed ceiling;
* the command path used by operators to print a named job or an ad-hoc
  document and get the result back synchronously.

Triggers that arrive while the guard is held, or while a retry is waiting
on its timer, are dropped. The next trigger re-checks the queue.
"""

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum

from queueprint.errors import ConfigurationError, DeliveryError, StoreError
from queueprint.executor import PrintExecutor
from queueprint.models import JobStatus, PrintCommand, PrintJob, PrintResponse
from queueprint.printing import LABEL_LAYOUT, PrintLayout
from queueprint.store.base import JobStore

logger = logging.getLogger(__name__)


class RunnerState(str, Enum):
    """Phase of the attempt currently in flight."""

    IDLE = "idle"
    CLAIMING = "claiming"
    CLAIMED = "claimed"
    EXECUTING = "executing"
    RECONCILING = "reconciling"


class RunOutcome(str, Enum):
    """Result of one runner invocation."""

    BUSY = "busy"  # Guard held or retry pending; trigger dropped
    NO_STORE = "no_store"  # Degraded mode, no job store
    NO_JOB = "no_job"  # Queue empty
    CLAIM_LOST = "claim_lost"  # Another agent won the claim
    COMPLETED = "completed"  # Printed and marked completed
    RETRY_SCHEDULED = "retry_scheduled"  # Failed, retry timer armed
    EXHAUSTED = "exhausted"  # Failed at the retry ceiling; job stays claimed
    FAILED = "failed"  # Not printable (configuration error); marked failed
    STORE_ERROR = "store_error"  # Store query failed


class JobRunner:
    """Claim → execute → reconcile state machine for one agent process."""

    # Failed attempts per claimed job before automatic retry stops
    MAX_RETRIES = 3
    # Seconds between a failure and the retry
    RETRY_DELAY = 5.0
    # Queue re-checks per trigger after a completed job or a lost claim
    MAX_ROUNDS_PER_TRIGGER = 10
    # Seconds a command waits for an in-flight print to finish
    COMMAND_WAIT_SECONDS = 120.0

    def __init__(
        self,
        store: JobStore | None,
        executor: PrintExecutor,
        agent_id: str,
        silent: bool = True,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
        layout: PrintLayout = LABEL_LAYOUT,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        """Initialize the runner.

        Args:
            store: Job store, or None when running in degraded mode.
            executor: Print executor.
            agent_id: Unique agent id written to ``claimed_by``.
            silent: Print queued jobs without the preview surface.
            max_retries: Retry ceiling per job.
            retry_delay: Delay before a retry in seconds.
            layout: Base label layout; per-job overrides are applied to it.
            timer_factory: Builds the retry timer (threading.Timer signature).
        """
        self.store = store
        self.executor = executor
        self.agent_id = agent_id
        self.silent = silent
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.layout = layout
        self.timer_factory = timer_factory

        self.state = RunnerState.IDLE
        self.retry_count = 0

        self._guard = threading.BoundedSemaphore(1)
        self._lock = threading.Lock()
        self._retry_timer: threading.Timer | None = None
        self._retry_job: PrintJob | None = None
        self._stopped = False

    @property
    def retry_pending(self) -> bool:
        """True while a retry timer is armed."""
        with self._lock:
            return self._retry_timer is not None

    @property
    def retry_job(self) -> PrintJob | None:
        """Job waiting on the retry timer, if any."""
        with self._lock:
            return self._retry_job

    @contextmanager
    def _execution_slot(self, blocking: bool = False, timeout: float | None = None) -> Iterator[bool]:
        """Hold the execution guard for the duration of the block.

        Args:
            blocking: Wait for the guard instead of giving up immediately.
            timeout: Maximum wait when blocking (None = forever).

        Yields:
            bool: True if the guard was acquired.
        """
        if blocking:
            acquired = self._guard.acquire(timeout=timeout)
        else:
            acquired = self._guard.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self.state = RunnerState.IDLE
                self._guard.release()

    def _layout_for(self, job: PrintJob) -> PrintLayout:
        return self.layout.with_overrides(
            copies=job.copies,
            paper_size=job.paper_size,
            orientation=job.orientation,
        )

    # ========================================================================
    # Queue path
    # ========================================================================

    def consider_next_job(self) -> RunOutcome:
        """Entry point for every trigger (notifier event, poll tick, startup).

        Returns:
            RunOutcome: What happened. When several jobs are drained in one
                call, the last round that found a job is reported.
        """
        if self.store is None:
            logger.debug("Job store client not initialized")
            return RunOutcome.NO_STORE

        if self._stopped:
            return RunOutcome.BUSY

        if self.retry_pending:
            logger.debug("Retry pending, skipping...")
            return RunOutcome.BUSY

        with self._execution_slot() as acquired:
            if not acquired:
                logger.debug("Already printing, skipping...")
                return RunOutcome.BUSY

            # A retry may have been armed while this trigger waited
            if self.retry_pending:
                logger.debug("Retry pending, skipping...")
                return RunOutcome.BUSY

            outcome = self._claim_and_execute()
            rounds = 1
            while (
                outcome in (RunOutcome.COMPLETED, RunOutcome.CLAIM_LOST)
                and rounds < self.MAX_ROUNDS_PER_TRIGGER
            ):
                next_outcome = self._claim_and_execute()
                rounds += 1
                if next_outcome == RunOutcome.NO_JOB:
                    break
                outcome = next_outcome
            return outcome

    def _claim_and_execute(self) -> RunOutcome:
        self.state = RunnerState.CLAIMING
        try:
            candidate = self.store.fetch_oldest_pending()
        except StoreError as e:
            logger.error(f"Error fetching print jobs: {e}")
            return RunOutcome.STORE_ERROR

        if candidate is None:
            logger.debug("No pending print jobs")
            return RunOutcome.NO_JOB

        try:
            job = self.store.claim(candidate.id, self.agent_id)
        except StoreError as e:
            logger.error(f"Error claiming print job {candidate.id}: {e}")
            return RunOutcome.STORE_ERROR

        if job is None:
            logger.info(f"Job {candidate.id} was claimed by another agent")
            return RunOutcome.CLAIM_LOST

        self.state = RunnerState.CLAIMED
        self.retry_count = 0
        logger.info(f"Claimed job {job.id} (order {job.order_id})")
        return self._execute_and_reconcile(job)

    def _execute_and_reconcile(self, job: PrintJob, attempt: int = 1) -> RunOutcome:
        """Print a claimed job and record the result.

        Args:
            job: Job claimed by this agent.
            attempt: 1-based attempt number for this job.

        Returns:
            RunOutcome: COMPLETED, FAILED, RETRY_SCHEDULED or EXHAUSTED.
        """
        self.state = RunnerState.EXECUTING
        try:
            self.executor.deliver(
                job.label_url,
                printer_name=job.printer_name,
                silent=self.silent,
                layout=self._layout_for(job),
            )
        except ConfigurationError as e:
            self.state = RunnerState.RECONCILING
            logger.error(f"Job {job.id} cannot be printed: {e}")
            self.retry_count = 0
            self._update_status(job.id, JobStatus.FAILED)
            return RunOutcome.FAILED
        except DeliveryError as e:
            self.state = RunnerState.RECONCILING
            return self._handle_failure(job, attempt, e)
        except Exception as e:
            self.state = RunnerState.RECONCILING
            logger.exception(f"Unexpected error printing job {job.id}")
            return self._handle_failure(job, attempt, e)

        self.state = RunnerState.RECONCILING
        self.retry_count = 0
        try:
            self.store.mark_completed(job.id)
        except StoreError as e:
            # The label is on paper; reprinting would duplicate it
            logger.error(f"Job {job.id} printed but status update failed: {e}")
        logger.info(f"Job {job.id} printed successfully")
        return RunOutcome.COMPLETED

    def _update_status(self, job_id: str, status: JobStatus) -> None:
        try:
            self.store.mark_status(job_id, status)
        except StoreError as e:
            logger.error(f"Error updating print job {job_id} status: {e}")

    def _handle_failure(self, job: PrintJob, attempt: int, error: Exception) -> RunOutcome:
        self.retry_count = attempt
        if attempt < self.max_retries:
            logger.warning(
                f"Print attempt {attempt}/{self.max_retries} for job {job.id} "
                f"failed: {error}. Retrying in {self.retry_delay:g} seconds..."
            )
            self._schedule_retry(job, attempt + 1)
            return RunOutcome.RETRY_SCHEDULED

        # No reclaim path: the job keeps status=printing and claimed_by=us
        logger.error(
            f"Max retries reached for job {job.id}, giving up: {error}. "
            f"Job remains claimed by {self.agent_id}"
        )
        return RunOutcome.EXHAUSTED

    # ========================================================================
    # Retry timer
    # ========================================================================

    def _schedule_retry(self, job: PrintJob, attempt: int) -> None:
        with self._lock:
            if self._stopped:
                return
            timer = self.timer_factory(self.retry_delay, self._run_retry, args=(job, attempt))
            timer.daemon = True
            self._retry_timer = timer
            self._retry_job = job
        timer.start()

    def _run_retry(self, job: PrintJob, attempt: int) -> RunOutcome:
        """Timer callback: execute the already-claimed job again.

        The retry stays pending until the guard is held, so triggers that
        arrive in between are dropped instead of claiming another job.
        """
        with self._execution_slot(blocking=True):
            with self._lock:
                cancelled = self._stopped or self._retry_job is not job
                if not cancelled:
                    self._retry_timer = None
                    self._retry_job = None
            if cancelled:
                logger.debug(f"Retry of job {job.id} was cancelled")
                return RunOutcome.BUSY

            logger.info(f"Retrying job {job.id} (attempt {attempt}/{self.max_retries})")
            outcome = self._execute_and_reconcile(job, attempt)

        if outcome in (RunOutcome.COMPLETED, RunOutcome.EXHAUSTED, RunOutcome.FAILED):
            self.consider_next_job()
        return outcome

    def cancel_retry(self) -> bool:
        """Cancel a pending retry.

        Returns:
            bool: True if a timer was cancelled.
        """
        with self._lock:
            timer, self._retry_timer, self._retry_job = self._retry_timer, None, None
        if timer is None:
            return False
        timer.cancel()
        return True

    def shutdown(self) -> None:
        """Stop accepting triggers and cancel any pending retry."""
        with self._lock:
            self._stopped = True
        self.cancel_retry()

    # ========================================================================
    # Command path
    # ========================================================================

    def submit_print_command(self, command: PrintCommand) -> PrintResponse:
        """Print a named job or an ad-hoc document now and report the result.

        ``TEST-PRINT`` commands print ``label_url`` without touching the job
        store, so they also work when the agent runs without a store and
        are the way to check a printer in that state. Any other
        ``order_id`` is claimed directly by id, printed and marked
        completed, and needs the store. Failures are returned, not raised,
        and never retried.

        Args:
            command: Print command.

        Returns:
            PrintResponse: Outcome for the caller.
        """
        logger.debug(f"Received print command: {command.model_dump()}")
        silent = command.resolved_silent()
        silent = False if silent is None else silent

        if command.is_ad_hoc:
            return self._print_ad_hoc(command, silent)

        if self.store is None:
            return PrintResponse(
                success=False,
                message="Job store client not initialized",
                error="Database connection not available",
            )

        with self._execution_slot(blocking=True, timeout=self.COMMAND_WAIT_SECONDS) as acquired:
            if not acquired:
                return PrintResponse(
                    success=False,
                    message="Agent is busy printing another job",
                    error="Timed out waiting for the printer",
                )
            return self._claim_and_print_command(command, silent)

    def _print_ad_hoc(self, command: PrintCommand, silent: bool) -> PrintResponse:
        label_url = command.resolved_label_url()
        if not label_url:
            return PrintResponse(
                success=False,
                message="Failed to process test print",
                error="Label URL is required for test print",
            )

        with self._execution_slot(blocking=True, timeout=self.COMMAND_WAIT_SECONDS) as acquired:
            if not acquired:
                return PrintResponse(
                    success=False,
                    message="Agent is busy printing another job",
                    error="Timed out waiting for the printer",
                )
            self.state = RunnerState.EXECUTING
            try:
                self.executor.deliver(
                    label_url,
                    printer_name=command.resolved_printer_name(),
                    silent=silent,
                    layout=self.layout,
                )
            except Exception as e:
                logger.error(f"Test print failed: {e}")
                return PrintResponse(
                    success=False, message="Failed to process test print", error=str(e)
                )

        return PrintResponse(success=True, message="Test print completed successfully")

    def _claim_and_print_command(self, command: PrintCommand, silent: bool) -> PrintResponse:
        self.state = RunnerState.CLAIMING
        try:
            job = self.store.claim(command.order_id, self.agent_id)
        except StoreError as e:
            logger.error(f"Error claiming print job {command.order_id}: {e}")
            return PrintResponse(success=False, message="Failed to process print job", error=str(e))

        if job is None:
            return PrintResponse(
                success=False,
                message="Job not available for claiming",
                error="Job not found or already claimed",
            )

        self.state = RunnerState.EXECUTING
        try:
            self.executor.deliver(
                command.resolved_label_url() or job.label_url,
                printer_name=command.resolved_printer_name() or job.printer_name,
                silent=silent,
                layout=self._layout_for(job),
            )
        except ConfigurationError as e:
            self.state = RunnerState.RECONCILING
            self._update_status(job.id, JobStatus.FAILED)
            return PrintResponse(success=False, message="Failed to process print job", error=str(e))
        except Exception as e:
            logger.error(f"Print command for job {job.id} failed: {e}")
            return PrintResponse(success=False, message="Failed to process print job", error=str(e))

        self.state = RunnerState.RECONCILING
        try:
            self.store.mark_completed(job.id)
        except StoreError as e:
            logger.error(f"Job {job.id} printed but status update failed: {e}")

        return PrintResponse(success=True, message="Print job completed successfully")
