"""QueuePrint agent - wires the store, notifiers and runner together."""

import logging
import signal
import threading

from queueprint.config import AgentConfig, get_config
from queueprint.executor import PrintExecutor
from queueprint.identity import resolve_unique_agent_id
from queueprint.models import PrintCommand, PrintResponse
from queueprint.notifier import PollingNotifier, RealtimeNotifier
from queueprint.printing import PrinterBackend, get_printer
from queueprint.runner import JobRunner
from queueprint.store import connect_with_retry
from queueprint.store.base import JobStore

logger = logging.getLogger(__name__)

DEGRADED_MESSAGE = (
    "Failed to connect to the job store. Please check your settings; "
    "only test prints are available until the agent is restarted."
)


class PrintAgent:
    """Print agent that watches the shared queue and prints claimed jobs.

    The agent:
    1. Resolves its unique id (the value it writes into ``claimed_by``)
    2. Connects to the job store, retrying a bounded number of times
    3. Subscribes to realtime inserts (Supabase) and polls periodically
    4. Hands every trigger to the job runner, which claims and prints

    Without a store the agent keeps running in degraded mode and only
    serves ad-hoc test prints.
    """

    def __init__(
        self,
        config: AgentConfig | None = None,
        printer: PrinterBackend | None = None,
        store: JobStore | None = None,
    ):
        """Initialize the agent.

        Args:
            config: Configuration (loads from file if not provided).
            printer: Printer backend (platform default if not provided).
            store: Job store (built from config on connect() if not provided).
        """
        self.config = config or get_config()
        self.printer = printer or get_printer(self.config.printer_name)
        self.agent_id = resolve_unique_agent_id(
            self.config.agent_id or "agent-unknown", self.config.unique_id_path
        )
        self.store = store
        self.degraded = False
        self.running = False
        self._stop_event = threading.Event()
        self.notifiers: list = []

        executor = PrintExecutor(
            self.printer,
            default_printer_name=self.config.printer_name,
            render_timeout=self.config.render_timeout,
        )
        self.runner = JobRunner(
            store,
            executor,
            self.agent_id,
            silent=self.config.silent,
            max_retries=self.config.max_retries,
            retry_delay=self.config.retry_delay,
        )

    def _handle_shutdown(self, signum, frame):
        """Handle shutdown signals gracefully."""
        logger.info("Shutdown signal received")
        self.stop()

    def connect(self) -> bool:
        """Connect to the job store, entering degraded mode on failure.

        Returns:
            bool: True if a store is available.
        """
        if self.store is None:
            self.store = connect_with_retry(self.config)

        self.runner.store = self.store
        self.degraded = self.store is None
        if self.degraded:
            logger.error(DEGRADED_MESSAGE)
        return not self.degraded

    def _start_notifiers(self) -> None:
        self.notifiers = []
        if self.config.backend == "supabase":
            self.notifiers.append(
                RealtimeNotifier(
                    self.config.supabase_url,
                    self.config.supabase_key,
                    self.runner.consider_next_job,
                    table=self.config.jobs_table,
                )
            )
        self.notifiers.append(
            PollingNotifier(self.runner.consider_next_job, self.config.poll_interval)
        )
        for notifier in self.notifiers:
            notifier.start()

    def run(self) -> None:
        """Run the agent until interrupted or stop() is called."""
        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGINT, self._handle_shutdown)
            signal.signal(signal.SIGTERM, self._handle_shutdown)

        logger.info("Starting QueuePrint agent")
        logger.info(f"Agent ID: {self.agent_id}")
        logger.info(f"Job store: {self.config.backend or 'none'}")
        logger.info(f"Printer: {self.config.printer_name or 'default'}")

        self.running = True
        self._stop_event.clear()

        if self.connect():
            self._start_notifiers()
            self.runner.consider_next_job()

        while not self._stop_event.wait(self.config.poll_interval):
            if self.degraded:
                logger.error(DEGRADED_MESSAGE)

        self.running = False
        logger.info("Agent stopped")

    def stop(self) -> None:
        """Stop notifiers, cancel pending retries and end run()."""
        self.running = False
        self._stop_event.set()
        self.runner.shutdown()
        for notifier in self.notifiers:
            notifier.stop()

    def submit_print_command(self, command: PrintCommand) -> PrintResponse:
        """Print a named job or an ad-hoc document (see JobRunner)."""
        return self.runner.submit_print_command(command)

    def status(self) -> dict:
        """Summarize agent state for the CLI.

        Returns:
            dict: agent_id, backend, connected, degraded, runner state,
                retry information and printer status.
        """
        retry_job = self.runner.retry_job
        return {
            "agent_id": self.agent_id,
            "backend": self.config.backend or "none",
            "connected": self.store is not None,
            "degraded": self.degraded,
            "state": self.runner.state.value,
            "retry_count": self.runner.retry_count,
            "retry_job": retry_job.id if retry_job else None,
            "printer": self.config.printer_name or "(default)",
            "printer_status": self.printer.get_printer_status(self.config.printer_name),
        }


def get_agent(config: AgentConfig | None = None) -> PrintAgent:
    """Factory function for PrintAgent.

    Args:
        config: Optional configuration.

    Returns:
        PrintAgent: Agent instance.
    """
    return PrintAgent(config)
