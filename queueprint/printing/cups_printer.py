"""CUPS printing backend for Linux and macOS."""

import logging
import subprocess
import time
from pathlib import Path

from queueprint.printing.base import LABEL_LAYOUT, PrinterError, PrintLayout

logger = logging.getLogger(__name__)

# Try to import cups, but make it optional
try:
    import cups

    CUPS_AVAILABLE = True
except ImportError:
    CUPS_AVAILABLE = False
    logger.warning("pycups not available - using lp command fallback")

# IPP job states: 7=canceled, 8=aborted, 9=completed
IPP_JOB_CANCELED = 7
IPP_JOB_COMPLETED = 9

# Upper bound for waiting on a submitted job
JOB_WAIT_TIMEOUT = 120
JOB_POLL_INTERVAL = 0.5


def cups_options(layout: PrintLayout) -> dict[str, str]:
    """Translate a layout into CUPS job options.

    Args:
        layout: Page layout.

    Returns:
        dict[str, str]: CUPS option name -> value.
    """
    # 3=portrait, 4=landscape
    options = {
        "copies": str(layout.copies),
        "media": layout.media,
        "orientation-requested": "4" if layout.landscape else "3",
        "fit-to-page": "true",
    }
    if layout.monochrome:
        options["print-color-mode"] = "monochrome"
    if layout.borderless:
        for side in ("page-left", "page-right", "page-top", "page-bottom"):
            options[side] = "0"
    return options


class CupsPrinter:
    """Wrapper for CUPS printing operations."""

    def __init__(self, printer_name: str | None = None):
        """Initialize CUPS printer connection.

        Args:
            printer_name: CUPS printer name (None = default printer).
        """
        self.printer_name = printer_name
        self._connection = None

        if CUPS_AVAILABLE:
            try:
                self._connection = cups.Connection()
            except RuntimeError as e:
                logger.error(f"Could not connect to CUPS: {e}")

    @property
    def is_available(self) -> bool:
        """Check if CUPS is available and connected.

        Returns:
            bool: True if CUPS is available.
        """
        return self._connection is not None or self._check_lp_available()

    def _check_lp_available(self) -> bool:
        """Check if lp command is available (fallback).

        Returns:
            bool: True if lp command exists.
        """
        try:
            result = subprocess.run(["which", "lp"], capture_output=True, text=True, timeout=5)
            return result.returncode == 0
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return False

    def get_printers(self) -> list[dict]:
        """Get list of available printers.

        Returns:
            list[dict]: List of printer info dicts with 'name' and 'state'.
        """
        if self._connection:
            try:
                printers = self._connection.getPrinters()
                return [
                    {
                        "name": name,
                        "state": info.get("printer-state", 0),
                        "state_message": info.get("printer-state-message", ""),
                        "is_default": info.get("printer-is-default", False),
                    }
                    for name, info in printers.items()
                ]
            except cups.IPPError as e:
                logger.error(f"Error getting printers: {e}")
                return []

        # Fallback: use lpstat
        try:
            result = subprocess.run(["lpstat", "-p"], capture_output=True, text=True, timeout=10)
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return []

        printers = []
        for line in result.stdout.strip().split("\n"):
            if line.startswith("printer "):
                parts = line.split()
                if len(parts) >= 2:
                    printers.append(
                        {
                            "name": parts[1],
                            "state": 3,  # Assume idle
                            "state_message": "",
                            "is_default": False,
                        }
                    )
        return printers

    def get_default_printer(self) -> str | None:
        """Get the default printer name.

        Returns:
            str | None: Default printer name or None.
        """
        if self._connection:
            try:
                return self._connection.getDefault()
            except cups.IPPError as e:
                logger.error(f"Error getting default printer: {e}")
                return None

        # Fallback: use lpstat -d
        try:
            result = subprocess.run(["lpstat", "-d"], capture_output=True, text=True, timeout=5)
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return None
        if "system default destination:" in result.stdout:
            return result.stdout.split(":")[-1].strip()
        return None

    def get_printer_status(self, printer_name: str | None = None) -> str:
        """Get status of a specific printer.

        Args:
            printer_name: Printer name (None = configured or default).

        Returns:
            str: Status string ('ready', 'offline', 'busy', 'unknown').
        """
        name = printer_name or self.printer_name or self.get_default_printer()
        if not name or not self._connection:
            return "unknown"

        try:
            printers = self._connection.getPrinters()
        except cups.IPPError as e:
            logger.error(f"Error getting printer status: {e}")
            return "unknown"

        if name not in printers:
            return "offline"

        # CUPS states: 3=idle, 4=processing, 5=stopped
        state = printers[name].get("printer-state", 0)
        return {3: "ready", 4: "busy", 5: "offline"}.get(state, "unknown")

    def print_file(
        self,
        path: Path,
        printer_name: str,
        layout: PrintLayout = LABEL_LAYOUT,
        title: str = "QueuePrint Label",
        wait: bool = False,
    ) -> bool:
        """Print a document file.

        Args:
            path: File to print.
            printer_name: Target printer.
            layout: Page layout options.
            title: Print job title.
            wait: Block until CUPS reports the job finished.

        Returns:
            bool: True if the job was submitted (and, with wait, completed).

        Raises:
            PrinterError: If printing fails.
        """
        name = printer_name or self.printer_name or self.get_default_printer()
        options = cups_options(layout)

        if self._connection and name:
            try:
                job_id = self._connection.printFile(name, str(path), title, options)
            except cups.IPPError as e:
                raise PrinterError(f"CUPS rejected print job: {e}") from e
            logger.info(f"Print job {job_id} submitted to {name}")
            if wait:
                return self._wait_for_job(job_id)
            return True

        # Fallback to lp command
        cmd = ["lp", "-t", title]
        if name:
            cmd.extend(["-d", name])
        for key, value in options.items():
            if key == "copies":
                cmd.extend(["-n", value])
            else:
                cmd.extend(["-o", f"{key}={value}"])
        cmd.append(str(path))

        logger.debug(f"Print command: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=30)
        except subprocess.TimeoutExpired as err:
            raise PrinterError("Print command timed out") from err
        except FileNotFoundError as err:
            raise PrinterError("lp command not found - is CUPS installed?") from err

        if result.returncode != 0:
            raise PrinterError(f"lp command failed: {result.stderr}")

        logger.info(f"Print job submitted via lp: {result.stdout.strip()}")
        return True

    def _wait_for_job(self, job_id: int) -> bool:
        """Poll CUPS until a job leaves the queue.

        Args:
            job_id: CUPS job id.

        Returns:
            bool: True if the job completed, False if it was canceled or aborted.

        Raises:
            PrinterError: If the job does not finish within JOB_WAIT_TIMEOUT.
        """
        deadline = time.monotonic() + JOB_WAIT_TIMEOUT
        while time.monotonic() < deadline:
            try:
                state = self._connection.getJobAttributes(job_id).get("job-state", 0)
            except cups.IPPError as e:
                raise PrinterError(f"Lost track of print job {job_id}: {e}") from e

            if state == IPP_JOB_COMPLETED:
                logger.info(f"Print job {job_id} completed")
                return True
            if state >= IPP_JOB_CANCELED:
                logger.warning(f"Print job {job_id} ended in state {state}")
                return False
            time.sleep(JOB_POLL_INTERVAL)

        raise PrinterError(f"Print job {job_id} did not complete within {JOB_WAIT_TIMEOUT}s")
