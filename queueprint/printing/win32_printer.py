"""Windows printing backend using win32print and ShellExecute."""

import logging
import time
from pathlib import Path

from queueprint.printing.base import LABEL_LAYOUT, PrinterError, PrintLayout

logger = logging.getLogger(__name__)

# Try to import win32 modules
try:
    import win32api
    import win32print

    WIN32_AVAILABLE = True
except ImportError:
    WIN32_AVAILABLE = False
    logger.debug("pywin32 not available - Windows printing disabled")

# Seconds the spooler gets to read the file before the caller deletes it
SPOOL_GRACE_SECONDS = 2


class Win32Printer:
    """Windows printing backend using win32print API."""

    def __init__(self, printer_name: str | None = None):
        """Initialize Windows printer.

        Args:
            printer_name: Printer name (None = default printer).
        """
        self.printer_name = printer_name

    @property
    def is_available(self) -> bool:
        """Check if Windows printing is available.

        Returns:
            bool: True if win32print is importable.
        """
        return WIN32_AVAILABLE

    def get_printers(self) -> list[dict]:
        """Get list of available printers.

        Returns:
            list[dict]: List of printer info dicts.
        """
        if not WIN32_AVAILABLE:
            return []

        try:
            default = self.get_default_printer()
            printers = win32print.EnumPrinters(
                win32print.PRINTER_ENUM_LOCAL | win32print.PRINTER_ENUM_CONNECTIONS
            )
        except Exception as e:
            logger.error(f"Error enumerating printers: {e}")
            return []

        return [
            {
                "name": name,
                "state": 3,  # Map to CUPS-like idle state
                "state_message": comment or "",
                "is_default": name == default,
            }
            for _flags, _description, name, comment in printers
        ]

    def get_default_printer(self) -> str | None:
        """Get the default printer name.

        Returns:
            str | None: Default printer name or None.
        """
        if not WIN32_AVAILABLE:
            return None

        try:
            return win32print.GetDefaultPrinter()
        except Exception as e:
            logger.error(f"Error getting default printer: {e}")
            return None

    def get_printer_status(self, printer_name: str | None = None) -> str:
        """Get status of a specific printer.

        Args:
            printer_name: Printer name (None = configured or default).

        Returns:
            str: Status string ('ready', 'offline', 'busy', 'unknown').
        """
        if not WIN32_AVAILABLE:
            return "unknown"

        name = printer_name or self.printer_name or self.get_default_printer()
        if not name:
            return "unknown"

        try:
            handle = win32print.OpenPrinter(name)
            try:
                status = win32print.GetPrinter(handle, 2)["Status"]
            finally:
                win32print.ClosePrinter(handle)
        except Exception as e:
            logger.error(f"Error getting printer status: {e}")
            return "unknown"

        if status == 0:
            return "ready"
        if status & 0x00000400:  # PRINTER_STATUS_OFFLINE
            return "offline"
        if status & 0x00000004:  # PRINTER_STATUS_PRINTING
            return "busy"
        return "unknown"

    def print_file(
        self,
        path: Path,
        printer_name: str,
        layout: PrintLayout = LABEL_LAYOUT,
        title: str = "QueuePrint Label",
        wait: bool = False,
    ) -> bool:
        """Print a document file using ShellExecute.

        Delegates to the system's default PDF handler for rendering. Page
        size and color mode come from the printer driver's defaults, so only
        the copy count of the layout is honoured here.

        Args:
            path: File to print.
            printer_name: Target printer.
            layout: Page layout options.
            title: Print job title (unused by ShellExecute).
            wait: Ignored; ShellExecute gives no completion signal.

        Returns:
            bool: True if print job was submitted successfully.

        Raises:
            PrinterError: If printing fails.
        """
        if not WIN32_AVAILABLE:
            raise PrinterError("pywin32 is not installed")

        name = printer_name or self.printer_name or self.get_default_printer()

        try:
            for _ in range(layout.copies):
                if name:
                    win32api.ShellExecute(0, "printto", str(path), f'"{name}"', ".", 0)
                else:
                    win32api.ShellExecute(0, "print", str(path), None, ".", 0)
        except Exception as e:
            raise PrinterError(f"Windows print failed: {e}") from e

        logger.info(f"Print job submitted to {name or 'default'} ({layout.copies} copies)")
        time.sleep(SPOOL_GRACE_SECONDS)
        return True
