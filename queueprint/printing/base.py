"""Abstract printer backend interface."""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Protocol, runtime_checkable

from queueprint.errors import DeliveryError


class PrinterError(DeliveryError):
    """Error during printing operation."""

    pass


@dataclass(frozen=True)
class PrintLayout:
    """Physical layout of a printed label.

    Attributes:
        width_in: Page width in inches.
        height_in: Page height in inches.
        copies: Number of copies.
        landscape: Rotate to landscape.
        monochrome: Print in black and white.
        borderless: Print without margins.
        paper_size: Named paper size; overrides width/height when set.
    """

    width_in: float = 4.0
    height_in: float = 6.5
    copies: int = 1
    landscape: bool = False
    monochrome: bool = True
    borderless: bool = True
    paper_size: str | None = None

    @property
    def media(self) -> str:
        """CUPS media name (e.g. 'Custom.4x6.5in')."""
        if self.paper_size:
            return self.paper_size
        return f"Custom.{self.width_in:g}x{self.height_in:g}in"

    def with_overrides(
        self,
        copies: int | None = None,
        paper_size: str | None = None,
        orientation: str | None = None,
    ) -> "PrintLayout":
        """Return a copy with per-job overrides applied.

        Args:
            copies: Copies override.
            paper_size: Paper size override.
            orientation: 'portrait' or 'landscape'.

        Returns:
            PrintLayout: Updated layout.
        """
        layout = self
        if copies:
            layout = replace(layout, copies=copies)
        if paper_size:
            layout = replace(layout, paper_size=paper_size)
        if orientation:
            layout = replace(layout, landscape=orientation.lower() == "landscape")
        return layout


# 4in x 6.5in shipping label, borderless, monochrome, one copy, portrait
LABEL_LAYOUT = PrintLayout()


@runtime_checkable
class PrinterBackend(Protocol):
    """Protocol defining the printer backend interface.

    All platform-specific printer implementations must satisfy this protocol.
    """

    @property
    def is_available(self) -> bool:
        """Check if the printing system is available.

        Returns:
            bool: True if printing is available.
        """
        ...

    def get_printers(self) -> list[dict]:
        """Get list of available printers.

        Returns:
            list[dict]: List of printer info dicts with 'name', 'state',
                        'state_message', and 'is_default' keys.
        """
        ...

    def get_default_printer(self) -> str | None:
        """Get the default printer name.

        Returns:
            str | None: Default printer name or None.
        """
        ...

    def get_printer_status(self, printer_name: str | None = None) -> str:
        """Get status of a specific printer.

        Args:
            printer_name: Printer name (None = configured or default).

        Returns:
            str: Status string ('ready', 'offline', 'busy', 'unknown').
        """
        ...

    def print_file(
        self,
        path: Path,
        printer_name: str,
        layout: PrintLayout = LABEL_LAYOUT,
        title: str = "QueuePrint Label",
        wait: bool = False,
    ) -> bool:
        """Submit a document file to the print subsystem.

        Args:
            path: File to print. The caller owns it and deletes it afterwards.
            printer_name: Target printer.
            layout: Page layout options.
            title: Print job title.
            wait: Block until the print subsystem reports the job finished.

        Returns:
            bool: True if the job was accepted (and, with wait, completed).

        Raises:
            PrinterError: If printing fails.
        """
        ...
