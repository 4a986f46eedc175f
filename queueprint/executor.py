"""Print executor - fetches a label and delivers it to a printer."""

import logging
import shutil
import tempfile
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from urllib.parse import unquote, urlparse

import requests

from queueprint.errors import ConfigurationError, DeliveryError, RenderTimeoutError
from queueprint.preview import RenderSurface, TkPreviewSurface
from queueprint.printing import LABEL_LAYOUT, PrinterBackend, PrintLayout

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 30
RENDER_TIMEOUT = 30.0
# Time the preview stays up after rendering before the job is submitted
RENDER_SETTLE_SECONDS = 1.0


@contextmanager
def downloaded_artifact(
    label_url: str,
    temp_dir: Path | None = None,
    session: requests.Session | None = None,
    timeout: float = DOWNLOAD_TIMEOUT,
) -> Iterator[Path]:
    """Fetch a label into a uniquely named temporary file.

    The file is removed when the block exits, whatever happens inside it.

    Args:
        label_url: http(s) or file:// URL of the label.
        temp_dir: Directory for the temporary file (default: system temp dir).
        session: Optional requests session.
        timeout: Download timeout in seconds.

    Yields:
        Path: Local copy of the label.

    Raises:
        DeliveryError: If the label cannot be fetched.
    """
    parsed = urlparse(label_url)
    suffix = Path(unquote(parsed.path)).suffix or ".pdf"
    directory = Path(temp_dir or tempfile.gettempdir())
    temp_path = directory / f"label-{uuid.uuid4().hex}{suffix}"
    logger.debug(f"Temporary file path: {temp_path}")

    try:
        if parsed.scheme == "file":
            try:
                shutil.copyfile(unquote(parsed.path), temp_path)
            except OSError as e:
                raise DeliveryError(f"Cannot read {label_url}: {e}") from e
        else:
            http = session or requests
            try:
                response = http.get(label_url, timeout=timeout)
                response.raise_for_status()
            except requests.RequestException as e:
                raise DeliveryError(f"Failed to download label: {e}") from e
            if not response.content:
                raise DeliveryError(f"Empty response downloading {label_url}")
            temp_path.write_bytes(response.content)

        logger.debug("Label downloaded and saved to temp file")
        yield temp_path
    finally:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Error cleaning up temporary label file: {e}")


class PrintExecutor:
    """Delivers one label to one printer.

    Steps are validate, download, then either a silent submit or an
    interactive preview-and-print. Nothing is retried here; the runner
    decides what to do with a failure.
    """

    def __init__(
        self,
        printer: PrinterBackend,
        default_printer_name: str | None = None,
        surface_factory: Callable[[], RenderSurface] = TkPreviewSurface,
        render_timeout: float = RENDER_TIMEOUT,
        settle_seconds: float = RENDER_SETTLE_SECONDS,
        temp_dir: Path | None = None,
        session: requests.Session | None = None,
    ):
        """Initialize the executor.

        Args:
            printer: Printer backend.
            default_printer_name: Printer used when a job names none.
            surface_factory: Builds the preview surface for interactive prints.
            render_timeout: Seconds to wait for the preview to render.
            settle_seconds: Pause between render-complete and submit.
            temp_dir: Directory for downloaded labels.
            session: Optional requests session for downloads.
        """
        self.printer = printer
        self.default_printer_name = default_printer_name
        self.surface_factory = surface_factory
        self.render_timeout = render_timeout
        self.settle_seconds = settle_seconds
        self.temp_dir = temp_dir
        self.session = session

    def deliver(
        self,
        label_url: str | None,
        printer_name: str | None = None,
        silent: bool = True,
        layout: PrintLayout = LABEL_LAYOUT,
    ) -> None:
        """Print a label.

        Args:
            label_url: Location of the label document.
            printer_name: Printer override (falls back to the default printer).
            silent: Submit directly instead of going through the preview.
            layout: Page layout for the print.

        Raises:
            ConfigurationError: If the URL or printer is missing.
            DeliveryError: If download, rendering or printing fails.
        """
        if not label_url:
            raise ConfigurationError("Label URL is required")

        name = printer_name or self.default_printer_name
        if not name:
            raise ConfigurationError("No printer name provided and no default printer set")

        logger.debug(f"Delivering {label_url} to {name} (silent={silent})")

        with downloaded_artifact(label_url, self.temp_dir, self.session) as path:
            if silent:
                self._print_silent(path, name, layout)
            else:
                self._print_interactive(path, name, layout)

    def _print_silent(self, path: Path, printer_name: str, layout: PrintLayout) -> None:
        logger.debug(f"Printing silently to printer: {printer_name}")
        if not self.printer.print_file(path, printer_name, layout=layout):
            raise DeliveryError(f"Printer {printer_name} rejected the job")
        logger.info(f"Label sent to {printer_name}")

    def _print_interactive(self, path: Path, printer_name: str, layout: PrintLayout) -> None:
        surface = self.surface_factory()
        try:
            surface.load(path, layout)
            if not surface.wait_until_rendered(self.render_timeout):
                raise RenderTimeoutError(
                    f"PDF rendering timeout after {self.render_timeout:g} seconds"
                )
            time.sleep(self.settle_seconds)

            if not surface.print(self.printer, printer_name, layout):
                raise DeliveryError("Print failed")
            logger.info(f"Label printed on {printer_name} from preview")
        finally:
            surface.close()
