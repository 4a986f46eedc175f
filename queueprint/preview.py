"""Interactive label preview used for non-silent printing.

The preview window shows the label at its physical size, tells the executor
when it has finished rendering, and hands the document to the printer
backend. Tk runs on its own thread; the executor only talks to the surface
through thread-safe events.
"""

import logging
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import Protocol

from queueprint.errors import DeliveryError
from queueprint.printing.base import PrinterBackend, PrintLayout

logger = logging.getLogger(__name__)

PREVIEW_DPI = 100
CLOSE_POLL_MS = 100


class RenderSurface(Protocol):
    """A surface that renders a document and prints it on request."""

    def load(self, path: Path, layout: PrintLayout) -> None:
        """Start rendering a document.

        Args:
            path: Document to render.
            layout: Physical layout the surface is sized to.

        Raises:
            DeliveryError: If the document cannot be opened.
        """
        ...

    def wait_until_rendered(self, timeout: float) -> bool:
        """Wait for the render-complete signal.

        Args:
            timeout: Seconds to wait.

        Returns:
            bool: True if rendering finished within the timeout.
        """
        ...

    def print(self, printer: PrinterBackend, printer_name: str, layout: PrintLayout) -> bool:
        """Submit the rendered document and wait for the print to complete.

        Returns:
            bool: Verdict reported by the print subsystem.
        """
        ...

    def close(self) -> None:
        """Tear down the surface and release its resources."""
        ...


def rasterize_first_page(pdf_path: Path, out_dir: Path, dpi: int = PREVIEW_DPI) -> Path:
    """Render the first page of a PDF to PNG with pdftoppm.

    Args:
        pdf_path: PDF document.
        out_dir: Directory for the PNG.
        dpi: Render resolution.

    Returns:
        Path: Rendered PNG.

    Raises:
        DeliveryError: If pdftoppm is missing or fails.
    """
    prefix = out_dir / "preview"
    cmd = ["pdftoppm", "-png", "-r", str(dpi), "-f", "1", "-l", "1", "-singlefile"]
    cmd.extend([str(pdf_path), str(prefix)])
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=30)
    except subprocess.TimeoutExpired as err:
        raise DeliveryError("PDF rasterization timed out") from err
    except FileNotFoundError as err:
        raise DeliveryError("pdftoppm not found - is poppler-utils installed?") from err

    if result.returncode != 0:
        raise DeliveryError(f"pdftoppm failed: {result.stderr.strip()}")
    return prefix.with_suffix(".png")


class TkPreviewSurface:
    """Tk window sized to the label's physical dimensions."""

    def __init__(self, title: str = "QueuePrint Preview"):
        self.title = title
        self._source: Path | None = None
        self._workdir: tempfile.TemporaryDirectory | None = None
        self._thread: threading.Thread | None = None
        self._rendered = threading.Event()
        self._closing = threading.Event()
        self._error: Exception | None = None

    def load(self, path: Path, layout: PrintLayout) -> None:
        self._source = path
        self._workdir = tempfile.TemporaryDirectory(prefix="queueprint-preview-")

        if path.suffix.lower() == ".pdf":
            image_path = rasterize_first_page(path, Path(self._workdir.name))
        else:
            image_path = path

        self._thread = threading.Thread(
            target=self._run_window,
            args=(image_path, layout),
            daemon=True,
            name="queueprint-preview",
        )
        self._thread.start()

    def _run_window(self, image_path: Path, layout: PrintLayout) -> None:
        import tkinter as tk

        from PIL import Image, ImageTk

        try:
            root = tk.Tk()
            root.title(self.title)

            pixels_per_inch = root.winfo_fpixels("1i")
            width_in, height_in = layout.width_in, layout.height_in
            if layout.landscape:
                width_in, height_in = height_in, width_in
            size = (int(width_in * pixels_per_inch), int(height_in * pixels_per_inch))
            root.geometry(f"{size[0]}x{size[1]}")
            root.resizable(False, False)

            with Image.open(image_path) as img:
                preview = img.convert("L" if layout.monochrome else "RGB")
                preview = preview.resize(size)
            photo = ImageTk.PhotoImage(preview, master=root)
            tk.Label(root, image=photo, borderwidth=0).pack()

            def _poll_close():
                if self._closing.is_set():
                    root.destroy()
                else:
                    root.after(CLOSE_POLL_MS, _poll_close)

            root.after_idle(self._rendered.set)
            root.after(CLOSE_POLL_MS, _poll_close)
            root.mainloop()
        except Exception as e:
            logger.error(f"Preview window failed: {e}")
            self._error = e
            self._rendered.set()

    def wait_until_rendered(self, timeout: float) -> bool:
        if not self._rendered.wait(timeout):
            return False
        if self._error is not None:
            raise DeliveryError(f"Preview failed to render: {self._error}") from self._error
        return True

    def print(self, printer: PrinterBackend, printer_name: str, layout: PrintLayout) -> bool:
        if self._source is None:
            raise DeliveryError("Nothing loaded in preview")
        return printer.print_file(
            self._source,
            printer_name,
            layout=layout,
            title=self.title,
            wait=True,
        )

    def close(self) -> None:
        self._closing.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
        if self._workdir is not None:
            self._workdir.cleanup()
            self._workdir = None
